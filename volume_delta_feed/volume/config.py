from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppConfig:
    duckdb_path: Path = Path("data/volume.duckdb")
    host: str = "127.0.0.1"
    port: int = 3000
    refresh_interval: float = 30.0
    default_symbol: str = "MNQ"
    default_timeframe: str = "1m"
    log_dir: Optional[Path] = None


def load_config(env_file: Optional[Path] = None) -> AppConfig:
    """Build AppConfig from the environment, reading a .env file first if present.

    Variables already set in the process environment take precedence over the file.
    """
    load_dotenv(dotenv_path=env_file)
    log_dir = os.getenv("VOLUME_LOG_DIR")
    return AppConfig(
        duckdb_path=Path(os.getenv("VOLUME_DB_PATH", "data/volume.duckdb")),
        host=os.getenv("VOLUME_API_HOST", "127.0.0.1"),
        port=int(os.getenv("VOLUME_API_PORT", "3000")),
        refresh_interval=float(os.getenv("VOLUME_REFRESH_INTERVAL", "30")),
        default_symbol=os.getenv("MNQ_DEFAULT_SYMBOL", "MNQ").upper(),
        default_timeframe=os.getenv("VOLUME_DEFAULT_TIMEFRAME", "1m").lower(),
        log_dir=Path(log_dir) if log_dir else None,
    )
