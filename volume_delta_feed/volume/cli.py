from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from .api import create_app
from .config import AppConfig, load_config
from .db import coverage_stats, ensure_table, read_bars
from .logger import setup_logger
from .stats import TIME_RANGES, VolumeStats, bias, compute_stats, time_cutoff
from .validation import VALID_SYMBOLS, VALID_TIMEFRAMES
from .widget import VolumeWidget, WidgetConfig, db_fetcher


@dataclass
class RunConfig:
    command: str
    app: AppConfig
    symbol: str = "MNQ"
    timeframe: str = "1m"
    time_range: str = "1h"
    debug: bool = False


def format_stats_line(stats: VolumeStats, symbol: str, timeframe: str, error: Optional[str] = None) -> str:
    line = (
        f"symbol={symbol} timeframe={timeframe} bars={stats.bar_count} "
        f"total_delta={stats.total_delta:+.0f} avg_delta={stats.avg_delta:+.0f} "
        f"bias={bias(stats.total_delta)} live={stats.is_live} source={stats.data_source} "
        f"last_update={stats.last_update or 'none'}"
    )
    if error:
        line += f" error={error!r}"
    return line


def run_stats(cfg: RunConfig) -> int:
    ensure_table(cfg.app.duckdb_path)
    bars = read_bars(cfg.app.duckdb_path, cfg.symbol, cfg.timeframe, time_cutoff(cfg.time_range))
    stats = compute_stats(bars)
    print(format_stats_line(stats, cfg.symbol, cfg.timeframe))
    if cfg.debug:
        cov = coverage_stats(cfg.app.duckdb_path)
        if cov is None:
            print("[INFO] volume_data is empty")
        else:
            print(f"[INFO] volume_data rows={cov[2]} range={cov[0]} .. {cov[1]}")
    return 0


def run_watch(cfg: RunConfig) -> int:
    ensure_table(cfg.app.duckdb_path)
    widget = VolumeWidget(
        db_fetcher(cfg.app.duckdb_path),
        WidgetConfig(
            symbol=cfg.symbol,
            timeframe=cfg.timeframe,
            refresh_interval=cfg.app.refresh_interval,
            time_range=cfg.time_range,
        ),
        on_update=lambda w: print(format_stats_line(w.stats, w.config.symbol, w.config.timeframe, w.error)),
    )
    widget.activate()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        widget.deactivate(wait=True)
    return 0


def run_serve(cfg: RunConfig) -> int:
    app = create_app(cfg.app)
    app.run(host=cfg.app.host, port=cfg.app.port, debug=cfg.debug)
    return 0


def run_once(cfg: RunConfig) -> int:
    if cfg.command == "serve":
        return run_serve(cfg)
    if cfg.command == "watch":
        return run_watch(cfg)
    return run_stats(cfg)


def parse_args(argv: Optional[list[str]] = None) -> RunConfig:
    base = load_config()

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--duckdb", type=Path, default=None, help="Path to DuckDB file (default: $VOLUME_DB_PATH)")
    common.add_argument("--debug", action="store_true", help="Verbose logging")

    view = argparse.ArgumentParser(add_help=False)
    view.add_argument("--symbol", type=str.upper, choices=VALID_SYMBOLS, default=base.default_symbol)
    view.add_argument("--timeframe", type=str.lower, choices=VALID_TIMEFRAMES, default=base.default_timeframe)
    view.add_argument("--range", dest="time_range", choices=list(TIME_RANGES), default="1h", help="Display window")

    p = argparse.ArgumentParser(description="Volume delta feed: ingestion API and stats")
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", parents=[common], help="Run the ingestion API and dashboard")
    serve.add_argument("--host", type=str, default=base.host)
    serve.add_argument("--port", type=int, default=base.port)

    sub.add_parser("stats", parents=[common, view], help="Print volume delta stats once")

    watch = sub.add_parser("watch", parents=[common, view], help="Poll and print volume delta stats")
    watch.add_argument("--interval", type=float, default=base.refresh_interval, help="Seconds between refreshes")

    args = p.parse_args(argv)

    app_cfg = replace(
        base,
        duckdb_path=args.duckdb or base.duckdb_path,
        host=getattr(args, "host", base.host),
        port=getattr(args, "port", base.port),
        refresh_interval=getattr(args, "interval", base.refresh_interval),
    )
    return RunConfig(
        command=args.command,
        app=app_cfg,
        symbol=getattr(args, "symbol", base.default_symbol),
        timeframe=getattr(args, "timeframe", base.default_timeframe),
        time_range=getattr(args, "time_range", "1h"),
        debug=args.debug,
    )


def main(argv: Optional[list[str]] = None) -> int:
    try:
        cfg = parse_args(argv)
    except SystemExit as e:
        return int(e.code or 0)
    setup_logger("volume_delta_feed", log_dir=cfg.app.log_dir, level=logging.DEBUG if cfg.debug else logging.INFO)
    try:
        return run_once(cfg)
    except Exception as e:  # surface clear error message
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
