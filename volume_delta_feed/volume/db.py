from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import duckdb  # type: ignore
import pandas as pd

from .validation import NormalizedBar, parse_bar_time


TABLE_NAME = "volume_data"
ROW_COLUMNS = [
    "id",
    "symbol",
    "related_symbol",
    "bar_time",
    "open_volume",
    "close_volume",
    "delta_volume",
    "timeframe",
    "source",
    "created_at",
]
READ_COLUMNS = ["bar_time", "open_volume", "close_volume", "delta_volume", "source"]
_INSERT_COLUMNS = ROW_COLUMNS[1:-1]


def _connect(db_path: Path):
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    con = duckdb.connect(str(db_path))
    con.execute("SET TimeZone='UTC';")
    return con


def ensure_table(db_path: Path) -> None:
    con = _connect(db_path)
    try:
        con.execute(f"CREATE SEQUENCE IF NOT EXISTS {TABLE_NAME}_id_seq START 1;")
        con.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
              id BIGINT DEFAULT nextval('{TABLE_NAME}_id_seq') PRIMARY KEY,
              symbol VARCHAR NOT NULL,
              related_symbol VARCHAR,
              bar_time TIMESTAMP NOT NULL,
              open_volume DOUBLE NOT NULL CHECK (open_volume >= 0),
              close_volume DOUBLE NOT NULL CHECK (close_volume >= 0),
              delta_volume DOUBLE NOT NULL,
              timeframe VARCHAR NOT NULL,
              source VARCHAR,
              created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        con.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_lookup ON {TABLE_NAME}(symbol, timeframe, bar_time);"
        )
    finally:
        con.close()


def bars_to_dataframe(bars: Sequence[NormalizedBar]) -> pd.DataFrame:
    """Map normalized bars into the insert frame; bar_time becomes UTC-naive datetime64."""
    df = pd.DataFrame([b.to_dict() for b in bars], columns=_INSERT_COLUMNS)
    df["bar_time"] = pd.to_datetime([parse_bar_time(t).tz_convert(None) for t in df["bar_time"]])
    return df


def _iso_utc(value) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.isoformat()


def rows_to_records(df: pd.DataFrame) -> List[dict]:
    """Convert a fetched frame into JSON-ready dicts with ISO-8601 timestamps."""
    out = df.copy()
    for col in ("bar_time", "created_at"):
        if col in out.columns:
            out[col] = out[col].map(_iso_utc).astype(object)
    return out.to_dict(orient="records")


def insert_bars(db_path: Path, bars: Sequence[NormalizedBar]) -> pd.DataFrame:
    """Insert all bars in one statement and return the stored rows.

    The insert succeeds or fails as a unit; duckdb.Error (e.g. a CHECK violation)
    propagates to the caller.
    """
    incoming = bars_to_dataframe(bars)
    cols = ", ".join(_INSERT_COLUMNS)
    con = _connect(db_path)
    try:
        con.register("incoming_bars", incoming)
        df = con.execute(
            f"""
            INSERT INTO {TABLE_NAME} ({cols})
            SELECT {cols} FROM incoming_bars
            RETURNING {", ".join(ROW_COLUMNS)};
            """
        ).fetch_df()
        return df.sort_values("id").reset_index(drop=True)
    finally:
        con.close()


def read_bars(db_path: Path, symbol: str, timeframe: str, cutoff: pd.Timestamp) -> pd.DataFrame:
    """Read bars for symbol/timeframe with bar_time >= cutoff, newest first."""
    con = _connect(db_path)
    try:
        q = f"""
            SELECT {", ".join(READ_COLUMNS)}
            FROM {TABLE_NAME}
            WHERE symbol = ? AND timeframe = ? AND bar_time >= ?
            ORDER BY bar_time DESC
        """
        return con.execute(q, [symbol, timeframe, pd.Timestamp(cutoff).to_pydatetime()]).fetch_df()
    finally:
        con.close()


def read_all_rows(db_path: Path, symbol: Optional[str] = None, timeframe: Optional[str] = None) -> pd.DataFrame:
    con = _connect(db_path)
    try:
        clauses, params = [], []
        if symbol:
            clauses.append("symbol = ?")
            params.append(symbol)
        if timeframe:
            clauses.append("timeframe = ?")
            params.append(timeframe)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        q = f"SELECT {', '.join(ROW_COLUMNS)} FROM {TABLE_NAME} {where} ORDER BY bar_time, id"
        return con.execute(q, params).fetch_df()
    finally:
        con.close()


def coverage_stats(db_path: Path) -> Optional[tuple[pd.Timestamp, pd.Timestamp, int]]:
    con = _connect(db_path)
    try:
        q = f"SELECT MIN(bar_time), MAX(bar_time), COUNT(*) FROM {TABLE_NAME}"
        res = con.execute(q).fetchone()
        if res is None or res[0] is None:
            return None
        return pd.Timestamp(res[0]), pd.Timestamp(res[1]), int(res[2])
    finally:
        con.close()
