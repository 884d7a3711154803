#!/usr/bin/env python3
from __future__ import annotations

"""
Export volume_data rows from DuckDB to a CSV file.

Usage examples:
  python -m volume_delta_feed.scripts.export_volume_data_to_csv \
    --duckdb data/volume.duckdb --symbol MNQ --timeframe 1m \
    --out "data/MNQ_1m_volume.csv" --overwrite

Notes:
  - Outputs every persisted column, ordered by bar_time (UTC-naive timestamps)
  - By default prevents overwriting unless --overwrite is passed
"""

import argparse
from pathlib import Path
import sys
from typing import Optional

from volume_delta_feed.volume.db import ROW_COLUMNS, ensure_table, read_all_rows


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Export volume_data from DuckDB to CSV')
    parser.add_argument('--duckdb', type=Path, required=True, help='Path to DuckDB file')
    parser.add_argument('--symbol', type=str.upper, default=None, help='Only export this symbol')
    parser.add_argument('--timeframe', type=str.lower, default=None, help='Only export this timeframe')
    parser.add_argument('--out', type=Path, default=Path('data') / 'volume_data.csv', help='Output CSV path')
    parser.add_argument('--overwrite', action='store_true', help='Allow overwriting existing output file')
    args = parser.parse_args(argv)

    out_path = args.out
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if out_path.exists() and not args.overwrite:
        print(f"ERROR: Output exists: {out_path}. Pass --overwrite to replace.", file=sys.stderr)
        return 2

    ensure_table(args.duckdb)
    df = read_all_rows(args.duckdb, symbol=args.symbol, timeframe=args.timeframe)
    if df.empty:
        print("WARN: No rows fetched from DuckDB; writing empty CSV with header.")
    df = df[ROW_COLUMNS].copy()

    df.to_csv(out_path, index=False)
    if not df.empty:
        print(f"Wrote {len(df):,} rows to {out_path}")
        print(f"Range: {df['bar_time'].iloc[0]} .. {df['bar_time'].iloc[-1]}")
    else:
        print(f"Wrote empty CSV to {out_path}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
