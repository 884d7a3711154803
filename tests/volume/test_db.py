#!/usr/bin/env python3
from __future__ import annotations

from pathlib import Path

import duckdb  # type: ignore
import pandas as pd
import pytest

from volume_delta_feed.volume.db import (
    TABLE_NAME,
    coverage_stats,
    ensure_table,
    insert_bars,
    read_all_rows,
    read_bars,
    rows_to_records,
)
from volume_delta_feed.volume.validation import NormalizedBar


def _bar(bar_time: str, delta: float = 500.0, symbol: str = "MNQ", timeframe: str = "1m", **kw) -> NormalizedBar:
    fields = dict(
        symbol=symbol,
        related_symbol="QQQ",
        bar_time=bar_time,
        open_volume=12000.0,
        close_volume=12000.0 - delta,
        delta_volume=delta,
        timeframe=timeframe,
        source="NinjaTrader",
    )
    fields.update(kw)
    return NormalizedBar(**fields)


def _count(db_path: Path) -> int:
    con = duckdb.connect(str(db_path))
    try:
        return con.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()[0]
    finally:
        con.close()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "db" / "volume_test.duckdb"
    ensure_table(path)
    return path


def test_ensure_table_is_idempotent(db_path: Path):
    ensure_table(db_path)
    assert _count(db_path) == 0
    assert coverage_stats(db_path) is None


def test_insert_returns_stored_rows(db_path: Path):
    stored = insert_bars(db_path, [_bar("2025-01-15T14:30:00Z"), _bar("2025-01-15T09:31:00-05:00", delta=-200.0)])
    assert len(stored) == 2
    assert stored["id"].tolist() == [1, 2]
    assert stored["created_at"].notna().all()
    # offsets are normalized to UTC-naive
    assert stored["bar_time"].astype(str).tolist() == ["2025-01-15 14:30:00", "2025-01-15 14:31:00"]

    records = rows_to_records(stored)
    assert records[0]["bar_time"] == "2025-01-15T14:30:00+00:00"
    assert records[1]["delta_volume"] == -200.0
    assert set(records[0]) == {
        "id", "symbol", "related_symbol", "bar_time", "open_volume",
        "close_volume", "delta_volume", "timeframe", "source", "created_at",
    }


def test_duplicates_are_inserted(db_path: Path):
    bar = _bar("2025-01-15T14:30:00Z")
    insert_bars(db_path, [bar])
    insert_bars(db_path, [bar])
    assert _count(db_path) == 2


def test_failed_batch_inserts_nothing(db_path: Path):
    bad = _bar("2025-01-15T14:32:00Z", open_volume=-1.0)
    with pytest.raises(duckdb.Error):
        insert_bars(db_path, [_bar("2025-01-15T14:31:00Z"), bad])
    assert _count(db_path) == 0


def test_read_bars_filters_and_orders(db_path: Path):
    insert_bars(
        db_path,
        [
            _bar("2025-01-15T13:00:00Z", delta=1.0),
            _bar("2025-01-15T14:30:00Z", delta=2.0),
            _bar("2025-01-15T14:45:00Z", delta=3.0),
            _bar("2025-01-15T14:50:00Z", delta=9.0, symbol="ES"),
            _bar("2025-01-15T14:50:00Z", delta=8.0, timeframe="5m"),
        ],
    )
    df = read_bars(db_path, "MNQ", "1m", pd.Timestamp("2025-01-15 14:00:00"))
    assert list(df.columns) == ["bar_time", "open_volume", "close_volume", "delta_volume", "source"]
    assert df["delta_volume"].tolist() == [3.0, 2.0]

    df_all = read_bars(db_path, "MNQ", "1m", pd.Timestamp(0))
    assert df_all["delta_volume"].tolist() == [3.0, 2.0, 1.0]

    assert len(read_all_rows(db_path)) == 5
    assert read_all_rows(db_path, symbol="ES")["delta_volume"].tolist() == [9.0]

    lo, hi, n = coverage_stats(db_path)
    assert str(lo) == "2025-01-15 13:00:00" and str(hi) == "2025-01-15 14:50:00" and n == 5
