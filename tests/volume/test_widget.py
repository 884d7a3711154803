#!/usr/bin/env python3
from __future__ import annotations

import threading
from datetime import datetime, timedelta

import pandas as pd

from volume_delta_feed.volume.widget import PollingTask, VolumeWidget, WidgetConfig


def _frame(deltas, source: str = "NinjaTrader-Playback") -> pd.DataFrame:
    start = datetime(2025, 1, 15, 15, 0)
    return pd.DataFrame(
        [
            {
                "bar_time": start - timedelta(minutes=i),
                "open_volume": 1000.0 + d,
                "close_volume": 1000.0,
                "delta_volume": float(d),
                "source": source,
            }
            for i, d in enumerate(deltas)
        ]
    )


class FakeFetcher:
    def __init__(self, frame: pd.DataFrame):
        self.frame = frame
        self.calls = []
        self.fail = None

    def __call__(self, symbol, timeframe, cutoff):
        self.calls.append((symbol, timeframe, cutoff))
        if self.fail is not None:
            raise self.fail
        return self.frame


def test_refresh_computes_stats():
    fetch = FakeFetcher(_frame([10, -4]))
    widget = VolumeWidget(fetch, WidgetConfig(symbol="ES", timeframe="5m", time_range="24h"))
    assert widget.stats.data_source == "unknown"

    stats = widget.refresh()
    assert stats.total_delta == 6 and stats.bar_count == 2
    assert widget.error is None and widget.loading is False
    assert widget.playback_warning is True
    symbol, timeframe, cutoff = fetch.calls[0]
    assert (symbol, timeframe) == ("ES", "5m")
    assert cutoff.tzinfo is None


def test_fetch_error_keeps_previous_stats():
    fetch = FakeFetcher(_frame([5]))
    widget = VolumeWidget(fetch)
    widget.refresh()

    fetch.fail = RuntimeError("connection refused")
    widget.refresh()
    assert widget.error == "connection refused"
    assert widget.stats.total_delta == 5

    widget.dismiss_error()
    assert widget.error is None


def test_polling_task_survives_errors():
    calls = []
    done = threading.Event()

    def fn():
        calls.append(1)
        if len(calls) == 1:
            raise ValueError("first tick fails")
        done.set()

    task = PollingTask(fn, interval=0.01).start()
    try:
        assert done.wait(5)
    finally:
        task.cancel(wait=True)
    assert task.cancelled and len(calls) >= 2


def test_activate_and_deactivate():
    updated = threading.Event()
    fetch = FakeFetcher(_frame([3, 4]))
    widget = VolumeWidget(fetch, WidgetConfig(refresh_interval=60), on_update=lambda w: updated.set())

    widget.activate()
    assert widget.active
    assert updated.wait(5)
    assert widget.stats.total_delta == 7

    widget.deactivate(wait=True)
    assert not widget.active
    assert len(fetch.calls) == 1


def test_set_params_restarts_polling():
    ready = threading.Event()
    fetch = FakeFetcher(_frame([1]))

    def on_update(w):
        if any(symbol == "NQ" for symbol, _, _ in fetch.calls):
            ready.set()

    widget = VolumeWidget(fetch, WidgetConfig(refresh_interval=60), on_update=on_update)
    widget.activate()
    widget.set_params(symbol="NQ", time_range="all")
    try:
        assert ready.wait(5)
        assert widget.active and widget.config.time_range == "all"
        assert widget.playback_warning is False
        assert ("NQ", "1m") in [(s, t) for s, t, _ in fetch.calls]
        assert widget.stats.total_delta == 1
    finally:
        widget.deactivate(wait=True)

    # inactive widgets only change their config
    widget.set_params(symbol="ES")
    assert not widget.active and widget.config.symbol == "ES"


def test_result_from_torn_down_generation_is_discarded():
    fetch = FakeFetcher(_frame([2]))
    widget = VolumeWidget(fetch, WidgetConfig(refresh_interval=60))
    updated = threading.Event()
    widget.on_update = lambda w: updated.set()
    widget.activate()
    assert updated.wait(5)
    stale_generation = widget._generation
    widget.deactivate(wait=True)

    fetch.frame = _frame([100])
    widget._refresh_for(stale_generation)
    assert widget.stats.total_delta == 2

    widget.refresh()
    assert widget.stats.total_delta == 100


def test_activate_and_deactivate_update_state_under_lock():
    fetch = FakeFetcher(_frame([1]))
    widget = VolumeWidget(fetch, WidgetConfig(refresh_interval=60))

    with widget._lock:
        starter = threading.Thread(target=widget.activate)
        starter.start()
        starter.join(0.2)
        # the polling thread holds the same lock while writing results
        assert starter.is_alive()
        assert widget._task is None and widget.loading is False
    starter.join(5)
    assert widget.active

    with widget._lock:
        stopper = threading.Thread(target=widget.deactivate, kwargs={"wait": True})
        stopper.start()
        stopper.join(0.2)
        assert stopper.is_alive() and widget.active
    stopper.join(5)
    assert not widget.active
