"""
Volume delta widget state with an explicit polling task.

A widget owns at most one PollingTask. Activating creates it, deactivating
or changing parameters cancels it. Fetches that finish after their polling
generation ended are dropped; otherwise the latest completed fetch wins.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional

import pandas as pd

from . import db
from .logger import get_logger
from .stats import VolumeStats, compute_stats, time_cutoff

logger = get_logger(__name__)

FetchBars = Callable[[str, str, pd.Timestamp], pd.DataFrame]


@dataclass(frozen=True)
class WidgetConfig:
    symbol: str = "MNQ"
    timeframe: str = "1m"
    refresh_interval: float = 30.0
    time_range: str = "1h"
    show_sparkline: bool = True


class PollingTask:
    """Background thread that calls fn immediately, then every interval seconds until cancelled"""

    def __init__(self, fn: Callable[[], None], interval: float, name: str = "VolumeWidget-Poll"):
        self.fn = fn
        self.interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, daemon=True, name=name)

    def start(self) -> "PollingTask":
        self._thread.start()
        return self

    def cancel(self, wait: bool = False) -> None:
        self._stop.set()
        if wait and self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=10)

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.fn()
            except Exception:
                # Keep polling; the next tick retries
                logger.exception("Polling callback failed")
            self._stop.wait(self.interval)


def db_fetcher(db_path: Path) -> FetchBars:
    def fetch(symbol: str, timeframe: str, cutoff: pd.Timestamp) -> pd.DataFrame:
        return db.read_bars(db_path, symbol, timeframe, cutoff)

    return fetch


class VolumeWidget:
    def __init__(
        self,
        fetch_bars: FetchBars,
        config: Optional[WidgetConfig] = None,
        on_update: Optional[Callable[["VolumeWidget"], None]] = None,
    ):
        self.fetch_bars = fetch_bars
        self.config = config or WidgetConfig()
        self.on_update = on_update

        self.stats = VolumeStats(data_source="unknown")
        self.error: Optional[str] = None
        self.loading = False

        self._lock = threading.Lock()
        self._task: Optional[PollingTask] = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.cancelled

    @property
    def playback_warning(self) -> bool:
        return not self.stats.is_live and self.config.time_range != "all"

    def activate(self) -> PollingTask:
        """Start polling with the current config; any previous task is cancelled first."""
        self.deactivate()
        with self._lock:
            self._generation += 1
            generation = self._generation
            self.loading = True
            task = self._task = PollingTask(lambda: self._refresh_for(generation), self.config.refresh_interval)
        logger.info(
            f"Widget polling {self.config.symbol} {self.config.timeframe} "
            f"range={self.config.time_range} every {self.config.refresh_interval}s"
        )
        return task.start()

    def deactivate(self, wait: bool = False) -> None:
        with self._lock:
            task, self._task = self._task, None
            if task is not None:
                self._generation += 1
        if task is not None:
            task.cancel(wait=wait)

    def set_params(self, **changes) -> None:
        """Apply new parameters; an active widget restarts its polling task."""
        was_active = self.active
        self.deactivate()
        self.config = replace(self.config, **changes)
        if was_active:
            self.activate()

    def dismiss_error(self) -> None:
        with self._lock:
            self.error = None

    def refresh(self) -> VolumeStats:
        """Fetch once and update state regardless of polling."""
        self._refresh_for(None)
        return self.stats

    def _refresh_for(self, generation: Optional[int]) -> None:
        cfg = self.config
        try:
            cutoff = time_cutoff(cfg.time_range)
            bars = self.fetch_bars(cfg.symbol, cfg.timeframe, cutoff)
            stats = compute_stats(bars)
            error = None
        except Exception as e:
            logger.error(f"Error fetching volume data: {e}")
            stats, error = None, str(e) or "Failed to fetch data"

        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug("Discarding result from cancelled polling task")
                return
            if stats is not None:
                self.stats = stats
            self.error = error
            self.loading = False

        if self.on_update is not None:
            self.on_update(self)
