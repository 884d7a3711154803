from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Mapping, Sequence, Tuple, Union

import pandas as pd


SPARKLINE_BARS = 20
LIVE_RECENCY = pd.Timedelta(minutes=5)
# Fixed UTC-5, no daylight-saving adjustment
MARKET_TZ = timezone(timedelta(hours=-5))
TIME_RANGES = {"1h": pd.Timedelta(hours=1), "24h": pd.Timedelta(hours=24), "all": None}

BarsLike = Union[pd.DataFrame, Sequence[Mapping]]


@dataclass(frozen=True)
class VolumeStats:
    total_delta: float = 0.0
    avg_delta: float = 0.0
    bar_count: int = 0
    last_update: str = ""
    sparkline_data: List[float] = field(default_factory=list)
    is_live: bool = False
    data_source: str = "no-data"

    def to_dict(self) -> dict:
        return asdict(self)


def _now_utc(now: datetime | None) -> pd.Timestamp:
    ts = pd.Timestamp(now or datetime.now(timezone.utc))
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def _to_utc(value) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def _to_frame(bars: BarsLike) -> pd.DataFrame:
    if isinstance(bars, pd.DataFrame):
        return bars.reset_index(drop=True)
    return pd.DataFrame(list(bars))


def _format_time(value) -> str:
    if isinstance(value, str):
        return value
    return _to_utc(value).isoformat()


def time_cutoff(time_range: str, now: datetime | None = None) -> pd.Timestamp:
    """Return the UTC-naive lower bound on bar_time for a display window."""
    if time_range not in TIME_RANGES:
        raise ValueError(f"time_range must be one of: {', '.join(TIME_RANGES)}")
    span = TIME_RANGES[time_range]
    if span is None:
        return pd.Timestamp(0)
    return (_now_utc(now) - span).tz_convert(None)


def is_market_hours(now: datetime | None = None) -> bool:
    """Approximate futures session: Sunday 18:00 through Friday 17:00 at UTC-5."""
    local = _now_utc(now).tz_convert(MARKET_TZ)
    weekday = local.weekday()  # Monday=0 .. Sunday=6
    if weekday == 6:
        return local.hour >= 18
    if weekday <= 3:
        return True
    if weekday == 4:
        return local.hour < 17
    return False


def detect_data_mode(bars: BarsLike, now: datetime | None = None) -> Tuple[bool, str]:
    """Classify the feed as live or playback from the most recent bar.

    The source tag wins when it names the mode; otherwise fall back to
    recency of the latest bar combined with market hours.
    """
    df = _to_frame(bars)
    if df.empty:
        return False, "no-data"

    latest = df.iloc[0]
    source = latest.get("source")
    source_field = source.lower() if isinstance(source, str) else ""
    if "playback" in source_field or "historical" in source_field:
        return False, source_field
    if "live" in source_field or "realtime" in source_field:
        return True, source_field

    now_ts = _now_utc(now)
    is_recent = (now_ts - _to_utc(latest["bar_time"])) < LIVE_RECENCY
    is_live = bool(is_recent and is_market_hours(now_ts))
    return is_live, "live-detected" if is_live else "playback-detected"


def compute_stats(bars: BarsLike, now: datetime | None = None) -> VolumeStats:
    """Summarize bars ordered by bar_time descending (newest first)."""
    df = _to_frame(bars)
    if df.empty:
        return VolumeStats()

    is_live, source = detect_data_mode(df, now=now)
    deltas = df["delta_volume"].astype(float)
    total_delta = float(deltas.sum())
    sparkline = deltas.head(SPARKLINE_BARS).iloc[::-1].tolist()

    return VolumeStats(
        total_delta=total_delta,
        avg_delta=total_delta / len(df),
        bar_count=int(len(df)),
        last_update=_format_time(df.iloc[0]["bar_time"]),
        sparkline_data=sparkline,
        is_live=is_live,
        data_source=source,
    )


def bias(total_delta: float) -> str:
    if total_delta > 0:
        return "bullish"
    if total_delta < 0:
        return "bearish"
    return "neutral"


def sparkline_points(
    values: Iterable[float], width: float = 100, height: float = 30, padding: float = 2
) -> List[Tuple[float, float]]:
    """Map values onto viewport coordinates.

    x runs linearly across [padding, width - padding]; y maps
    [min(values, 0), max(values, 0)] onto [height - padding, padding].
    """
    values = [float(v) for v in values]
    if not values:
        return []
    hi = max(max(values), 0.0)
    lo = min(min(values), 0.0)
    span = (hi - lo) or 1.0
    steps = max(len(values) - 1, 1)
    points = []
    for i, v in enumerate(values):
        x = (i / steps) * (width - 2 * padding) + padding
        y = height - ((v - lo) / span) * (height - 2 * padding) - padding
        points.append((x, y))
    return points


def sparkline_path(values: Iterable[float], width: float = 100, height: float = 30, padding: float = 2) -> str:
    points = sparkline_points(values, width=width, height=height, padding=padding)
    if not points:
        return ""
    return "M " + " L ".join(f"{x:g},{y:g}" for x, y in points)
