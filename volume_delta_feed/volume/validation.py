from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Tuple

import pandas as pd


VALID_SYMBOLS = ("MNQ", "NQ", "ES", "MES", "YM", "MYM", "RTY", "M2K")
VALID_TIMEFRAMES = ("1m", "5m", "15m", "30m", "1h", "4h", "1d")
VALID_SOURCES = ("NinjaTrader", "Rithmic", "CQG", "Manual", "NinjaTrader-Live", "NinjaTrader-Playback")

DEFAULT_RELATED_SYMBOL = "QQQ"
DELTA_TOLERANCE = 0.01
MAX_FUTURE_SKEW = pd.Timedelta(minutes=5)
MAX_BATCH_SIZE = 100


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    index: Optional[int] = None


@dataclass(frozen=True)
class NormalizedBar:
    symbol: str
    related_symbol: str
    bar_time: str
    open_volume: float
    close_volume: float
    delta_volume: float
    timeframe: str
    source: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    data: Any = None
    errors: Tuple[FieldError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls, data: Any) -> "ValidationResult":
        return cls(True, data, ())

    @classmethod
    def failure(cls, errors: List[FieldError]) -> "ValidationResult":
        return cls(False, None, tuple(errors))

    def messages(self) -> List[str]:
        """Render errors as strings; batch errors are grouped per element."""
        out: List[str] = []
        per_bar: dict[int, List[str]] = {}
        for err in self.errors:
            if err.index is None:
                out.append(err.message)
            elif err.index in per_bar:
                per_bar[err.index].append(err.message)
            else:
                per_bar[err.index] = [err.message]
        out.extend(f"Bar {i}: {', '.join(msgs)}" for i, msgs in per_bar.items())
        return out


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a volume
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints beyond float range
        return False


def _now_utc(now: datetime | None) -> pd.Timestamp:
    ts = pd.Timestamp(now or datetime.now(timezone.utc))
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def parse_bar_time(value: str) -> Optional[pd.Timestamp]:
    """Parse an ISO 8601 string into a UTC-aware Timestamp, or None if invalid.

    Naive timestamps are interpreted as UTC. Words pandas understands, such
    as "now" or "today", are not timestamps here.
    """
    if not isinstance(value, str) or not value[:1].isdigit():
        return None
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def validate_bar(record: Any, now: datetime | None = None) -> ValidationResult:
    """Validate and normalize a single volume bar.

    Every violated rule is collected; the result carries either a NormalizedBar
    or the full list of FieldErrors.
    """
    if is_dataclass(record) and not isinstance(record, type):
        record = asdict(record)
    if record is None or not isinstance(record, Mapping):
        return ValidationResult.failure([FieldError("body", "Request body must be a valid object")])

    errors: List[FieldError] = []

    symbol = record.get("symbol")
    if not symbol or not isinstance(symbol, str):
        errors.append(FieldError("symbol", "symbol is required and must be a string"))
    elif symbol.upper() not in VALID_SYMBOLS:
        errors.append(FieldError("symbol", f"symbol must be one of: {', '.join(VALID_SYMBOLS)}"))

    bar_time = record.get("bar_time")
    if not bar_time or not isinstance(bar_time, str):
        errors.append(FieldError("bar_time", "bar_time is required and must be an ISO 8601 timestamp string"))
    else:
        ts = parse_bar_time(bar_time)
        if ts is None:
            errors.append(
                FieldError("bar_time", "bar_time must be a valid ISO 8601 timestamp (e.g., 2025-01-15T14:30:00Z)")
            )
        elif ts > _now_utc(now) + MAX_FUTURE_SKEW:
            errors.append(FieldError("bar_time", "bar_time cannot be more than 5 minutes in the future"))

    open_volume = record.get("open_volume")
    if not _is_number(open_volume):
        errors.append(FieldError("open_volume", "open_volume is required and must be a number"))
    elif open_volume < 0:
        errors.append(FieldError("open_volume", "open_volume must be >= 0"))

    close_volume = record.get("close_volume")
    if not _is_number(close_volume):
        errors.append(FieldError("close_volume", "close_volume is required and must be a number"))
    elif close_volume < 0:
        errors.append(FieldError("close_volume", "close_volume must be >= 0"))

    delta_volume = record.get("delta_volume")
    if not _is_number(delta_volume):
        errors.append(FieldError("delta_volume", "delta_volume is required and must be a number"))
    elif _is_number(open_volume) and _is_number(close_volume):
        expected = open_volume - close_volume
        if abs(delta_volume - expected) > DELTA_TOLERANCE:
            errors.append(
                FieldError(
                    "delta_volume",
                    f"delta_volume ({delta_volume}) does not match open_volume - close_volume ({expected})",
                )
            )

    timeframe = record.get("timeframe")
    if not timeframe or not isinstance(timeframe, str):
        errors.append(FieldError("timeframe", "timeframe is required and must be a string"))
    elif timeframe.lower() not in VALID_TIMEFRAMES:
        errors.append(FieldError("timeframe", f"timeframe must be one of: {', '.join(VALID_TIMEFRAMES)}"))

    source = record.get("source")
    if not source or not isinstance(source, str):
        errors.append(FieldError("source", "source is required and must be a string"))
    elif source not in VALID_SOURCES:
        errors.append(FieldError("source", f"source must be one of: {', '.join(VALID_SOURCES)}"))

    related_symbol = record.get("related_symbol")
    if "related_symbol" in record and not isinstance(related_symbol, str):
        errors.append(FieldError("related_symbol", "related_symbol must be a string if provided"))

    if errors:
        return ValidationResult.failure(errors)

    return ValidationResult.success(
        NormalizedBar(
            symbol=symbol.upper(),
            related_symbol=(related_symbol or "").upper() or DEFAULT_RELATED_SYMBOL,
            bar_time=bar_time,
            open_volume=float(open_volume),
            close_volume=float(close_volume),
            delta_volume=float(delta_volume),
            timeframe=timeframe.lower(),
            source=source,
        )
    )


def validate_batch(records: Any, now: datetime | None = None) -> ValidationResult:
    """Validate a batch of 1..100 bars; any invalid element rejects the whole batch."""
    if not isinstance(records, (list, tuple)):
        return ValidationResult.failure([FieldError("body", "Request body must be an array of volume bars")])
    if len(records) == 0:
        return ValidationResult.failure([FieldError("body", "Array cannot be empty")])
    if len(records) > MAX_BATCH_SIZE:
        return ValidationResult.failure([FieldError("body", f"Batch size cannot exceed {MAX_BATCH_SIZE} bars")])

    # Pin the clock so every element is judged against the same instant
    now = now or datetime.now(timezone.utc)
    errors: List[FieldError] = []
    bars: List[NormalizedBar] = []
    for i, item in enumerate(records):
        res = validate_bar(item, now=now)
        if not res.ok:
            errors.extend(FieldError(e.field, e.message, index=i) for e in res.errors)
        else:
            bars.append(res.data)

    if errors:
        return ValidationResult.failure(errors)
    return ValidationResult.success(bars)
