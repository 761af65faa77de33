from __future__ import annotations

from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Any

import pandas as pd

# Values above this are treated as epoch milliseconds rather than seconds.
_EPOCH_MILLIS_CUTOFF = 1e11


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def epoch_to_iso(value: int | float) -> str:
    seconds = value / 1000.0 if abs(value) > _EPOCH_MILLIS_CUTOFF else float(value)
    stamp = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return stamp.isoformat().replace("+00:00", "Z")


@lru_cache(maxsize=8192)
def _parse_text(value: str, timezone_name: str) -> pd.Timestamp | None:
    try:
        parsed = pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.tz_localize(timezone_name, nonexistent="shift_forward", ambiguous="NaT")
        if pd.isna(parsed):
            return None
    return parsed.tz_convert("UTC")


def parse_timestamp(value: Any, timezone_name: str = "UTC") -> pd.Timestamp | None:
    """Parse a stored timestamp into a UTC instant, or ``None`` when unusable.

    Naive values are interpreted in ``timezone_name``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _parse_text(epoch_to_iso(value), timezone_name)
    if isinstance(value, datetime):
        value = value.isoformat()
    if not isinstance(value, str) or not value.strip():
        return None
    return _parse_text(value.strip(), timezone_name)


def parse_bound(
    value: Any,
    timezone_name: str = "UTC",
    *,
    end_of_day: bool = False,
) -> pd.Timestamp:
    """Parse a filter bound. Date-only end bounds cover the whole end day."""
    if isinstance(value, date) and not isinstance(value, datetime):
        value = value.isoformat()
    parsed = parse_timestamp(value, timezone_name)
    if parsed is None:
        raise ValueError(f"invalid date bound: {value!r}")
    date_only = isinstance(value, str) and len(value.strip()) == 10
    if end_of_day and date_only:
        local_day = parsed.tz_convert(timezone_name)
        parsed = (local_day + pd.Timedelta(days=1) - pd.Timedelta(milliseconds=1)).tz_convert("UTC")
    return parsed


def bucket_start(instant: pd.Timestamp, granularity: str, timezone_name: str) -> date:
    """Calendar bucket (local to ``timezone_name``) containing ``instant``."""
    local = instant.tz_convert(timezone_name)
    if granularity == "day":
        return local.date()
    if granularity == "week":
        return (local - pd.Timedelta(days=local.dayofweek)).date()
    if granularity == "month":
        return local.date().replace(day=1)
    raise ValueError(f"Unsupported trend granularity: {granularity}")
