"""Timestamp normalization shared by every adapter."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

# Below this value a number is taken as epoch seconds, at or above as epoch
# milliseconds. Millisecond stamps before 2001-09-09 therefore read as seconds.
SECONDS_THRESHOLD = 1e12

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_DIGITS = re.compile(r"\d+")


def normalize_timestamp(value: Any) -> Optional[str]:
    """Convert epoch seconds/milliseconds, numeric strings or ISO strings to ISO-8601 UTC.

    Returns ``None`` for empty input and for anything that does not resolve to
    a real instant; callers treat that as "unknown", never as a failure.
    """
    if not value or isinstance(value, bool):
        return None

    if isinstance(value, str) and _DIGITS.fullmatch(value):
        value = int(value)

    if isinstance(value, (int, float)):
        dt = _from_epoch(value)
    elif isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    elif isinstance(value, str):
        dt = _parse_string(value)
    else:
        return None

    if dt is None:
        return None
    return _format(dt)


def _from_epoch(value: float) -> Optional[datetime]:
    if value < SECONDS_THRESHOLD:
        value = value * 1000
    try:
        # Sub-millisecond precision is truncated toward zero
        return _EPOCH + timedelta(milliseconds=int(value))
    except (OverflowError, ValueError):
        return None


def _parse_string(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format(dt: datetime) -> Optional[str]:
    try:
        dt = dt.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None
    return (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}.{dt.microsecond // 1000:03d}Z"
    )
