"""Millisecond epoch timestamps, the unit stored in SQLite."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def to_ms(value: datetime) -> int:
    """Naive datetimes are read as UTC."""
    aware = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    return round(aware.timestamp() * 1000)
