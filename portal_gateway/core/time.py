"""Clock helpers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def unix_seconds(value: datetime) -> int:
    return int(as_utc(value).timestamp())


__all__ = ["Clock", "as_utc", "unix_seconds", "utcnow"]
