"""UTC clock helpers. Stores take a clock callable so tests can move time."""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """ISO-8601 with millisecond precision and Z suffix, e.g. 2026-01-29T12:30:00.000Z."""
    return as_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")
