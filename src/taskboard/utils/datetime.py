"""Datetime utilities with consistent UTC timezone handling.

All timestamps that flow through the store and the analytics engine are
timezone-aware and expressed in UTC. Storage uses a fixed-precision ISO
string so that lexical order in SQL equals chronological order.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def now_utc() -> datetime:
    """Return current datetime in UTC timezone."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is timezone-aware, assuming UTC if naive.

    Args:
        dt: Datetime to check/convert, or None

    Returns:
        Timezone-aware datetime, or None if input was None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt


def max_utc() -> datetime:
    """Return datetime.max with UTC timezone for sorting fallbacks."""
    return datetime.max.replace(tzinfo=timezone.utc)


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO string with timezone info."""
    if dt is None:
        return None
    return ensure_aware(dt).isoformat()


def to_storage(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for the database.

    The value is converted to UTC and always carries microseconds, so two
    stored values compare correctly as plain strings.
    """
    if dt is None:
        return None
    return ensure_aware(dt).astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_storage(value: Optional[str]) -> Optional[datetime]:
    """Parse a datetime previously written by :func:`to_storage`."""
    if not value:
        return None
    return ensure_aware(datetime.fromisoformat(value))


def parse_datetime(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """Parse a user supplied date or datetime string.

    Accepts ``YYYY-MM-DD`` as well as full ISO-8601 timestamps, including a
    trailing ``Z``. Naive values are taken as UTC. With ``end_of_day`` a bare
    date resolves to its last microsecond, so an inclusive upper bound covers
    the whole day.

    Raises:
        ValueError: If the string is not a recognisable date
    """
    if value is None or value == "":
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = ensure_aware(datetime.fromisoformat(text))
    if end_of_day and len(text) == 10:
        parsed = parsed + timedelta(days=1) - timedelta(microseconds=1)
    return parsed
