"""
UTC timestamp utilities.

Lock expiry arithmetic is only correct when every participant uses aware
UTC datetimes.  Databases without timezone support get naive UTC values via
``to_naive_utc`` and hand them back through ``ensure_utc``.
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime (naive values are assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Strip the timezone after converting to UTC, for portable DateTime columns."""
    return ensure_utc(dt).replace(tzinfo=None)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()
