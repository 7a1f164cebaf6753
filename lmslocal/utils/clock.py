"""UTC timestamp helpers.

Every timestamp the store holds goes through to_iso(), so stored values
compare correctly as strings.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Format a datetime as second-precision ISO 8601 in UTC."""
    return ensure_utc(value).replace(microsecond=0).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware datetime."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))
