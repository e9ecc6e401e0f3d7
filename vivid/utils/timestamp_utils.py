"""
Timestamp utilities for consistent time handling across the system.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_datetime(value: Any, fallback: Optional[datetime] = None) -> Optional[datetime]:
    """Convert a stored timestamp to a comparable aware datetime.

    Args:
        value: Firestore timestamp (a datetime subclass), datetime, epoch seconds or ISO string
        fallback: Returned when the value is absent or cannot be converted

    Returns:
        Timezone-aware datetime, or fallback
    """
    if value is None:
        return fallback

    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

    if isinstance(value, bool):
        return fallback

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback

    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return fallback
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)

    # Protobuf-style timestamps expose ToDatetime()
    converter = getattr(value, 'ToDatetime', None)
    if callable(converter):
        return converter().replace(tzinfo=timezone.utc)

    return fallback


def format_long_date(moment: datetime) -> str:
    """Format as 'October 19, 2026'."""
    return f'{moment.strftime("%B")} {moment.day}, {moment.year}'


def format_numeric_date(moment: datetime) -> str:
    """Format as '10/19/2026'."""
    return f'{moment.month}/{moment.day}/{moment.year}'


def format_clock_time(moment: datetime) -> str:
    """Format as '14:05:09'."""
    return moment.strftime('%H:%M:%S')
