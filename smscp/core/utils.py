"""
Core Utilities.

Shared utility functions used across the package.
"""

from datetime import datetime, timezone

PREVIEW_LENGTH = 50


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-naive datetime.

    All datetime values in the application are timezone-naive and
    assumed to be UTC, which keeps SQLite, PostgreSQL and MongoDB
    storage consistent.

    Returns:
        Current UTC time with tzinfo stripped
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    """Return the first `length` code points of text, or all of it if shorter."""
    return text[:length]


def truncate_to_millis(value: datetime) -> datetime:
    """
    Drop sub-millisecond precision.

    BSON dates hold milliseconds, so timestamps are stored and compared at
    that precision on every backend.
    """
    return value.replace(microsecond=value.microsecond // 1000 * 1000)
