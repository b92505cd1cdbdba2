"""
Time helpers for epoch-millisecond clocks and duration formatting.
"""

import time
from datetime import datetime, timezone
from typing import Callable

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR

Clock = Callable[[], int]


def now_ms() -> int:
    """
    Get the current wall-clock time in epoch milliseconds.

    Returns:
        Current UTC time as integer milliseconds since the epoch
    """
    return int(time.time() * MS_PER_SECOND)


def ms_to_hours(milliseconds: int) -> float:
    """Convert a millisecond duration to fractional hours."""
    return milliseconds / MS_PER_HOUR


def days_to_ms(days: float) -> int:
    """Convert a number of days to milliseconds."""
    return int(days * MS_PER_DAY)


def format_duration(milliseconds: int, include_seconds: bool = False) -> str:
    """
    Format a duration as ``HH:MM`` or ``HH:MM:SS``.

    Hours are not wrapped at 24, so a 26 hour job renders as ``26:00``.
    Negative inputs are clamped to zero.

    Args:
        milliseconds: Duration to format
        include_seconds: Append the seconds component

    Returns:
        Zero-padded duration string
    """
    total_seconds = max(0, int(milliseconds)) // MS_PER_SECOND
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    if include_seconds:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}"


def format_epoch_ms(timestamp_ms: int) -> str:
    """Format an epoch-millisecond timestamp as an ISO8601 UTC string."""
    return datetime.fromtimestamp(timestamp_ms / MS_PER_SECOND, tz=timezone.utc).isoformat()
