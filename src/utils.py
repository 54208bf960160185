"""Shared utilities used across the scheduling engine."""

import math
import uuid
from datetime import date, datetime, time, timedelta


def parse_clock(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock string.

    Examples:
        >>> parse_clock("08:00")
        datetime.time(8, 0)
        >>> parse_clock(" 17:30 ")
        datetime.time(17, 30)
    """
    return datetime.strptime(value.strip(), "%H:%M").time()


def at(day: date, clock: time) -> datetime:
    """Combine a calendar day and a wall-clock time into a naive datetime."""
    return datetime.combine(day, clock)


def ceil_minutes(seconds: float) -> int:
    """Round a duration in seconds up to whole minutes."""
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 60)


def minutes(delta: timedelta) -> float:
    return delta.total_seconds() / 60


def new_ref(prefix: str, length: int = 6) -> str:
    """Generate a short uppercase reference such as ``BK-1A2B3C``."""
    return f"{prefix}-{uuid.uuid4().hex[:length].upper()}"


def daterange(start: date, end: date):
    """Yield every calendar day from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
