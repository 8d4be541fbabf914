"""Latency and duration helpers."""

from datetime import datetime, timedelta, timezone
from typing import Optional

_ONE_MICROSECOND = timedelta(microseconds=1)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Return ``value`` as a timezone-aware UTC datetime.

    Naive datetimes are taken to already be in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def latency_ms(first: datetime, second: datetime) -> int:
    """
    Milliseconds between two timestamps, rounded up.

    The absolute difference is used so that clock skew between the
    sending and the receiving host never yields a negative value.

    Args:
        first: One end of the interval
        second: The other end of the interval

    Returns:
        Non-negative whole number of milliseconds
    """
    delta = abs(as_utc(second) - as_utc(first))
    microseconds = delta // _ONE_MICROSECOND
    return -(-microseconds // 1000)


def elapsed_ms(start: float, end: float) -> int:
    """Whole milliseconds between two monotonic clock readings."""
    return max(0, int((end - start) * 1000))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
