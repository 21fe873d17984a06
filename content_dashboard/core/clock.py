"""
Injectable clock.

Every time-dependent computation (window thresholds, "current month", cache
TTLs) reads time through a Clock so aggregation runs are reproducible and the
caches can be driven forward in tests without sleeping.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Return current UTC time (timezone-aware)."""
        ...

    def timestamp(self) -> float:
        """Return current time as POSIX seconds. Used as the TTL cache timer."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return self.now().timestamp()


class FrozenClock:
    """Clock pinned to a fixed instant until advanced explicitly."""

    def __init__(self, current: datetime):
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def timestamp(self) -> float:
        return self._current.timestamp()

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        """Move the clock forward, e.g. advance(minutes=31)."""
        self._current = self._current + timedelta(seconds=seconds, **kwargs)
        return self._current

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
