"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()``: request
and decision timestamps, expiry comparison and response-time statistics
all come from it.  ``SystemClock`` is the only place wall time is read.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

EPOCH_FOR_TESTS = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Repeated ``now()`` calls return the same instant until the clock is
    moved with ``advance`` or ``set_time``.
    """

    def __init__(self, start: datetime | None = None):
        self._instant = start if start is not None else EPOCH_FOR_TESTS

    def now(self) -> datetime:
        return self._instant

    def set_time(self, instant: datetime) -> None:
        self._instant = instant

    def advance(self, seconds: int = 0, *, hours: int = 0) -> datetime:
        self._instant += timedelta(seconds=seconds, hours=hours)
        return self._instant
