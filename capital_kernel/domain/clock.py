"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()`` so that
purchase dates, approval stamps and dividend ``paid_at`` values are
reproducible in tests.  ``SystemClock`` is the only place that reads the
real time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

# 2024-01-01 12:00 UTC: shares bought "today" in tests carry this purchase date.
DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock; moves only when ``advance`` is called."""

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._now = self._now + timedelta(**delta)
        return self._now
