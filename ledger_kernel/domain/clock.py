"""
Injectable time source.

Services never call ``datetime.now()`` or ``date.today()`` themselves.
Approval, cancellation, match and reconciliation stamps come from the
clock they were built with, and statement queries without an explicit
``as_of`` use the clock's calendar date.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware UTC; ``today()`` is its calendar date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time.  The only place the kernel reads the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Tests pin it to a business date (the default is 2024-01-01 12:00 UTC)
    so "as of today" reports and audit stamps are reproducible.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if self._current.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def set_date(self, day: date) -> None:
        """Move to noon UTC on ``day``."""
        self._current = datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=timezone.utc)

    def advance(self, by: timedelta | int = 1) -> datetime:
        """Move forward by a timedelta or a number of seconds."""
        if not isinstance(by, timedelta):
            by = timedelta(seconds=by)
        self._current += by
        return self._current
