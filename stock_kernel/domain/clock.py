"""
Clock -- injectable time source.

Movement timestamps, history ordering, expiry classification and the daily
dashboard all depend on "now".  Services, selectors and the alert evaluator
take it from a Clock; only SystemClock touches the real time.

Stock days are UTC calendar days: an event belongs to the day returned by
``utc_day(event.created_at)`` and ``utc_day_bounds(day)`` is the half-open
range of timestamps on that day.
"""

import threading
from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, time, timedelta


def utc_day(moment: datetime) -> date:
    """UTC calendar date of an aware datetime."""
    return moment.astimezone(UTC).date()


def utc_day_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


class Clock(ABC):
    """``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return utc_day(self.now())


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Test clock that only moves when told to.

    Shared safely between worker threads in concurrency tests.  The default
    start is 2024-01-01 12:00 UTC, midday so that small advances never cross
    a stock day by accident.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __init__(self, start: datetime | None = None):
        self._lock = threading.Lock()
        self._now = (start or self.DEFAULT_START).astimezone(UTC)

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set_time(self, moment: datetime) -> None:
        with self._lock:
            self._now = moment.astimezone(UTC)

    def advance(self, seconds: float = 1) -> None:
        with self._lock:
            self._now += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self.advance(days * 86400)

    def tick(self) -> datetime:
        """Advance one second and return the new time."""
        with self._lock:
            self._now += timedelta(seconds=1)
            return self._now
