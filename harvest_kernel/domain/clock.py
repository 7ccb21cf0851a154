"""
Injectable time source.

The default scheduled date of a processing batch, the ``started_at`` of a
derived batch and assignment timestamps all come from a ``Clock``; services
never read the system time themselves.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware; ``today()`` is its calendar date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen time for tests; moves only when ``advance()`` is called."""

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2024, 6, 1, 8, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
