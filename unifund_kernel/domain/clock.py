"""
Clock -- injectable source of the current time.

Services never call ``datetime.now()``.  Grace-period arithmetic (archive,
restore, purge) and review timestamps take their time from a Clock, so
tests can step through 60 days without sleeping.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` returns a timezone-aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Safe to share between coordinator threads: reads and moves are
    serialized, and ``now()`` is stable between moves.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._lock = threading.Lock()
        self._now = self._aware(fixed_time or self.DEFAULT_START)

    @staticmethod
    def _aware(value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError(f"DeterministicClock needs an aware datetime, got {value!r}")
        return value.astimezone(timezone.utc)

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set_time(self, time: datetime) -> None:
        with self._lock:
            self._now = self._aware(time)

    def advance(self, seconds: float | timedelta = 1) -> None:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        if step < timedelta(0):
            raise ValueError("DeterministicClock does not run backwards")
        with self._lock:
            self._now += step

    def advance_days(self, days: int) -> None:
        self.advance(timedelta(days=days))
