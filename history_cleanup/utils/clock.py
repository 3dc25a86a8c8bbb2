"""
Time providers.

Services take a clock (any zero-argument callable returning a datetime)
instead of reading the current time themselves, so tests can pin "now".
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Current local wall-clock time (naive)."""
    return datetime.now()


class FrozenClock:
    """
    Clock that returns a fixed instant until moved.

    Usage:
        clock = FrozenClock(datetime(2024, 3, 1, 23, 30))
        window = BatchWindow(start, end, clock=clock)
        clock.advance(hours=1)
    """

    def __init__(self, now: datetime):
        self._now = now

    def __call__(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by ``timedelta(**kwargs)`` and return the new time."""
        self._now = self._now + timedelta(**kwargs)
        return self._now
