"""Tests for time providers."""

from datetime import datetime

from history_cleanup.utils.clock import FrozenClock, system_clock


def test_system_clock_returns_current_time():
    """System clock should return the current local time."""
    before = datetime.now()
    now = system_clock()
    after = datetime.now()

    assert before <= now <= after


class TestFrozenClock:
    """Tests for FrozenClock."""

    def test_returns_fixed_time(self):
        """Frozen clock should always return its time."""
        clock = FrozenClock(datetime(2024, 3, 1, 12, 0))

        assert clock() == datetime(2024, 3, 1, 12, 0)
        assert clock() == datetime(2024, 3, 1, 12, 0)

    def test_set(self):
        """Setting the clock should change the returned time."""
        clock = FrozenClock(datetime(2024, 3, 1, 12, 0))
        clock.set(datetime(2025, 1, 1))

        assert clock() == datetime(2025, 1, 1)

    def test_advance(self):
        """Advancing the clock should move it forward."""
        clock = FrozenClock(datetime(2024, 12, 31, 23, 30))

        assert clock.advance(hours=1) == datetime(2025, 1, 1, 0, 30)
        assert clock() == datetime(2025, 1, 1, 0, 30)
