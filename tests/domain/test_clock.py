"""Tests for the clock abstraction."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from unifund_kernel.domain.clock import DeterministicClock, SystemClock


def test_system_clock_is_aware_utc():
    assert SystemClock().now().tzinfo is not None
    assert SystemClock().now().utcoffset() == timedelta(0)


class TestDeterministicClock:

    def test_stable_until_moved(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == DeterministicClock.DEFAULT_START

    def test_advance_by_seconds_days_and_timedelta(self):
        clock = DeterministicClock()
        clock.advance(30)
        clock.advance_days(60)
        clock.advance(timedelta(minutes=1))
        assert clock.now() - DeterministicClock.DEFAULT_START == timedelta(days=60, seconds=90)

    def test_never_backwards(self):
        with pytest.raises(ValueError):
            DeterministicClock().advance(-1)

    def test_naive_time_refused(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2024, 1, 1))
        with pytest.raises(ValueError):
            DeterministicClock().set_time(datetime(2024, 3, 1))

    def test_set_time_normalizes_to_utc(self):
        clock = DeterministicClock()
        sast = timezone(timedelta(hours=2))
        clock.set_time(datetime(2024, 3, 1, 14, 0, tzinfo=sast))
        assert clock.now() == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert clock.now().tzinfo == timezone.utc

    def test_concurrent_advances_all_land(self):
        clock = DeterministicClock()
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: clock.advance(1), range(200)))
        assert clock.now() - DeterministicClock.DEFAULT_START == timedelta(seconds=200)
