"""
Clock Tests.
"""

from datetime import timedelta, timezone

from src.cleanup import SystemClock
from src.cleanup.clock import seconds_until


class TestSystemClock:
    def test_now_is_utc_aware(self):
        assert SystemClock().now().tzinfo == timezone.utc

    def test_never_goes_backwards(self):
        clock = SystemClock()

        first = clock.now()
        second = clock.now()

        assert second >= first

    def test_non_positive_sleep_returns_immediately(self):
        clock = SystemClock()

        clock.sleep(0)
        clock.sleep(-3)


class TestSecondsUntil:
    def test_future_and_past(self, clock):
        assert seconds_until(clock, clock.now() + timedelta(seconds=90)) == 90
        assert seconds_until(clock, clock.now() - timedelta(seconds=5)) == -5
