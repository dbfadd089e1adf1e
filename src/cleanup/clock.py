"""
Time source for the cleanup scheduler.

Every schedule decision is expressed relative to a Clock so that tests can
substitute a clock that advances only when slept or ticked.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Protocol for a UTC time source with a blocking sleep."""

    def now(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block the calling thread for the given number of seconds."""
        ...


class SystemClock:
    """
    Wall-clock time anchored to a monotonic counter.

    now() is the UTC instant captured at construction plus the monotonic time
    elapsed since, so system clock adjustments during a run cannot move the
    schedule backwards.
    """

    def __init__(self):
        self._anchor_wall = datetime.now(timezone.utc)
        self._anchor_monotonic = time.monotonic()

    def now(self) -> datetime:
        elapsed = time.monotonic() - self._anchor_monotonic
        return self._anchor_wall + timedelta(seconds=elapsed)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


def seconds_until(clock: Clock, instant: datetime) -> float:
    """Seconds from now until `instant` (negative if already past)."""
    return (instant - clock.now()).total_seconds()
