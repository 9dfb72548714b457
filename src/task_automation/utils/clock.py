"""Clock utilities so that "now" can be pinned in tests."""

from datetime import datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """A protocol for objects that can provide the current time."""

    def now(self) -> datetime:
        """Return the current datetime, timezone-aware (UTC)."""
        ...


class SystemClock:
    """A clock backed by the real system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock:
    """
    A clock whose time is set explicitly, for use in tests.
    All times must be timezone-aware.
    """

    def __init__(self, initial_time: datetime | None = None) -> None:
        if initial_time and initial_time.tzinfo is None:
            raise ValueError("MockClock initial_time must be timezone-aware.")
        self._current_time: datetime = initial_time or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, new_time: datetime) -> None:
        if new_time.tzinfo is None:
            raise ValueError("MockClock.set_time requires a timezone-aware datetime.")
        self._current_time = new_time

    def advance(self, duration: timedelta) -> None:
        self._current_time += duration


def local_now(clock: Clock, tz: ZoneInfo) -> datetime:
    """Return the clock's current instant expressed in the given zone."""
    return clock.now().astimezone(tz)
