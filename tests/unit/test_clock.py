from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from task_automation.utils.clock import MockClock, SystemClock, local_now


def test_system_clock_is_aware() -> None:
    assert SystemClock().now().tzinfo is not None


def test_mock_clock_rejects_naive_times() -> None:
    with pytest.raises(ValueError):
        MockClock(datetime(2024, 3, 15))
    clock = MockClock(datetime(2024, 3, 15, tzinfo=timezone.utc))
    with pytest.raises(ValueError):
        clock.set_time(datetime(2024, 3, 16))


def test_mock_clock_advance() -> None:
    clock = MockClock(datetime(2024, 3, 15, 23, 0, tzinfo=timezone.utc))
    clock.advance(timedelta(hours=2))
    assert clock.now() == datetime(2024, 3, 16, 1, 0, tzinfo=timezone.utc)


def test_local_now_crosses_date_line() -> None:
    """20:00 UTC on the 14th is already the 15th in Sydney."""
    clock = MockClock(datetime(2024, 3, 14, 20, 0, tzinfo=timezone.utc))
    local = local_now(clock, ZoneInfo("Australia/Sydney"))
    assert (local.day, local.hour) == (15, 7)
