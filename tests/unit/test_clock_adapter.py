from datetime import UTC, datetime, timedelta

from src.adapters.clock import FrozenClock, SystemClock


def test_system_clock_is_utc():
    now = SystemClock().now_utc()
    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(0)


def test_frozen_clock_advances():
    start = datetime(2025, 1, 1, tzinfo=UTC)
    clock = FrozenClock(start)

    assert clock.now_utc() == start
    clock.advance(days=1, hours=2)
    assert clock.now_utc() == start + timedelta(days=1, hours=2)
