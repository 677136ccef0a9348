from datetime import UTC, datetime

from shared.clock import FrozenClock, SystemClock, get_clock, reset_clock, set_clock


class TestFrozenClock:
    def test_defaults_to_fixed_utc_instant(self):
        clock = FrozenClock()
        assert clock.now() == datetime(2024, 1, 1, tzinfo=UTC)

    def test_does_not_move_on_its_own(self):
        clock = FrozenClock()
        assert clock.now() == clock.now()

    def test_advance_moves_time_forward(self):
        clock = FrozenClock(at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC))
        clock.advance(90)
        assert clock.now() == datetime(2024, 5, 1, 12, 1, 30, tzinfo=UTC)


class TestClockRegistry:
    def test_system_clock_by_default(self):
        assert isinstance(get_clock(), SystemClock)
        assert get_clock().now().tzinfo is not None

    def test_set_clock_overrides(self):
        frozen = FrozenClock()
        set_clock(frozen)
        assert get_clock() is frozen

    def test_reset_restores_system_clock(self):
        set_clock(FrozenClock())
        reset_clock()
        assert isinstance(get_clock(), SystemClock)
