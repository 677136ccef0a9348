"""Clock capability shared by all domains.

Aggregates and jobs ask ``get_clock().now()`` for the current time instead of
calling ``datetime.now()`` directly, so tests can freeze and advance time.
"""

from datetime import UTC, datetime, timedelta


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, at: datetime | None = None) -> None:
        self._now = at or datetime(2024, 1, 1, tzinfo=UTC)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        self._now = self._now + timedelta(seconds=seconds)
        return self._now


_current_clock: SystemClock | FrozenClock | None = None


def get_clock() -> SystemClock | FrozenClock:
    """Return the active clock. Defaults to SystemClock."""
    global _current_clock
    if _current_clock is None:
        _current_clock = SystemClock()
    return _current_clock


def set_clock(clock: SystemClock | FrozenClock) -> None:
    """Override the active clock (useful for tests)."""
    global _current_clock
    _current_clock = clock


def reset_clock() -> None:
    global _current_clock
    _current_clock = None
