"""Clock abstraction for testable time-dependent logic."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class Clock(Protocol):
    """Protocol for getting the current time.  Inject a fake in tests."""

    def now(self) -> datetime: ...


class SystemClock:
    """Default clock backed by the real system time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


def epoch_ms(clock: Clock) -> int:
    """Current time of *clock* in whole milliseconds since the epoch."""
    return (clock.now() - EPOCH) // timedelta(milliseconds=1)


def epoch_seconds(clock: Clock) -> int:
    """Current time of *clock* in whole seconds since the epoch."""
    return (clock.now() - EPOCH) // timedelta(seconds=1)


def from_epoch_ms(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)
