"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from action_guard import GuardConfig, create_action_guard
from action_guard.auth import sign_token

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

SECRET = "test-secret-do-not-use"


class FakeClock:
    """Millisecond-exact clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.ms = start_ms

    def now(self) -> datetime:
        return EPOCH + timedelta(milliseconds=self.ms)

    @property
    def seconds(self) -> int:
        return self.ms // 1000

    def advance(self, seconds: float = 0, *, ms: int = 0) -> None:
        self.ms += int(seconds * 1000) + ms


class RecordingSink:
    """Audit sink that keeps every record in memory."""

    def __init__(self):
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def guard(clock, sink):
    return create_action_guard(GuardConfig(clock=clock, audit_sink=sink))


@pytest.fixture
def make_token(clock):
    """Sign claims with the shared test secret; ``exp``/``nbf`` are relative seconds."""

    def _make(secret=SECRET, *, exp_in=None, nbf_in=None, **claims):
        if exp_in is not None:
            claims["exp"] = clock.seconds + exp_in
        if nbf_in is not None:
            claims["nbf"] = clock.seconds + nbf_in
        return sign_token(claims, secret)

    return _make
