"""Tests for audit emission."""

import json
import logging

import pytest

from action_guard import (
    AuditRecord,
    GuardConfig,
    LoggingAuditSink,
    create_action_guard,
    custom_auth,
)


@pytest.fixture
def authed_guard(clock, sink):
    return create_action_guard(
        GuardConfig(
            auth=custom_auth(lambda headers: {"id": "alice"}),
            clock=clock,
            audit_sink=sink,
        )
    )


async def test_emits_on_success(authed_guard, sink, clock):
    action = authed_guard.auth().audit(action="CREATE_POST", resource="posts").action(
        lambda data, ctx: "created"
    )

    result = await action()

    assert result.success
    assert sink.records == [
        AuditRecord(
            timestamp=clock.now().isoformat(),
            action="CREATE_POST",
            resource="posts",
            user_id="alice",
            success=True,
        )
    ]


async def test_anonymous_user(guard, sink):
    await guard.audit(action="VIEW", resource="posts").action(lambda data, ctx: None)()
    assert sink.records[0].user_id == "anonymous"


async def test_not_emitted_when_handler_fails(authed_guard, sink):
    def handler(data, ctx):
        raise ValueError("nope")

    result = await authed_guard.audit(action="DELETE", resource="posts").action(handler)()

    assert result.code == "INTERNAL_ERROR"
    assert sink.records == []


async def test_not_emitted_when_a_later_step_fails(guard, sink):
    action = (
        guard.audit(action="DELETE", resource="posts")
        .rate_limit(max_requests=1, window="1m")
        .action(lambda data, ctx: None)
    )
    await action()
    await action()

    assert len(sink.records) == 1


async def test_step_sink_overrides_guard_sink(guard, sink):
    step_sink = type(sink)()
    await guard.audit(action="A", resource="r", sink=step_sink).action(lambda d, c: None)()

    assert len(step_sink.records) == 1
    assert sink.records == []


async def test_async_sink(guard):
    class AsyncSink:
        def __init__(self):
            self.records = []

        async def emit(self, record):
            self.records.append(record)

    async_sink = AsyncSink()
    await guard.audit(action="A", resource="r", sink=async_sink).action(lambda d, c: None)()
    assert [r.action for r in async_sink.records] == ["A"]


async def test_failing_sink_is_internal_error(guard):
    class BrokenSink:
        def emit(self, record):
            raise OSError("disk full")

    result = await guard.audit(action="A", resource="r", sink=BrokenSink()).action(
        lambda d, c: None
    )()
    assert result.code == "INTERNAL_ERROR"
    assert result.error == "disk full"


async def test_metadata_carries_config(guard):
    seen = {}

    def handler(data, ctx):
        seen["audit"] = ctx.metadata["audit"]

    await guard.audit(action="A", resource="r").action(handler)()
    assert (seen["audit"].action, seen["audit"].resource) == ("A", "r")


def test_logging_sink_writes_json(caplog):
    record = AuditRecord(
        timestamp="2024-01-01T00:00:00+00:00", action="A", resource="r", user_id="u"
    )
    with caplog.at_level(logging.INFO, logger="action_guard.audit"):
        LoggingAuditSink().emit(record)

    assert json.loads(caplog.records[-1].getMessage()) == {
        "timestamp": "2024-01-01T00:00:00+00:00",
        "action": "A",
        "resource": "r",
        "user_id": "u",
        "success": True,
    }


def test_logging_sink_custom_logger_and_level(caplog):
    log = logging.getLogger("tests.audit")
    record = AuditRecord(timestamp="t", action="A", resource="r", user_id="u")
    with caplog.at_level(logging.DEBUG, logger="tests.audit"):
        LoggingAuditSink(log, level=logging.WARNING).emit(record)

    assert caplog.records[-1].levelno == logging.WARNING
    assert caplog.records[-1].name == "tests.audit"
