"""Tests for ExecutionContext."""

import httpx

from action_guard import ExecutionContext


def test_defaults():
    ctx = ExecutionContext()
    assert ctx.user is None
    assert ctx.input is None
    assert isinstance(ctx.headers, httpx.Headers)
    assert len(ctx.headers) == 0
    assert ctx.metadata == {}


def test_custom_fields():
    ctx = ExecutionContext(
        user={"id": "bob"},
        input={"query": "hello"},
        headers=httpx.Headers({"X-Test": "1"}),
        metadata={"key": "val"},
    )
    assert ctx.user["id"] == "bob"
    assert ctx.input["query"] == "hello"
    assert ctx.headers["x-test"] == "1"
    assert ctx.metadata["key"] == "val"


def test_mutable():
    ctx = ExecutionContext(input={"a": 1})
    ctx.input = {"a": 2}
    ctx.metadata["flag"] = True
    assert ctx.input["a"] == 2
    assert ctx.metadata["flag"] is True


def test_fresh_metadata_per_instance():
    first = ExecutionContext()
    second = ExecutionContext()
    first.metadata["x"] = 1
    assert second.metadata == {}
