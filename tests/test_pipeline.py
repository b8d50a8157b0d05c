"""End-to-end tests for compiled guarded actions."""

from datetime import timedelta
from typing_extensions import TypedDict

import httpx
import pytest
from pydantic import BaseModel

from action_guard import (
    ExecutionContext,
    GuardConfig,
    MemoryRateLimitStore,
    create_action_guard,
    custom_auth,
)
from action_guard.auth import NextAuthProvider, SupabaseUser
from action_guard.auth.next_auth import SECURE_COOKIE_NAME
from action_guard.auth.tokens import b64url_encode
from action_guard.executor import resolve_rate_limit_key, user_identity


class Named(TypedDict):
    name: str


class CreatePost(BaseModel):
    title: str
    body: str = ""


def _echo(data, ctx):
    return data


def _guard_with_user(clock, sink, user):
    return create_action_guard(
        GuardConfig(auth=custom_auth(lambda headers: user), clock=clock, audit_sink=sink)
    )


# ── happy paths ─────────────────────────────────────────────


async def test_no_steps(guard):
    result = await guard.action(_echo)({"a": 1})
    assert result.success
    assert result.data == {"a": 1}


async def test_async_handler(guard):
    async def handler(data, ctx):
        return data * 2

    assert (await guard.action(handler)(21)).data == 42


async def test_schema_then_sanitize():
    action = create_action_guard().schema(Named).sanitize().action(_echo)
    result = await action({"name": "<script>"})
    assert result.success
    assert result.data["name"] == "&lt;script&gt;"


async def test_schema_coerces_input(guard):
    action = guard.schema(CreatePost).action(lambda post, ctx: post)
    result = await action({"title": "hi"})
    assert result.data == CreatePost(title="hi")


async def test_handler_sees_user_and_metadata(clock, sink):
    guard = _guard_with_user(clock, sink, {"id": "alice"})
    seen = {}

    def handler(data, ctx):
        seen["ctx"] = ctx
        return "ok"

    action = guard.auth().rate_limit(max_requests=3, window="1m").action(handler)
    assert (await action()).success

    ctx = seen["ctx"]
    assert isinstance(ctx, ExecutionContext)
    assert ctx.user == {"id": "alice"}
    assert ctx.metadata["rate_limit"]["remaining"] == 2
    expected_reset = clock.now() + timedelta(minutes=1)
    assert ctx.metadata["rate_limit"]["reset_at"] == expected_reset.isoformat()


async def test_duplicate_steps_run_in_order(guard):
    result = await guard.sanitize().sanitize().action(_echo)("<")
    assert result.data == "&amp;lt;"


async def test_steps_can_be_reused_across_actions(guard):
    base = guard.sanitize()
    upper = base.action(lambda data, ctx: data.upper())
    plain = base.action(_echo)
    assert (await upper("<a>")).data == "&LT;A&GT;"
    assert (await plain("<a>")).data == "&lt;a&gt;"


# ── short-circuiting ────────────────────────────────────────


async def test_auth_failure_short_circuits(clock, sink):
    guard = _guard_with_user(clock, sink, None)
    calls = []

    action = (
        guard.auth()
        .schema(Named)
        .rate_limit(max_requests=1, window="1m")
        .action(lambda data, ctx: calls.append(data))
    )
    result = await action({"name": "x"})

    assert not result.success
    assert result.code == "AUTH_FAILED"
    assert result.error == "Unauthorized"
    assert calls == []


async def test_validation_failure(guard):
    calls = []
    action = guard.schema(CreatePost).action(lambda data, ctx: calls.append(data))

    result = await action({"body": "no title"})

    assert result.as_dict() == {
        "success": False,
        "error": "Validation failed",
        "code": "VALIDATION_ERROR",
    }
    assert calls == []


async def test_custom_validator_dict_outcome(guard):
    class Positive:
        def validate(self, raw):
            return {"success": raw > 0, "data": raw}

    action = guard.schema(Positive()).action(_echo)
    assert (await action(3)).data == 3
    assert (await action(-3)).code == "VALIDATION_ERROR"


async def test_async_custom_validator(guard):
    class Lookup:
        async def validate(self, raw):
            return {"success": True, "data": {"id": raw}}

    assert (await guard.schema(Lookup()).action(_echo)(7)).data == {"id": 7}


async def test_sequential_calls_rate_limited(guard):
    action = guard.rate_limit(max_requests=1, window="1m").action(lambda data, ctx: "done")

    first = await action()
    second = await action()

    assert first.as_dict() == {"success": True, "data": "done"}
    assert second.as_dict() == {
        "success": False,
        "error": "Rate limit exceeded",
        "code": "RATE_LIMITED",
    }


async def test_rate_limit_recovers_after_window(guard, clock):
    action = guard.rate_limit(max_requests=1, window="10s").action(_echo)
    assert (await action()).success
    assert not (await action()).success
    clock.advance(10)
    assert (await action()).success


async def test_identifiers_have_independent_budgets(guard):
    action = guard.rate_limit(
        max_requests=1, window="1m", identifier=lambda ctx: f"user:{ctx.input['user']}"
    ).action(_echo)

    assert (await action({"user": "alice"})).success
    assert (await action({"user": "bob"})).success
    assert (await action({"user": "alice"})).code == "RATE_LIMITED"
    assert (await action({"user": "bob"})).code == "RATE_LIMITED"


async def test_users_have_independent_budgets(clock, sink):
    users = {"a": {"id": "alice"}, "b": {"id": "bob"}}
    guard = create_action_guard(
        GuardConfig(
            auth=custom_auth(lambda headers: users.get(headers.get("x-user"))),
            clock=clock,
            audit_sink=sink,
        )
    )
    action = guard.auth().rate_limit(max_requests=1, window="1m").action(_echo)

    assert (await action(headers={"x-user": "a"})).success
    assert (await action(headers={"x-user": "b"})).success
    assert (await action(headers={"x-user": "a"})).code == "RATE_LIMITED"


async def test_shared_declaration_shares_bucket_across_actions(guard):
    limited = guard.rate_limit(max_requests=1, window="1m")
    first = limited.action(_echo)
    second = limited.sanitize().action(_echo)

    assert (await first()).success
    assert (await second()).code == "RATE_LIMITED"


async def test_separate_declarations_do_not_share(guard):
    first = guard.rate_limit(max_requests=1, window="1m").action(_echo)
    second = guard.rate_limit(max_requests=1, window="1m").action(_echo)

    assert (await first()).success
    assert (await second()).success


async def test_duplicate_rate_limit_steps_are_independent_budgets(guard):
    action = (
        guard.rate_limit(max_requests=1, window="1m")
        .rate_limit(max_requests=1, window="1m")
        .action(_echo)
    )

    assert (await action("x")).success
    assert (await action("x")).code == "RATE_LIMITED"


async def test_duplicate_rate_limit_steps_each_count_once(guard):
    action = (
        guard.rate_limit(max_requests=2, window="1m")
        .rate_limit(max_requests=2, window="1m")
        .action(_echo)
    )

    assert (await action()).success
    assert (await action()).success
    assert (await action()).code == "RATE_LIMITED"


async def test_different_budgets_do_not_share(guard):
    first = guard.rate_limit(max_requests=1, window="1m").action(_echo)
    second = guard.rate_limit(max_requests=2, window="1m").action(_echo)

    assert (await first()).success
    assert (await second()).success


async def test_custom_store(guard, clock):
    store = MemoryRateLimitStore(clock=clock)
    action = guard.rate_limit(max_requests=1, window="1m", store=store).action(_echo)

    await action()
    assert store.keys() == ["anonymous"]


async def test_csrf(guard):
    action = guard.csrf().action(lambda data, ctx: "ok")

    ok = await action(headers={"x-actionguard-csrf": "T", "cookie": "actionguard-csrf=T"})
    missing = await action()
    mismatch = await action(headers={"x-actionguard-csrf": "A", "cookie": "actionguard-csrf=B"})

    assert ok.success
    assert missing.code == "CSRF_FAILED"
    assert missing.error == 'Missing CSRF token in header "x-actionguard-csrf"'
    assert mismatch.code == "CSRF_FAILED"
    assert "mismatch" in mismatch.error


# ── internal errors ─────────────────────────────────────────


async def test_auth_without_provider(guard):
    calls = []
    result = await guard.auth().action(lambda data, ctx: calls.append(data))()

    assert result.as_dict() == {
        "success": False,
        "error": "Auth provider not configured",
        "code": "INTERNAL_ERROR",
    }
    assert calls == []


async def test_handler_exception(guard):
    def handler(data, ctx):
        raise ValueError("boom")

    result = await guard.action(handler)()
    assert result.as_dict() == {"success": False, "error": "boom", "code": "INTERNAL_ERROR"}


async def test_exception_without_message(guard):
    def handler(data, ctx):
        raise RuntimeError()

    result = await guard.action(handler)()
    assert result.error == "Internal error"
    assert result.code == "INTERNAL_ERROR"


async def test_provider_exception(clock):
    def explode(headers):
        raise ConnectionError("auth backend down")

    guard = create_action_guard(GuardConfig(auth=custom_auth(explode), clock=clock))
    result = await guard.auth().action(_echo)()
    assert result.code == "INTERNAL_ERROR"
    assert result.error == "auth backend down"


async def test_exception_is_logged(guard, caplog):
    def handler(data, ctx):
        raise ValueError("boom")

    with caplog.at_level("ERROR", logger="action_guard.executor"):
        await guard.action(handler)()

    assert any(r.exc_info for r in caplog.records)


# ── headers ─────────────────────────────────────────────────


async def test_headers_provider(clock):
    guard = create_action_guard(
        GuardConfig(headers_provider=lambda: {"X-Request-Id": "r-1"}, clock=clock)
    )
    action = guard.action(lambda data, ctx: ctx.headers.get("x-request-id"))

    assert (await action()).data == "r-1"
    assert (await action(headers={"x-request-id": "r-2"})).data == "r-2"


async def test_header_pairs_and_httpx_headers(guard):
    action = guard.action(lambda data, ctx: ctx.headers.get("x-a"))
    assert (await action(headers=[("X-A", "1")])).data == "1"
    assert (await action(headers=httpx.Headers({"x-a": "2"}))).data == "2"


# ── key resolution ──────────────────────────────────────────


def _ctx(user=None, **headers):
    return ExecutionContext(user=user, headers=httpx.Headers(headers))


def test_key_identifier_wins():
    ctx = _ctx({"id": "alice"}, **{"x-forwarded-for": "1.1.1.1"})
    assert resolve_rate_limit_key(ctx, lambda c: "custom") == "custom"


def test_key_user():
    assert resolve_rate_limit_key(_ctx({"id": "alice"})) == "user:alice"


def test_key_forwarded_for_leftmost():
    ctx = _ctx(**{"x-forwarded-for": " 1.1.1.1 , 2.2.2.2", "x-real-ip": "3.3.3.3"})
    assert resolve_rate_limit_key(ctx) == "ip:1.1.1.1"


def test_key_real_ip():
    assert resolve_rate_limit_key(_ctx(**{"x-real-ip": "3.3.3.3"})) == "ip:3.3.3.3"


def test_key_empty_forwarded_for_falls_through():
    ctx = _ctx(**{"x-forwarded-for": " , 2.2.2.2", "x-real-ip": "3.3.3.3"})
    assert resolve_rate_limit_key(ctx) == "ip:3.3.3.3"


def test_key_anonymous():
    assert resolve_rate_limit_key(_ctx()) == "anonymous"


@pytest.mark.parametrize(
    ("user", "expected"),
    [
        ({"id": "alice"}, "alice"),
        ({"id": 42}, "42"),
        ({"id": ""}, "anonymous"),
        ({"name": "nobody"}, "anonymous"),
        ("bob", "bob"),
        (7, "7"),
        ("", "anonymous"),
    ],
)
def test_user_identity(user, expected):
    assert user_identity(user) == expected


def test_user_identity_attribute():
    class User:
        id = "u-1"

    assert user_identity(User()) == "u-1"


def test_user_identity_never_uses_model_repr():
    user = SupabaseUser(id="", email="a@b.c")
    assert user_identity(user) == "anonymous"
    assert resolve_rate_limit_key(_ctx(user)) == "user:anonymous"


async def test_audit_user_id_for_user_without_id(clock, sink):
    guard = _guard_with_user(clock, sink, SupabaseUser(id="", email="a@b.c"))
    await guard.auth().audit(action="A", resource="r").action(_echo)()
    assert sink.records[0].user_id == "anonymous"


async def test_deeply_nested_token_is_auth_failure(clock, sink):
    provider = NextAuthProvider(secret="s", clock=clock)
    guard = create_action_guard(GuardConfig(auth=provider, clock=clock, audit_sink=sink))
    header = b64url_encode(b"[" * 100_000)
    cookie = f"{SECURE_COOKIE_NAME}={header}.e30.c2ln"

    result = await guard.auth().action(_echo)(headers={"cookie": cookie})

    assert result.code == "AUTH_FAILED"
