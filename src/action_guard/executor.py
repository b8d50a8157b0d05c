"""GuardedAction — runs a compiled pipeline for one call at a time.

Each call:

1. Build a fresh :class:`ExecutionContext`.
2. Run the declared steps in order; the first failing step ends the call.
3. Invoke the handler with the (possibly transformed) input.
4. Emit an audit record if an ``audit`` step was declared.
5. Return an :class:`ActionResult`.

No exception escapes a call.  Anything unexpected is logged and returned as
``INTERNAL_ERROR`` carrying only the exception message.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

import httpx

from action_guard._internal.clock import SystemClock
from action_guard.audit import AuditConfig, AuditRecord
from action_guard.config import GuardConfig, HeaderSource
from action_guard.context import ExecutionContext
from action_guard.csrf import validate_csrf
from action_guard.exceptions import AuthNotConfiguredError
from action_guard.rate_limit import RateLimiter
from action_guard.result import ActionResult, StepResult
from action_guard.sanitize import sanitize_value
from action_guard.schema import ValidationOutcome
from action_guard.steps import (
    AuditStep,
    AuthStep,
    CsrfStep,
    PipelineStep,
    RateLimitStep,
    SanitizeStep,
    SchemaStep,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Receives (input, ctx).  May be sync or async.
Handler = Callable[[Any, ExecutionContext], Any]

ANONYMOUS = "anonymous"


def user_identity(user: Any) -> str:
    """Return the identity of *user*.

    The ``id`` attribute or key when it is non-empty; a plain string or number
    is its own identity.  Anything else, including a user whose ``id`` is
    empty, is ``"anonymous"``.
    """
    if isinstance(user, (str, int)) and not isinstance(user, bool):
        return str(user) if user != "" else ANONYMOUS
    ident = user.get("id") if isinstance(user, Mapping) else getattr(user, "id", None)
    if ident is None or ident == "":
        return ANONYMOUS
    return str(ident)


def resolve_rate_limit_key(
    ctx: ExecutionContext,
    identifier: Callable[[ExecutionContext], str] | None = None,
) -> str:
    """Pick the limiter bucket for *ctx*.

    Priority: explicit *identifier*, resolved user, left-most
    ``X-Forwarded-For`` address, ``X-Real-IP``, then one shared anonymous
    bucket.  Unauthenticated callers without forwarding headers all land in
    that shared bucket unless an identifier is supplied.
    """
    if identifier is not None:
        return str(identifier(ctx))

    if ctx.user is not None:
        return f"user:{user_identity(ctx.user)}"

    forwarded = ctx.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return f"ip:{first}"

    real_ip = (ctx.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return f"ip:{real_ip}"

    return ANONYMOUS


class GuardedAction(Generic[T]):
    """The awaitable produced by ``ActionBuilder.action(handler)``.

    Safe to call concurrently and repeatedly; calls share nothing except
    limiter state.

    Parameters:
        steps:       Declared steps, in order.
        handler:     ``(input, ctx) -> T``, sync or async.
        config:      The owning guard's configuration.
        limiter_for: Returns the limiter owned by a rate-limit step.
    """

    # One runner per step kind.
    _runners: ClassVar[dict[str, str]] = {
        "auth": "_run_auth",
        "schema": "_run_schema",
        "rate_limit": "_run_rate_limit",
        "csrf": "_run_csrf",
        "sanitize": "_run_sanitize",
        "audit": "_run_audit",
    }

    def __init__(
        self,
        steps: tuple[PipelineStep, ...],
        handler: Handler,
        *,
        config: GuardConfig,
        limiter_for: Callable[[RateLimitStep], RateLimiter],
    ) -> None:
        if not callable(handler):
            raise TypeError(f"handler must be callable, got {type(handler).__name__}")
        self.steps = steps
        self._handler = handler
        self._config = config
        self._limiter_for = limiter_for
        self._clock = config.clock or SystemClock()

        # Create limiters now so store creation happens once per step.
        for step in steps:
            if isinstance(step, RateLimitStep):
                limiter_for(step)

    async def __call__(
        self,
        raw_input: Any = None,
        *,
        headers: HeaderSource | None = None,
    ) -> ActionResult[T]:
        try:
            ctx = ExecutionContext(input=raw_input, headers=self._resolve_headers(headers))

            for step in self.steps:
                runner = getattr(self, self._runners[step.kind])
                result: StepResult = await runner(step, ctx)
                if not result.passed:
                    logger.debug("Step '%s' stopped the pipeline: %s", result.step, result.error)
                    return ActionResult.fail(result.error, result.code or "INTERNAL_ERROR")

            data = self._handler(ctx.input, ctx)
            if asyncio.iscoroutine(data):
                data = await data

            await self._emit_audit(ctx)
            return ActionResult.ok(data)
        except Exception as e:
            logger.exception("Guarded action failed with an unexpected error")
            return ActionResult.fail(str(e) or "Internal error", "INTERNAL_ERROR")

    def _resolve_headers(self, headers: HeaderSource | None) -> httpx.Headers:
        if headers is None and self._config.headers_provider is not None:
            headers = self._config.headers_provider()
        return httpx.Headers(headers) if headers is not None else httpx.Headers()

    # ── step runners ─────────────────────────────────────────

    async def _run_auth(self, step: AuthStep, ctx: ExecutionContext) -> StepResult:
        provider = self._config.auth
        if provider is None:
            raise AuthNotConfiguredError()

        user = await provider.resolve(ctx.headers)
        if user is None:
            return StepResult.fail(step.kind, "Unauthorized", "AUTH_FAILED")

        ctx.user = user
        return StepResult.proceed(step.kind)

    async def _run_schema(self, step: SchemaStep, ctx: ExecutionContext) -> StepResult:
        outcome = step.validator.validate(ctx.input)
        if asyncio.iscoroutine(outcome):
            outcome = await outcome
        outcome = ValidationOutcome.coerce(outcome)

        if not outcome.success:
            return StepResult.fail(
                step.kind, "Validation failed", "VALIDATION_ERROR", errors=outcome.errors
            )

        ctx.input = outcome.data
        return StepResult.proceed(step.kind)

    async def _run_rate_limit(self, step: RateLimitStep, ctx: ExecutionContext) -> StepResult:
        limiter = self._limiter_for(step)
        key = resolve_rate_limit_key(ctx, step.config.identifier)
        outcome = await limiter.check_key(key)

        if not outcome.allowed:
            return StepResult.fail(
                step.kind,
                "Rate limit exceeded",
                "RATE_LIMITED",
                key=key,
                remaining=outcome.remaining,
                reset_at=outcome.reset_at.isoformat(),
            )

        ctx.metadata["rate_limit"] = {
            "remaining": outcome.remaining,
            "reset_at": outcome.reset_at.isoformat(),
        }
        return StepResult.proceed(step.kind)

    async def _run_csrf(self, step: CsrfStep, ctx: ExecutionContext) -> StepResult:
        check = validate_csrf(ctx.headers, self._config.csrf)
        if not check.valid:
            error = check.error or "CSRF validation failed"
            return StepResult.fail(step.kind, error, "CSRF_FAILED")
        return StepResult.proceed(step.kind)

    async def _run_sanitize(self, step: SanitizeStep, ctx: ExecutionContext) -> StepResult:
        ctx.input = sanitize_value(ctx.input)
        return StepResult.proceed(step.kind)

    async def _run_audit(self, step: AuditStep, ctx: ExecutionContext) -> StepResult:
        ctx.metadata["audit"] = step.config
        return StepResult.proceed(step.kind)

    # ── post-execution ───────────────────────────────────────

    async def _emit_audit(self, ctx: ExecutionContext) -> None:
        audit = ctx.metadata.get("audit")
        if not isinstance(audit, AuditConfig):
            return

        record = AuditRecord(
            timestamp=self._now().isoformat(),
            action=audit.action,
            resource=audit.resource,
            user_id=user_identity(ctx.user) if ctx.user is not None else ANONYMOUS,
        )
        sink = audit.sink or self._config.audit_sink
        emitted = sink.emit(record)
        if asyncio.iscoroutine(emitted):
            await emitted

    def _now(self) -> datetime:
        return self._clock.now()
