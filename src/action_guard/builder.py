"""ActionGuard / ActionBuilder — declare steps, then compile them around a handler."""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Literal

from action_guard.audit import AuditConfig, AuditSink
from action_guard.config import GuardConfig, RateLimitConfig
from action_guard.executor import GuardedAction, Handler
from action_guard.rate_limit import MemoryRateLimitStore, RateLimiter, RateLimitStore
from action_guard.schema import as_validator
from action_guard.steps import (
    AuditStep,
    AuthStep,
    CsrfStep,
    PipelineStep,
    RateLimitStep,
    SanitizeStep,
    SchemaStep,
)

if TYPE_CHECKING:
    from action_guard.context import ExecutionContext


class ActionBuilder:
    """An immutable, ordered list of step declarations.

    Every step method returns a **new** builder with one more step; the
    receiver is never modified, so a partially configured builder can be
    reused as the base of several differently configured actions::

        base = guard.auth().rate_limit(max_requests=10, window="1m")
        create = base.schema(CreatePost).sanitize().action(create_post)
        delete = base.csrf().action(delete_post)

    Declaring a step never runs it.  The same kind may be declared more than
    once; both run, in declaration order, and two ``rate_limit`` declarations
    enforce two independent budgets.
    """

    def __init__(self, guard: ActionGuard, steps: tuple[PipelineStep, ...] = ()) -> None:
        self._guard = guard
        self._steps = steps

    def _append(self, step: PipelineStep) -> ActionBuilder:
        return ActionBuilder(self._guard, (*self._steps, step))

    # ── step declarations ────────────────────────────────────

    def auth(self) -> ActionBuilder:
        """Require a user from the guard's auth provider."""
        return self._append(AuthStep())

    def schema(self, schema: Any) -> ActionBuilder:
        """Validate (and coerce) the input.

        *schema* is a pydantic model class, a ``TypeAdapter``, any type
        pydantic understands, or an object with ``validate(raw)``.
        """
        return self._append(SchemaStep(as_validator(schema)))

    def rate_limit(
        self,
        *,
        max_requests: int,
        window: str,
        store: Literal["memory"] | RateLimitStore = "memory",
        identifier: Callable[[ExecutionContext], str] | None = None,
    ) -> ActionBuilder:
        """Admit at most *max_requests* per sliding *window* per key."""
        config = RateLimitConfig(
            max_requests=max_requests,
            window=window,
            store=store,
            identifier=identifier,
        )
        return self._append(RateLimitStep(config))

    def csrf(self) -> ActionBuilder:
        """Require matching CSRF header and cookie tokens."""
        return self._append(CsrfStep())

    def sanitize(self) -> ActionBuilder:
        """HTML-escape every string in the input."""
        return self._append(SanitizeStep())

    def audit(self, *, action: str, resource: str, sink: AuditSink | None = None) -> ActionBuilder:
        """Emit an audit record after the handler succeeds."""
        return self._append(AuditStep(AuditConfig(action=action, resource=resource, sink=sink)))

    # ── compilation ──────────────────────────────────────────

    def action(self, handler: Handler) -> GuardedAction[Any]:
        """Compile the declared steps around *handler*.

        The handler receives ``(input, ctx)`` and may be sync or async.
        """
        return GuardedAction(
            self._steps,
            handler,
            config=self._guard.config,
            limiter_for=self._guard.limiter_for,
        )

    # ── introspection ────────────────────────────────────────

    @property
    def steps(self) -> tuple[PipelineStep, ...]:
        return self._steps

    def list_steps(self) -> list[str]:
        """Return the kinds of all declared steps in order."""
        return [s.kind for s in self._steps]

    def export(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot of the declared steps."""
        steps = [s.export() for s in self._steps]
        return {
            "steps": steps,
            "step_count": len(steps),
        }


class ActionGuard(ActionBuilder):
    """Root builder holding the shared configuration and limiter cache.

    Each declared ``rate_limit`` step owns one :class:`RateLimiter`, created
    on first use and reused by every action compiled from a builder that
    contains that step.  Two declarations never share a budget, even with
    identical settings.  With ``store="memory"`` every step also gets its
    own in-memory store; a store instance passed explicitly is shared by
    all steps that were given it.

    Parameters:
        config: Shared configuration.  Defaults to :class:`GuardConfig`.
    """

    def __init__(self, config: GuardConfig | None = None) -> None:
        super().__init__(self)
        self.config = config or GuardConfig()
        self._limiters: dict[int, tuple[RateLimitStep, RateLimiter]] = {}
        self._limiters_lock = threading.Lock()

    def limiter_for(self, step: RateLimitStep) -> RateLimiter:
        """Return the limiter owned by *step*, creating it on first use."""
        config = step.config
        with self._limiters_lock:
            # The step is kept alongside its limiter so its id is never reused.
            entry = self._limiters.get(id(step))
            if entry is None:
                if isinstance(config.store, str):
                    store: RateLimitStore = MemoryRateLimitStore(clock=self.config.clock)
                else:
                    store = config.store
                limiter = RateLimiter(
                    max_requests=config.max_requests,
                    window=config.window,
                    store=store,
                )
                entry = (step, limiter)
                self._limiters[id(step)] = entry
        return entry[1]


def create_action_guard(config: GuardConfig | None = None, **overrides: Any) -> ActionGuard:
    """Create a guard.

    Pass a :class:`GuardConfig`, keyword overrides of its fields, or both::

        guard = create_action_guard(auth=custom_auth(lookup_user))
    """
    if config is None:
        config = GuardConfig(**overrides)
    elif overrides:
        config = dataclasses.replace(config, **overrides)
    return ActionGuard(config)
