"""Guard-level and step-level configuration."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

import httpx

from action_guard.audit import AuditSink, LoggingAuditSink
from action_guard.csrf import CsrfConfig
from action_guard.exceptions import GuardConfigError
from action_guard.rate_limit import RateLimitStore, parse_window

if TYPE_CHECKING:
    from action_guard._internal.clock import Clock
    from action_guard.auth.base import AuthProvider
    from action_guard.context import ExecutionContext

HeaderSource = Mapping[str, str] | httpx.Headers | Sequence[tuple[str, str]]


@dataclass(frozen=True)
class RateLimitConfig:
    """Budget for one ``rate_limit`` step.

    Validated on construction, so a bad window or budget fails when the step
    is declared rather than when a request arrives.

    Attributes:
        max_requests: Admitted requests per window, at least 1.
        window:       Window string, e.g. ``"30s"``, ``"1m"``, ``"1h"``, ``"1d"``.
        store:        ``"memory"`` or a :class:`RateLimitStore` instance.
        identifier:   Optional ``(ctx) -> key`` overriding the default key
                      resolution (user, forwarded IP, real IP, anonymous).
    """

    max_requests: int
    window: str
    store: Literal["memory"] | RateLimitStore = "memory"
    identifier: Callable[[ExecutionContext], str] | None = None
    window_ms: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if (
            isinstance(self.max_requests, bool)
            or not isinstance(self.max_requests, int)
            or self.max_requests < 1
        ):
            raise GuardConfigError(
                "rate_limit",
                f"max_requests must be a positive integer, got {self.max_requests!r}.",
            )
        if not isinstance(self.store, RateLimitStore) and self.store != "memory":
            raise GuardConfigError(
                "rate_limit",
                f"store must be 'memory' or a RateLimitStore, got {self.store!r}.",
            )
        object.__setattr__(self, "window_ms", parse_window(self.window))


@dataclass
class GuardConfig:
    """Everything a guard shares across the actions built from it.

    Attributes:
        auth:             Provider used by ``auth`` steps.  An ``auth`` step on
                          a guard without one fails with ``INTERNAL_ERROR``.
        csrf:             Cookie/header names used by ``csrf`` steps.
        audit_sink:       Where audit records go unless a step overrides it.
        headers_provider: Transport integration point.  Called once per
                          invocation when the caller passes no headers,
                          e.g. to read the current request from a context
                          variable.
        clock:            Clock for limiter stores created by the guard and
                          for audit timestamps.
    """

    auth: AuthProvider | None = None
    csrf: CsrfConfig = field(default_factory=CsrfConfig)
    audit_sink: AuditSink = field(default_factory=LoggingAuditSink)
    headers_provider: Callable[[], HeaderSource | None] | None = None
    clock: Clock | None = None
