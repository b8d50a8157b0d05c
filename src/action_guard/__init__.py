"""action_guard — composable request guarding for async handlers.

Declare an ordered chain of checks (auth, schema, rate limit, CSRF,
sanitize, audit), compile it around a handler, and get back one awaitable
that always returns an :class:`ActionResult`.  The first failing step stops
the chain.
"""

from action_guard.audit import AuditConfig, AuditRecord, AuditSink, LoggingAuditSink
from action_guard.auth import (
    AuthProvider,
    NextAuthProvider,
    SupabaseAuthProvider,
    custom_auth,
    verify_token,
)
from action_guard.builder import ActionBuilder, ActionGuard, create_action_guard
from action_guard.config import GuardConfig, RateLimitConfig
from action_guard.context import ExecutionContext
from action_guard.csrf import (
    CsrfConfig,
    build_csrf_cookie_header,
    generate_csrf_token,
    validate_csrf,
)
from action_guard.exceptions import AuthNotConfiguredError, GuardConfigError, GuardError
from action_guard.executor import GuardedAction
from action_guard.rate_limit import MemoryRateLimitStore, RateLimiter, RateLimitStore, parse_window
from action_guard.result import ActionResult, ErrorCode, StepResult
from action_guard.sanitize import escape_html, sanitize_input

__all__ = [
    "ActionBuilder",
    "ActionGuard",
    "ActionResult",
    "AuditConfig",
    "AuditRecord",
    "AuditSink",
    "AuthNotConfiguredError",
    "AuthProvider",
    "CsrfConfig",
    "ErrorCode",
    "ExecutionContext",
    "GuardConfig",
    "GuardConfigError",
    "GuardError",
    "GuardedAction",
    "LoggingAuditSink",
    "MemoryRateLimitStore",
    "NextAuthProvider",
    "RateLimitConfig",
    "RateLimitStore",
    "RateLimiter",
    "StepResult",
    "SupabaseAuthProvider",
    "build_csrf_cookie_header",
    "create_action_guard",
    "custom_auth",
    "escape_html",
    "generate_csrf_token",
    "parse_window",
    "sanitize_input",
    "validate_csrf",
    "verify_token",
]
