"""Result types — per-step outcomes and the uniform action result."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict

ErrorCode = Literal[
    "AUTH_FAILED",
    "VALIDATION_ERROR",
    "RATE_LIMITED",
    "CSRF_FAILED",
    "INTERNAL_ERROR",
]

T = TypeVar("T")


@dataclass(frozen=True)
class StepResult:
    """Immutable outcome of a single pipeline step.

    Attributes:
        passed:   ``True`` if the pipeline may continue with the next step.
        step:     Kind of the step that produced this result.
        error:    Human-readable message (only meaningful on failure).
        code:     Failure code from the closed taxonomy.
        metadata: Extra data the step wants to surface (limiter state,
                  validation details, etc.).  Never returned to callers.
    """

    passed: bool
    step: str = ""
    error: str = ""
    code: ErrorCode | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    # ── Factory helpers ──────────────────────────────────────

    @staticmethod
    def proceed(step: str = "") -> StepResult:
        return StepResult(passed=True, step=step)

    @staticmethod
    def fail(step: str, error: str, code: ErrorCode, **meta: Any) -> StepResult:
        return StepResult(
            passed=False,
            step=step,
            error=error,
            code=code,
            metadata=meta,
        )


class ActionResult(BaseModel, Generic[T]):
    """The only value a guarded action ever returns.

    Attributes:
        success: Whether every step and the handler completed.
        data:    Handler return value (on success).
        error:   Error message (on failure).  Never carries a traceback.
        code:    Failure code (on failure).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool
    data: T | None = None
    error: str | None = None
    code: ErrorCode | None = None

    @classmethod
    def ok(cls, data: T) -> ActionResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: ErrorCode) -> ActionResult[T]:
        return cls(success=False, error=error, code=code)

    def as_dict(self) -> dict[str, Any]:
        """Return the wire shape: ``{success, data}`` or ``{success, error, code}``."""
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "code": self.code}
