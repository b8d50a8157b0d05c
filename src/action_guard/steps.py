"""Step declarations — the closed set of things a pipeline can do.

Declarations are immutable data; nothing runs until the compiled action is
called.  The executor dispatches on ``kind``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Literal

from action_guard.audit import AuditConfig
from action_guard.config import RateLimitConfig
from action_guard.schema import SchemaValidator

StepKind = Literal["auth", "schema", "rate_limit", "csrf", "sanitize", "audit"]


@dataclass(frozen=True)
class _Step:
    kind: ClassVar[StepKind]

    def export(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot of this declaration."""
        return {"kind": self.kind, "config": self._export_config()}

    def _export_config(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class AuthStep(_Step):
    kind: ClassVar[StepKind] = "auth"


@dataclass(frozen=True)
class SchemaStep(_Step):
    kind: ClassVar[StepKind] = "schema"

    validator: SchemaValidator

    def _export_config(self) -> dict[str, Any]:
        name = getattr(self.validator, "name", None) or type(self.validator).__name__
        return {"schema": str(name)}


@dataclass(frozen=True)
class RateLimitStep(_Step):
    kind: ClassVar[StepKind] = "rate_limit"

    config: RateLimitConfig

    def _export_config(self) -> dict[str, Any]:
        store = self.config.store
        return {
            "max_requests": self.config.max_requests,
            "window": self.config.window,
            "window_ms": self.config.window_ms,
            "store": store if isinstance(store, str) else type(store).__name__,
            "has_identifier": self.config.identifier is not None,
        }


@dataclass(frozen=True)
class CsrfStep(_Step):
    kind: ClassVar[StepKind] = "csrf"


@dataclass(frozen=True)
class SanitizeStep(_Step):
    kind: ClassVar[StepKind] = "sanitize"


@dataclass(frozen=True)
class AuditStep(_Step):
    kind: ClassVar[StepKind] = "audit"

    config: AuditConfig

    def _export_config(self) -> dict[str, Any]:
        return {
            "action": self.config.action,
            "resource": self.config.resource,
            "has_sink": self.config.sink is not None,
        }


PipelineStep = AuthStep | SchemaStep | RateLimitStep | CsrfStep | SanitizeStep | AuditStep
