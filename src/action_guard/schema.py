"""Schema validation adapter.

The ``schema`` step delegates validation to an external collaborator.  Any
object exposing ``validate(raw) -> ValidationOutcome`` is accepted as-is;
everything else is handed to pydantic (model classes, ``TypeAdapter``
instances, ``TypedDict`` classes, plain annotations such as ``list[int]``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pydantic import PydanticUserError, TypeAdapter, ValidationError

from action_guard.exceptions import GuardConfigError


@dataclass(frozen=True)
class ValidationOutcome:
    """Outcome of validating one input.

    Attributes:
        success: ``True`` when the input is acceptable.
        data:    The validated (possibly coerced) value.
        errors:  Collaborator-specific error details on failure.
    """

    success: bool
    data: Any = None
    errors: list[dict[str, Any]] = field(default_factory=list)

    @staticmethod
    def coerce(value: Any) -> ValidationOutcome:
        """Accept a ``ValidationOutcome`` or a ``{"success", "data"}`` mapping."""
        if isinstance(value, ValidationOutcome):
            return value
        if isinstance(value, Mapping) and "success" in value:
            return ValidationOutcome(
                success=bool(value["success"]),
                data=value.get("data"),
                errors=list(value.get("errors") or []),
            )
        raise TypeError(
            f"Schema validator returned {type(value).__name__}, expected ValidationOutcome"
        )


@runtime_checkable
class SchemaValidator(Protocol):
    """Structural contract for schema collaborators.  May be sync or async."""

    def validate(self, raw: Any) -> Any: ...


class PydanticValidator:
    """Validates input through a pydantic ``TypeAdapter``."""

    def __init__(self, schema: Any) -> None:
        self.schema = schema
        try:
            self._adapter: TypeAdapter[Any] = (
                schema if isinstance(schema, TypeAdapter) else TypeAdapter(schema)
            )
        except (PydanticUserError, TypeError) as e:
            raise GuardConfigError("schema", f"cannot build a validator for {schema!r}: {e}") from e

    @property
    def name(self) -> str:
        return getattr(self.schema, "__name__", None) or repr(self.schema)

    def validate(self, raw: Any) -> ValidationOutcome:
        try:
            value = self._adapter.validate_python(raw)
        except ValidationError as e:
            return ValidationOutcome(success=False, errors=e.errors(include_url=False))
        return ValidationOutcome(success=True, data=value)


def as_validator(schema: Any) -> SchemaValidator:
    """Wrap *schema* in a validator, failing fast on unusable schemas.

    Classes always go through pydantic (pydantic models carry a deprecated
    ``validate`` classmethod that must not be mistaken for the contract).
    """
    if schema is None:
        raise GuardConfigError("schema", "a schema is required")
    if not isinstance(schema, (type, TypeAdapter)) and callable(getattr(schema, "validate", None)):
        return schema
    return PydanticValidator(schema)
