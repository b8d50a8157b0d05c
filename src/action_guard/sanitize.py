"""HTML-escaping input sanitization."""

from __future__ import annotations

import dataclasses
from collections.abc import Collection
from typing import Any, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

_HTML_ESCAPES = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#x27;",
        "`": "&#x60;",
    }
)


def escape_html(text: str) -> str:
    """Escape ampersands, angle brackets, quotes and backticks in *text*."""
    return text.translate(_HTML_ESCAPES)


def sanitize_value(value: Any) -> Any:
    """Return a deep copy of *value* with every string HTML-escaped.

    Dicts, lists, tuples, pydantic models and dataclass instances are rebuilt;
    other non-string values (numbers, booleans, ``None``, ...) pass through.
    """
    return _sanitize(value, skip_fields=frozenset(), deep=True)


def sanitize_input(
    value: T,
    *,
    skip_fields: Collection[str] = (),
    deep: bool = True,
) -> T:
    """Sanitize *value*, optionally leaving named fields untouched.

    Parameters:
        skip_fields: Field/key names whose values are copied verbatim, at any
                     nesting depth.
        deep:        When ``False`` only the top level is escaped; nested
                     containers are passed through unchanged.
    """
    return _sanitize(value, skip_fields=frozenset(skip_fields), deep=deep)


def _sanitize(value: Any, *, skip_fields: frozenset[str], deep: bool, level: int = 0) -> Any:
    if isinstance(value, str):
        return escape_html(value)

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if level > 0 and not deep:
        return value

    def child(item: Any) -> Any:
        return _sanitize(item, skip_fields=skip_fields, deep=deep, level=level + 1)

    def fields(items: dict[str, Any]) -> dict[str, Any]:
        return {k: v if k in skip_fields else child(v) for k, v in items.items()}

    if isinstance(value, BaseModel):
        current = {name: getattr(value, name) for name in type(value).model_fields}
        return value.model_copy(update=fields(current))

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        current = {f.name: getattr(value, f.name) for f in dataclasses.fields(value) if f.init}
        return dataclasses.replace(value, **fields(current))

    if isinstance(value, dict):
        return {
            k: v if isinstance(k, str) and k in skip_fields else child(v)
            for k, v in value.items()
        }

    if isinstance(value, list):
        return [child(item) for item in value]

    if isinstance(value, tuple):
        return tuple(child(item) for item in value)

    return value
