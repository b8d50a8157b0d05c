"""ExecutionContext — the per-call data object that flows through the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx


@dataclass
class ExecutionContext:
    """Fresh, call-owned context that travels through every step.

    Attributes:
        user:     Whatever the auth provider resolved, or ``None``.  Set by
                  the ``auth`` step.
        input:    The call's input.  ``schema`` and ``sanitize`` replace it
                  with a new value rather than editing it in place.
        headers:  Case-insensitive, request-scoped headers.  Empty when the
                  caller supplied none.
        metadata: Shared scratchpad for inter-step communication, e.g. the
                  limiter outcome (``"rate_limit"``) and the audit
                  configuration (``"audit"``) read after the handler runs.
    """

    user: Any | None = None
    input: Any = None
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    metadata: dict[str, Any] = field(default_factory=dict)
