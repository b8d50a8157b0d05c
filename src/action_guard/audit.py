"""Audit records and sinks.

A record is emitted once per successful guarded call that declared an
``audit`` step.  Persistence is left to the sink; the built-in sink writes
one JSON line per record to the ``action_guard.audit`` logger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class AuditRecord(BaseModel):
    """Structured audit entry.

    Attributes:
        timestamp: ISO-8601 time captured right after the handler returned.
        action:    The audited action, e.g. ``"CREATE_POST"``.
        resource:  The audited resource, e.g. ``"posts"``.
        user_id:   Resolved user identity, or ``"anonymous"``.
        success:   Always ``True`` today; failed calls are not audited.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: str
    action: str
    resource: str
    user_id: str
    success: bool = True


class AuditSink(Protocol):
    """Receives audit records.  ``emit`` may be a plain or an async method."""

    def emit(self, record: AuditRecord) -> Any: ...


class LoggingAuditSink:
    """Writes each record as a JSON line through :mod:`logging`.

    Parameters:
        log:   Logger to write to.  Defaults to ``action_guard.audit``.
        level: Log level for the records.
    """

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._logger = log or logger
        self._level = level

    def emit(self, record: AuditRecord) -> None:
        self._logger.log(self._level, record.model_dump_json())


@dataclass(frozen=True)
class AuditConfig:
    """What to audit.  Carried opaquely from declaration to emission.

    Attributes:
        action:   Action name written to the record.
        resource: Resource name written to the record.
        sink:     Optional sink overriding the guard-level sink for this step.
    """

    action: str
    resource: str
    sink: AuditSink | None = None
