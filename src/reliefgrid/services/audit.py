"""Fire-and-forget audit event emission."""

from __future__ import annotations

import logging
from typing import Protocol

from ..models.domain import AuditEvent

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("reliefgrid.audit")


class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    """Writes audit events as structured records on the ``reliefgrid.audit`` logger."""

    def emit(self, event: AuditEvent) -> None:
        audit_logger.info(
            f"{event.action} {event.entity_type}:{event.entity_id}",
            extra={
                "audit": {
                    "entity_type": event.entity_type,
                    "entity_id": event.entity_id,
                    "action": event.action,
                    "actor_id": event.actor_id,
                    "metadata": event.metadata,
                    "occurred_at": event.occurred_at.isoformat(),
                }
            },
        )


class MemoryAuditSink:
    """Keeps events in memory; used by tests and local tooling."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> list[str]:
        return [event.action for event in self.events]


def emit_safely(sink: AuditSink | None, event: AuditEvent) -> None:
    """Hand ``event`` to the sink; a failing sink never fails the caller."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as exc:
        logger.warning(f"Audit sink rejected {event.action} for {event.entity_type} {event.entity_id}: {exc}")
