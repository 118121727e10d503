"""Allocation & assignment engine: the operations offered to the serving layer."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import settings
from ..db.session import get_session_factory
from ..errors import CategoryMismatch, EngineError, RequestNotFound, TransactionError, ValidationError
from ..models.domain import (
    Ack,
    AllocationMode,
    AllocationRecord,
    AuditEvent,
    RequestStatus,
    Suggestion,
    SweepResult,
)
from ..persistence.tables import RequestRow, ResourceRow
from .allocation.matcher import ResourceMatcher
from .allocation.transactions import AllocationTransactionManager, require_allocatable
from .audit import AuditSink, LoggingAuditSink, emit_safely
from .categories import is_compatible
from .routing.operator_router import OperatorDirectory, OperatorRouter
from .sla.monitor import SlaMonitor

logger = logging.getLogger(__name__)


class AllocationEngine:
    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        audit_sink: AuditSink | None = None,
        operator_directory: OperatorDirectory | None = None,
        sla_window_hours: float | None = None,
        minutes_per_km: float | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.audit_sink = audit_sink if audit_sink is not None else LoggingAuditSink()
        self.matcher = ResourceMatcher(minutes_per_km=minutes_per_km)
        self.transactions = AllocationTransactionManager(
            self.session_factory, audit_sink=self.audit_sink, minutes_per_km=minutes_per_km
        )
        self.router = OperatorRouter(self.session_factory, directory=operator_directory, audit_sink=self.audit_sink)
        self.sla_monitor = SlaMonitor(self.session_factory, window_hours=sla_window_hours, audit_sink=self.audit_sink)

    @contextmanager
    def _read(self, operation: str) -> Iterator[Session]:
        """Short read-only session; always closed before any write transaction starts."""
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            logger.exception(f"{operation} failed while reading the store")
            raise TransactionError(f"{operation} failed: {exc}") from exc
        finally:
            session.close()

    @contextmanager
    def _store_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception(f"{operation} failed in the store")
            raise TransactionError(f"{operation} failed: {exc}") from exc

    def _load_request(self, session: Session, request_id: str) -> RequestRow:
        request = session.get(RequestRow, request_id)
        if request is None:
            raise RequestNotFound(f"Request {request_id} not found")
        return request

    def suggest_resources(self, request_id: str, limit: int | None = None) -> list[Suggestion]:
        """Ranked candidates for a pending request; never writes."""
        limit = settings.default_suggestion_limit if limit is None else limit
        if limit < 1 or limit > settings.max_suggestion_limit:
            raise ValidationError(f"limit must be between 1 and {settings.max_suggestion_limit}")
        with self._read("suggest_resources") as session:
            request = self._load_request(session, request_id)
            require_allocatable(request)
            return self.matcher.suggest(session, request, limit)

    def allocate_auto(self, request_id: str) -> AllocationRecord:
        with self._read("allocate_auto") as session:
            request = self._load_request(session, request_id)
            require_allocatable(request)
            try:
                candidate = self.matcher.best(session, request)
            except EngineError as exc:
                emit_safely(
                    self.audit_sink,
                    AuditEvent(
                        entity_type="Request",
                        entity_id=request_id,
                        action="ALLOCATION_FAILED",
                        metadata={"reason": exc.message, "code": exc.code, "priority": request.priority.value},
                    ),
                )
                raise
        return self.transactions.allocate(request_id, candidate.resource_id, AllocationMode.AUTO, None)

    def allocate_manual(self, request_id: str, resource_id: str, actor_id: str | None) -> AllocationRecord:
        with self._read("allocate_manual") as session:
            request = self._load_request(session, request_id)
            require_allocatable(request)
            resource = session.get(ResourceRow, resource_id)
            if resource is not None and not is_compatible(request.category, resource.category):
                raise CategoryMismatch(
                    f"Resource category ({resource.category}) does not match request ({request.category})"
                )
        return self.transactions.allocate(request_id, resource_id, AllocationMode.MANUAL, actor_id)

    def cancel_allocation(self, allocation_id: str, reason: str | None = None) -> Ack:
        return self.transactions.cancel(allocation_id, reason)

    def dispatch_allocation(self, allocation_id: str) -> Ack:
        return self.transactions.dispatch(allocation_id)

    def mark_delivered(self, allocation_id: str) -> Ack:
        return self.transactions.mark_delivered(allocation_id)

    def route_complaint(self, area: str | None) -> str | None:
        with self._store_errors("route_complaint"):
            return self.router.route(area)

    def assign_complaint(self, request_id: str) -> str | None:
        with self._store_errors("assign_complaint"):
            return self.router.assign(request_id)

    def advance_complaint(self, request_id: str, status: RequestStatus, actor_id: str | None = None) -> RequestStatus:
        with self._store_errors("advance_complaint"):
            return self.router.advance(request_id, status, actor_id)

    def run_sla_sweep(self) -> SweepResult:
        return self.sla_monitor.run_sweep()

