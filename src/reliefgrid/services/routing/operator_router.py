"""Least-loaded operator routing for citizen complaints.

Caseloads are recomputed from the requests table on every call and nothing
is locked: two complaints for the same area arriving together can both land
on the same operator. Routing is best-effort fairness, not a queue.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from ...errors import ConflictError, InvalidRequestKind, InvalidTransition, RequestNotFound, RequestNotPending
from ...models.domain import AuditEvent, OperatorRecord, RankedOperator, RequestKind, RequestStatus, utcnow
from ...models.lifecycle import IN_FLIGHT_COMPLAINT_STATUSES, apply_request_transition
from ...persistence.tables import OperatorRow, RequestRow
from ..audit import AuditSink, emit_safely
from ..locations import resolve_area

logger = logging.getLogger(__name__)

# Statuses an operator may move a complaint to; ASSIGNED is only reached through routing.
ADVANCEABLE_COMPLAINT_STATUSES = frozenset({RequestStatus.IN_PROGRESS, RequestStatus.RESOLVED})


def normalize_area(area: str | None) -> str:
    return (area or "").strip().lower()


def sanitize_areas(areas: Iterable | None) -> frozenset[str]:
    """Normalized, de-duplicated area names; non-strings and blanks are dropped."""
    if not areas or isinstance(areas, str):
        return frozenset()
    cleaned = {normalize_area(area) for area in areas if isinstance(area, str)}
    cleaned.discard("")
    return frozenset(cleaned)


class OperatorDirectory(Protocol):
    def active_operators(self) -> Sequence[OperatorRecord]: ...


class SqlOperatorDirectory:
    """Reads operators mirrored into the ``operators`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def active_operators(self) -> list[OperatorRecord]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(OperatorRow).where(OperatorRow.is_active.is_(True), OperatorRow.is_suspended.is_(False))
            ).all()
            return [
                OperatorRecord(
                    operator_id=row.id,
                    name=row.name,
                    assigned_areas=sanitize_areas(row.assigned_areas),
                    is_active=row.is_active,
                    is_suspended=row.is_suspended,
                    created_at=row.created_at,
                )
                for row in rows
            ]


def count_caseloads(session: Session, operator_ids: Sequence[str]) -> dict[str, int]:
    if not operator_ids:
        return {}
    rows = session.execute(
        select(RequestRow.assigned_to, func.count(RequestRow.id))
        .where(
            RequestRow.assigned_to.in_(operator_ids),
            RequestRow.status.in_(list(IN_FLIGHT_COMPLAINT_STATUSES)),
        )
        .group_by(RequestRow.assigned_to)
    ).all()
    return {operator_id: int(count or 0) for operator_id, count in rows}


class OperatorRouter:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        directory: OperatorDirectory | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.directory = directory or SqlOperatorDirectory(session_factory)
        self.audit_sink = audit_sink

    def rank(self, area: str | None) -> list[RankedOperator]:
        target = normalize_area(area)
        if not target:
            return []

        matching = [
            operator
            for operator in self.directory.active_operators()
            if operator.is_active and not operator.is_suspended and target in sanitize_areas(operator.assigned_areas)
        ]
        if not matching:
            return []

        with self.session_factory() as session:
            caseloads = count_caseloads(session, [operator.operator_id for operator in matching])

        ranked = [
            RankedOperator(
                operator_id=operator.operator_id,
                name=operator.name,
                caseload=caseloads.get(operator.operator_id, 0),
                created_at=operator.created_at,
            )
            for operator in matching
        ]
        ranked.sort(key=lambda item: (item.caseload, item.created_at, item.operator_id))
        return ranked

    def route(self, area: str | None) -> str | None:
        """Operator id with the lightest caseload covering ``area``, or None."""
        ranked = self.rank(area)
        if not ranked:
            logger.info(f"No active operator covers area '{normalize_area(area)}'")
            return None
        return ranked[0].operator_id

    def assign(self, request_id: str) -> str | None:
        """Route a pending complaint and record the operator; None leaves it for manual routing."""
        with self.session_factory() as session:
            request = session.get(RequestRow, request_id)
            if request is None:
                raise RequestNotFound(f"Request {request_id} not found")
            if RequestKind(request.kind) is not RequestKind.COMPLAINT:
                raise InvalidRequestKind(f"Request {request_id} is not a complaint")
            if RequestStatus(request.status) is not RequestStatus.PENDING:
                raise RequestNotPending(f"Cannot assign {request.status.value} complaint")
            area = resolve_area(session, request)

        operator_id = self.route(area)
        if operator_id is None:
            return None

        now = utcnow()
        with self.session_factory.begin() as session:
            written = session.execute(
                update(RequestRow)
                .where(RequestRow.id == request_id, RequestRow.status == RequestStatus.PENDING)
                .values(
                    assigned_to=operator_id,
                    status=RequestStatus.ASSIGNED,
                    assigned_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if written != 1:
                raise ConflictError(f"Complaint {request_id} changed before it could be assigned")

        logger.info(f"Complaint {request_id} assigned to operator {operator_id} (area '{normalize_area(area)}')")
        emit_safely(
            self.audit_sink,
            AuditEvent(
                entity_type="Request",
                entity_id=request_id,
                action="COMPLAINT_ASSIGNED",
                metadata={"operator_id": operator_id, "area": normalize_area(area)},
            ),
        )
        return operator_id

    def advance(self, request_id: str, target: RequestStatus, actor_id: str | None = None) -> RequestStatus:
        """Move an assigned complaint forward (ASSIGNED -> IN_PROGRESS -> RESOLVED)."""
        if target not in ADVANCEABLE_COMPLAINT_STATUSES:
            raise InvalidTransition(f"Complaints cannot be moved to {target.value} directly")
        with self.session_factory.begin() as session:
            request = session.get(RequestRow, request_id)
            if request is None:
                raise RequestNotFound(f"Request {request_id} not found")
            if RequestKind(request.kind) is not RequestKind.COMPLAINT:
                raise InvalidRequestKind(f"Request {request_id} is not a complaint")
            previous = RequestStatus(request.status)
            apply_request_transition(request, target, utcnow())

        emit_safely(
            self.audit_sink,
            AuditEvent(
                entity_type="Request",
                entity_id=request_id,
                action="COMPLAINT_STATUS_CHANGED",
                actor_id=actor_id,
                metadata={"status_change": f"{previous.value} -> {target.value}"},
            ),
        )
        return target
