"""Atomic reservation, dispatch, cancellation and delivery of allocations.

Every counter mutation runs inside one transaction holding the resource row
lock, and is written as a guarded UPDATE whose WHERE clause re-states the
precondition. A guarded update that touches no row means the precondition no
longer holds and the whole transaction is rolled back.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...errors import (
    AllocationNotFound,
    CategoryMismatch,
    ConflictError,
    EngineError,
    InsufficientQuantity,
    InvalidRequestKind,
    RequestNotFound,
    RequestNotPending,
    ResourceNotFound,
    ResourceUnavailable,
    TransactionError,
)
from ...models.domain import (
    Ack,
    AllocationMode,
    AllocationRecord,
    AllocationStatus,
    AuditEvent,
    RequestKind,
    RequestStatus,
    ResourceStatus,
    utcnow,
)
from ...models.lifecycle import (
    CANCELLABLE_ALLOCATION_STATUSES,
    apply_request_transition,
    check_allocation_transition,
)
from ...persistence.tables import AllocationRow, RequestRow, ResourceRow
from ..audit import AuditSink, emit_safely
from ..categories import is_compatible
from ..geospatial import haversine_km, travel_time_minutes
from ..locations import resolve_location
from .matcher import required_quantity

logger = logging.getLogger(__name__)


def to_record(row: AllocationRow) -> AllocationRecord:
    return AllocationRecord(
        allocation_id=row.id,
        request_id=row.request_id,
        resource_id=row.resource_id,
        quantity=row.quantity,
        mode=AllocationMode(row.mode),
        status=AllocationStatus(row.status),
        distance_km=row.distance_km,
        travel_time_minutes=row.travel_time_minutes,
        actor_id=row.actor_id,
        cancellation_reason=row.cancellation_reason,
        allocated_at=row.allocated_at,
        dispatched_at=row.dispatched_at,
        delivered_at=row.delivered_at,
        cancelled_at=row.cancelled_at,
    )


def require_allocatable(request: RequestRow) -> None:
    if RequestKind(request.kind) is not RequestKind.RESOURCE:
        raise InvalidRequestKind(f"Request {request.id} is a {request.kind.value} and cannot receive resources")
    if RequestStatus(request.status) is not RequestStatus.PENDING:
        raise RequestNotPending(f"Cannot allocate {request.status.value} request")


class AllocationTransactionManager:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        audit_sink: AuditSink | None = None,
        minutes_per_km: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.audit_sink = audit_sink
        self.minutes_per_km = minutes_per_km

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except EngineError as exc:
            session.rollback()
            logger.warning(f"{operation} rejected ({exc.code}): {exc.message}")
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(f"{operation} failed in the store and was rolled back")
            raise TransactionError(f"{operation} failed: {exc}") from exc
        finally:
            session.close()

    @staticmethod
    def _lock_resource(session: Session, resource_id: str) -> ResourceRow:
        resource = session.scalars(
            select(ResourceRow).where(ResourceRow.id == resource_id).with_for_update()
        ).one_or_none()
        if resource is None:
            raise ResourceNotFound(f"Resource {resource_id} not found")
        return resource

    @staticmethod
    def _lock_request(session: Session, request_id: str) -> RequestRow:
        request = session.scalars(
            select(RequestRow).where(RequestRow.id == request_id).with_for_update()
        ).one_or_none()
        if request is None:
            raise RequestNotFound(f"Request {request_id} not found")
        return request

    @staticmethod
    def _lock_allocation(session: Session, allocation_id: str) -> AllocationRow:
        allocation = session.scalars(
            select(AllocationRow).where(AllocationRow.id == allocation_id).with_for_update()
        ).one_or_none()
        if allocation is None:
            raise AllocationNotFound(f"Allocation {allocation_id} not found")
        return allocation

    def allocate(
        self,
        request_id: str,
        resource_id: str,
        mode: AllocationMode = AllocationMode.AUTO,
        actor_id: str | None = None,
    ) -> AllocationRecord:
        """Reserve the request's quantity on the resource and record the allocation."""
        with self._transaction("allocate") as session:
            resource = self._lock_resource(session, resource_id)
            request = self._lock_request(session, request_id)
            require_allocatable(request)
            if not is_compatible(request.category, resource.category):
                raise CategoryMismatch(
                    f"Resource category ({resource.category}) does not match request ({request.category})"
                )
            quantity = required_quantity(request)

            # Re-check under lock: the matcher's read may be stale.
            if ResourceStatus(resource.status) is not ResourceStatus.ACTIVE:
                raise ResourceUnavailable(f"Resource {resource.code} is {resource.status.value}, not ACTIVE")
            if resource.quantity_available < quantity:
                raise InsufficientQuantity(
                    f"Insufficient quantity. Available: {resource.quantity_available}, Requested: {quantity}"
                )

            location = resolve_location(session, request)
            distance = haversine_km(location.latitude, location.longitude, resource.latitude, resource.longitude)
            travel_time = travel_time_minutes(distance, self.minutes_per_km)

            moved = session.execute(
                update(ResourceRow)
                .where(
                    ResourceRow.id == resource.id,
                    ResourceRow.status == ResourceStatus.ACTIVE,
                    ResourceRow.quantity_available >= quantity,
                )
                .values(
                    quantity_available=ResourceRow.quantity_available - quantity,
                    quantity_reserved=ResourceRow.quantity_reserved + quantity,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if moved != 1:
                raise InsufficientQuantity(f"Resource {resource.code} changed before the reservation was written")

            now = utcnow()
            apply_request_transition(request, RequestStatus.APPROVED, now)
            request.quantity_fulfilled = quantity

            allocation = AllocationRow(
                request_id=request.id,
                resource_id=resource.id,
                actor_id=actor_id,
                quantity=quantity,
                mode=mode,
                distance_km=distance,
                travel_time_minutes=travel_time,
                status=AllocationStatus.ALLOCATED,
                allocated_at=now,
            )
            session.add(allocation)
            session.flush()
            record = to_record(allocation)

        logger.info(
            f"Allocated {quantity} of {resource_id} to request {request_id} "
            f"({mode.value}, {distance} km, ~{travel_time} min)"
        )
        emit_safely(
            self.audit_sink,
            AuditEvent(
                entity_type="ResourceAllocation",
                entity_id=record.allocation_id,
                action="ALLOCATION_CREATED",
                actor_id=actor_id,
                metadata={
                    "allocation_mode": mode.value,
                    "distance_km": distance,
                    "travel_time_minutes": travel_time,
                    "quantity": quantity,
                    "request_id": request_id,
                    "resource_id": resource_id,
                },
            ),
        )
        return record

    def dispatch(self, allocation_id: str) -> Ack:
        """ALLOCATED -> IN_TRANSIT as a single guarded status write."""
        with self._transaction("dispatch") as session:
            written = session.execute(
                update(AllocationRow)
                .where(AllocationRow.id == allocation_id, AllocationRow.status == AllocationStatus.ALLOCATED)
                .values(status=AllocationStatus.IN_TRANSIT, dispatched_at=utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount
            if written != 1:
                allocation = session.get(AllocationRow, allocation_id)
                if allocation is None:
                    raise AllocationNotFound(f"Allocation {allocation_id} not found")
                check_allocation_transition(AllocationStatus(allocation.status), AllocationStatus.IN_TRANSIT)
                raise ConflictError(f"Allocation {allocation_id} changed while being dispatched")

        emit_safely(
            self.audit_sink,
            AuditEvent(
                entity_type="ResourceAllocation",
                entity_id=allocation_id,
                action="MARKED_IN_TRANSIT",
                metadata={"status_change": "ALLOCATED -> IN_TRANSIT"},
            ),
        )
        return Ack(allocation_id=allocation_id, status=AllocationStatus.IN_TRANSIT, message="Allocation marked as in-transit")

    def cancel(self, allocation_id: str, reason: str | None = None) -> Ack:
        """Release the reserved quantity and send the request back to PENDING."""
        with self._transaction("cancel") as session:
            allocation = self._lock_allocation(session, allocation_id)
            check_allocation_transition(AllocationStatus(allocation.status), AllocationStatus.CANCELLED)
            resource = self._lock_resource(session, allocation.resource_id)
            quantity = allocation.quantity

            self._move_reserved(session, resource, quantity, target="available")

            now = utcnow()
            written = session.execute(
                update(AllocationRow)
                .where(
                    AllocationRow.id == allocation.id,
                    AllocationRow.status.in_(list(CANCELLABLE_ALLOCATION_STATUSES)),
                )
                .values(status=AllocationStatus.CANCELLED, cancelled_at=now, cancellation_reason=reason)
                .execution_options(synchronize_session=False)
            ).rowcount
            if written != 1:
                raise ConflictError(f"Allocation {allocation_id} changed while being cancelled")

            request = self._lock_request(session, allocation.request_id)
            apply_request_transition(request, RequestStatus.PENDING, now)
            request.quantity_fulfilled = 0

        logger.info(f"Cancelled allocation {allocation_id}; {quantity} units returned to {resource.code}")
        emit_safely(
            self.audit_sink,
            AuditEvent(
                entity_type="ResourceAllocation",
                entity_id=allocation_id,
                action="ALLOCATION_CANCELLED",
                metadata={"reason": reason, "quantity_freed": quantity},
            ),
        )
        return Ack(allocation_id=allocation_id, status=AllocationStatus.CANCELLED, message="Allocation cancelled and resource freed")

    def mark_delivered(self, allocation_id: str) -> Ack:
        """Consume the reserved quantity and fulfil the request."""
        with self._transaction("mark_delivered") as session:
            allocation = self._lock_allocation(session, allocation_id)
            current = AllocationStatus(allocation.status)
            check_allocation_transition(current, AllocationStatus.DELIVERED)
            resource = self._lock_resource(session, allocation.resource_id)

            self._move_reserved(session, resource, allocation.quantity, target="used")

            now = utcnow()
            written = session.execute(
                update(AllocationRow)
                .where(AllocationRow.id == allocation.id, AllocationRow.status == current)
                .values(
                    status=AllocationStatus.DELIVERED,
                    delivered_at=now,
                    dispatched_at=allocation.dispatched_at or now,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if written != 1:
                raise ConflictError(f"Allocation {allocation_id} changed while being delivered")

            request = self._lock_request(session, allocation.request_id)
            apply_request_transition(request, RequestStatus.FULFILLED, now)

        logger.info(f"Allocation {allocation_id} delivered")
        emit_safely(
            self.audit_sink,
            AuditEvent(
                entity_type="ResourceAllocation",
                entity_id=allocation_id,
                action="ALLOCATION_DELIVERED",
                metadata={"delivered_at": now.isoformat()},
            ),
        )
        return Ack(allocation_id=allocation_id, status=AllocationStatus.DELIVERED, message="Allocation marked as delivered")

    @staticmethod
    def _move_reserved(session: Session, resource: ResourceRow, quantity: int, *, target: str) -> None:
        destination = ResourceRow.quantity_available if target == "available" else ResourceRow.quantity_used
        moved = session.execute(
            update(ResourceRow)
            .where(ResourceRow.id == resource.id, ResourceRow.quantity_reserved >= quantity)
            .values({ResourceRow.quantity_reserved: ResourceRow.quantity_reserved - quantity, destination: destination + quantity})
            .execution_options(synchronize_session=False)
        ).rowcount
        if moved != 1:
            raise ConflictError(
                f"Resource {resource.code} holds fewer than {quantity} reserved units",
                code="COUNTER_MISMATCH",
            )
