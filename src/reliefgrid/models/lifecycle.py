"""Request and allocation state machines.

Resource requests and complaints share one table but follow separate
lifecycles, selected by ``RequestKind``:

    RESOURCE:  PENDING -> APPROVED -> FULFILLED
               PENDING -> REJECTED
               APPROVED -> PENDING            (allocation cancelled)
    COMPLAINT: PENDING -> ASSIGNED -> IN_PROGRESS -> RESOLVED

The lifecycle timestamps on a request are derived from its status, so status
changes go through ``apply_request_transition``. Complaint assignment is the
one exception: it is an unlocked guarded single-row UPDATE conditioned on
PENDING, writing the same ``assigned_at`` the transition would set.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, assert_never

from ..errors import AlreadyCancelled, AlreadyDelivered, InvalidRequestKind, InvalidTransition
from .domain import AllocationStatus, RequestKind, RequestStatus

LIFECYCLE_FIELDS = (
    "approved_at",
    "fulfilled_at",
    "rejected_at",
    "assigned_at",
    "started_at",
    "resolved_at",
)

RESOURCE_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.FULFILLED, RequestStatus.PENDING}),
    RequestStatus.FULFILLED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}

COMPLAINT_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.ASSIGNED}),
    RequestStatus.ASSIGNED: frozenset({RequestStatus.IN_PROGRESS}),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.RESOLVED}),
    RequestStatus.RESOLVED: frozenset(),
}

TERMINAL_STATUSES = frozenset({RequestStatus.FULFILLED, RequestStatus.REJECTED, RequestStatus.RESOLVED})

# Complaint statuses counted towards an operator's caseload.
IN_FLIGHT_COMPLAINT_STATUSES = frozenset({RequestStatus.ASSIGNED, RequestStatus.IN_PROGRESS})

ALLOCATION_TRANSITIONS: dict[AllocationStatus, frozenset[AllocationStatus]] = {
    # ALLOCATED -> DELIVERED covers hand-overs that were never marked in transit.
    AllocationStatus.ALLOCATED: frozenset(
        {AllocationStatus.IN_TRANSIT, AllocationStatus.DELIVERED, AllocationStatus.CANCELLED}
    ),
    AllocationStatus.IN_TRANSIT: frozenset({AllocationStatus.DELIVERED, AllocationStatus.CANCELLED}),
    AllocationStatus.DELIVERED: frozenset(),
    AllocationStatus.CANCELLED: frozenset(),
}

CANCELLABLE_ALLOCATION_STATUSES = frozenset({AllocationStatus.ALLOCATED, AllocationStatus.IN_TRANSIT})


def transitions_for(kind: RequestKind) -> dict[RequestStatus, frozenset[RequestStatus]]:
    match kind:
        case RequestKind.RESOURCE:
            return RESOURCE_TRANSITIONS
        case RequestKind.COMPLAINT:
            return COMPLAINT_TRANSITIONS
        case _:
            assert_never(kind)


def required_timestamps(status: RequestStatus) -> frozenset[str]:
    """Lifecycle timestamps that must be set while a request is in ``status``; all others are null."""
    match status:
        case RequestStatus.PENDING:
            return frozenset()
        case RequestStatus.APPROVED:
            return frozenset({"approved_at"})
        case RequestStatus.FULFILLED:
            return frozenset({"approved_at", "fulfilled_at"})
        case RequestStatus.REJECTED:
            return frozenset({"rejected_at"})
        case RequestStatus.ASSIGNED:
            return frozenset({"assigned_at"})
        case RequestStatus.IN_PROGRESS:
            return frozenset({"assigned_at", "started_at"})
        case RequestStatus.RESOLVED:
            return frozenset({"assigned_at", "started_at", "resolved_at"})
        case _:
            assert_never(status)


def is_terminal(status: RequestStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(kind: RequestKind, current: RequestStatus, target: RequestStatus) -> bool:
    return target in transitions_for(kind).get(current, frozenset())


def apply_request_transition(request: Any, target: RequestStatus, now: datetime) -> None:
    """Move ``request`` to ``target`` and realign its lifecycle timestamps."""
    kind = RequestKind(request.kind)
    current = RequestStatus(request.status)
    lifecycle = transitions_for(kind)
    if current not in lifecycle:
        raise InvalidRequestKind(f"Status {current.value} does not belong to the {kind.value} lifecycle")
    if not can_transition(kind, current, target):
        raise InvalidTransition(f"Cannot move {kind.value} request from {current.value} to {target.value}")

    required = required_timestamps(target)
    for name in LIFECYCLE_FIELDS:
        if name not in required:
            setattr(request, name, None)
        elif getattr(request, name) is None:
            setattr(request, name, now)
    request.status = target
    request.updated_at = now


def check_allocation_transition(current: AllocationStatus, target: AllocationStatus) -> None:
    if target in ALLOCATION_TRANSITIONS[current]:
        return
    match current:
        case AllocationStatus.CANCELLED:
            raise AlreadyCancelled("Allocation already cancelled")
        case AllocationStatus.DELIVERED:
            raise AlreadyDelivered("Allocation already delivered")
        case AllocationStatus.ALLOCATED | AllocationStatus.IN_TRANSIT:
            raise InvalidTransition(f"Cannot move {current.value} allocation to {target.value}")
        case _:
            assert_never(current)
