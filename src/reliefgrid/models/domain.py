"""Domain enums and value objects for requests, resources, allocations and operators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column is stored as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RequestKind(str, Enum):
    RESOURCE = "RESOURCE"
    COMPLAINT = "COMPLAINT"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    FULFILLED = "FULFILLED"
    REJECTED = "REJECTED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"


class ResourceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    MAINTENANCE = "MAINTENANCE"
    DECOMMISSIONED = "DECOMMISSIONED"


class AllocationStatus(str, Enum):
    ALLOCATED = "ALLOCATED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class AllocationMode(str, Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"
    SYSTEM = "SYSTEM"


@dataclass(slots=True)
class ResolvedLocation:
    """Coordinates a request is served at, plus the area name when known."""

    latitude: float
    longitude: float
    area: Optional[str] = None
    zone_id: Optional[str] = None


@dataclass(slots=True)
class Candidate:
    """A resource passing category, availability and radius filters for one request."""

    resource_id: str
    name: str
    code: str
    category: str
    quantity_available: int
    priority_weight: int
    created_at: datetime
    distance_km: float
    travel_time_minutes: int

    def sort_key(self) -> tuple:
        return (self.distance_km, -self.priority_weight, self.created_at, self.resource_id)


@dataclass(slots=True)
class Suggestion:
    resource_id: str
    name: str
    code: str
    category: str
    quantity_available: int
    distance_km: float
    travel_time_minutes: int
    priority_score: int
    is_best_match: bool


@dataclass(slots=True)
class OperatorRecord:
    operator_id: str
    name: str
    assigned_areas: frozenset[str]
    is_active: bool
    is_suspended: bool
    created_at: datetime


@dataclass(slots=True)
class RankedOperator:
    operator_id: str
    name: str
    caseload: int
    created_at: datetime


@dataclass(slots=True)
class AllocationRecord:
    """Detached snapshot of an allocation row, safe to use after the session closes."""

    allocation_id: str
    request_id: str
    resource_id: str
    quantity: int
    mode: AllocationMode
    status: AllocationStatus
    distance_km: Optional[float]
    travel_time_minutes: Optional[int]
    actor_id: Optional[str]
    cancellation_reason: Optional[str]
    allocated_at: datetime
    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


@dataclass(slots=True)
class Ack:
    allocation_id: str
    status: AllocationStatus
    message: str


@dataclass(slots=True)
class SweepResult:
    flagged: int
    cleared: int
    cutoff: datetime
    threshold_hours: float


@dataclass(slots=True)
class AuditEvent:
    entity_type: str
    entity_id: str
    action: str
    actor_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)
