from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable

import pytest

from reliefgrid.db.session import build_engine, init_db, make_session_factory, session_scope
from reliefgrid.models.domain import Priority, RequestKind, RequestStatus, ResourceStatus, utcnow
from reliefgrid.persistence.tables import OperatorRow, RequestRow, ResourceRow, ZoneRow
from reliefgrid.services.audit import MemoryAuditSink
from reliefgrid.services.engine import AllocationEngine

BASE_LAT = 24.7000
BASE_LON = 46.7000


class Seeder:
    """Inserts rows directly so tests can set up any state the engine would refuse to create."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory
        self._counter = 0

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter:03d}"

    def _add(self, row):
        with session_scope(self.session_factory) as session:
            session.add(row)
        return row.id

    def zone(
        self,
        name: str,
        lat: float = BASE_LAT,
        lon: float = BASE_LON,
        boundary: list | None = None,
        is_active: bool = True,
    ) -> str:
        return self._add(
            ZoneRow(
                id=self._next("zone"),
                name=name,
                latitude=lat,
                longitude=lon,
                boundary=boundary,
                is_active=is_active,
            )
        )

    def resource(
        self,
        category: str = "WATER",
        lat: float = BASE_LAT,
        lon: float = BASE_LON,
        total: int = 100,
        available: int | None = None,
        reserved: int = 0,
        used: int = 0,
        status: ResourceStatus = ResourceStatus.ACTIVE,
        max_distance_km: float = 50.0,
        priority_weight: int = 5,
        created_at: datetime | None = None,
        resource_id: str | None = None,
    ) -> str:
        resource_id = resource_id or self._next("res")
        return self._add(
            ResourceRow(
                id=resource_id,
                name=f"Resource {resource_id}",
                code=f"CODE-{resource_id}",
                category=category,
                latitude=lat,
                longitude=lon,
                quantity_total=total,
                quantity_available=total - reserved - used if available is None else available,
                quantity_reserved=reserved,
                quantity_used=used,
                status=status,
                max_distance_km=max_distance_km,
                priority_weight=priority_weight,
                created_at=created_at or utcnow(),
            )
        )

    def request(
        self,
        category: str = "WATER",
        quantity: int | None = 10,
        lat: float | None = BASE_LAT,
        lon: float | None = BASE_LON,
        kind: RequestKind = RequestKind.RESOURCE,
        status: RequestStatus = RequestStatus.PENDING,
        priority: Priority = Priority.MEDIUM,
        zone_id: str | None = None,
        area: str | None = None,
        assigned_to: str | None = None,
        sla_breached: bool = False,
        created_at: datetime | None = None,
    ) -> str:
        created_at = created_at or utcnow()
        return self._add(
            RequestRow(
                id=self._next("req"),
                requester_id="citizen-1",
                kind=kind,
                category=category,
                quantity_requested=quantity,
                priority=priority,
                status=status,
                zone_id=zone_id,
                latitude=lat,
                longitude=lon,
                area=area,
                assigned_to=assigned_to,
                sla_breached=sla_breached,
                created_at=created_at,
                updated_at=created_at,
            )
        )

    def complaint(self, area: str | None = "downtown", **kwargs) -> str:
        kwargs.setdefault("category", "OTHER")
        kwargs.setdefault("quantity", None)
        return self.request(kind=RequestKind.COMPLAINT, area=area, **kwargs)

    def operator(
        self,
        name: str,
        areas: Iterable | str | None = ("downtown",),
        is_active: bool = True,
        is_suspended: bool = False,
        created_at: datetime | None = None,
        operator_id: str | None = None,
    ) -> str:
        return self._add(
            OperatorRow(
                id=operator_id or self._next("op"),
                name=name,
                assigned_areas=list(areas) if isinstance(areas, (list, tuple)) else areas,
                is_active=is_active,
                is_suspended=is_suspended,
                created_at=created_at or utcnow(),
            )
        )

    def get(self, model, row_id: str):
        with self.session_factory() as session:
            row = session.get(model, row_id)
            session.expunge_all()
            return row


@pytest.fixture
def session_factory(tmp_path: Path):
    db_engine = build_engine(f"sqlite:///{tmp_path / 'reliefgrid.db'}", echo=False)
    init_db(db_engine)
    yield make_session_factory(db_engine)
    db_engine.dispose()


@pytest.fixture
def audit() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def engine(session_factory, audit: MemoryAuditSink) -> AllocationEngine:
    return AllocationEngine(session_factory, audit_sink=audit, sla_window_hours=48, minutes_per_km=2.0)


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)
