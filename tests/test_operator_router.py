from datetime import datetime

import pytest

from reliefgrid.errors import InvalidRequestKind, InvalidTransition, RequestNotPending
from reliefgrid.models.domain import OperatorRecord, RequestStatus
from reliefgrid.persistence.tables import RequestRow
from reliefgrid.services.engine import AllocationEngine
from reliefgrid.services.routing.operator_router import sanitize_areas

EARLY = datetime(2025, 1, 1)
LATE = datetime(2025, 6, 1)


def _load(seed, operator_id: str, count: int, status: RequestStatus = RequestStatus.ASSIGNED) -> None:
    for _ in range(count):
        seed.complaint(status=status, assigned_to=operator_id)


def test_least_loaded_operator_wins(engine, seed) -> None:
    busy = seed.operator("Busy")
    idle = seed.operator("Idle")
    swamped = seed.operator("Swamped")
    _load(seed, busy, 2)
    _load(seed, swamped, 3)
    _load(seed, swamped, 2, RequestStatus.IN_PROGRESS)

    assert engine.route_complaint("  Downtown ") == idle
    caseloads = {item.operator_id: item.caseload for item in engine.router.rank("downtown")}
    assert caseloads == {busy: 2, idle: 0, swamped: 5}


def test_finished_complaints_do_not_count(engine, seed) -> None:
    veteran = seed.operator("Veteran", created_at=EARLY)
    newcomer = seed.operator("Newcomer", created_at=LATE)
    _load(seed, veteran, 4, RequestStatus.RESOLVED)
    _load(seed, newcomer, 1)

    assert engine.route_complaint("downtown") == veteran


def test_ties_break_on_age_then_id(engine, seed) -> None:
    seed.operator("Late", created_at=LATE, operator_id="op-a")
    seed.operator("Early B", created_at=EARLY, operator_id="op-c")
    seed.operator("Early A", created_at=EARLY, operator_id="op-b")

    assert [item.operator_id for item in engine.router.rank("downtown")] == ["op-b", "op-c", "op-a"]


def test_inactive_suspended_and_unrelated_operators_are_skipped(engine, seed) -> None:
    seed.operator("Inactive", is_active=False)
    seed.operator("Suspended", is_suspended=True)
    seed.operator("Elsewhere", areas=["harbour"])
    seed.operator("Malformed", areas="downtown")
    mixed = seed.operator("Mixed", areas=[1, None, " DOWNTOWN "])

    assert engine.route_complaint("downtown") == mixed


def test_no_operator_for_area(engine, seed) -> None:
    seed.operator("Downtown only")

    assert engine.route_complaint("nowhere") is None
    assert engine.route_complaint("") is None
    assert engine.route_complaint(None) is None


def test_sanitize_areas() -> None:
    assert sanitize_areas(["North ", "north", "", 3]) == frozenset({"north"})
    assert sanitize_areas("north") == frozenset()
    assert sanitize_areas(None) == frozenset()


def test_custom_directory_is_used(session_factory, seed) -> None:
    class StaticDirectory:
        def active_operators(self):
            return [
                OperatorRecord(
                    operator_id="external-1",
                    name="External",
                    assigned_areas=frozenset({"downtown"}),
                    is_active=True,
                    is_suspended=False,
                    created_at=EARLY,
                )
            ]

    engine = AllocationEngine(session_factory, operator_directory=StaticDirectory())
    seed.operator("Table operator")

    assert engine.route_complaint("downtown") == "external-1"


def test_assign_complaint_records_operator(engine, seed, audit) -> None:
    operator_id = seed.operator("Idle")
    complaint_id = seed.complaint(area="Downtown")

    assert engine.assign_complaint(complaint_id) == operator_id

    complaint = seed.get(RequestRow, complaint_id)
    assert complaint.status is RequestStatus.ASSIGNED
    assert complaint.assigned_to == operator_id
    assert complaint.assigned_at is not None
    assert audit.actions() == ["COMPLAINT_ASSIGNED"]

    with pytest.raises(RequestNotPending):
        engine.assign_complaint(complaint_id)


def test_assign_infers_area_from_zone_boundary(engine, seed) -> None:
    seed.zone("Downtown", boundary=[[24.0, 46.0], [24.0, 47.0], [25.0, 47.0], [25.0, 46.0]])
    operator_id = seed.operator("Idle")
    complaint_id = seed.complaint(area=None, lat=24.5, lon=46.5)

    assert engine.assign_complaint(complaint_id) == operator_id


def test_unroutable_complaint_stays_pending(engine, seed, audit) -> None:
    complaint_id = seed.complaint(area="nowhere")

    assert engine.assign_complaint(complaint_id) is None
    assert seed.get(RequestRow, complaint_id).status is RequestStatus.PENDING
    assert audit.actions() == []


def test_assign_rejects_resource_requests(engine, seed) -> None:
    seed.operator("Idle")
    request_id = seed.request(area="downtown")

    with pytest.raises(InvalidRequestKind):
        engine.assign_complaint(request_id)


def test_advance_complaint_through_its_lifecycle(engine, seed, audit) -> None:
    seed.operator("Idle")
    complaint_id = seed.complaint()
    engine.assign_complaint(complaint_id)

    with pytest.raises(InvalidTransition):
        engine.advance_complaint(complaint_id, RequestStatus.RESOLVED)

    engine.advance_complaint(complaint_id, RequestStatus.IN_PROGRESS, actor_id="op-9")
    assert seed.get(RequestRow, complaint_id).resolved_at is None

    engine.advance_complaint(complaint_id, RequestStatus.RESOLVED)
    complaint = seed.get(RequestRow, complaint_id)
    assert complaint.status is RequestStatus.RESOLVED
    assert complaint.started_at <= complaint.resolved_at
    assert audit.actions() == ["COMPLAINT_ASSIGNED", "COMPLAINT_STATUS_CHANGED", "COMPLAINT_STATUS_CHANGED"]


def test_advance_cannot_bypass_routing(engine, seed, audit) -> None:
    complaint_id = seed.complaint()

    with pytest.raises(InvalidTransition):
        engine.advance_complaint(complaint_id, RequestStatus.ASSIGNED)
    with pytest.raises(InvalidTransition):
        engine.advance_complaint(complaint_id, RequestStatus.PENDING)

    complaint = seed.get(RequestRow, complaint_id)
    assert complaint.status is RequestStatus.PENDING
    assert complaint.assigned_to is None
    assert complaint.assigned_at is None
    assert audit.actions() == []
