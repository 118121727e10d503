from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from reliefgrid.main import create_app
from reliefgrid.models.domain import utcnow


@pytest.fixture
def api_client(engine) -> TestClient:
    return TestClient(create_app(engine=engine, start_scheduler=False))


def test_health_endpoints(api_client: TestClient) -> None:
    assert api_client.get("/api/health").json() == {"status": "ok"}
    assert api_client.get("/api/health/database").json() == {"connected": True}
    assert api_client.get("/").json()["status"] == "running"


def test_suggest_endpoint(api_client: TestClient, seed) -> None:
    resource_id = seed.resource()
    request_id = seed.request()

    response = api_client.get(f"/api/allocations/suggest/{request_id}", params={"limit": 3})

    assert response.status_code == 200
    payload = response.json()
    assert payload["request_id"] == request_id
    assert payload["suggestions"][0]["resource_id"] == resource_id
    assert payload["suggestions"][0]["is_best_match"] is True


def test_suggest_endpoint_limit_errors(api_client: TestClient, seed) -> None:
    seed.resource()
    request_id = seed.request()

    assert api_client.get(f"/api/allocations/suggest/{request_id}", params={"limit": 0}).status_code == 422
    response = api_client.get(f"/api/allocations/suggest/{request_id}", params={"limit": 500})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_auto_allocation_endpoint(api_client: TestClient, seed) -> None:
    seed.resource()
    request_id = seed.request(quantity=10)

    response = api_client.post(f"/api/allocations/auto/{request_id}")
    assert response.status_code == 201
    assert response.json()["status"] == "ALLOCATED"
    assert response.json()["mode"] == "AUTO"

    again = api_client.post(f"/api/allocations/auto/{request_id}")
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "INVALID_REQUEST_STATUS"


def test_unknown_request_is_404(api_client: TestClient) -> None:
    response = api_client.post("/api/allocations/auto/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == {"message": "Request missing not found", "code": "REQUEST_NOT_FOUND"}


def test_manual_allocation_endpoint(api_client: TestClient, seed) -> None:
    water = seed.resource(category="WATER")
    medical = seed.resource(category="MEDICAL")
    request_id = seed.request(category="WATER")

    mismatch = api_client.post(
        "/api/allocations/manual",
        json={"request_id": request_id, "resource_id": medical, "actor_id": "operator-1"},
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["detail"]["code"] == "CATEGORY_MISMATCH"

    blank = api_client.post("/api/allocations/manual", json={"request_id": " ", "resource_id": water})
    assert blank.status_code == 422

    created = api_client.post(
        "/api/allocations/manual",
        json={"request_id": request_id, "resource_id": water, "actor_id": "operator-1"},
    )
    assert created.status_code == 201
    assert created.json()["actor_id"] == "operator-1"
    assert created.json()["mode"] == "MANUAL"


def test_allocation_status_endpoints(api_client: TestClient, seed) -> None:
    seed.resource()
    allocation_id = api_client.post(f"/api/allocations/auto/{seed.request()}").json()["allocation_id"]

    in_transit = api_client.put(f"/api/allocations/{allocation_id}/in-transit")
    assert in_transit.status_code == 200
    assert in_transit.json()["status"] == "IN_TRANSIT"

    delivered = api_client.put(f"/api/allocations/{allocation_id}/delivered")
    assert delivered.json()["status"] == "DELIVERED"

    cancel = api_client.request("DELETE", f"/api/allocations/{allocation_id}", json={"reason": "too late"})
    assert cancel.status_code == 409
    assert cancel.json()["detail"]["code"] == "ALREADY_DELIVERED"


def test_cancel_endpoint(api_client: TestClient, seed) -> None:
    seed.resource()
    allocation_id = api_client.post(f"/api/allocations/auto/{seed.request()}").json()["allocation_id"]

    response = api_client.request("DELETE", f"/api/allocations/{allocation_id}", json={"reason": "duplicate"})
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    without_body = api_client.delete(f"/api/allocations/{allocation_id}")
    assert without_body.status_code == 409
    assert without_body.json()["detail"]["code"] == "ALREADY_CANCELLED"


def test_complaint_endpoints(api_client: TestClient, seed) -> None:
    operator_id = seed.operator("Idle")
    complaint_id = seed.complaint(area="downtown")

    routed = api_client.post("/api/complaints/route", json={"area": "Downtown"})
    assert routed.json() == {"area": "Downtown", "operator_id": operator_id}
    assert api_client.post("/api/complaints/route", json={"area": "nowhere"}).json()["operator_id"] is None

    assigned = api_client.post(f"/api/complaints/{complaint_id}/assign")
    assert assigned.json() == {"request_id": complaint_id, "operator_id": operator_id, "assigned": True}

    skipped = api_client.put(f"/api/complaints/{complaint_id}/status", json={"status": "RESOLVED"})
    assert skipped.status_code == 409
    assert skipped.json()["detail"]["code"] == "INVALID_TRANSITION"

    started = api_client.put(f"/api/complaints/{complaint_id}/status", json={"status": "IN_PROGRESS", "actor_id": operator_id})
    assert started.json() == {"request_id": complaint_id, "status": "IN_PROGRESS"}

    invalid = api_client.put(f"/api/complaints/{complaint_id}/status", json={"status": "PENDING"})
    assert invalid.status_code == 422


def test_sla_sweep_endpoint(api_client: TestClient, seed) -> None:
    seed.request(created_at=utcnow() - timedelta(hours=50))

    response = api_client.post("/api/sla/sweep")

    assert response.status_code == 200
    assert response.json()["flagged"] == 1
    assert response.json()["cleared"] == 0
    assert response.json()["threshold_hours"] == 48


def test_lifespan_starts_and_stops_scheduler(engine) -> None:
    app = create_app(engine=engine, start_scheduler=True)

    with TestClient(app):
        scheduler = app.state.sla_scheduler
        assert scheduler.running

    assert not scheduler.running
