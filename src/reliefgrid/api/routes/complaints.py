"""Complaint routing endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...errors import EngineError
from ...models.domain import RequestStatus
from ...schemas.complaints import (
    AssignComplaintResponse,
    ComplaintStatusResponse,
    ComplaintStatusUpdate,
    RouteComplaintRequest,
    RouteComplaintResponse,
)
from ...services.engine import AllocationEngine
from ..deps import get_engine, http_error

router = APIRouter(prefix="/complaints", tags=["complaints"])


@router.post("/route", response_model=RouteComplaintResponse, status_code=status.HTTP_200_OK)
def route_complaint(payload: RouteComplaintRequest, engine: AllocationEngine = Depends(get_engine)) -> RouteComplaintResponse:
    """Least-loaded operator covering the area; ``operator_id`` is null when nobody does."""
    try:
        operator_id = engine.route_complaint(payload.area)
    except EngineError as exc:
        raise http_error(exc) from exc
    return RouteComplaintResponse(area=payload.area, operator_id=operator_id)


@router.post("/{request_id}/assign", response_model=AssignComplaintResponse, status_code=status.HTTP_200_OK)
def assign_complaint(request_id: str, engine: AllocationEngine = Depends(get_engine)) -> AssignComplaintResponse:
    try:
        operator_id = engine.assign_complaint(request_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return AssignComplaintResponse(request_id=request_id, operator_id=operator_id, assigned=operator_id is not None)


@router.put("/{request_id}/status", response_model=ComplaintStatusResponse, status_code=status.HTTP_200_OK)
def update_complaint_status(
    request_id: str,
    payload: ComplaintStatusUpdate,
    engine: AllocationEngine = Depends(get_engine),
) -> ComplaintStatusResponse:
    try:
        new_status = engine.advance_complaint(request_id, RequestStatus(payload.status), payload.actor_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return ComplaintStatusResponse(request_id=request_id, status=new_status.value)
