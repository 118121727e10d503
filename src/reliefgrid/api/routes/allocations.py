"""Allocation endpoints for operators."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Body, Depends, Query, status

from ...errors import EngineError
from ...schemas.allocations import (
    AckModel,
    AllocationModel,
    CancelAllocationRequest,
    ManualAllocationRequest,
    SuggestionModel,
    SuggestionsResponse,
)
from ...services.engine import AllocationEngine
from ..deps import get_engine, http_error

router = APIRouter(prefix="/allocations", tags=["allocations"])
logger = logging.getLogger(__name__)


@router.get("/suggest/{request_id}", response_model=SuggestionsResponse, status_code=status.HTTP_200_OK)
def suggest(
    request_id: str,
    limit: int | None = Query(default=None, ge=1, description="Maximum number of suggestions."),
    engine: AllocationEngine = Depends(get_engine),
) -> SuggestionsResponse:
    """Best available resources for a pending request, nearest first."""
    try:
        suggestions = engine.suggest_resources(request_id, limit)
    except EngineError as exc:
        raise http_error(exc) from exc
    return SuggestionsResponse(
        request_id=request_id,
        suggestions=[SuggestionModel(**asdict(item)) for item in suggestions],
    )


@router.post("/auto/{request_id}", response_model=AllocationModel, status_code=status.HTTP_201_CREATED)
def allocate_auto(request_id: str, engine: AllocationEngine = Depends(get_engine)) -> AllocationModel:
    try:
        record = engine.allocate_auto(request_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return AllocationModel(**asdict(record))


@router.post("/manual", response_model=AllocationModel, status_code=status.HTTP_201_CREATED)
def allocate_manual(payload: ManualAllocationRequest, engine: AllocationEngine = Depends(get_engine)) -> AllocationModel:
    try:
        record = engine.allocate_manual(payload.request_id, payload.resource_id, payload.actor_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    logger.info(f"Manual allocation {record.allocation_id} by {payload.actor_id or 'unknown operator'}")
    return AllocationModel(**asdict(record))


@router.put("/{allocation_id}/in-transit", response_model=AckModel, status_code=status.HTTP_200_OK)
def mark_in_transit(allocation_id: str, engine: AllocationEngine = Depends(get_engine)) -> AckModel:
    try:
        ack = engine.dispatch_allocation(allocation_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return AckModel(**asdict(ack))


@router.put("/{allocation_id}/delivered", response_model=AckModel, status_code=status.HTTP_200_OK)
def mark_delivered(allocation_id: str, engine: AllocationEngine = Depends(get_engine)) -> AckModel:
    try:
        ack = engine.mark_delivered(allocation_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return AckModel(**asdict(ack))


@router.delete("/{allocation_id}", response_model=AckModel, status_code=status.HTTP_200_OK)
def cancel(
    allocation_id: str,
    payload: CancelAllocationRequest | None = Body(default=None),
    engine: AllocationEngine = Depends(get_engine),
) -> AckModel:
    """Cancel an allocation and free the reserved quantity."""
    try:
        ack = engine.cancel_allocation(allocation_id, payload.reason if payload else None)
    except EngineError as exc:
        raise http_error(exc) from exc
    return AckModel(**asdict(ack))
