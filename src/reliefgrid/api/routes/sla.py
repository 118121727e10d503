"""SLA sweep endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...errors import EngineError
from ...schemas.complaints import SweepResponse
from ...services.engine import AllocationEngine
from ..deps import get_engine, http_error

router = APIRouter(prefix="/sla", tags=["sla"])


@router.post("/sweep", response_model=SweepResponse, status_code=status.HTTP_200_OK)
def run_sweep(engine: AllocationEngine = Depends(get_engine)) -> SweepResponse:
    """Run one breach sweep now instead of waiting for the scheduler."""
    try:
        result = engine.run_sla_sweep()
    except EngineError as exc:
        raise http_error(exc) from exc
    return SweepResponse.model_validate(result)
