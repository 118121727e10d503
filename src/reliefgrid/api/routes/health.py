"""Health endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ...services.engine import AllocationEngine
from ..deps import get_engine

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database(engine: AllocationEngine = Depends(get_engine)) -> dict:
    """Check that the store answers a trivial query."""
    try:
        with engine.session_factory() as session:
            session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning(f"Database health check failed: {exc}")
        return {"connected": False, "error": str(exc)}
    return {"connected": True}
