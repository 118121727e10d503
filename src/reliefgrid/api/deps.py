"""Shared FastAPI dependencies and error translation."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..errors import ConflictError, EngineError, NotFoundError, ValidationError
from ..services.engine import AllocationEngine


def get_engine(request: Request) -> AllocationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        engine = AllocationEngine()
        request.app.state.engine = engine
    return engine


def http_error(exc: EngineError) -> HTTPException:
    if isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=status_code, detail={"message": exc.message, "code": exc.code})
