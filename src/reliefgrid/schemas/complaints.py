"""Pydantic models for complaint routing and SLA endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class RouteComplaintRequest(BaseModel):
    area: str = Field(..., description="Free-text area the complaint was filed for.")


class RouteComplaintResponse(BaseModel):
    area: str
    operator_id: Optional[str] = None


class AssignComplaintResponse(BaseModel):
    request_id: str
    operator_id: Optional[str] = None
    assigned: bool


class ComplaintStatusUpdate(BaseModel):
    status: Literal["IN_PROGRESS", "RESOLVED"]
    actor_id: Optional[str] = None


class ComplaintStatusResponse(BaseModel):
    request_id: str
    status: str


class SweepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    flagged: int
    cleared: int
    cutoff: datetime
    threshold_hours: float
