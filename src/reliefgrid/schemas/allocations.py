"""Pydantic request/response models for allocation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.domain import AllocationMode, AllocationStatus


class SuggestionModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    resource_id: str
    name: str
    code: str
    category: str
    quantity_available: int
    distance_km: float
    travel_time_minutes: int
    priority_score: int
    is_best_match: bool


class SuggestionsResponse(BaseModel):
    request_id: str
    suggestions: list[SuggestionModel]


class ManualAllocationRequest(BaseModel):
    request_id: str = Field(..., description="Pending resource request to serve.")
    resource_id: str = Field(..., description="Resource chosen by the operator.")
    actor_id: Optional[str] = Field(default=None, description="Operator performing the allocation.")

    @field_validator("request_id", "resource_id")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("identifier must not be blank")
        return value.strip()


class CancelAllocationRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class AllocationModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allocation_id: str
    request_id: str
    resource_id: str
    quantity: int
    mode: AllocationMode
    status: AllocationStatus
    distance_km: Optional[float] = None
    travel_time_minutes: Optional[int] = None
    actor_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    allocated_at: datetime
    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class AckModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allocation_id: str
    status: AllocationStatus
    message: str
