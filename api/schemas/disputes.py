"""Dispute schemas."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from database.models.disputes import DisputeStatus
from api.services.disputes import DisputeOutcome


class DisputeCreate(BaseModel):
    referral_request_id: int
    reason: str = Field(min_length=1, max_length=5000)


class DisputeResolveRequest(BaseModel):
    outcome: DisputeOutcome
    notes: Optional[str] = Field(None, max_length=5000)


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    referral_request_id: int
    claimant_id: int
    reason: str
    status: DisputeStatus
    resolution_notes: Optional[str] = None
    resolved_by_admin_id: Optional[int] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None
