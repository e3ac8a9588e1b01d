"""Job posting and referral schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models.referrals import PaymentStatus, ReferralStatus


class JobPostingCreate(BaseModel):
    """Schema for posting a job."""

    job_title: str = Field(min_length=1, max_length=255)
    job_description: str = Field(min_length=1)
    referral_fee: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    job_url: Optional[str] = Field(None, max_length=2048)
    location: Optional[str] = Field(None, max_length=255)
    organization_id: Optional[int] = None

    @field_validator("job_title", mode="before")
    @classmethod
    def strip_title(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip()
        return v


class JobPostingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    posted_by_user_id: int
    organization_id: Optional[int] = None
    job_title: str
    job_description: str
    job_url: Optional[str] = None
    location: Optional[str] = None
    referral_fee: Decimal
    currency: str
    is_active: bool
    created_at: datetime


class ReferralCreate(BaseModel):
    job_posting_id: int
    notes: Optional[str] = Field(None, max_length=2000)


class ReferralTransitionRequest(BaseModel):
    """Move a referral to a new status."""

    status: ReferralStatus
    notes: Optional[str] = Field(None, max_length=2000)


class ReferralResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_posting_id: int
    job_seeker_id: int
    employee_id: int
    status: ReferralStatus
    payment_status: PaymentStatus
    version: int
    created_at: datetime
    updated_at: datetime


class ReferralHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: ReferralStatus
    notes: Optional[str] = None
    changed_by_user_id: Optional[int] = None
    timestamp: datetime
