"""
Jobs Module

Job postings that employees offer referrals for.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    Numeric,
    func,
    Text,
    Index,
    CheckConstraint,
)
from database.engine import Base
from database.models.common import IdType, UTCDateTime, utcnow
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.referrals import ReferralRequest


class JobPosting(Base):
    """
    A job an employee can refer seekers to, with the fee a seeker pays for
    the referral.
    """

    __tablename__ = "job_postings"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    posted_by_user_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id: Mapped[int | None] = mapped_column(
        IdType,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        index=True,
    )

    # Job info
    job_title: Mapped[str] = mapped_column(String(255), nullable=False)
    job_description: Mapped[str] = mapped_column(Text, nullable=False)
    job_url: Mapped[str | None] = mapped_column(String(2048))
    location: Mapped[str | None] = mapped_column(String(255))

    # Fee
    referral_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2, asdecimal=True), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    # Relationships
    referral_requests: Mapped[list["ReferralRequest"]] = relationship(
        "ReferralRequest", back_populates="job_posting"
    )

    __table_args__ = (
        CheckConstraint("referral_fee >= 0", name="ck_job_postings_fee_non_negative"),
        Index("idx_job_postings_title", "job_title"),
        Index("idx_job_postings_is_active", "is_active"),
    )
