"""
Referrals Module

Referral requests from job seekers to employees and their status trail.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer,
    ForeignKey,
    func,
    Text,
    Index,
)
from database.engine import Base
from database.models.common import (
    IdType,
    UTCDateTime,
    append_only,
    enum_column,
    utcnow,
)
from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.jobs import JobPosting


# ==================== Enums ===================== #
class ReferralStatus(str, PyEnum):
    """Status of a referral request."""

    PENDING_ACCEPTANCE = "pending_acceptance"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    SUBMITTED_TO_ATS = "submitted_to_ats"
    INTERVIEWING = "interviewing"
    HIRED = "hired"
    NOT_SELECTED = "not_selected"
    COMPLETED = "completed"
    DISPUTED = "disputed"


class PaymentStatus(str, PyEnum):
    """Where the referral fee currently sits."""

    PENDING = "pending"  # not yet collected from the seeker
    ESCROW = "escrow"  # held in the platform escrow wallet
    RELEASED = "released"  # paid out to the employee
    REFUNDED = "refunded"  # returned to the seeker after a dispute


# ==================== ReferralRequest Model ===================== #
class ReferralRequest(Base):
    """
    A job seeker's request to be referred for a job posting.

    ``version`` is bumped on every status change; writers compare it to
    detect a concurrent transition.
    """

    __tablename__ = "referral_requests"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    job_posting_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("job_postings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_seeker_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[ReferralStatus] = mapped_column(
        enum_column(ReferralStatus),
        nullable=False,
        default=ReferralStatus.PENDING_ACCEPTANCE,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

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
    job_posting: Mapped["JobPosting"] = relationship(
        "JobPosting", back_populates="referral_requests"
    )
    history: Mapped[list["ReferralStatusHistory"]] = relationship(
        "ReferralStatusHistory",
        back_populates="referral_request",
        order_by="ReferralStatusHistory.id",
    )

    __table_args__ = (
        Index("idx_referral_requests_status", "status"),
        Index("idx_referral_requests_payment_status", "payment_status"),
    )


# ==================== ReferralStatusHistory Model ===================== #
@append_only()
class ReferralStatusHistory(Base):
    """
    One row per status a referral has held. Never updated or deleted.
    """

    __tablename__ = "referral_status_history"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    referral_request_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("referral_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ReferralStatus] = mapped_column(
        enum_column(ReferralStatus), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text)
    changed_by_user_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="SET NULL")
    )
    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    # Relationships
    referral_request: Mapped["ReferralRequest"] = relationship(
        "ReferralRequest", back_populates="history"
    )
