from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import ForeignKey, func, Text
from database.engine import Base
from database.models.common import IdType, UTCDateTime, enum_column, utcnow
from datetime import datetime
from enum import Enum as PyEnum


class DisputeStatus(str, PyEnum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED_IN_FAVOR_OF_SEEKER = "resolved_in_favor_of_seeker"
    RESOLVED_IN_FAVOR_OF_EMPLOYEE = "resolved_in_favor_of_employee"
    CLOSED = "closed"


class Dispute(Base):
    """
    Admin-mediated claim against a referral. At most one per referral.
    """

    __tablename__ = "disputes"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    referral_request_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("referral_requests.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    claimant_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[DisputeStatus] = mapped_column(
        enum_column(DisputeStatus), nullable=False, default=DisputeStatus.OPEN
    )
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    resolved_by_admin_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="SET NULL")
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    @property
    def is_resolved(self) -> bool:
        return self.status in (
            DisputeStatus.RESOLVED_IN_FAVOR_OF_SEEKER,
            DisputeStatus.RESOLVED_IN_FAVOR_OF_EMPLOYEE,
            DisputeStatus.CLOSED,
        )
