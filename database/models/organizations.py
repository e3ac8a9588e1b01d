from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, ForeignKey, Text, func
from database.engine import Base
from database.models.common import IdType, UTCDateTime, enum_column, utcnow
from datetime import datetime
from enum import Enum as PyEnum


class OrganizationStatus(str, PyEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class Organization(Base):
    """
    Company an employee posts jobs for.

    Organizations can own job postings and a wallet.
    """

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website_url: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[OrganizationStatus] = mapped_column(
        enum_column(OrganizationStatus),
        nullable=False,
        default=OrganizationStatus.ACTIVE,
    )

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
