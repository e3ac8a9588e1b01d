from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, ForeignKey, func, JSON, Index
from database.engine import Base
from database.models.common import IdType, UTCDateTime, utcnow
from datetime import datetime
from typing import Any


class AuditLog(Base):
    """
    Audit trail of domain events (status changes, ledger movements, disputes).
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    # Actor
    actor_user_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="SET NULL"), index=True
    )

    # Action
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[int] = mapped_column(IdType, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (Index("idx_audit_logs_target", "target_type", "target_id"),)
