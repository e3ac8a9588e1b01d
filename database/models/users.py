from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    ForeignKey,
    func,
    Text,
    JSON,
    Index,
)
from database.engine import Base
from database.models.common import IdType, UTCDateTime, enum_column, utcnow
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any


# ==================== User Enums ===================== #
class UserRole(str, PyEnum):
    JOB_SEEKER = "job_seeker"  # asks for referrals and pays the referral fee
    EMPLOYEE = "employee"  # posts jobs at their company and refers seekers
    ADMIN = "admin"  # platform admin, resolves disputes


class UserStatus(str, PyEnum):
    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


class AuthAction(str, PyEnum):
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"
    PASSWORD_RESET_REQUEST = "password_reset_request"
    TOKEN_REFRESH = "token_refresh"


# ==================== User Model ===================== #
class User(Base):
    """
    Core user identity and authentication.

    Users are never hard-deleted; referrals, ledger rows and disputes keep
    pointing at them.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(enum_column(UserRole), nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        enum_column(UserStatus),
        nullable=False,
        default=UserStatus.PENDING_VERIFICATION,
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

    # Relationships
    sessions: Mapped[list["UserSession"]] = relationship(
        "UserSession", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def can_login(self) -> bool:
        return self.status in (UserStatus.ACTIVE, UserStatus.PENDING_VERIFICATION)


# ==================== Session Model ===================== #
class UserSession(Base):
    """
    Refresh-token session.

    Only the keyed hash of the refresh token is stored; a user may hold any
    number of concurrent sessions.
    """

    __tablename__ = "user_sessions"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    refresh_token_hash: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    ip_address: Mapped[str | None] = mapped_column(String(45))
    user_agent: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="sessions")

    __table_args__ = (Index("idx_user_sessions_expires_at", "expires_at"),)


# ==================== Auth Log Model ===================== #
class AuthLog(Base):
    """Authentication events (logins, logouts, refreshes)."""

    __tablename__ = "auth_logs"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    action: Mapped[AuthAction] = mapped_column(
        enum_column(AuthAction), nullable=False, index=True
    )
    ip_address: Mapped[str | None] = mapped_column(String(45))
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )


# ==================== Verification Tokens ===================== #
class EmailVerification(Base):
    """Pending email verification, one per address."""

    __tablename__ = "email_verifications"

    email: Mapped[str] = mapped_column(String(255), primary_key=True)
    token_hash: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )


class PasswordReset(Base):
    """Pending password reset, one per address."""

    __tablename__ = "password_resets"

    email: Mapped[str] = mapped_column(String(255), primary_key=True)
    token_hash: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
