"""
Finance Module

Wallets and the append-only transaction ledger behind referral escrow.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Integer,
    ForeignKey,
    func,
    JSON,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from database.engine import Base
from database.models.common import (
    IdType,
    Money,
    UTCDateTime,
    append_only,
    enum_column,
    utcnow,
)
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any


# ==================== Enums ===================== #
class OwnerType(str, PyEnum):
    USER = "user"
    ORGANIZATION = "organization"
    SYSTEM = "system"  # platform escrow and fee wallets


class TransactionType(str, PyEnum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    REFERRAL_ESCROW = "referral_escrow"
    REFERRAL_PAYOUT = "referral_payout"
    SUBSCRIPTION_FEE = "subscription_fee"
    REFUND = "refund"
    PLATFORM_FEE = "platform_fee"


class TransactionStatus(str, PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


# ==================== Wallet Model ===================== #
class Wallet(Base):
    """
    Balance holder for a user, an organization or the platform.

    ``balance`` caches the sum of the wallet's completed transactions and is
    only ever changed by a guarded UPDATE that also bumps ``version``.
    """

    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(IdType, nullable=False)
    owner_type: Mapped[OwnerType] = mapped_column(
        enum_column(OwnerType), nullable=False
    )
    balance: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    # Relationships
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="wallet", order_by="Transaction.id"
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "owner_type", name="uq_wallets_owner"),
        CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),
    )


# ==================== Transaction Model ===================== #
@append_only(lambda tx: tx.status == TransactionStatus.COMPLETED)
class Transaction(Base):
    """
    Ledger entry. Credits are positive, debits negative.

    Rows are inserted ``pending`` and completed in the same unit of work as
    the balance update; once completed they are never edited or deleted.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("wallets.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    referral_request_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("referral_requests.id", ondelete="SET NULL"), index=True
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        enum_column(TransactionType), nullable=False
    )
    status: Mapped[TransactionStatus] = mapped_column(
        enum_column(TransactionStatus),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(255))
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    # Relationships
    wallet: Mapped["Wallet"] = relationship("Wallet", back_populates="transactions")

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_transactions_amount_non_zero"),
        Index("idx_transactions_status", "status"),
    )
