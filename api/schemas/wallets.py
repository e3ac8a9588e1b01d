"""Wallet and ledger schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from database.models.finance import OwnerType, TransactionStatus, TransactionType


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    owner_type: OwnerType
    balance: Decimal
    currency: str
    created_at: datetime


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    wallet_id: int
    referral_request_id: Optional[int] = None
    amount: Decimal
    type: TransactionType
    status: TransactionStatus
    metadata: Optional[dict[str, Any]] = Field(None, validation_alias="meta")
    created_at: datetime


class DepositRequest(BaseModel):
    """Admin-recorded deposit arriving from the payment gateway."""

    amount: Decimal = Field(gt=0, max_digits=19, decimal_places=4)
    gateway_transaction_id: Optional[str] = Field(None, max_length=255)


class ReconciliationResponse(BaseModel):
    wallet_id: int
    balance: Decimal
    ledger_total: Decimal
    is_consistent: bool
