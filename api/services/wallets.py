"""
Wallet ledger.

Per-owner wallets with an append-only transaction log. A wallet's
``balance`` always equals the sum of its completed transactions: every
mutation inserts a pending transaction, applies a guarded balance UPDATE and
completes the transaction inside one atomic unit.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union
import logging

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.events import DomainEvent, EventType, record_event
from core.exceptions import (
    CurrencyMismatch,
    InsufficientFunds,
    ValidationError,
    WalletNotFound,
)
from core.permissions import Actor, Permission, require_permission
from database.engine import Database
from database.models.common import MONEY_QUANTUM
from database.models.finance import (
    OwnerType,
    Transaction,
    TransactionStatus,
    TransactionType,
    Wallet,
)

logger = logging.getLogger(__name__)

# Platform wallets are owned by the "system" owner type
ESCROW_WALLET_OWNER_ID = 1
FEE_WALLET_OWNER_ID = 2


def to_money(amount: Union[Decimal, int, str]) -> Decimal:
    """
    Validate an amount and return it as a 4-digit fixed-point Decimal.

    Floats are refused outright; so are values with more than four
    fractional digits.

    Raises:
        ValidationError: if the amount is not a finite fixed-point number
    """
    if isinstance(amount, float) or isinstance(amount, bool):
        raise ValidationError("Amounts must be Decimal, int or str, not float")
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}")

    quantized = value.quantize(MONEY_QUANTUM)
    if quantized != value:
        raise ValidationError(f"Amount {amount} has more than 4 fractional digits")
    return quantized


def check_currency(wallet: Wallet, currency: str) -> None:
    """Raise ``CurrencyMismatch`` unless the wallet holds ``currency``."""
    if wallet.currency != currency:
        raise CurrencyMismatch(
            f"Wallet {wallet.id} holds {wallet.currency}, not {currency}",
            wallet_id=wallet.id,
            wallet_currency=wallet.currency,
            currency=currency,
        )


@dataclass(frozen=True)
class Reconciliation:
    """Result of comparing a wallet's cached balance with its ledger."""

    wallet_id: int
    balance: Decimal
    ledger_total: Decimal

    @property
    def is_consistent(self) -> bool:
        return self.balance == self.ledger_total

    @property
    def drift(self) -> Decimal:
        return self.balance - self.ledger_total


class WalletLedger:
    """Wallets and their append-only ledger."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    # ==================== Wallets ==================== #

    async def _find_wallet(
        self, session: AsyncSession, owner_id: int, owner_type: OwnerType
    ) -> Optional[Wallet]:
        result = await session.execute(
            select(Wallet).where(
                Wallet.owner_id == owner_id,
                Wallet.owner_type == owner_type,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_wallet(
        self,
        owner_id: int,
        owner_type: OwnerType,
        currency: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> Wallet:
        """
        Return the owner's wallet, creating an empty one on first use.

        Two callers racing to create the same wallet both end up with the
        single row the unique (owner_id, owner_type) constraint allows.
        """
        async with self.database.transaction(session) as s:
            wallet = await self._find_wallet(s, owner_id, owner_type)
            if wallet is not None:
                return wallet

            try:
                async with s.begin_nested():
                    wallet = Wallet(
                        owner_id=owner_id,
                        owner_type=owner_type,
                        balance=Decimal("0"),
                        currency=currency or self.settings.default_currency,
                    )
                    s.add(wallet)
            except IntegrityError:
                wallet = await self._find_wallet(s, owner_id, owner_type)
                if wallet is None:
                    raise
                return wallet

            logger.info(
                f"Created wallet {wallet.id} for {owner_type.value} {owner_id}"
            )
            return wallet

    async def escrow_wallet(
        self, currency: Optional[str] = None, session: Optional[AsyncSession] = None
    ) -> Wallet:
        """Platform wallet holding referral fees until release or refund."""
        return await self.get_or_create_wallet(
            ESCROW_WALLET_OWNER_ID, OwnerType.SYSTEM, currency, session=session
        )

    async def fee_wallet(
        self, currency: Optional[str] = None, session: Optional[AsyncSession] = None
    ) -> Wallet:
        """Platform wallet collecting the platform's cut of payouts."""
        return await self.get_or_create_wallet(
            FEE_WALLET_OWNER_ID, OwnerType.SYSTEM, currency, session=session
        )

    async def get_wallet(
        self, wallet_id: int, session: Optional[AsyncSession] = None
    ) -> Wallet:
        async with self.database.transaction(session) as s:
            wallet = await s.get(Wallet, wallet_id, populate_existing=True)
        if wallet is None:
            raise WalletNotFound(wallet_id=wallet_id)
        return wallet

    async def find_wallet(
        self,
        owner_id: int,
        owner_type: OwnerType,
        session: Optional[AsyncSession] = None,
    ) -> Optional[Wallet]:
        async with self.database.transaction(session) as s:
            return await self._find_wallet(s, owner_id, owner_type)

    # ==================== Ledger ==================== #

    async def _apply(
        self,
        wallet_id: int,
        delta: Decimal,
        type: TransactionType,
        referral_request_id: Optional[int],
        metadata: Optional[Dict[str, Any]],
        gateway_transaction_id: Optional[str],
        session: Optional[AsyncSession],
    ) -> Transaction:
        async with self.database.transaction(session) as s:
            wallet = await s.get(Wallet, wallet_id)
            if wallet is None:
                raise WalletNotFound(wallet_id=wallet_id)

            transaction = Transaction(
                wallet_id=wallet_id,
                referral_request_id=referral_request_id,
                amount=delta,
                type=type,
                status=TransactionStatus.PENDING,
                gateway_transaction_id=gateway_transaction_id,
                meta=metadata,
            )
            s.add(transaction)
            await s.flush()

            # Guarded in SQL so no concurrent writer can take the balance below zero
            result = await s.execute(
                update(Wallet)
                .where(Wallet.id == wallet_id, Wallet.balance + delta >= 0)
                .values(balance=Wallet.balance + delta, version=Wallet.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(
                    f"Insufficient funds: wallet {wallet_id} cannot cover {-delta}"
                )
                raise InsufficientFunds(
                    f"Wallet {wallet_id} cannot cover {-delta}",
                    wallet_id=wallet_id,
                    amount=str(-delta),
                )

            transaction.status = TransactionStatus.COMPLETED
            await s.flush()
            await s.refresh(wallet)

            record_event(
                s,
                DomainEvent(
                    type=EventType.TRANSACTION_COMPLETED,
                    target_type="transaction",
                    target_id=transaction.id,
                    payload={
                        "wallet_id": wallet_id,
                        "amount": str(delta),
                        "transaction_type": type.value,
                        "referral_request_id": referral_request_id,
                        "balance": str(wallet.balance),
                    },
                ),
            )

        return transaction

    async def credit(
        self,
        wallet_id: int,
        amount: Union[Decimal, int, str],
        type: TransactionType,
        referral_request_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        gateway_transaction_id: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> Transaction:
        """
        Add ``amount`` to a wallet.

        Args:
            wallet_id: Wallet to credit
            amount: Positive amount, at most 4 fractional digits
            type: Ledger entry type
            referral_request_id: Referral the movement belongs to, if any
            metadata: Free-form details stored with the entry
            gateway_transaction_id: Payment gateway reference, if any
            session: Caller's unit of work to join

        Returns:
            The completed transaction
        """
        value = to_money(amount)
        if value <= 0:
            raise ValidationError("Credit amount must be positive")
        return await self._apply(
            wallet_id,
            value,
            type,
            referral_request_id,
            metadata,
            gateway_transaction_id,
            session,
        )

    async def debit(
        self,
        wallet_id: int,
        amount: Union[Decimal, int, str],
        type: TransactionType,
        referral_request_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        gateway_transaction_id: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> Transaction:
        """
        Take ``amount`` out of a wallet. Recorded as a negative entry.

        Raises:
            InsufficientFunds: if the balance would drop below zero. The
                balance is untouched and no ledger row is kept.
        """
        value = to_money(amount)
        if value <= 0:
            raise ValidationError("Debit amount must be positive")
        return await self._apply(
            wallet_id,
            -value,
            type,
            referral_request_id,
            metadata,
            gateway_transaction_id,
            session,
        )

    async def deposit(
        self,
        wallet_id: int,
        amount: Union[Decimal, int, str],
        actor: Actor,
        gateway_transaction_id: Optional[str] = None,
    ) -> Transaction:
        """Record funds arriving from the payment gateway (admin only)."""
        require_permission(actor, Permission.WALLET_DEPOSIT)
        return await self.credit(
            wallet_id,
            amount,
            TransactionType.DEPOSIT,
            metadata={"recorded_by": actor.user_id},
            gateway_transaction_id=gateway_transaction_id,
        )

    async def list_transactions(
        self,
        wallet_id: int,
        limit: int = 50,
        offset: int = 0,
        session: Optional[AsyncSession] = None,
    ) -> List[Transaction]:
        """Ledger entries of a wallet, oldest first."""
        async with self.database.transaction(session) as s:
            result = await s.execute(
                select(Transaction)
                .where(Transaction.wallet_id == wallet_id)
                .order_by(Transaction.id)
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all())

    async def referral_balance(
        self,
        wallet_id: int,
        referral_request_id: int,
        session: Optional[AsyncSession] = None,
    ) -> Decimal:
        """Net completed amount a wallet holds for one referral."""
        async with self.database.transaction(session) as s:
            total = await s.scalar(
                select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                    Transaction.wallet_id == wallet_id,
                    Transaction.referral_request_id == referral_request_id,
                    Transaction.status == TransactionStatus.COMPLETED,
                )
            )
        return Decimal(str(total)).quantize(MONEY_QUANTUM)

    async def reconcile(
        self, wallet_id: int, session: Optional[AsyncSession] = None
    ) -> Reconciliation:
        """Compare a wallet's balance with the sum of its completed transactions."""
        async with self.database.transaction(session) as s:
            wallet = await s.get(Wallet, wallet_id, populate_existing=True)
            if wallet is None:
                raise WalletNotFound(wallet_id=wallet_id)
            total = await s.scalar(
                select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                    Transaction.wallet_id == wallet_id,
                    Transaction.status == TransactionStatus.COMPLETED,
                )
            )

        reconciliation = Reconciliation(
            wallet_id=wallet_id,
            balance=Decimal(str(wallet.balance)).quantize(MONEY_QUANTUM),
            ledger_total=Decimal(str(total)).quantize(MONEY_QUANTUM),
        )
        if not reconciliation.is_consistent:
            logger.error(
                f"Wallet {wallet_id} drifted from its ledger: "
                f"balance={reconciliation.balance} ledger={reconciliation.ledger_total}"
            )
        return reconciliation
