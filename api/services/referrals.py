"""
Referral state machine.

The referral lifecycle is an explicit transition table. Each accepted
transition updates the status with a compare-and-swap on
``(id, status, version)``, appends one history row and, where the edge
carries a payment effect, moves money through the wallet ledger, all in the
same atomic unit. A transition that loses a race is rejected wholesale.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import FrozenSet, List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.events import DomainEvent, EventType, record_event
from core.exceptions import (
    InternalError,
    InvalidTransition,
    JobPostingInactive,
    JobPostingNotFound,
    PermissionDenied,
    ReferralNotFound,
    ValidationError,
)
from core.permissions import Actor, Permission, require_permission
from database.engine import Database
from database.models.common import MONEY_QUANTUM, utcnow
from database.models.finance import OwnerType, TransactionType
from database.models.jobs import JobPosting
from database.models.referrals import (
    PaymentStatus,
    ReferralRequest,
    ReferralStatus,
    ReferralStatusHistory,
)
from api.services.wallets import WalletLedger, check_currency

logger = logging.getLogger(__name__)


class Party(str, Enum):
    """Side of the referral an actor must be on to take an edge."""

    EMPLOYEE = "employee"
    JOB_SEEKER = "job_seeker"


class PaymentEffect(str, Enum):
    HOLD_ESCROW = "hold_escrow"
    RELEASE_ESCROW = "release_escrow"


@dataclass(frozen=True)
class TransitionRule:
    source: ReferralStatus
    target: ReferralStatus
    permission: Permission
    party: Optional[Party] = None  # admins are exempt from the party check
    payment: Optional[PaymentEffect] = None


_RULES = (
    TransitionRule(
        ReferralStatus.PENDING_ACCEPTANCE,
        ReferralStatus.IN_PROGRESS,
        Permission.REFERRAL_RESPOND,
        Party.EMPLOYEE,
        PaymentEffect.HOLD_ESCROW,
    ),
    TransitionRule(
        ReferralStatus.PENDING_ACCEPTANCE,
        ReferralStatus.REJECTED,
        Permission.REFERRAL_RESPOND,
        Party.EMPLOYEE,
    ),
    TransitionRule(
        ReferralStatus.IN_PROGRESS,
        ReferralStatus.SUBMITTED_TO_ATS,
        Permission.REFERRAL_RESPOND,
        Party.EMPLOYEE,
    ),
    TransitionRule(
        ReferralStatus.SUBMITTED_TO_ATS,
        ReferralStatus.INTERVIEWING,
        Permission.REFERRAL_SIGNAL_ATS,
    ),
    TransitionRule(
        ReferralStatus.INTERVIEWING,
        ReferralStatus.HIRED,
        Permission.REFERRAL_SIGNAL_ATS,
    ),
    TransitionRule(
        ReferralStatus.INTERVIEWING,
        ReferralStatus.NOT_SELECTED,
        Permission.REFERRAL_SIGNAL_ATS,
    ),
    TransitionRule(
        ReferralStatus.HIRED,
        ReferralStatus.COMPLETED,
        Permission.REFERRAL_CONFIRM,
        Party.JOB_SEEKER,
        PaymentEffect.RELEASE_ESCROW,
    ),
)

# (source, target) -> rule. ``disputed`` is reachable only through the
# dispute resolver and has no outgoing edges here.
TRANSITIONS: dict[tuple[ReferralStatus, ReferralStatus], TransitionRule] = {
    (rule.source, rule.target): rule for rule in _RULES
}

TERMINAL_STATUSES: FrozenSet[ReferralStatus] = frozenset(
    {ReferralStatus.REJECTED, ReferralStatus.NOT_SELECTED, ReferralStatus.COMPLETED}
)

# Payment states each status may be stored with
PAYMENT_STATES: dict[ReferralStatus, FrozenSet[PaymentStatus]] = {
    ReferralStatus.PENDING_ACCEPTANCE: frozenset({PaymentStatus.PENDING}),
    ReferralStatus.REJECTED: frozenset({PaymentStatus.PENDING}),
    ReferralStatus.IN_PROGRESS: frozenset({PaymentStatus.ESCROW}),
    ReferralStatus.SUBMITTED_TO_ATS: frozenset({PaymentStatus.ESCROW}),
    ReferralStatus.INTERVIEWING: frozenset({PaymentStatus.ESCROW}),
    ReferralStatus.HIRED: frozenset({PaymentStatus.ESCROW}),
    ReferralStatus.NOT_SELECTED: frozenset({PaymentStatus.ESCROW}),
    # PENDING only when a dispute over an unpaid referral went to the employee
    ReferralStatus.COMPLETED: frozenset({PaymentStatus.RELEASED, PaymentStatus.PENDING}),
    ReferralStatus.DISPUTED: frozenset(
        {PaymentStatus.PENDING, PaymentStatus.ESCROW, PaymentStatus.REFUNDED}
    ),
}


def check_payment_state(status: ReferralStatus, payment_status: PaymentStatus) -> None:
    """
    Raises:
        InternalError: if the combination can never be valid
    """
    if payment_status not in PAYMENT_STATES[status]:
        raise InternalError(
            f"Referral cannot be {status.value} with payment {payment_status.value}"
        )


class ReferralService:
    """Creates referral requests and drives them through their lifecycle."""

    def __init__(self, database: Database, ledger: WalletLedger, settings: Settings):
        self.database = database
        self.ledger = ledger
        self.settings = settings

    # ==================== Creation ==================== #

    async def create_referral_request(
        self, job_posting_id: int, seeker: Actor, notes: Optional[str] = None
    ) -> ReferralRequest:
        """
        Ask the employee who posted a job for a referral.

        Raises:
            JobPostingNotFound: if the posting does not exist
            JobPostingInactive: if the posting no longer takes requests
            ValidationError: if the seeker posted the job themselves
        """
        require_permission(seeker, Permission.REFERRAL_REQUEST)

        async with self.database.transaction() as session:
            posting = await session.get(JobPosting, job_posting_id)
            if posting is None:
                raise JobPostingNotFound(job_posting_id=job_posting_id)
            if not posting.is_active:
                raise JobPostingInactive(job_posting_id=job_posting_id)
            if posting.posted_by_user_id == seeker.user_id:
                raise ValidationError("Cannot request a referral for your own posting")

            referral = ReferralRequest(
                job_posting_id=posting.id,
                job_seeker_id=seeker.user_id,
                employee_id=posting.posted_by_user_id,
                status=ReferralStatus.PENDING_ACCEPTANCE,
                payment_status=PaymentStatus.PENDING,
                version=1,
            )
            session.add(referral)
            await session.flush()

            session.add(
                ReferralStatusHistory(
                    referral_request_id=referral.id,
                    status=ReferralStatus.PENDING_ACCEPTANCE,
                    notes=notes,
                    changed_by_user_id=seeker.user_id,
                )
            )
            await session.flush()

            record_event(
                session,
                DomainEvent(
                    type=EventType.REFERRAL_CREATED,
                    target_type="referral_request",
                    target_id=referral.id,
                    actor_user_id=seeker.user_id,
                    payload={
                        "job_posting_id": posting.id,
                        "employee_id": posting.posted_by_user_id,
                    },
                ),
            )

        logger.info(
            f"Referral {referral.id} requested by user {seeker.user_id} "
            f"for posting {job_posting_id}"
        )
        return referral

    # ==================== Lookups ==================== #

    async def lock_referral(
        self, session: AsyncSession, referral_id: int
    ) -> ReferralRequest:
        """Load a referral with a row lock (``FOR UPDATE`` where supported)."""
        result = await session.execute(
            select(ReferralRequest)
            .where(ReferralRequest.id == referral_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        referral = result.scalar_one_or_none()
        if referral is None:
            raise ReferralNotFound(referral_id=referral_id)
        return referral

    def _check_visible(self, referral: ReferralRequest, actor: Actor) -> None:
        if actor.can(Permission.REFERRAL_VIEW_ANY) or actor.can(
            Permission.REFERRAL_SIGNAL_ATS
        ):
            return
        if actor.user_id not in (referral.job_seeker_id, referral.employee_id):
            raise PermissionDenied("Not a party to this referral")

    async def get_referral(self, referral_id: int, actor: Actor) -> ReferralRequest:
        async with self.database.session() as session:
            referral = await session.get(ReferralRequest, referral_id)
        if referral is None:
            raise ReferralNotFound(referral_id=referral_id)
        self._check_visible(referral, actor)
        return referral

    async def get_history(
        self, referral_id: int, actor: Actor
    ) -> List[ReferralStatusHistory]:
        """Status history of a referral, oldest first."""
        referral = await self.get_referral(referral_id, actor)
        async with self.database.session() as session:
            result = await session.execute(
                select(ReferralStatusHistory)
                .where(ReferralStatusHistory.referral_request_id == referral.id)
                .order_by(ReferralStatusHistory.id)
            )
            return list(result.scalars().all())

    async def list_referrals(self, actor: Actor) -> List[ReferralRequest]:
        """Referrals the actor is a party to, newest first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(ReferralRequest)
                .where(
                    (ReferralRequest.job_seeker_id == actor.user_id)
                    | (ReferralRequest.employee_id == actor.user_id)
                )
                .order_by(ReferralRequest.id.desc())
            )
            return list(result.scalars().all())

    # ==================== Transitions ==================== #

    def _authorize(
        self, rule: TransitionRule, referral: ReferralRequest, actor: Actor
    ) -> None:
        require_permission(actor, rule.permission)
        if rule.party is None or actor.is_admin:
            return

        party_user_id = (
            referral.employee_id
            if rule.party == Party.EMPLOYEE
            else referral.job_seeker_id
        )
        if actor.user_id != party_user_id:
            logger.warning(
                f"User {actor.user_id} tried {rule.source.value} -> "
                f"{rule.target.value} on referral {referral.id} without being its "
                f"{rule.party.value}"
            )
            raise PermissionDenied(
                f"Only the referral's {rule.party.value} can do this"
            )

    async def transition(
        self,
        referral_id: int,
        target: ReferralStatus,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> ReferralRequest:
        """
        Move a referral along one edge of the transition table.

        Raises:
            InvalidTransition: if the edge is not in the table for the current
                status, or a concurrent transition got there first
            PermissionDenied: if the actor may not take this edge
            InsufficientFunds: if the seeker cannot cover the escrow on acceptance
        """
        try:
            target = ReferralStatus(target)
        except ValueError as e:
            raise ValidationError(f"Unknown referral status: {target}") from e

        async with self.database.transaction() as session:
            referral = await self.lock_referral(session, referral_id)
            source = referral.status

            rule = TRANSITIONS.get((source, target))
            if rule is None:
                raise InvalidTransition(
                    f"Cannot move referral {referral_id} from {source.value} "
                    f"to {target.value}",
                    referral_id=referral_id,
                )
            self._authorize(rule, referral, actor)

            payment_status = referral.payment_status
            if rule.payment == PaymentEffect.HOLD_ESCROW:
                payment_status = await self.hold_escrow(session, referral)
            elif rule.payment == PaymentEffect.RELEASE_ESCROW:
                payment_status = await self.release_escrow(session, referral)

            await self.write_status(
                session, referral, target, payment_status, actor, notes
            )

        logger.info(
            f"Referral {referral_id}: {source.value} -> {target.value} "
            f"by {actor.role.value} {actor.user_id}"
        )
        return referral

    async def write_status(
        self,
        session: AsyncSession,
        referral: ReferralRequest,
        target: ReferralStatus,
        payment_status: PaymentStatus,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> None:
        """
        Compare-and-swap the status, then append the history row.

        Also used by the dispute resolver for the edges outside the table.

        Raises:
            InvalidTransition: if the row changed since it was loaded
        """
        check_payment_state(target, payment_status)
        source = referral.status

        result = await session.execute(
            update(ReferralRequest)
            .where(
                ReferralRequest.id == referral.id,
                ReferralRequest.status == source,
                ReferralRequest.version == referral.version,
            )
            .values(
                status=target,
                payment_status=payment_status,
                version=ReferralRequest.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition(
                f"Referral {referral.id} changed concurrently",
                referral_id=referral.id,
            )

        session.add(
            ReferralStatusHistory(
                referral_request_id=referral.id,
                status=target,
                notes=notes,
                changed_by_user_id=actor.user_id,
            )
        )
        await session.flush()
        await session.refresh(referral)

        record_event(
            session,
            DomainEvent(
                type=EventType.REFERRAL_STATUS_CHANGED,
                target_type="referral_request",
                target_id=referral.id,
                actor_user_id=actor.user_id,
                payload={
                    "from": source.value,
                    "to": target.value,
                    "payment_status": payment_status.value,
                },
            ),
        )

    async def write_payment_status(
        self,
        session: AsyncSession,
        referral: ReferralRequest,
        payment_status: PaymentStatus,
    ) -> None:
        """
        Compare-and-swap only the payment status; the status (and history)
        stay as they are.
        """
        check_payment_state(referral.status, payment_status)
        result = await session.execute(
            update(ReferralRequest)
            .where(
                ReferralRequest.id == referral.id,
                ReferralRequest.status == referral.status,
                ReferralRequest.version == referral.version,
            )
            .values(
                payment_status=payment_status,
                version=ReferralRequest.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition(
                f"Referral {referral.id} changed concurrently",
                referral_id=referral.id,
            )
        await session.refresh(referral)

    # ==================== Escrow ==================== #

    async def hold_escrow(
        self, session: AsyncSession, referral: ReferralRequest
    ) -> PaymentStatus:
        """Move the referral fee from the seeker's wallet into escrow."""
        posting = await session.get(JobPosting, referral.job_posting_id)
        fee = Decimal(posting.referral_fee).quantize(MONEY_QUANTUM)

        if fee > 0:
            seeker_wallet = await self.ledger.get_or_create_wallet(
                referral.job_seeker_id, OwnerType.USER, posting.currency, session=session
            )
            escrow = await self.ledger.escrow_wallet(posting.currency, session=session)
            check_currency(seeker_wallet, posting.currency)
            check_currency(escrow, posting.currency)
            await self.ledger.debit(
                seeker_wallet.id,
                fee,
                TransactionType.REFERRAL_ESCROW,
                referral.id,
                session=session,
            )
            await self.ledger.credit(
                escrow.id,
                fee,
                TransactionType.REFERRAL_ESCROW,
                referral.id,
                session=session,
            )
        return PaymentStatus.ESCROW

    def platform_fee(self, amount: Decimal) -> Decimal:
        return (amount * self.settings.platform_fee_percent / Decimal(100)).quantize(
            MONEY_QUANTUM, rounding=ROUND_HALF_UP
        )

    async def release_escrow(
        self, session: AsyncSession, referral: ReferralRequest
    ) -> PaymentStatus:
        """
        Pay the escrowed fee out to the employee, less the platform fee.
        """
        escrow = await self.ledger.escrow_wallet(session=session)
        held = await self.ledger.referral_balance(escrow.id, referral.id, session=session)
        if held <= 0:
            return PaymentStatus.RELEASED

        posting = await session.get(JobPosting, referral.job_posting_id)
        fee_cut = self.platform_fee(held)
        payout = held - fee_cut

        check_currency(escrow, posting.currency)
        if payout > 0:
            employee_wallet = await self.ledger.get_or_create_wallet(
                referral.employee_id, OwnerType.USER, posting.currency, session=session
            )
            check_currency(employee_wallet, posting.currency)
        if fee_cut > 0:
            fee_wallet = await self.ledger.fee_wallet(posting.currency, session=session)
            check_currency(fee_wallet, posting.currency)

        await self.ledger.debit(
            escrow.id, held, TransactionType.REFERRAL_PAYOUT, referral.id, session=session
        )
        if payout > 0:
            await self.ledger.credit(
                employee_wallet.id,
                payout,
                TransactionType.REFERRAL_PAYOUT,
                referral.id,
                session=session,
            )
        if fee_cut > 0:
            await self.ledger.credit(
                fee_wallet.id,
                fee_cut,
                TransactionType.PLATFORM_FEE,
                referral.id,
                session=session,
            )
        return PaymentStatus.RELEASED

    async def refund_escrow(
        self, session: AsyncSession, referral: ReferralRequest
    ) -> PaymentStatus:
        """Return the escrowed fee to the seeker."""
        escrow = await self.ledger.escrow_wallet(session=session)
        held = await self.ledger.referral_balance(escrow.id, referral.id, session=session)
        if held <= 0:
            return PaymentStatus.REFUNDED

        posting = await session.get(JobPosting, referral.job_posting_id)
        seeker_wallet = await self.ledger.get_or_create_wallet(
            referral.job_seeker_id, OwnerType.USER, posting.currency, session=session
        )
        check_currency(escrow, posting.currency)
        check_currency(seeker_wallet, posting.currency)
        await self.ledger.debit(
            escrow.id, held, TransactionType.REFUND, referral.id, session=session
        )
        await self.ledger.credit(
            seeker_wallet.id, held, TransactionType.REFUND, referral.id, session=session
        )
        return PaymentStatus.REFUNDED
