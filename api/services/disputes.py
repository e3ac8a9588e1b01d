"""
Dispute resolver.

Opening a dispute forces its referral into ``disputed`` from any state
that is still open, bypassing the transition table. An admin then resolves
it, which either releases the escrow to the employee and completes the
referral, or refunds the seeker and leaves the referral closed as disputed.

``not_selected`` is terminal in the transition table but still disputable:
the fee stays in escrow there, and a dispute is the only way to settle it.
``completed`` and ``rejected`` hold no escrow and cannot be disputed.
"""

from enum import Enum
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from core.events import DomainEvent, EventType, record_event
from core.exceptions import (
    DisputeAlreadyOpen,
    DisputeAlreadyResolved,
    DisputeNotFound,
    InvalidTransition,
    PermissionDenied,
    ValidationError,
)
from core.permissions import Actor, Permission, require_permission
from database.engine import Database
from database.models.common import utcnow
from database.models.disputes import Dispute, DisputeStatus
from database.models.referrals import PaymentStatus, ReferralStatus
from api.services.referrals import ReferralService

logger = logging.getLogger(__name__)


class DisputeOutcome(str, Enum):
    FAVOR_SEEKER = "favor_seeker"
    FAVOR_EMPLOYEE = "favor_employee"


# A dispute can still be raised while escrow may be held
DISPUTABLE_STATUSES = frozenset(
    {
        ReferralStatus.PENDING_ACCEPTANCE,
        ReferralStatus.IN_PROGRESS,
        ReferralStatus.SUBMITTED_TO_ATS,
        ReferralStatus.INTERVIEWING,
        ReferralStatus.HIRED,
        ReferralStatus.NOT_SELECTED,
    }
)


class DisputeResolver:
    """Opens, reviews and resolves referral disputes."""

    def __init__(self, database: Database, referrals: ReferralService):
        self.database = database
        self.referrals = referrals

    async def open_dispute(
        self, referral_id: int, claimant: Actor, reason: str
    ) -> Dispute:
        """
        Open a dispute and force the referral into ``disputed``.

        Raises:
            PermissionDenied: if the claimant is not the seeker or employee
            DisputeAlreadyOpen: if the referral already has a dispute
            InvalidTransition: if the referral is already closed
        """
        require_permission(claimant, Permission.DISPUTE_OPEN)
        if not reason or not reason.strip():
            raise ValidationError("A dispute needs a reason")

        async with self.database.transaction() as session:
            referral = await self.referrals.lock_referral(session, referral_id)

            if claimant.user_id not in (referral.job_seeker_id, referral.employee_id):
                raise PermissionDenied("Only a party to the referral can open a dispute")

            existing = await session.execute(
                select(Dispute.id).where(Dispute.referral_request_id == referral_id)
            )
            if existing.scalar_one_or_none() is not None:
                raise DisputeAlreadyOpen(referral_id=referral_id)

            if referral.status not in DISPUTABLE_STATUSES:
                raise InvalidTransition(
                    f"Cannot dispute referral {referral_id} in {referral.status.value}",
                    referral_id=referral_id,
                )

            dispute = Dispute(
                referral_request_id=referral_id,
                claimant_id=claimant.user_id,
                reason=reason.strip(),
                status=DisputeStatus.OPEN,
            )
            session.add(dispute)
            try:
                await session.flush()
            except IntegrityError as e:
                raise DisputeAlreadyOpen(referral_id=referral_id) from e

            await self.referrals.write_status(
                session,
                referral,
                ReferralStatus.DISPUTED,
                referral.payment_status,
                claimant,
                notes=f"Dispute #{dispute.id} opened",
            )

            record_event(
                session,
                DomainEvent(
                    type=EventType.DISPUTE_OPENED,
                    target_type="dispute",
                    target_id=dispute.id,
                    actor_user_id=claimant.user_id,
                    payload={"referral_request_id": referral_id},
                ),
            )

        logger.info(
            f"Dispute {dispute.id} opened on referral {referral_id} "
            f"by user {claimant.user_id}"
        )
        return dispute

    async def _lock_dispute(self, session, dispute_id: int) -> Dispute:
        result = await session.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        dispute = result.scalar_one_or_none()
        if dispute is None:
            raise DisputeNotFound(dispute_id=dispute_id)
        return dispute

    async def start_review(self, dispute_id: int, admin: Actor) -> Dispute:
        """Mark an open dispute as under review."""
        require_permission(admin, Permission.DISPUTE_REVIEW)

        async with self.database.transaction() as session:
            dispute = await self._lock_dispute(session, dispute_id)
            if dispute.is_resolved:
                raise DisputeAlreadyResolved(dispute_id=dispute_id)
            if dispute.status != DisputeStatus.OPEN:
                raise InvalidTransition(
                    f"Dispute {dispute_id} is already {dispute.status.value}"
                )
            dispute.status = DisputeStatus.UNDER_REVIEW
            await session.flush()

        logger.info(f"Dispute {dispute_id} under review by admin {admin.user_id}")
        return dispute

    async def resolve(
        self,
        dispute_id: int,
        admin: Actor,
        outcome: DisputeOutcome,
        notes: Optional[str] = None,
    ) -> Dispute:
        """
        Settle a dispute.

        ``favor_employee`` releases the escrow and completes the referral.
        ``favor_seeker`` refunds the escrow; the referral stays ``disputed``
        for good.

        Raises:
            PermissionDenied: without the dispute resolve capability
            DisputeAlreadyResolved: if the dispute was settled before
        """
        require_permission(admin, Permission.DISPUTE_RESOLVE)
        try:
            outcome = DisputeOutcome(outcome)
        except ValueError as e:
            raise ValidationError(f"Unknown dispute outcome: {outcome}") from e

        async with self.database.transaction() as session:
            dispute = await self._lock_dispute(session, dispute_id)
            if dispute.is_resolved:
                raise DisputeAlreadyResolved(dispute_id=dispute_id)

            referral = await self.referrals.lock_referral(
                session, dispute.referral_request_id
            )
            if referral.status != ReferralStatus.DISPUTED:
                raise InvalidTransition(
                    f"Referral {referral.id} is not disputed",
                    referral_id=referral.id,
                )

            held = referral.payment_status == PaymentStatus.ESCROW
            if outcome == DisputeOutcome.FAVOR_EMPLOYEE:
                payment_status = referral.payment_status
                if held:
                    payment_status = await self.referrals.release_escrow(
                        session, referral
                    )
                await self.referrals.write_status(
                    session,
                    referral,
                    ReferralStatus.COMPLETED,
                    payment_status,
                    admin,
                    notes=notes or f"Dispute #{dispute.id} resolved for the employee",
                )
                dispute.status = DisputeStatus.RESOLVED_IN_FAVOR_OF_EMPLOYEE
            else:
                if held:
                    payment_status = await self.referrals.refund_escrow(
                        session, referral
                    )
                    await self.referrals.write_payment_status(
                        session, referral, payment_status
                    )
                dispute.status = DisputeStatus.RESOLVED_IN_FAVOR_OF_SEEKER

            dispute.resolution_notes = notes
            dispute.resolved_by_admin_id = admin.user_id
            dispute.resolved_at = utcnow()
            await session.flush()

            record_event(
                session,
                DomainEvent(
                    type=EventType.DISPUTE_RESOLVED,
                    target_type="dispute",
                    target_id=dispute.id,
                    actor_user_id=admin.user_id,
                    payload={
                        "referral_request_id": referral.id,
                        "outcome": outcome.value,
                        "payment_status": referral.payment_status.value,
                    },
                ),
            )

        logger.info(
            f"Dispute {dispute_id} resolved ({outcome.value}) by admin {admin.user_id}"
        )
        return dispute

    async def get_dispute(self, dispute_id: int, actor: Actor) -> Dispute:
        async with self.database.session() as session:
            dispute = await session.get(Dispute, dispute_id)
        if dispute is None:
            raise DisputeNotFound(dispute_id=dispute_id)
        if not actor.can(Permission.DISPUTE_REVIEW):
            referral = await self.referrals.get_referral(
                dispute.referral_request_id, actor
            )
            if actor.user_id not in (referral.job_seeker_id, referral.employee_id):
                raise PermissionDenied("Not a party to this dispute")
        return dispute

    async def list_disputes(
        self, admin: Actor, status: Optional[DisputeStatus] = None
    ) -> List[Dispute]:
        """Disputes for the admin queue, oldest first."""
        require_permission(admin, Permission.DISPUTE_REVIEW)
        async with self.database.session() as session:
            query = select(Dispute).order_by(Dispute.id)
            if status is not None:
                query = query.where(Dispute.status == status)
            result = await session.execute(query)
            return list(result.scalars().all())
