"""Job posting service."""

from decimal import Decimal
from typing import List, Optional, Union
import logging

from sqlalchemy import select

from core.config import Settings
from core.exceptions import JobPostingNotFound, PermissionDenied, ValidationError
from core.permissions import Actor, Permission, require_permission
from database.engine import Database
from database.models.jobs import JobPosting
from api.services.wallets import to_money

logger = logging.getLogger(__name__)

FEE_QUANTUM = Decimal("0.01")


class JobPostingService:
    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    async def create_posting(
        self,
        actor: Actor,
        job_title: str,
        job_description: str,
        referral_fee: Union[Decimal, int, str],
        currency: Optional[str] = None,
        job_url: Optional[str] = None,
        location: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> JobPosting:
        """
        Post a job the actor can refer seekers to.

        Raises:
            PermissionDenied: unless the actor is an employee
            ValidationError: for a fee that is not a non-negative amount with
                at most 2 decimals, or a currency other than the platform's
        """
        require_permission(actor, Permission.JOB_POST)

        fee = to_money(referral_fee)
        if fee < 0 or fee.quantize(FEE_QUANTUM) != fee:
            raise ValidationError("Referral fee must be a non-negative amount with 2 decimals")

        # Escrow and fee wallets hold the platform currency only
        currency = (currency or self.settings.default_currency).upper()
        if currency != self.settings.default_currency:
            raise ValidationError(
                f"Referral fees must be in {self.settings.default_currency}",
                currency=currency,
            )

        async with self.database.transaction() as session:
            posting = JobPosting(
                posted_by_user_id=actor.user_id,
                organization_id=organization_id,
                job_title=job_title,
                job_description=job_description,
                job_url=job_url,
                location=location,
                referral_fee=fee.quantize(FEE_QUANTUM),
                currency=currency,
                is_active=True,
            )
            session.add(posting)
            await session.flush()

        logger.info(f"Job posting {posting.id} created by user {actor.user_id}")
        return posting

    async def get_posting(self, job_posting_id: int) -> JobPosting:
        async with self.database.session() as session:
            posting = await session.get(JobPosting, job_posting_id)
        if posting is None:
            raise JobPostingNotFound(job_posting_id=job_posting_id)
        return posting

    async def list_postings(
        self, active_only: bool = True, limit: int = 50, offset: int = 0
    ) -> List[JobPosting]:
        async with self.database.session() as session:
            query = select(JobPosting)
            if active_only:
                query = query.where(JobPosting.is_active.is_(True))
            query = query.order_by(JobPosting.id.desc()).limit(limit).offset(offset)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def deactivate_posting(self, job_posting_id: int, actor: Actor) -> JobPosting:
        """Stop taking referral requests. Existing referrals carry on."""
        async with self.database.transaction() as session:
            posting = await session.get(JobPosting, job_posting_id)
            if posting is None:
                raise JobPostingNotFound(job_posting_id=job_posting_id)
            if posting.posted_by_user_id != actor.user_id and not actor.is_admin:
                raise PermissionDenied("Only the poster can close this job posting")
            posting.is_active = False
            await session.flush()

        logger.info(f"Job posting {job_posting_id} deactivated by user {actor.user_id}")
        return posting
