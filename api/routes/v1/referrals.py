"""Referral request endpoints."""

from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_actor, get_services
from api.schemas.referrals import (
    ReferralCreate,
    ReferralHistoryResponse,
    ReferralResponse,
    ReferralTransitionRequest,
)
from api.services import ServiceContainer
from core.permissions import Actor

router = APIRouter()


@router.post("", response_model=ReferralResponse, status_code=status.HTTP_201_CREATED)
async def create_referral(
    data: ReferralCreate,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Ask the poster of a job for a referral."""
    referral = await services.referrals.create_referral_request(
        data.job_posting_id, actor, data.notes
    )
    return ReferralResponse.model_validate(referral)


@router.get("", response_model=list[ReferralResponse])
async def list_referrals(
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Referrals the current user is a party to."""
    referrals = await services.referrals.list_referrals(actor)
    return [ReferralResponse.model_validate(r) for r in referrals]


@router.get("/{referral_id}", response_model=ReferralResponse)
async def get_referral(
    referral_id: int,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    referral = await services.referrals.get_referral(referral_id, actor)
    return ReferralResponse.model_validate(referral)


@router.post("/{referral_id}/transition", response_model=ReferralResponse)
async def transition_referral(
    referral_id: int,
    data: ReferralTransitionRequest,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """
    Move a referral to its next status.

    Accepting holds the referral fee in escrow; completing releases it.
    """
    referral = await services.referrals.transition(
        referral_id, data.status, actor, data.notes
    )
    return ReferralResponse.model_validate(referral)


@router.get("/{referral_id}/history", response_model=list[ReferralHistoryResponse])
async def get_referral_history(
    referral_id: int,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Every status the referral has held, oldest first."""
    history = await services.referrals.get_history(referral_id, actor)
    return [ReferralHistoryResponse.model_validate(h) for h in history]
