"""Dispute endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_actor, get_services
from api.schemas.disputes import DisputeCreate, DisputeResolveRequest, DisputeResponse
from api.services import ServiceContainer
from core.permissions import Actor
from database.models.disputes import DisputeStatus

router = APIRouter()


@router.post("", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def open_dispute(
    data: DisputeCreate,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Open a dispute; the referral is frozen in ``disputed`` until resolved."""
    dispute = await services.disputes.open_dispute(
        data.referral_request_id, actor, data.reason
    )
    return DisputeResponse.model_validate(dispute)


@router.get("", response_model=list[DisputeResponse])
async def list_disputes(
    status_filter: Optional[DisputeStatus] = None,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Admin dispute queue."""
    disputes = await services.disputes.list_disputes(actor, status_filter)
    return [DisputeResponse.model_validate(d) for d in disputes]


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: int,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    dispute = await services.disputes.get_dispute(dispute_id, actor)
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/review", response_model=DisputeResponse)
async def start_review(
    dispute_id: int,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    dispute = await services.disputes.start_review(dispute_id, actor)
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: int,
    data: DisputeResolveRequest,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Settle a dispute for the seeker (refund) or the employee (payout)."""
    dispute = await services.disputes.resolve(dispute_id, actor, data.outcome, data.notes)
    return DisputeResponse.model_validate(dispute)
