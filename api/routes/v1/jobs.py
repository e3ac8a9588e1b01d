"""Job posting endpoints."""

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_current_actor, get_services
from api.schemas.referrals import JobPostingCreate, JobPostingResponse
from api.services import ServiceContainer
from core.permissions import Actor

router = APIRouter()


@router.post("", response_model=JobPostingResponse, status_code=status.HTTP_201_CREATED)
async def create_job_posting(
    data: JobPostingCreate,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Post a job that seekers can request referrals for."""
    posting = await services.jobs.create_posting(
        actor,
        job_title=data.job_title,
        job_description=data.job_description,
        referral_fee=data.referral_fee,
        currency=data.currency,
        job_url=data.job_url,
        location=data.location,
        organization_id=data.organization_id,
    )
    return JobPostingResponse.model_validate(posting)


@router.get("", response_model=list[JobPostingResponse])
async def list_job_postings(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    services: ServiceContainer = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
):
    """Active job postings, newest first."""
    postings = await services.jobs.list_postings(limit=limit, offset=offset)
    return [JobPostingResponse.model_validate(p) for p in postings]


@router.get("/{job_posting_id}", response_model=JobPostingResponse)
async def get_job_posting(
    job_posting_id: int,
    services: ServiceContainer = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
):
    posting = await services.jobs.get_posting(job_posting_id)
    return JobPostingResponse.model_validate(posting)


@router.post("/{job_posting_id}/deactivate", response_model=JobPostingResponse)
async def deactivate_job_posting(
    job_posting_id: int,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Stop taking referral requests for a posting."""
    posting = await services.jobs.deactivate_posting(job_posting_id, actor)
    return JobPostingResponse.model_validate(posting)
