"""Health check endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from api.dependencies import get_services
from api.services import ServiceContainer

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version="0.1.0")


@router.get("/ready")
async def readiness_check(services: ServiceContainer = Depends(get_services)):
    """Readiness check for load balancers; fails if the database is unreachable."""
    async with services.database.session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ready"}
