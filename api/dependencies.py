"""FastAPI dependencies for dependency injection."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.services import ServiceContainer
from core.permissions import Actor


security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> ServiceContainer:
    """Service container built at startup."""
    return request.app.state.services


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    services: ServiceContainer = Depends(get_services),
) -> Actor:
    """
    Resolve the caller from the bearer access token.

    Verification is signature and expiry only; no database lookup.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor = services.tokens.verify_access_token(credentials.credentials)
    request.state.user_id = actor.user_id
    return actor


def get_client_info(request: Request) -> tuple[str | None, str | None]:
    """Client IP and user agent for session records."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


def get_pagination_params(page: int = 1, page_size: int = 20, max_page_size: int = 100) -> dict:
    """
    Get pagination parameters.

    Returns:
        Dictionary with offset and limit
    """
    if page < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Page must be >= 1"
        )
    if page_size < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Page size must be >= 1"
        )
    page_size = min(page_size, max_page_size)
    return {"offset": (page - 1) * page_size, "limit": page_size}
