"""
Authentication endpoints.

Provides:
- Registration and email/password login
- Token refresh (the refresh token is not rotated)
- Logout and session management
- Email verification and password reset
"""

import logging

from fastapi import APIRouter, Depends, Request, Response, status

from api.dependencies import get_client_info, get_current_actor, get_services
from api.schemas.auth import (
    IssuedTokenResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
    TokenResponse,
    UserResponse,
    VerifyEmailRequest,
)
from api.services import ServiceContainer, TokenPair
from core.permissions import Actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["authentication"])


def token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


def expose_token(services: ServiceContainer) -> bool:
    # Without email delivery, hand tokens back directly outside production
    return services.settings.app_env != "production"


# ==================== Endpoints ==================== #

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Register a new job seeker or employee account."""
    user = await services.tokens.register(data.email, data.password, data.role)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    request: Request,
    data: LoginRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Authenticate with email and password."""
    ip_address, user_agent = get_client_info(request)
    pair = await services.tokens.login(data.email, data.password, ip_address, user_agent)
    return token_response(pair)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    data: RefreshRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Exchange a refresh token for a new access token."""
    pair = await services.tokens.refresh(data.refresh_token)
    return token_response(pair)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    data: LogoutRequest,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """End the session belonging to the given refresh token."""
    await services.tokens.logout(actor.user_id, data.refresh_token)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def get_me(
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Current user's account."""
    user = await services.credentials.get_user(actor.user_id)
    return UserResponse.model_validate(user)


# ==================== Sessions ==================== #

@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Active sessions of the current user."""
    sessions = await services.credentials.list_sessions(actor.user_id)
    return [SessionResponse.model_validate(s) for s in sessions]


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_session(
    session_id: int,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Revoke one of the current user's sessions."""
    await services.credentials.revoke_session(actor.user_id, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/sessions", response_model=MessageResponse)
async def revoke_all_sessions(
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Sign out everywhere."""
    count = await services.credentials.revoke_all_sessions(actor.user_id)
    return MessageResponse(message=f"Revoked {count} sessions")


# ==================== Email verification ==================== #

@router.post("/verify-email/request", response_model=IssuedTokenResponse)
async def request_email_verification(
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Issue an email verification token for the current user."""
    token = await services.tokens.request_email_verification(actor.user_id)
    return IssuedTokenResponse(
        message="Verification token issued",
        token=token if expose_token(services) else None,
    )


@router.post("/verify-email", response_model=UserResponse)
async def verify_email(
    data: VerifyEmailRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Redeem an email verification token."""
    user = await services.tokens.verify_email(data.token)
    return UserResponse.model_validate(user)


# ==================== Password reset ==================== #

@router.post("/forgot-password", response_model=IssuedTokenResponse)
async def forgot_password(
    request: Request,
    data: PasswordResetRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Request a password reset. The response never reveals whether the email exists."""
    ip_address, _ = get_client_info(request)
    token = await services.tokens.request_password_reset(data.email, ip_address)
    return IssuedTokenResponse(
        message="If the email is registered, a reset token has been issued",
        token=token if expose_token(services) else None,
    )


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: PasswordResetConfirm,
    services: ServiceContainer = Depends(get_services),
):
    """Set a new password with a reset token; all sessions are revoked."""
    await services.tokens.reset_password(data.token, data.new_password)
    return MessageResponse(message="Password has been reset")
