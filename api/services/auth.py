"""
Token service.

Registration, login, refresh and logout on top of the credential store.
Access tokens are signed JWTs verified without touching the database;
refresh tokens are opaque and only their hash is persisted.

Refresh tokens are not rotated: ``refresh`` hands back the same token until
the session expires or is revoked.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from core.config import Settings
from core.exceptions import (
    AccountDisabled,
    InvalidAccessToken,
    InvalidCredentials,
    InvalidRefreshToken,
    InvalidVerificationToken,
    MissingRefreshToken,
    SessionExpired,
    SessionNotFound,
    ValidationError,
)
from core.permissions import Actor, ActorRole
from core.security import (
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    generate_verification_token,
    hash_password,
    mask_email,
    verify_password,
)
from database.engine import Database
from database.models.users import AuthAction, User, UserRole, UserStatus
from api.services.credentials import CredentialStore, VerificationKind

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class TokenPair:
    """Tokens handed to a client after login or refresh."""

    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds
    token_type: str = "bearer"


class TokenService:
    """Issues and verifies access and refresh tokens."""

    def __init__(
        self, database: Database, credentials: CredentialStore, settings: Settings
    ):
        self.database = database
        self.credentials = credentials
        self.settings = settings
        self._dummy_hash: Optional[str] = None

    @property
    def access_token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    async def _hash_password(self, password: str) -> str:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        # bcrypt is CPU bound; keep it off the event loop
        return await asyncio.to_thread(
            hash_password, password, self.settings.bcrypt_rounds
        )

    async def _check_password(self, password: str, user: Optional[User]) -> bool:
        if user is None:
            # Spend the same time on unknown emails as on wrong passwords
            if self._dummy_hash is None:
                self._dummy_hash = await asyncio.to_thread(
                    hash_password,
                    generate_verification_token(),
                    self.settings.bcrypt_rounds,
                )
            await asyncio.to_thread(verify_password, password, self._dummy_hash)
            return False
        return await asyncio.to_thread(verify_password, password, user.password_hash)

    def _issue(self, user: User, refresh_token: str) -> TokenPair:
        access_token = create_access_token(
            user_id=user.id,
            role=user.role.value,
            secret_key=self.settings.jwt_secret_key,
            algorithm=self.settings.jwt_algorithm,
            expires_delta=self.access_token_lifetime,
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_token_lifetime.total_seconds()),
        )

    # ==================== Registration ==================== #

    async def register(
        self, email: str, password: str, role: UserRole = UserRole.JOB_SEEKER
    ) -> User:
        """
        Create an account.

        Admins are provisioned out of band and cannot self-register.

        Raises:
            ValidationError: for an admin role or a too-short password
            DuplicateEmail: if the address is taken
        """
        role = UserRole(role)
        if role == UserRole.ADMIN:
            raise ValidationError("Cannot self-register as admin")

        password_hash = await self._hash_password(password)
        return await self.credentials.create_user(email, password_hash, role)

    # ==================== Login / refresh / logout ==================== #

    async def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        """
        Authenticate with email and password and open a session.

        Raises:
            InvalidCredentials: for an unknown email or a wrong password alike
            AccountDisabled: if the account is suspended or deactivated
        """
        user = await self.credentials.find_by_email(email)

        if not await self._check_password(password, user):
            await self.credentials.record_auth_event(
                user.id if user else None,
                AuthAction.LOGIN_FAILURE,
                ip_address,
                {"email": mask_email(email)},
            )
            logger.warning(f"Failed login for {mask_email(email)} from {ip_address}")
            raise InvalidCredentials()

        if not user.can_login:
            logger.warning(f"Login refused for {user.status.value} user {user.id}")
            raise AccountDisabled()

        refresh_token = generate_refresh_token()
        async with self.database.transaction() as session:
            await self.credentials.create_session(
                user.id, refresh_token, ip_address, user_agent, session=session
            )
            await self.credentials.record_auth_event(
                user.id, AuthAction.LOGIN_SUCCESS, ip_address, session=session
            )

        logger.info(f"User {user.id} logged in")
        return self._issue(user, refresh_token)

    async def refresh(self, raw_refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new access token.

        The refresh token itself is returned unchanged.

        Raises:
            InvalidRefreshToken: if the session is missing or expired
        """
        if not raw_refresh_token:
            raise InvalidRefreshToken()

        try:
            user_session = await self.credentials.find_session_by_token(
                raw_refresh_token
            )
        except (SessionNotFound, SessionExpired) as e:
            raise InvalidRefreshToken() from e

        user = await self.credentials.find_by_id(user_session.user_id)
        if user is None:
            raise InvalidRefreshToken()
        if not user.can_login:
            raise AccountDisabled()

        await self.credentials.record_auth_event(user.id, AuthAction.TOKEN_REFRESH)
        return self._issue(user, raw_refresh_token)

    async def logout(self, user_id: int, raw_refresh_token: Optional[str]) -> None:
        """
        End the session holding this refresh token.

        Raises:
            MissingRefreshToken: if no token was supplied
        """
        if not raw_refresh_token:
            raise MissingRefreshToken("Refresh token is required for logout")

        async with self.database.transaction() as session:
            await self.credentials.delete_session(
                user_id, raw_refresh_token, session=session
            )
            await self.credentials.record_auth_event(
                user_id, AuthAction.LOGOUT, session=session
            )

        logger.info(f"User {user_id} logged out")

    def verify_access_token(self, token: str) -> Actor:
        """
        Verify an access token's signature and expiry.

        No database round trip; a user suspended after issuance keeps access
        until the token expires.

        Raises:
            InvalidAccessToken: if the token does not verify
        """
        claims = decode_access_token(
            token, self.settings.jwt_secret_key, self.settings.jwt_algorithm
        )
        try:
            role = ActorRole(claims.role)
        except ValueError:
            role = None
        if role is None or role == ActorRole.SYSTEM:
            raise InvalidAccessToken("Invalid token role")
        return Actor(user_id=claims.user_id, role=role)

    # ==================== Email verification ==================== #

    async def request_email_verification(self, user_id: int) -> str:
        """
        Issue an email verification token for a pending user.

        Delivering the token is up to the caller.
        """
        user = await self.credentials.get_user(user_id)
        if user.status != UserStatus.PENDING_VERIFICATION:
            raise ValidationError("Email is already verified")
        return await self.credentials.issue_verification_token(
            VerificationKind.EMAIL_VERIFICATION, user.email
        )

    async def verify_email(self, raw_token: str) -> User:
        """Redeem a verification token and activate the account."""
        async with self.database.transaction() as session:
            email = await self.credentials.consume_verification_token(
                VerificationKind.EMAIL_VERIFICATION, raw_token, session=session
            )
            user = await self.credentials.find_by_email(email, session=session)
            if user is None:
                raise InvalidVerificationToken()
            if user.status == UserStatus.PENDING_VERIFICATION:
                user.status = UserStatus.ACTIVE
                await session.flush()

        logger.info(f"User {user.id} verified their email")
        return user

    # ==================== Password reset ==================== #

    async def request_password_reset(
        self, email: str, ip_address: Optional[str] = None
    ) -> Optional[str]:
        """
        Issue a password reset token.

        Returns None for unknown addresses; callers must respond the same way
        in both cases.
        """
        user = await self.credentials.find_by_email(email)
        if user is None:
            logger.info(f"Password reset requested for unknown {mask_email(email)}")
            return None

        async with self.database.transaction() as session:
            raw_token = await self.credentials.issue_verification_token(
                VerificationKind.PASSWORD_RESET, user.email, session=session
            )
            await self.credentials.record_auth_event(
                user.id,
                AuthAction.PASSWORD_RESET_REQUEST,
                ip_address,
                session=session,
            )
        return raw_token

    async def reset_password(self, raw_token: str, new_password: str) -> User:
        """Redeem a reset token, set the new password and revoke all sessions."""
        password_hash = await self._hash_password(new_password)

        async with self.database.transaction() as session:
            email = await self.credentials.consume_verification_token(
                VerificationKind.PASSWORD_RESET, raw_token, session=session
            )
            user = await self.credentials.find_by_email(email, session=session)
            if user is None:
                raise InvalidVerificationToken()
            user.password_hash = password_hash
            await session.flush()
            await self.credentials.revoke_all_sessions(user.id, session=session)

        logger.info(f"User {user.id} reset their password")
        return user
