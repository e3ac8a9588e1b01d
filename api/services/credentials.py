"""
Credential and session store.

Persists users, password hashes and refresh-token sessions. Opaque tokens
(refresh, email verification, password reset) are only ever stored as a
keyed hash together with their expiry.
"""

from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.events import DomainEvent, EventType, record_event
from core.exceptions import (
    DuplicateEmail,
    InvalidVerificationToken,
    SessionExpired,
    SessionNotFound,
    UserNotFound,
)
from core.permissions import Actor, Permission, require_permission
from core.security import generate_verification_token, hash_token, mask_email
from database.engine import Database
from database.models.common import utcnow
from database.models.users import (
    AuthAction,
    AuthLog,
    EmailVerification,
    PasswordReset,
    User,
    UserRole,
    UserSession,
    UserStatus,
)

logger = logging.getLogger(__name__)


class VerificationKind(str, Enum):
    """Single-use token flows layered on the session token pattern."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


_VERIFICATION_MODELS = {
    VerificationKind.EMAIL_VERIFICATION: EmailVerification,
    VerificationKind.PASSWORD_RESET: PasswordReset,
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """
    Users, password hashes and refresh-token sessions.

    Every method accepts an optional ``session`` so it can join a caller's
    unit of work; without one it runs in its own transaction.
    """

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    def _hash(self, raw_token: str) -> str:
        return hash_token(raw_token, self.settings.token_hash_secret)

    # ==================== Users ==================== #

    async def create_user(
        self,
        email: str,
        password_hash: str,
        role: UserRole,
        session: Optional[AsyncSession] = None,
    ) -> User:
        """
        Insert a new user in ``pending_verification``.

        The pre-check gives a clean error in the common case; the unique
        constraint on ``users.email`` closes the race between two inserts.

        Raises:
            DuplicateEmail: if the address is already registered
        """
        email = normalize_email(email)

        async with self.database.transaction(session) as s:
            existing = await s.execute(select(User.id).where(User.email == email))
            if existing.scalar_one_or_none() is not None:
                raise DuplicateEmail(email=mask_email(email))

            user = User(
                email=email,
                password_hash=password_hash,
                role=role,
                status=UserStatus.PENDING_VERIFICATION,
            )
            s.add(user)
            try:
                await s.flush()
            except IntegrityError as e:
                raise DuplicateEmail(email=mask_email(email)) from e

            record_event(
                s,
                DomainEvent(
                    type=EventType.USER_REGISTERED,
                    target_type="user",
                    target_id=user.id,
                    actor_user_id=user.id,
                    payload={"role": role.value},
                ),
            )

        logger.info(f"User {user.id} registered as {role.value} ({mask_email(email)})")
        return user

    async def find_by_email(
        self, email: str, session: Optional[AsyncSession] = None
    ) -> Optional[User]:
        async with self.database.transaction(session) as s:
            result = await s.execute(
                select(User).where(User.email == normalize_email(email))
            )
            return result.scalar_one_or_none()

    async def find_by_id(
        self, user_id: int, session: Optional[AsyncSession] = None
    ) -> Optional[User]:
        async with self.database.transaction(session) as s:
            return await s.get(User, user_id)

    async def get_user(
        self, user_id: int, session: Optional[AsyncSession] = None
    ) -> User:
        """Like ``find_by_id`` but raises ``UserNotFound``."""
        user = await self.find_by_id(user_id, session=session)
        if user is None:
            raise UserNotFound(user_id=user_id)
        return user

    async def set_user_status(
        self,
        user_id: int,
        status: UserStatus,
        actor: Actor,
        session: Optional[AsyncSession] = None,
    ) -> User:
        """
        Change a user's account status (suspend, reactivate, deactivate).

        Suspending or deactivating a user also revokes their sessions.
        """
        require_permission(actor, Permission.USER_MANAGE)

        async with self.database.transaction(session) as s:
            user = await s.get(User, user_id)
            if user is None:
                raise UserNotFound(user_id=user_id)

            previous = user.status
            user.status = status
            await s.flush()

            if status in (UserStatus.SUSPENDED, UserStatus.DEACTIVATED):
                await self.revoke_all_sessions(user_id, session=s)

        logger.info(
            f"User {user_id} status changed {previous.value} -> {status.value} "
            f"by user {actor.user_id}"
        )
        return user

    # ==================== Sessions ==================== #

    async def create_session(
        self,
        user_id: int,
        refresh_token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> int:
        """
        Persist a refresh-token session.

        Only the keyed hash of ``refresh_token`` is stored.

        Returns:
            The new session id
        """
        expires_at = utcnow() + timedelta(days=self.settings.refresh_token_expire_days)

        async with self.database.transaction(session) as s:
            user_session = UserSession(
                user_id=user_id,
                refresh_token_hash=self._hash(refresh_token),
                ip_address=ip_address,
                user_agent=user_agent,
                expires_at=expires_at,
            )
            s.add(user_session)
            await s.flush()
            return user_session.id

    async def find_session_by_token(
        self, raw_token: str, session: Optional[AsyncSession] = None
    ) -> UserSession:
        """
        Look up the session a raw refresh token belongs to.

        Raises:
            SessionNotFound: if no session stores this token's hash
            SessionExpired: if the session exists but is past ``expires_at``
        """
        async with self.database.transaction(session) as s:
            result = await s.execute(
                select(UserSession).where(
                    UserSession.refresh_token_hash == self._hash(raw_token)
                )
            )
            user_session = result.scalar_one_or_none()

        if user_session is None:
            raise SessionNotFound()
        if user_session.expires_at <= utcnow():
            raise SessionExpired(session_id=user_session.id)
        return user_session

    async def delete_session(
        self, user_id: int, raw_token: str, session: Optional[AsyncSession] = None
    ) -> bool:
        """
        Delete the user's session for this refresh token.

        Idempotent: deleting a session that is already gone is not an error.

        Returns:
            True if a session was removed
        """
        async with self.database.transaction(session) as s:
            result = await s.execute(
                delete(UserSession).where(
                    UserSession.user_id == user_id,
                    UserSession.refresh_token_hash == self._hash(raw_token),
                )
            )
        return result.rowcount > 0

    async def list_sessions(
        self, user_id: int, session: Optional[AsyncSession] = None
    ) -> List[UserSession]:
        """Active (unexpired) sessions of a user, newest first."""
        async with self.database.transaction(session) as s:
            result = await s.execute(
                select(UserSession)
                .where(
                    UserSession.user_id == user_id,
                    UserSession.expires_at > utcnow(),
                )
                .order_by(UserSession.created_at.desc(), UserSession.id.desc())
            )
            return list(result.scalars().all())

    async def revoke_session(
        self, user_id: int, session_id: int, session: Optional[AsyncSession] = None
    ) -> None:
        """
        Revoke one of the user's own sessions by id.

        Raises:
            SessionNotFound: if the session does not exist or belongs to someone else
        """
        async with self.database.transaction(session) as s:
            result = await s.execute(
                delete(UserSession).where(
                    UserSession.id == session_id,
                    UserSession.user_id == user_id,
                )
            )
            if result.rowcount == 0:
                raise SessionNotFound(session_id=session_id)

    async def revoke_all_sessions(
        self, user_id: int, session: Optional[AsyncSession] = None
    ) -> int:
        async with self.database.transaction(session) as s:
            result = await s.execute(
                delete(UserSession).where(UserSession.user_id == user_id)
            )
        logger.info(f"Revoked {result.rowcount} sessions for user {user_id}")
        return result.rowcount

    async def purge_expired_sessions(
        self, session: Optional[AsyncSession] = None
    ) -> int:
        """Delete every expired session. Returns the number removed."""
        async with self.database.transaction(session) as s:
            result = await s.execute(
                delete(UserSession).where(UserSession.expires_at <= utcnow())
            )
        return result.rowcount

    # ==================== Verification tokens ==================== #

    def _verification_lifetime(self, kind: VerificationKind) -> timedelta:
        if kind == VerificationKind.EMAIL_VERIFICATION:
            return timedelta(hours=self.settings.email_verification_expire_hours)
        return timedelta(minutes=self.settings.password_reset_expire_minutes)

    async def issue_verification_token(
        self,
        kind: VerificationKind,
        email: str,
        session: Optional[AsyncSession] = None,
    ) -> str:
        """
        Issue a single-use token for an address, replacing any earlier one.

        Returns:
            The raw token. Only its hash is stored.
        """
        model = _VERIFICATION_MODELS[kind]
        email = normalize_email(email)
        raw_token = generate_verification_token()

        async with self.database.transaction(session) as s:
            await s.execute(delete(model).where(model.email == email))
            s.add(
                model(
                    email=email,
                    token_hash=self._hash(raw_token),
                    expires_at=utcnow() + self._verification_lifetime(kind),
                )
            )
            await s.flush()

        return raw_token

    async def consume_verification_token(
        self,
        kind: VerificationKind,
        raw_token: str,
        session: Optional[AsyncSession] = None,
    ) -> str:
        """
        Redeem a single-use token.

        Returns:
            The email address the token was issued for

        Raises:
            InvalidVerificationToken: if the token is unknown, used or expired
        """
        model = _VERIFICATION_MODELS[kind]

        async with self.database.transaction(session) as s:
            result = await s.execute(
                select(model).where(model.token_hash == self._hash(raw_token))
            )
            record = result.scalar_one_or_none()
            if record is None or record.expires_at <= utcnow():
                raise InvalidVerificationToken()

            email = record.email
            await s.delete(record)
            await s.flush()

        return email

    # ==================== Auth logs ==================== #

    async def record_auth_event(
        self,
        user_id: Optional[int],
        action: AuthAction,
        ip_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        session: Optional[AsyncSession] = None,
    ) -> None:
        async with self.database.transaction(session) as s:
            s.add(
                AuthLog(
                    user_id=user_id,
                    action=action,
                    ip_address=ip_address,
                    details=details,
                )
            )
            await s.flush()
