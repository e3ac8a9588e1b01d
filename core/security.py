"""
Security primitives for authentication.

Provides password hashing, signed access tokens, opaque refresh tokens and
keyed hashing of tokens that must never be stored in the clear.
"""

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt

from core.exceptions import InvalidAccessToken, ValidationError

# bcrypt only looks at the first 72 bytes of its input
BCRYPT_MAX_PASSWORD_BYTES = 72

ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True)
class AccessTokenClaims:
    """Verified contents of an access token."""

    user_id: int
    role: str
    expires_at: datetime
    jti: str


# ==================== Passwords ==================== #

def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash a password with bcrypt.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor

    Returns:
        bcrypt hash string ($2b$...)
    """
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValidationError("Password must be at most 72 bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Oversized input or malformed stored hash
        return False


# ==================== Access tokens ==================== #

def create_access_token(
    user_id: int,
    role: str,
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: timedelta = timedelta(hours=1),
    now: Optional[datetime] = None,
) -> str:
    """
    Create a signed JWT access token bound to a user and role.

    The token is verifiable without a database lookup.
    """
    issued_at = now or datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + expires_delta,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> AccessTokenClaims:
    """
    Verify an access token's signature, expiry and type.

    Raises:
        InvalidAccessToken: if the token is malformed, expired, or not an access token
    """
    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidAccessToken("Access token has expired") from e
    except jwt.InvalidTokenError as e:
        raise InvalidAccessToken() from e

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise InvalidAccessToken("Invalid token type")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as e:
        raise InvalidAccessToken("Invalid token subject") from e

    return AccessTokenClaims(
        user_id=user_id,
        role=str(payload.get("role", "")),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        jti=str(payload.get("jti", "")),
    )


# ==================== Opaque tokens ==================== #

def generate_refresh_token() -> str:
    """Generate an opaque refresh token with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def generate_verification_token() -> str:
    """Generate a single-use token for email verification or password reset."""
    return secrets.token_urlsafe(32)


def hash_token(raw_token: str, secret: str) -> str:
    """
    Keyed hash of an opaque token for storage and lookup.

    HMAC-SHA256 keyed with a server-side secret. Output is deterministic so
    stored hashes are matched by equality lookup.
    """
    return hmac.new(
        secret.encode("utf-8"), raw_token.encode("utf-8"), hashlib.sha256
    ).hexdigest()


# ==================== Masking ==================== #

def mask_email(email: str) -> str:
    """
    Masks an email address by showing only the first character of the local part
    and the domain.
    """
    local_part, sep, domain = email.partition("@")
    if not sep:
        return "*" * len(email)
    if len(local_part) <= 1:
        masked_local = "*"
    else:
        masked_local = local_part[0] + "*" * (len(local_part) - 1)
    return f"{masked_local}@{domain}"
