"""
Tests for core security utilities.

Tests:
- Password hashing and verification
- JWT access token creation and validation
- Token expiration
- Opaque token generation and keyed hashing
- Edge cases and security scenarios
"""

import pytest
from datetime import datetime, timedelta, timezone
import jwt as pyjwt

from core.exceptions import InvalidAccessToken, ValidationError
from core.security import (
    hash_password,
    verify_password,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    generate_verification_token,
    hash_token,
    mask_email,
)

SECRET = "test-jwt-secret-key-min-32-chars-long-for-security"


class TestPasswordHashing:
    """Test password hashing and verification."""

    def test_hash_password(self):
        """Test password hashing."""
        password = "SecurePassword123!"
        hashed = hash_password(password, rounds=4)

        assert hashed is not None
        assert isinstance(hashed, str)
        assert hashed != password
        assert hashed.startswith("$2b$")  # bcrypt format

    def test_hash_password_different_each_time(self):
        """Test that hashing same password produces different hashes."""
        password = "SecurePassword123!"
        hash1 = hash_password(password, rounds=4)
        hash2 = hash_password(password, rounds=4)

        assert hash1 != hash2  # Different salts

    def test_verify_password_success(self):
        """Test successful password verification."""
        password = "SecurePassword123!"
        hashed = hash_password(password, rounds=4)

        assert verify_password(password, hashed) is True

    def test_verify_password_failure(self):
        """Test failed password verification."""
        hashed = hash_password("SecurePassword123!", rounds=4)

        assert verify_password("WrongPassword123!", hashed) is False

    def test_verify_password_empty(self):
        """Test password verification with empty password."""
        hashed = hash_password("SecurePassword123!", rounds=4)

        assert verify_password("", hashed) is False

    def test_verify_password_malformed_hash(self):
        """A corrupted stored hash fails closed instead of raising."""
        assert verify_password("SecurePassword123!", "not-a-bcrypt-hash") is False

    def test_hash_password_rejects_over_72_bytes(self):
        """bcrypt would silently truncate; refuse instead."""
        with pytest.raises(ValidationError):
            hash_password("a" * 73, rounds=4)

    def test_password_hash_sql_injection(self):
        """Test that password hashing handles SQL injection attempts."""
        malicious_password = "'; DROP TABLE users; --"

        hashed = hash_password(malicious_password, rounds=4)
        assert verify_password(malicious_password, hashed) is True


class TestAccessTokens:
    """Test JWT access token creation and validation."""

    def test_create_access_token(self):
        """Test access token creation."""
        token = create_access_token(user_id=1, role="job_seeker", secret_key=SECRET)

        assert isinstance(token, str)

        payload = pyjwt.decode(token, SECRET, algorithms=["HS256"])
        assert payload["sub"] == "1"
        assert payload["role"] == "job_seeker"
        assert payload["type"] == "access"
        assert "exp" in payload
        assert "iat" in payload
        assert "jti" in payload

    def test_default_lifetime_is_one_hour(self):
        """Access tokens expire one hour after issuance."""
        now = datetime.now(timezone.utc).replace(microsecond=0)
        token = create_access_token(user_id=1, role="employee", secret_key=SECRET, now=now)

        payload = pyjwt.decode(token, SECRET, algorithms=["HS256"])
        assert payload["exp"] - payload["iat"] == 3600

    def test_decode_access_token_success(self):
        """Test successful token verification."""
        token = create_access_token(user_id=42, role="employee", secret_key=SECRET)

        claims = decode_access_token(token, SECRET)

        assert claims.user_id == 42
        assert claims.role == "employee"
        assert claims.expires_at > datetime.now(timezone.utc)
        assert claims.jti

    def test_decode_access_token_expired(self):
        """Test verification of expired token."""
        token = create_access_token(
            user_id=1,
            role="job_seeker",
            secret_key=SECRET,
            expires_delta=timedelta(seconds=-1),  # Already expired
        )

        with pytest.raises(InvalidAccessToken, match="expired"):
            decode_access_token(token, SECRET)

    def test_decode_access_token_invalid(self):
        """Test verification of invalid token."""
        with pytest.raises(InvalidAccessToken):
            decode_access_token("invalid.token.here", SECRET)

    def test_decode_access_token_wrong_secret(self):
        """Test verification with wrong secret."""
        token = create_access_token(user_id=1, role="job_seeker", secret_key=SECRET)

        with pytest.raises(InvalidAccessToken):
            decode_access_token(token, "wrong_secret_key_that_is_long_enough")

    def test_rejects_non_access_token_type(self):
        """A validly signed token of another type is not an access token."""
        now = datetime.now(timezone.utc)
        token = pyjwt.encode(
            {"sub": "1", "role": "job_seeker", "type": "refresh", "iat": now, "exp": now + timedelta(hours=1)},
            SECRET,
            algorithm="HS256",
        )

        with pytest.raises(InvalidAccessToken, match="type"):
            decode_access_token(token, SECRET)

    def test_rejects_missing_subject(self):
        now = datetime.now(timezone.utc)
        token = pyjwt.encode(
            {"role": "job_seeker", "type": "access", "iat": now, "exp": now + timedelta(hours=1)},
            SECRET,
            algorithm="HS256",
        )

        with pytest.raises(InvalidAccessToken):
            decode_access_token(token, SECRET)

    def test_token_jti_unique(self):
        """Each token gets its own jti."""
        first = decode_access_token(create_access_token(1, "job_seeker", SECRET), SECRET)
        second = decode_access_token(create_access_token(1, "job_seeker", SECRET), SECRET)

        assert first.jti != second.jti


class TestOpaqueTokens:
    """Test refresh and verification token generation and hashing."""

    def test_generate_refresh_token(self):
        token = generate_refresh_token()

        assert isinstance(token, str)
        assert len(token) >= 43  # 32 bytes url-safe base64

    def test_generate_tokens_unique(self):
        tokens = {generate_refresh_token() for _ in range(100)}
        tokens |= {generate_verification_token() for _ in range(100)}

        assert len(tokens) == 200

    def test_hash_token_deterministic(self):
        """Stored hashes are matched by equality, so hashing must be stable."""
        token = generate_refresh_token()

        assert hash_token(token, "secret-a") == hash_token(token, "secret-a")
        assert len(hash_token(token, "secret-a")) == 64

    def test_hash_token_keyed(self):
        """A different server secret yields a different hash."""
        token = generate_refresh_token()

        assert hash_token(token, "secret-a") != hash_token(token, "secret-b")

    def test_hash_token_does_not_contain_token(self):
        token = generate_refresh_token()

        assert token not in hash_token(token, "secret-a")


class TestMaskEmail:
    @pytest.mark.parametrize("email,expected", [
        ("john@example.com", "j***@example.com"),
        ("a@example.com", "*@example.com"),
        ("not-an-email", "************"),
    ])
    def test_mask_email(self, email, expected):
        assert mask_email(email) == expected


class TestSecurityEdgeCases:
    """Test security edge cases and attack vectors."""

    def test_jwt_algorithm_confusion(self):
        """Test that algorithm confusion attack is prevented."""
        token = create_access_token(user_id=1, role="job_seeker", secret_key=SECRET)

        # Verifying with a different algorithm must fail
        with pytest.raises(pyjwt.InvalidTokenError):
            pyjwt.decode(token, SECRET, algorithms=["HS512"])

    def test_jwt_none_algorithm(self):
        """Test that 'none' algorithm is rejected."""
        payload = {
            "sub": "1",
            "role": "admin",
            "type": "access",
            "iat": datetime.now(timezone.utc),
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        }
        token = pyjwt.encode(payload, None, algorithm="none")

        with pytest.raises(InvalidAccessToken):
            decode_access_token(token, SECRET)

    def test_jwt_token_tampering(self):
        """Test that tampering with the claims is detected."""
        token = create_access_token(user_id=1, role="job_seeker", secret_key=SECRET)
        header, _, signature = token.split(".")

        forged = pyjwt.encode(
            {"sub": "1", "role": "admin", "type": "access", "iat": 0, "exp": 4102444800},
            "attacker-secret-that-is-long-enough-to-sign",
            algorithm="HS256",
        ).split(".")[1]
        tampered_token = f"{header}.{forged}.{signature}"

        with pytest.raises(InvalidAccessToken):
            decode_access_token(tampered_token, SECRET)
