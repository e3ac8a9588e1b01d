"""
Tests for authentication endpoints.

Tests:
- Registration
- Login (email/password)
- Token refresh without rotation
- Logout and session management
- Email verification
- Password reset
- Edge cases and security
"""

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
import jwt as pyjwt

from api.main import create_app
from core.security import create_access_token


@pytest.fixture
def client(settings):
    """Create test client; the lifespan builds a fresh database per test."""
    with TestClient(create_app(settings), raise_server_exceptions=False) as client:
        yield client


@pytest.fixture
def test_user_data():
    """Test user registration data."""
    return {
        "email": "test@example.com",
        "password": "SecurePass123",
        "role": "job_seeker",
    }


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register_and_login(client, data) -> dict:
    client.post("/api/v1/auth/register", json=data)
    response = client.post(
        "/api/v1/auth/login",
        json={"email": data["email"], "password": data["password"]},
    )
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        assert client.get("/ready").json() == {"status": "ready"}


class TestRegister:
    """Test registration endpoint."""

    def test_register_success(self, client, test_user_data):
        """Test successful registration."""
        response = client.post("/api/v1/auth/register", json=test_user_data)

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "test@example.com"
        assert data["role"] == "job_seeker"
        assert data["status"] == "pending_verification"
        assert "password" not in data
        assert "password_hash" not in data

    def test_register_duplicate_email(self, client, test_user_data):
        """Test registration with an existing email."""
        client.post("/api/v1/auth/register", json=test_user_data)

        response = client.post("/api/v1/auth/register", json=test_user_data)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_EMAIL"

    def test_register_admin_refused(self, client, test_user_data):
        response = client.post(
            "/api/v1/auth/register", json={**test_user_data, "role": "admin"}
        )

        assert response.status_code == 422

    @pytest.mark.parametrize("password", ["short1", "allletters", "12345678"])
    def test_register_weak_password(self, client, test_user_data, password):
        response = client.post(
            "/api/v1/auth/register", json={**test_user_data, "password": password}
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_register_invalid_email(self, client, test_user_data):
        response = client.post(
            "/api/v1/auth/register", json={**test_user_data, "email": "not-an-email"}
        )

        assert response.status_code == 422


class TestLogin:
    """Test login endpoint."""

    def test_login_success(self, client, test_user_data, settings):
        tokens = register_and_login(client, test_user_data)

        assert tokens["token_type"] == "bearer"
        assert tokens["expires_in"] == 3600
        assert tokens["refresh_token"]

        payload = pyjwt.decode(
            tokens["access_token"], settings.jwt_secret_key, algorithms=["HS256"]
        )
        assert payload["role"] == "job_seeker"
        assert payload["type"] == "access"

    def test_login_wrong_password(self, client, test_user_data):
        client.post("/api/v1/auth/register", json=test_user_data)

        response = client.post(
            "/api/v1/auth/login",
            json={"email": test_user_data["email"], "password": "WrongPass999"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_login_unknown_email_same_response(self, client, test_user_data):
        """Unknown email and wrong password are indistinguishable."""
        client.post("/api/v1/auth/register", json=test_user_data)

        wrong_password = client.post(
            "/api/v1/auth/login",
            json={"email": test_user_data["email"], "password": "WrongPass999"},
        )
        unknown_email = client.post(
            "/api/v1/auth/login",
            json={"email": "nobody@example.com", "password": "WrongPass999"},
        )

        assert wrong_password.status_code == unknown_email.status_code
        assert (
            wrong_password.json()["error"]["message"]
            == unknown_email.json()["error"]["message"]
        )


class TestRefresh:
    def test_refresh_returns_same_refresh_token(self, client, test_user_data):
        tokens = register_and_login(client, test_user_data)

        response = client.post(
            "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )

        assert response.status_code == 200
        assert response.json()["refresh_token"] == tokens["refresh_token"]
        assert response.json()["access_token"]

    def test_refresh_invalid(self, client):
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": "bogus"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_REFRESH_TOKEN"


class TestProtectedEndpoints:
    def test_me(self, client, test_user_data):
        tokens = register_and_login(client, test_user_data)

        response = client.get("/api/v1/auth/me", headers=auth_header(tokens["access_token"]))

        assert response.status_code == 200
        assert response.json()["email"] == "test@example.com"

    def test_missing_token(self, client):
        response = client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_expired_token(self, client, settings):
        token = create_access_token(
            1, "job_seeker", settings.jwt_secret_key, expires_delta=timedelta(seconds=-1)
        )

        response = client.get("/api/v1/auth/me", headers=auth_header(token))

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_ACCESS_TOKEN"

    def test_tampered_token(self, client, test_user_data):
        register_and_login(client, test_user_data)
        forged = create_access_token(1, "admin", "attacker-secret-of-sufficient-length")

        response = client.get("/api/v1/auth/me", headers=auth_header(forged))

        assert response.status_code == 401


class TestLogoutAndSessions:
    def test_logout(self, client, test_user_data):
        tokens = register_and_login(client, test_user_data)
        headers = auth_header(tokens["access_token"])

        response = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": tokens["refresh_token"]},
            headers=headers,
        )

        assert response.status_code == 200
        refreshed = client.post(
            "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert refreshed.status_code == 401

    def test_logout_without_refresh_token(self, client, test_user_data):
        tokens = register_and_login(client, test_user_data)

        response = client.post(
            "/api/v1/auth/logout", json={}, headers=auth_header(tokens["access_token"])
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "MISSING_REFRESH_TOKEN"

    def test_sessions(self, client, test_user_data):
        first = register_and_login(client, test_user_data)
        second = client.post(
            "/api/v1/auth/login",
            json={"email": test_user_data["email"], "password": test_user_data["password"]},
        ).json()
        headers = auth_header(first["access_token"])

        sessions = client.get("/api/v1/auth/sessions", headers=headers).json()
        assert len(sessions) == 2
        assert all("refresh_token" not in s for s in sessions)

        response = client.delete(f"/api/v1/auth/sessions/{sessions[0]['id']}", headers=headers)
        assert response.status_code == 204
        assert len(client.get("/api/v1/auth/sessions", headers=headers).json()) == 1

        response = client.delete("/api/v1/auth/sessions", headers=headers)
        assert response.json()["message"] == "Revoked 1 sessions"
        for tokens in (first, second):
            refreshed = client.post(
                "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
            )
            assert refreshed.status_code == 401

    def test_revoke_unknown_session(self, client, test_user_data):
        tokens = register_and_login(client, test_user_data)

        response = client.delete(
            "/api/v1/auth/sessions/999", headers=auth_header(tokens["access_token"])
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SESSION_NOT_FOUND"


class TestEmailVerification:
    def test_verify_email(self, client, test_user_data):
        tokens = register_and_login(client, test_user_data)
        headers = auth_header(tokens["access_token"])

        issued = client.post("/api/v1/auth/verify-email/request", headers=headers).json()
        assert issued["token"]

        response = client.post("/api/v1/auth/verify-email", json={"token": issued["token"]})

        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_verify_email_bad_token(self, client):
        response = client.post("/api/v1/auth/verify-email", json={"token": "bogus"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_VERIFICATION_TOKEN"


class TestPasswordReset:
    def test_reset_flow(self, client, test_user_data):
        register_and_login(client, test_user_data)

        issued = client.post(
            "/api/v1/auth/forgot-password", json={"email": test_user_data["email"]}
        ).json()
        response = client.post(
            "/api/v1/auth/reset-password",
            json={"token": issued["token"], "new_password": "BrandNewPass456"},
        )

        assert response.status_code == 200
        login = client.post(
            "/api/v1/auth/login",
            json={"email": test_user_data["email"], "password": "BrandNewPass456"},
        )
        assert login.status_code == 200

    def test_unknown_email_same_message(self, client, test_user_data):
        client.post("/api/v1/auth/register", json=test_user_data)

        known = client.post(
            "/api/v1/auth/forgot-password", json={"email": test_user_data["email"]}
        ).json()
        unknown = client.post(
            "/api/v1/auth/forgot-password", json={"email": "nobody@example.com"}
        ).json()

        assert known["message"] == unknown["message"]
        assert unknown["token"] is None
