"""Shared fixtures and utilities for tests."""

import os
from decimal import Decimal

import pytest
import pytest_asyncio

from core.config import Settings
from core.permissions import Actor, ActorRole
from core.security import hash_password
from database.engine import Database
from database.models.finance import OwnerType, TransactionType
from database.models.users import UserRole
from api.services import build_services

TEST_PASSWORD = "SecurePass123"


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables before running tests."""
    # Database
    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

    # Auth
    os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-min-32-chars-long-for-security")
    os.environ.setdefault("JWT_ALGORITHM", "HS256")
    os.environ.setdefault("TOKEN_HASH_SECRET", "test-token-hash-secret-min-32-chars-long")
    os.environ.setdefault("BCRYPT_ROUNDS", "4")


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fresh SQLite file per test."""
    return Settings(
        app_env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        database_create_all=True,
        jwt_secret_key="test-jwt-secret-key-min-32-chars-long-for-security",
        token_hash_secret="test-token-hash-secret-min-32-chars-long",
        bcrypt_rounds=4,
        json_logs=False,
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def services(database, settings):
    return build_services(database, settings)


# ==================== Factories ==================== #

async def create_user(services, email: str, role: UserRole) -> Actor:
    """Insert a user directly (admins cannot self-register) and return its actor."""
    password_hash = hash_password(TEST_PASSWORD, rounds=4)
    user = await services.credentials.create_user(email, password_hash, role)
    return Actor(user_id=user.id, role=ActorRole(role.value))


async def fund_wallet(services, actor: Actor, amount) -> int:
    """Give a user's wallet a starting balance. Returns the wallet id."""
    wallet = await services.wallets.get_or_create_wallet(actor.user_id, OwnerType.USER)
    await services.wallets.credit(wallet.id, Decimal(str(amount)), TransactionType.DEPOSIT)
    return wallet.id


@pytest_asyncio.fixture
async def seeker(services):
    return await create_user(services, "seeker@example.com", UserRole.JOB_SEEKER)


@pytest_asyncio.fixture
async def employee(services):
    return await create_user(services, "employee@example.com", UserRole.EMPLOYEE)


@pytest_asyncio.fixture
async def admin(services):
    return await create_user(services, "admin@example.com", UserRole.ADMIN)


@pytest_asyncio.fixture
async def posting(services, employee):
    """Active job posting with a 500.00 INR referral fee."""
    return await services.jobs.create_posting(
        employee,
        job_title="Backend Engineer",
        job_description="Python services",
        referral_fee=Decimal("500.00"),
        currency="INR",
    )


@pytest_asyncio.fixture
async def funded_seeker(services, seeker):
    await fund_wallet(services, seeker, "1000.00")
    return seeker


@pytest.fixture
def make_user(services):
    async def _make(email: str, role: UserRole = UserRole.JOB_SEEKER) -> Actor:
        return await create_user(services, email, role)

    return _make


@pytest.fixture
def fund(services):
    async def _fund(actor: Actor, amount) -> int:
        return await fund_wallet(services, actor, amount)

    return _fund
