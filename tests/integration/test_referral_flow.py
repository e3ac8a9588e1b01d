"""
Integration tests for the referral marketplace.

Tests end-to-end scenarios over HTTP:
- Post job -> request referral -> accept (escrow) -> ATS signals -> hire -> confirm (payout)
- Racing ATS signals on the same referral
- Dispute opened mid-flight and resolved either way
- Every wallet reconciles against its ledger afterwards
"""

import asyncio
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from api.main import create_app
from core.exceptions import InvalidTransition
from core.permissions import Actor
from database.models.finance import Wallet
from database.models.referrals import ReferralStatus
from database.models.users import UserRole

PASSWORD = "SecurePass123"


@pytest_asyncio.fixture
async def client(services, settings):
    """HTTP client wired to the same services the test inspects."""
    app = create_app(settings)
    app.state.services = services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def login(client, email: str) -> dict:
    response = await client.post(
        "/api/v1/auth/login", json={"email": email, "password": PASSWORD}
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def register(client, email: str, role: str) -> dict:
    response = await client.post(
        "/api/v1/auth/register", json={"email": email, "password": PASSWORD, "role": role}
    )
    assert response.status_code == 201, response.text
    return await login(client, email)


async def assert_all_wallets_reconcile(services):
    async with services.database.session() as session:
        wallet_ids = (await session.execute(select(Wallet.id))).scalars().all()
    for wallet_id in wallet_ids:
        result = await services.wallets.reconcile(wallet_id)
        assert result.is_consistent, f"wallet {wallet_id} drifted by {result.drift}"


@pytest_asyncio.fixture
async def marketplace(client, services, make_user):
    """A seeker with 1000.00, an employee with a 500.00 posting, and an admin."""
    seeker = await register(client, "seeker@example.com", "job_seeker")
    employee = await register(client, "employee@example.com", "employee")
    await make_user("admin@example.com", UserRole.ADMIN)
    admin = await login(client, "admin@example.com")

    wallet = (await client.get("/api/v1/wallets/me", headers=seeker)).json()
    response = await client.post(
        f"/api/v1/wallets/{wallet['id']}/deposits",
        json={"amount": "1000.00", "gateway_transaction_id": "pay_001"},
        headers=admin,
    )
    assert response.status_code == 201, response.text

    response = await client.post(
        "/api/v1/jobs",
        json={
            "job_title": "Backend Engineer",
            "job_description": "Python services",
            "referral_fee": "500.00",
            "currency": "INR",
        },
        headers=employee,
    )
    assert response.status_code == 201, response.text

    return {
        "seeker": seeker,
        "employee": employee,
        "admin": admin,
        "seeker_wallet_id": wallet["id"],
        "job_posting_id": response.json()["id"],
    }


async def request_referral(client, marketplace) -> int:
    response = await client.post(
        "/api/v1/referrals",
        json={"job_posting_id": marketplace["job_posting_id"], "notes": "Hi!"},
        headers=marketplace["seeker"],
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def move(client, referral_id, status, headers):
    return await client.post(
        f"/api/v1/referrals/{referral_id}/transition",
        json={"status": status},
        headers=headers,
    )


async def signal_ats(services, referral_id, status):
    return await services.referrals.transition(referral_id, status, Actor.system())


async def wallet_balance(client, headers) -> Decimal:
    return Decimal((await client.get("/api/v1/wallets/me", headers=headers)).json()["balance"])


class TestEscrowScenario:
    """A successful referral pays the employee out of escrow."""

    @pytest.mark.asyncio
    async def test_successful_referral(self, client, services, marketplace):
        seeker, employee = marketplace["seeker"], marketplace["employee"]
        referral_id = await request_referral(client, marketplace)

        response = await move(client, referral_id, "in_progress", employee)
        assert response.status_code == 200, response.text
        assert response.json()["payment_status"] == "escrow"
        assert await wallet_balance(client, seeker) == Decimal("500")

        assert (await move(client, referral_id, "submitted_to_ats", employee)).status_code == 200
        await signal_ats(services, referral_id, ReferralStatus.INTERVIEWING)
        await signal_ats(services, referral_id, ReferralStatus.HIRED)

        response = await move(client, referral_id, "completed", seeker)
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "completed"
        assert response.json()["payment_status"] == "released"

        assert await wallet_balance(client, seeker) == Decimal("500")
        assert await wallet_balance(client, employee) == Decimal("500")

        history = (
            await client.get(f"/api/v1/referrals/{referral_id}/history", headers=seeker)
        ).json()
        assert [h["status"] for h in history] == [
            "pending_acceptance",
            "in_progress",
            "submitted_to_ats",
            "interviewing",
            "hired",
            "completed",
        ]

        await assert_all_wallets_reconcile(services)

    @pytest.mark.asyncio
    async def test_ledger_visible_to_owner_only(self, client, marketplace):
        wallet_id = marketplace["seeker_wallet_id"]

        own = await client.get(f"/api/v1/wallets/{wallet_id}/transactions", headers=marketplace["seeker"])
        other = await client.get(f"/api/v1/wallets/{wallet_id}/transactions", headers=marketplace["employee"])
        audit = await client.get(f"/api/v1/wallets/{wallet_id}/reconciliation", headers=marketplace["admin"])

        assert own.status_code == 200
        assert own.json()[0]["type"] == "deposit"
        assert own.json()[0]["metadata"]["recorded_by"]
        assert other.status_code == 403
        assert audit.json()["is_consistent"] is True

    @pytest.mark.asyncio
    async def test_only_admins_deposit(self, client, marketplace):
        response = await client.post(
            f"/api/v1/wallets/{marketplace['seeker_wallet_id']}/deposits",
            json={"amount": "1000000.00"},
            headers=marketplace["seeker"],
        )

        assert response.status_code == 403
        assert await wallet_balance(client, marketplace["seeker"]) == Decimal("1000")

    @pytest.mark.asyncio
    async def test_accept_without_funds(self, client, services, marketplace):
        poor = await register(client, "poor@example.com", "job_seeker")
        response = await client.post(
            "/api/v1/referrals",
            json={"job_posting_id": marketplace["job_posting_id"]},
            headers=poor,
        )
        referral_id = response.json()["id"]

        response = await move(client, referral_id, "in_progress", marketplace["employee"])

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INSUFFICIENT_FUNDS"
        referral = (await client.get(f"/api/v1/referrals/{referral_id}", headers=poor)).json()
        assert referral["status"] == "pending_acceptance"
        await assert_all_wallets_reconcile(services)

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client, marketplace):
        referral_id = await request_referral(client, marketplace)

        response = await move(client, referral_id, "hired", marketplace["admin"])

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_wrong_party(self, client, marketplace):
        referral_id = await request_referral(client, marketplace)

        response = await move(client, referral_id, "in_progress", marketplace["seeker"])

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"


class TestConcurrentTransitions:
    """Two ATS signals race from ``interviewing``; exactly one wins."""

    @pytest.mark.asyncio
    async def test_hired_vs_not_selected(self, client, services, marketplace):
        referral_id = await request_referral(client, marketplace)
        await move(client, referral_id, "in_progress", marketplace["employee"])
        await move(client, referral_id, "submitted_to_ats", marketplace["employee"])
        await signal_ats(services, referral_id, ReferralStatus.INTERVIEWING)

        results = await asyncio.gather(
            signal_ats(services, referral_id, ReferralStatus.HIRED),
            signal_ats(services, referral_id, ReferralStatus.NOT_SELECTED),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], InvalidTransition)

        referral = await services.referrals.get_referral(
            referral_id, Actor.system()
        )
        assert referral.status == winners[0].status
        history = await services.referrals.get_history(referral_id, Actor.system())
        assert [h.status for h in history][-1] == winners[0].status
        assert len(history) == 5

        await assert_all_wallets_reconcile(services)

    @pytest.mark.asyncio
    async def test_double_accept(self, client, services, marketplace):
        """Accepting twice at once never charges the seeker twice."""
        referral_id = await request_referral(client, marketplace)

        responses = await asyncio.gather(
            move(client, referral_id, "in_progress", marketplace["employee"]),
            move(client, referral_id, "in_progress", marketplace["employee"]),
        )

        assert sorted(r.status_code for r in responses) == [200, 409]
        assert await wallet_balance(client, marketplace["seeker"]) == Decimal("500")
        await assert_all_wallets_reconcile(services)


class TestDisputeScenario:
    @pytest.mark.asyncio
    async def test_dispute_refunds_seeker(self, client, services, marketplace):
        seeker, admin = marketplace["seeker"], marketplace["admin"]
        referral_id = await request_referral(client, marketplace)
        await move(client, referral_id, "in_progress", marketplace["employee"])

        response = await client.post(
            "/api/v1/disputes",
            json={"referral_request_id": referral_id, "reason": "No referral was submitted"},
            headers=seeker,
        )
        assert response.status_code == 201, response.text
        dispute_id = response.json()["id"]

        queue = (await client.get("/api/v1/disputes", headers=admin)).json()
        assert [d["id"] for d in queue] == [dispute_id]

        response = await client.post(f"/api/v1/disputes/{dispute_id}/review", headers=admin)
        assert response.json()["status"] == "under_review"

        response = await client.post(
            f"/api/v1/disputes/{dispute_id}/resolve",
            json={"outcome": "favor_seeker", "notes": "Refunded"},
            headers=admin,
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "resolved_in_favor_of_seeker"

        assert await wallet_balance(client, seeker) == Decimal("1000")
        referral = (await client.get(f"/api/v1/referrals/{referral_id}", headers=seeker)).json()
        assert referral["status"] == "disputed"
        assert referral["payment_status"] == "refunded"

        response = await client.post(
            "/api/v1/disputes",
            json={"referral_request_id": referral_id, "reason": "Again"},
            headers=seeker,
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DISPUTE_ALREADY_OPEN"

        await assert_all_wallets_reconcile(services)

    @pytest.mark.asyncio
    async def test_dispute_pays_employee(self, client, services, marketplace):
        referral_id = await request_referral(client, marketplace)
        await move(client, referral_id, "in_progress", marketplace["employee"])
        response = await client.post(
            "/api/v1/disputes",
            json={"referral_request_id": referral_id, "reason": "Seeker went silent"},
            headers=marketplace["employee"],
        )
        dispute_id = response.json()["id"]

        response = await client.post(
            f"/api/v1/disputes/{dispute_id}/resolve",
            json={"outcome": "favor_employee"},
            headers=marketplace["admin"],
        )
        assert response.status_code == 200, response.text

        assert await wallet_balance(client, marketplace["employee"]) == Decimal("500")
        assert await wallet_balance(client, marketplace["seeker"]) == Decimal("500")

        response = await client.post(
            f"/api/v1/disputes/{dispute_id}/resolve",
            json={"outcome": "favor_seeker"},
            headers=marketplace["admin"],
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DISPUTE_ALREADY_RESOLVED"

        await assert_all_wallets_reconcile(services)

    @pytest.mark.asyncio
    async def test_only_admins_resolve(self, client, marketplace):
        referral_id = await request_referral(client, marketplace)
        response = await client.post(
            "/api/v1/disputes",
            json={"referral_request_id": referral_id, "reason": "Ignored"},
            headers=marketplace["seeker"],
        )
        dispute_id = response.json()["id"]

        response = await client.post(
            f"/api/v1/disputes/{dispute_id}/resolve",
            json={"outcome": "favor_seeker"},
            headers=marketplace["seeker"],
        )

        assert response.status_code == 403
