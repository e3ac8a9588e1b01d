"""
API Services Layer.

The core services, each built around an injected ``Database`` handle.
``build_services`` wires them together once per application.
"""

from dataclasses import dataclass

from core.config import Settings
from database.engine import Database

from api.services.audit import AuditRecorder
from api.services.auth import TokenPair, TokenService
from api.services.credentials import CredentialStore, VerificationKind
from api.services.disputes import DisputeOutcome, DisputeResolver
from api.services.jobs import JobPostingService
from api.services.referrals import TRANSITIONS, PAYMENT_STATES, ReferralService
from api.services.wallets import Reconciliation, WalletLedger


@dataclass
class ServiceContainer:
    database: Database
    settings: Settings
    credentials: CredentialStore
    tokens: TokenService
    wallets: WalletLedger
    jobs: JobPostingService
    referrals: ReferralService
    disputes: DisputeResolver
    audit: AuditRecorder


def build_services(database: Database, settings: Settings) -> ServiceContainer:
    """Construct every service on one storage handle and attach the audit subscriber."""
    credentials = CredentialStore(database, settings)
    wallets = WalletLedger(database, settings)
    referrals = ReferralService(database, wallets, settings)
    audit = AuditRecorder(database)
    audit.attach(database.events)

    return ServiceContainer(
        database=database,
        settings=settings,
        credentials=credentials,
        tokens=TokenService(database, credentials, settings),
        wallets=wallets,
        jobs=JobPostingService(database, settings),
        referrals=referrals,
        disputes=DisputeResolver(database, referrals),
        audit=audit,
    )


__all__ = [
    "ServiceContainer",
    "build_services",
    # Credentials / tokens
    "CredentialStore",
    "VerificationKind",
    "TokenService",
    "TokenPair",
    # Ledger
    "WalletLedger",
    "Reconciliation",
    # Referrals / disputes
    "JobPostingService",
    "ReferralService",
    "TRANSITIONS",
    "PAYMENT_STATES",
    "DisputeResolver",
    "DisputeOutcome",
    "AuditRecorder",
]
