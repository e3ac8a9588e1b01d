"""
Capability checks performed inside core operations.

Callers identify themselves with an ``Actor``; each operation asks for the
capability it needs instead of trusting an outer middleware layer.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Set

from core.exceptions import PermissionDenied

logger = logging.getLogger(__name__)


class ActorRole(str, Enum):
    """Who is driving an operation."""

    JOB_SEEKER = "job_seeker"
    EMPLOYEE = "employee"
    ADMIN = "admin"
    SYSTEM = "system"  # external ATS / employer signals


class Permission(str, Enum):
    """System-wide capabilities."""

    # Referrals
    REFERRAL_REQUEST = "referral:request"
    REFERRAL_RESPOND = "referral:respond"
    REFERRAL_CONFIRM = "referral:confirm"
    REFERRAL_SIGNAL_ATS = "referral:signal_ats"
    REFERRAL_VIEW_ANY = "referral:view_any"

    # Jobs
    JOB_POST = "job:post"

    # Disputes
    DISPUTE_OPEN = "dispute:open"
    DISPUTE_REVIEW = "dispute:review"
    DISPUTE_RESOLVE = "dispute:resolve"

    # Wallets
    WALLET_VIEW_ANY = "wallet:view_any"
    WALLET_DEPOSIT = "wallet:deposit"

    # Users
    USER_MANAGE = "user:manage"


ROLE_PERMISSIONS: dict[ActorRole, Set[Permission]] = {
    ActorRole.JOB_SEEKER: {
        Permission.REFERRAL_REQUEST,
        Permission.REFERRAL_CONFIRM,
        Permission.DISPUTE_OPEN,
    },
    ActorRole.EMPLOYEE: {
        Permission.JOB_POST,
        Permission.REFERRAL_RESPOND,
        Permission.DISPUTE_OPEN,
    },
    ActorRole.ADMIN: {
        Permission.REFERRAL_CONFIRM,
        Permission.REFERRAL_SIGNAL_ATS,
        Permission.REFERRAL_VIEW_ANY,
        Permission.DISPUTE_REVIEW,
        Permission.DISPUTE_RESOLVE,
        Permission.WALLET_VIEW_ANY,
        Permission.WALLET_DEPOSIT,
        Permission.USER_MANAGE,
    },
    ActorRole.SYSTEM: {
        Permission.REFERRAL_SIGNAL_ATS,
    },
}


@dataclass(frozen=True)
class Actor:
    """An authenticated caller (or the system itself)."""

    user_id: Optional[int]
    role: ActorRole

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=None, role=ActorRole.SYSTEM)

    @property
    def permissions(self) -> Set[Permission]:
        return ROLE_PERMISSIONS.get(self.role, set())

    def can(self, permission: Permission) -> bool:
        return permission in self.permissions

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def require_permission(actor: Actor, permission: Permission) -> None:
    """
    Raise ``PermissionDenied`` unless the actor holds the capability.

    Args:
        actor: The caller
        permission: Capability required by the operation
    """
    if not actor.can(permission):
        logger.warning(
            f"Permission denied: user={actor.user_id} role={actor.role.value} "
            f"permission={permission.value}"
        )
        raise PermissionDenied(f"Missing permission: {permission.value}")
