"""Tests for actor capabilities."""

import pytest

from core.exceptions import PermissionDenied
from core.permissions import (
    Actor,
    ActorRole,
    Permission,
    ROLE_PERMISSIONS,
    require_permission,
)


class TestRolePermissions:
    @pytest.mark.parametrize("role,permission,expected", [
        (ActorRole.JOB_SEEKER, Permission.REFERRAL_REQUEST, True),
        (ActorRole.JOB_SEEKER, Permission.REFERRAL_CONFIRM, True),
        (ActorRole.JOB_SEEKER, Permission.REFERRAL_RESPOND, False),
        (ActorRole.JOB_SEEKER, Permission.JOB_POST, False),
        (ActorRole.EMPLOYEE, Permission.JOB_POST, True),
        (ActorRole.EMPLOYEE, Permission.REFERRAL_RESPOND, True),
        (ActorRole.EMPLOYEE, Permission.REFERRAL_CONFIRM, False),
        (ActorRole.EMPLOYEE, Permission.DISPUTE_RESOLVE, False),
        (ActorRole.ADMIN, Permission.DISPUTE_RESOLVE, True),
        (ActorRole.ADMIN, Permission.REFERRAL_SIGNAL_ATS, True),
        (ActorRole.ADMIN, Permission.REFERRAL_REQUEST, False),
        (ActorRole.SYSTEM, Permission.REFERRAL_SIGNAL_ATS, True),
        (ActorRole.SYSTEM, Permission.WALLET_DEPOSIT, False),
    ])
    def test_can(self, role, permission, expected):
        actor = Actor(user_id=1, role=role)
        assert actor.can(permission) is expected

    def test_every_role_has_permissions(self):
        for role in ActorRole:
            assert ROLE_PERMISSIONS[role]

    def test_both_parties_can_open_disputes(self):
        assert Actor(1, ActorRole.JOB_SEEKER).can(Permission.DISPUTE_OPEN)
        assert Actor(2, ActorRole.EMPLOYEE).can(Permission.DISPUTE_OPEN)


class TestActor:
    def test_system_actor(self):
        actor = Actor.system()

        assert actor.user_id is None
        assert actor.role == ActorRole.SYSTEM
        assert not actor.is_admin

    def test_is_admin(self):
        assert Actor(1, ActorRole.ADMIN).is_admin
        assert not Actor(1, ActorRole.EMPLOYEE).is_admin


class TestRequirePermission:
    def test_allows(self):
        require_permission(Actor(1, ActorRole.EMPLOYEE), Permission.JOB_POST)

    def test_denies(self, caplog):
        with pytest.raises(PermissionDenied) as exc_info:
            require_permission(Actor(7, ActorRole.JOB_SEEKER), Permission.JOB_POST)

        assert exc_info.value.status_code == 403
        assert "job:post" in exc_info.value.message
        assert "user=7" in caplog.text
