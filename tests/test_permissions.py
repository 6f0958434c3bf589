"""Module catalog evaluation and grant management."""

import pytest

from portal_gateway.core.errors import NotFound, ValidationFailed
from portal_gateway.core.time import as_utc
from portal_gateway.services.permissions import (
    MODULE_IDS,
    PermissionEvaluator,
    is_grantable_module,
    is_valid_module,
)

from .conftest import ADMIN_EMAIL


class TestEvaluator:
    def test_admin_gets_every_module_without_grants(self, evaluator):
        permissions = evaluator.evaluate(ADMIN_EMAIL, [])
        assert set(permissions) == set(MODULE_IDS)
        assert all(permissions.values())

    def test_admin_match_is_case_insensitive(self, evaluator):
        assert evaluator.is_admin(" Admin@Example.COM ")
        assert not evaluator.is_admin(None)

    def test_plain_user_only_gets_universal_modules(self, evaluator):
        permissions = evaluator.evaluate("someone@example.com", [])
        assert {m for m, allowed in permissions.items() if allowed} == {"profile", "mini-games"}

    def test_grant_gated_module(self, evaluator):
        permissions = evaluator.evaluate("someone@example.com", ["favor"])
        assert permissions["favor"] is True
        assert permissions["gd"] is False

    def test_explicit_admin_grant_is_ignored(self, evaluator):
        assert evaluator.evaluate("someone@example.com", ["admin"])["admin"] is False

    def test_unknown_modules_are_ignored(self, evaluator):
        permissions = evaluator.evaluate("someone@example.com", ["favour", "rm -rf"])
        assert set(permissions) == set(MODULE_IDS)
        assert "favour" not in permissions

    def test_allowlist_is_injected(self):
        evaluator = PermissionEvaluator(["boss@corp.test"])
        assert evaluator.evaluate("boss@corp.test", [])["admin"] is True
        assert evaluator.evaluate(ADMIN_EMAIL, [])["admin"] is False

    def test_catalog_helpers(self):
        assert is_valid_module("admin")
        assert not is_valid_module("nope")
        assert is_grantable_module("discover")
        assert not is_grantable_module("profile")
        assert not is_grantable_module("admin")


class TestPermissionService:
    def test_grant_and_revoke(self, permissions, make_user):
        user = make_user("grantee@example.com")
        permissions.grant(user.id, "gd", granted_by="admin-id")
        assert permissions.permissions_for(user)["gd"] is True
        assert permissions.granted_modules(user.id) == ["gd"]

        assert permissions.revoke(user.id, "gd") is True
        assert permissions.revoke(user.id, "gd") is False
        assert permissions.permissions_for(user)["gd"] is False

    def test_grant_is_idempotent(self, permissions, make_user):
        user = make_user("twice@example.com")
        first = permissions.grant(user.id, "favor")
        second = permissions.grant(user.id, "favor")
        assert first.id == second.id
        assert len(permissions.list_grants(user.id)) == 1

    @pytest.mark.parametrize("module_id", ["admin", "profile", "unknown"])
    def test_only_grant_gated_modules_can_be_granted(self, permissions, make_user, module_id):
        user = make_user("nope@example.com")
        with pytest.raises(ValidationFailed):
            permissions.grant(user.id, module_id)

    def test_grant_to_missing_user(self, permissions):
        with pytest.raises(NotFound):
            permissions.grant("missing", "favor")

    def test_admin_user(self, permissions, make_user):
        admin = make_user(ADMIN_EMAIL)
        assert permissions.is_admin(admin)
        assert all(permissions.permissions_for(admin).values())

    def test_grant_is_stamped_with_the_service_clock(self, permissions, make_user, clock):
        user = make_user("stamped@example.com")
        clock.advance(hours=3)
        grant = permissions.grant(user.id, "discover")
        assert as_utc(grant.granted_at) == clock()
