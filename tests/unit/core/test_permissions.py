"""Tests for actor permission checks."""

from signoff.core.permissions import Actor, PermissionChecker, is_admin


class TestPermissionChecker:
    """Tests for PermissionChecker."""

    def test_exact_permission(self):
        checker = PermissionChecker(["approvals:manage"])
        assert checker.has_permission("approvals:manage")
        assert not checker.has_permission("approvals:delete")

    def test_resource_wildcard(self):
        checker = PermissionChecker(["approvals:*"])
        assert checker.has_permission("approvals:manage")
        assert not checker.has_permission("users:manage")

    def test_global_wildcard(self):
        assert PermissionChecker(["*:*"]).has_permission("anything:at_all")

    def test_no_permissions(self):
        assert not PermissionChecker([]).has_permission("approvals:manage")


class TestActor:
    """Tests for the Actor model."""

    def test_is_admin(self):
        assert is_admin(Actor(user_id="u1", permissions=["approvals:manage"]), "approvals:manage")
        assert not is_admin(Actor(user_id="u2"), "approvals:manage")