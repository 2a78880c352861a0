"""
IP Platform - RBAC Tests

Unit tests for role-based access control.
Tests permission checks, policy loading, and route guards.

Run with: pytest tests/test_rbac.py
"""

from uuid import uuid4

import pytest

from ipplatform.auth.dependencies import (
    AuthenticatedPrincipal,
    Permission,
    RBACPolicy,
    require_permission,
    require_principal_class,
)
from ipplatform.auth.errors import PermissionDeniedError
from ipplatform.auth.models import PrincipalClass, Role
from tests.conftest import ADMIN_PASSWORD, USER_PASSWORD, auth_headers, login_user


class TestRBACPolicy:
    """Tests for RBAC policy enforcement."""

    def test_admin_permissions(self):
        policy = RBACPolicy()

        assert policy.has_permission("admin", Permission.REVIEW_APPLICATIONS)
        assert policy.has_permission("admin", Permission.MANAGE_PRINCIPALS)
        assert not policy.has_permission("admin", Permission.SUBMIT_APPLICATION)

    def test_analyst_permissions(self):
        policy = RBACPolicy()

        assert policy.has_permission("analyst", Permission.SUBMIT_APPLICATION)
        assert policy.has_permission("analyst", Permission.READ_PROFILE)
        assert not policy.has_permission("analyst", Permission.REVIEW_APPLICATIONS)

    def test_user_profile_only(self):
        assert RBACPolicy().get_role_permissions("user") == {"read:profile"}

    def test_unknown_role_denied(self):
        policy = RBACPolicy()

        assert not policy.has_permission("unknown_role", Permission.READ_PROFILE)
        assert policy.get_role_permissions("unknown_role") == set()

    def test_missing_policy_file_grants_nothing(self, tmp_path):
        assert RBACPolicy.load(tmp_path / "absent.yaml") == {}

    def test_load_custom_policy(self, tmp_path):
        path = tmp_path / "policies.yaml"
        path.write_text("roles:\n  user:\n    - read:profile\n  analyst:\n")

        assert RBACPolicy.load(path) == {"user": {"read:profile"}, "analyst": set()}


def _principal(role: Role, principal_class: PrincipalClass) -> AuthenticatedPrincipal:
    return AuthenticatedPrincipal(
        principal_id=uuid4(),
        role=role,
        principal_class=principal_class,
        token_id="0" * 32,
    )


class TestPermissionGuards:
    """Tests for the dependency factories."""

    def test_authorized_principal_allowed(self):
        guard = require_permission(Permission.REVIEW_APPLICATIONS)
        admin = _principal(Role.ADMIN, PrincipalClass.ADMIN)

        assert guard(principal=admin) is admin

    def test_unauthorized_principal_denied(self):
        guard = require_permission(Permission.REVIEW_APPLICATIONS)

        with pytest.raises(PermissionDeniedError):
            guard(principal=_principal(Role.USER, PrincipalClass.USER))

    def test_principal_class_checked(self):
        guard = require_principal_class(PrincipalClass.ANALYST, Permission.READ_PROFILE)

        with pytest.raises(PermissionDeniedError):
            guard(principal=_principal(Role.USER, PrincipalClass.USER))


class TestRouteGuards:
    """Role checks through the HTTP surface."""

    def test_user_cannot_reach_admin_routes(self, client, test_user):
        tokens = login_user(client, "bob", USER_PASSWORD)

        response = client.get("/api/v1/admin/applications", headers=auth_headers(tokens["access_token"]))

        assert response.status_code == 403
        assert response.json()["error_code"] == "PERMISSION_DENIED"

    def test_user_cannot_reach_analyst_routes(self, client, test_user):
        tokens = login_user(client, "bob", USER_PASSWORD)

        response = client.get("/api/v1/analyst/application", headers=auth_headers(tokens["access_token"]))

        assert response.status_code == 403

    def test_admin_lists_principals(self, client, test_admin, test_user):
        tokens = login_user(client, "root", ADMIN_PASSWORD)

        response = client.get("/api/v1/admin/principals", headers=auth_headers(tokens["access_token"]))

        assert response.status_code == 200
        usernames = {p["username"] for p in response.json()}
        assert {"root", "bob"} <= usernames
