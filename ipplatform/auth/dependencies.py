"""
IP Platform - Security Dependencies

FastAPI dependencies for authentication and authorization.

The bearer token is verified once per request by the gateway middleware,
which leaves the decoded claims on request.state. These dependencies only
read those claims; they never re-verify the token.

Usage:
    @router.get("/protected")
    def protected_route(principal: AuthenticatedPrincipal = Depends(get_current_principal)):
        ...

    @router.get("/admin-only")
    def admin_route(principal: AuthenticatedPrincipal = Depends(require_permission(Permission.MANAGE_PRINCIPALS))):
        ...

Security:
- RBAC is deny-by-default
- Authorization switches on role and principal class, never on table type
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Generator, Optional, Set
from uuid import UUID

import yaml
from fastapi import BackgroundTasks, Depends, Request
from pydantic import BaseModel
from sqlmodel import Session as DBSession

from ipplatform.auth.errors import NotAuthenticatedError, PermissionDeniedError
from ipplatform.auth.models import PrincipalClass, Role
from ipplatform.auth.notifications import BackgroundNotifier, NotificationSink
from ipplatform.auth.service import AuthService
from ipplatform.auth.tokens import CredentialSigner, TokenClaims


logger = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = Path(__file__).parent.parent / "gateway" / "policies.yaml"


class Permission(str, Enum):
    """
    Granular permissions for RBAC.

    Permissions follow resource:action pattern.
    """
    READ_PROFILE = "read:profile"
    SUBMIT_APPLICATION = "submit:application"
    REVIEW_APPLICATIONS = "review:applications"
    MANAGE_PRINCIPALS = "manage:principals"


class AuthenticatedPrincipal(BaseModel):
    """
    Identity proven by the current request's access token.

    Available in route handlers via Depends(get_current_principal).
    """
    principal_id: UUID
    role: Role
    principal_class: PrincipalClass
    token_id: str  # jti for log correlation

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "AuthenticatedPrincipal":
        return cls(
            principal_id=claims.principal_id,
            role=Role(claims.role),
            principal_class=claims.pcl,
            token_id=claims.jti,
        )


class RBACPolicy:
    """
    Role-Based Access Control policy manager.

    Loads role-permission mappings from policies.yaml.
    Only explicit grants are allowed.
    """

    _instance: Optional["RBACPolicy"] = None
    _policies: Dict[str, Set[str]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._policies = cls.load(DEFAULT_POLICY_PATH)
        return cls._instance

    @staticmethod
    def load(policy_path: Path) -> Dict[str, Set[str]]:
        """Read role grants from YAML; a missing file grants nothing."""
        if not policy_path.exists():
            logger.warning("RBAC policy file %s not found; denying everything", policy_path)
            return {}

        with open(policy_path, "r") as f:
            config = yaml.safe_load(f) or {}

        return {
            role: set(perms or [])
            for role, perms in config.get("roles", {}).items()
        }

    def has_permission(self, role: str, permission: Permission) -> bool:
        """
        Check if a role has a specific permission.

        Args:
            role: Role claim
            permission: Required permission

        Returns:
            True if permitted, False otherwise (deny-by-default)
        """
        return permission.value in self._policies.get(role, set())

    def get_role_permissions(self, role: str) -> Set[str]:
        return set(self._policies.get(role, set()))


# =============================================================================
# REQUEST-SCOPED RESOURCES
# =============================================================================

def get_db(request: Request) -> Generator[DBSession, None, None]:
    """Open a database session from app state and close it after the request."""
    db = request.app.state.db_session_factory()
    try:
        yield db
    finally:
        db.close()


def get_signer(request: Request) -> CredentialSigner:
    return request.app.state.signer


def get_notifier(request: Request, background_tasks: BackgroundTasks) -> NotificationSink:
    """Wrap the app sink so mail goes out after the response is sent."""
    return BackgroundNotifier(request.app.state.notifier, background_tasks)


def get_auth_service(
    db: DBSession = Depends(get_db),
    signer: CredentialSigner = Depends(get_signer),
    notifier: NotificationSink = Depends(get_notifier),
) -> AuthService:
    return AuthService(db, signer, notifier)


# =============================================================================
# AUTHENTICATION / AUTHORIZATION
# =============================================================================

def get_current_principal(request: Request) -> AuthenticatedPrincipal:
    """
    Return the principal authenticated by the gateway middleware.

    Raises:
        NotAuthenticatedError: Request carried no bearer token
    """
    claims: Optional[TokenClaims] = getattr(request.state, "claims", None)
    if claims is None:
        raise NotAuthenticatedError()
    return AuthenticatedPrincipal.from_claims(claims)


def require_permission(permission: Permission):
    """
    Build a dependency that enforces an RBAC permission.

    Usage:
        principal: AuthenticatedPrincipal = Depends(require_permission(Permission.REVIEW_APPLICATIONS))

    Raises:
        PermissionDeniedError: Role lacks the permission
    """
    def dependency(
        principal: AuthenticatedPrincipal = Depends(get_current_principal),
    ) -> AuthenticatedPrincipal:
        if not RBACPolicy().has_permission(principal.role.value, permission):
            logger.warning(
                "Permission %s denied to %s %s",
                permission.value, principal.principal_class.value, principal.principal_id,
            )
            raise PermissionDeniedError(f"Permission denied: {permission.value}")
        return principal

    return dependency


def require_principal_class(principal_class: PrincipalClass, permission: Permission):
    """
    Build a dependency requiring both a principal class and a permission.

    Used where the handler works on rows that only exist for one class,
    such as the analyst's own application.
    """
    check_permission = require_permission(permission)

    def dependency(
        principal: AuthenticatedPrincipal = Depends(check_permission),
    ) -> AuthenticatedPrincipal:
        if principal.principal_class != principal_class:
            raise PermissionDeniedError(f"Requires {principal_class.value.lower()} account")
        return principal

    return dependency
