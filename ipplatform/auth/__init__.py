"""
IP Platform - Authentication Package

Authentication core with:
- Signed access tokens plus durable, rotating refresh sessions
- bcrypt password hashing
- Account status state machine and analyst application review
- RBAC with deny-by-default
"""

from ipplatform.auth.models import AccountStatus, PrincipalClass, Role
from ipplatform.auth.service import AuthService, TokenPair
from ipplatform.auth.tokens import CredentialSigner

__all__ = [
    "AccountStatus",
    "PrincipalClass",
    "Role",
    "AuthService",
    "TokenPair",
    "CredentialSigner",
]
