"""
IP Platform - Principal Directory and Account Status

Lookup across the three principal tables and the admin-driven account
status transitions (suspend, reinstate, role assignment).

Account status state machine (users and analysts):

    register as user     -> ACTIVE
    register as analyst  -> PENDING_DOCUMENT
    PENDING_DOCUMENT     -> PENDING_REVIEW   (analyst submits application)
    PENDING_REVIEW       -> ACTIVE | REJECTED (admin review)
    any state            -> SUSPENDED        (admin suspends)
    SUSPENDED            -> ACTIVE           (admin reinstates a user)
    SUSPENDED            -> status implied by the application (admin reinstates an analyst)

Review-driven transitions are applied by ipplatform.auth.applications in the
same transaction as the application change; this module owns the rest.
"""

import logging
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from sqlmodel import Session as DBSession, select

from ipplatform.auth import sessions as session_store
from ipplatform.auth.errors import (
    InvalidRoleError,
    InvalidTransitionError,
    PrincipalNotFoundError,
)
from ipplatform.auth.models import (
    AccountStatus,
    Admin,
    Analyst,
    AnalystApplication,
    ApplicationStatus,
    PrincipalClass,
    Role,
    User,
)
from ipplatform.auth.password import hash_password


logger = logging.getLogger(__name__)

Principal = Union[User, Analyst, Admin]

PRINCIPAL_MODELS = {
    PrincipalClass.USER: User,
    PrincipalClass.ANALYST: Analyst,
    PrincipalClass.ADMIN: Admin,
}

# Allowed (from, to) pairs for users and analysts
ACCOUNT_TRANSITIONS: dict[AccountStatus, set[AccountStatus]] = {
    AccountStatus.PENDING_DOCUMENT: {AccountStatus.PENDING_REVIEW, AccountStatus.SUSPENDED},
    AccountStatus.PENDING_REVIEW: {
        AccountStatus.ACTIVE,
        AccountStatus.REJECTED,
        AccountStatus.SUSPENDED,
    },
    AccountStatus.ACTIVE: {AccountStatus.SUSPENDED},
    AccountStatus.REJECTED: {AccountStatus.SUSPENDED},
    AccountStatus.SUSPENDED: {
        AccountStatus.ACTIVE,
        AccountStatus.PENDING_DOCUMENT,
        AccountStatus.PENDING_REVIEW,
        AccountStatus.REJECTED,
    },
}

# Analyst account status that goes with each application status
ACCOUNT_STATUS_FOR: dict[ApplicationStatus, AccountStatus] = {
    ApplicationStatus.AWAITING_DOCUMENTS: AccountStatus.PENDING_DOCUMENT,
    ApplicationStatus.SUBMITTED: AccountStatus.PENDING_REVIEW,
    ApplicationStatus.UNDER_REVIEW: AccountStatus.PENDING_REVIEW,
    ApplicationStatus.APPROVED: AccountStatus.ACTIVE,
    ApplicationStatus.REJECTED: AccountStatus.REJECTED,
}

# Roles an admin may assign to non-admin principals
ASSIGNABLE_ROLES = {Role.USER, Role.ANALYST}


def principal_class_of(principal: Principal) -> PrincipalClass:
    for principal_class, model in PRINCIPAL_MODELS.items():
        if isinstance(principal, model):
            return principal_class
    raise TypeError(f"Not a principal: {type(principal).__name__}")


def status_of(principal: Principal) -> AccountStatus:
    """
    Effective account status.

    Admins only have an active flag; an inactive admin reads as SUSPENDED.
    """
    if isinstance(principal, Admin):
        return AccountStatus.ACTIVE if principal.is_active else AccountStatus.SUSPENDED
    return principal.account_status


def get_principal(
    db: DBSession,
    principal_class: PrincipalClass,
    principal_id: UUID,
) -> Optional[Principal]:
    return db.get(PRINCIPAL_MODELS[principal_class], principal_id)


def require_principal(
    db: DBSession,
    principal_class: PrincipalClass,
    principal_id: UUID,
) -> Principal:
    principal = get_principal(db, principal_class, principal_id)
    if principal is None:
        raise PrincipalNotFoundError()
    return principal


def find_by_username(db: DBSession, username: str) -> Optional[Principal]:
    """Find a principal by username across all three tables."""
    for model in PRINCIPAL_MODELS.values():
        principal = db.exec(select(model).where(model.username == username)).first()
        if principal is not None:
            return principal
    return None


def find_by_email(db: DBSession, email: str) -> Optional[Principal]:
    """Find a principal by email across all three tables."""
    for model in PRINCIPAL_MODELS.values():
        principal = db.exec(select(model).where(model.email == email)).first()
        if principal is not None:
            return principal
    return None


def username_exists(db: DBSession, username: str) -> bool:
    return find_by_username(db, username) is not None


def email_exists(db: DBSession, email: str) -> bool:
    return find_by_email(db, email) is not None


def list_principals(db: DBSession) -> list[Principal]:
    principals: list[Principal] = []
    for model in PRINCIPAL_MODELS.values():
        principals.extend(db.exec(select(model).order_by(model.created_at)).all())
    return principals


def ensure_default_admin(
    db: DBSession,
    username: str,
    password: str,
    email: str,
    name: Optional[str] = None,
) -> Optional[Admin]:
    """
    Create the bootstrap admin unless the username or email is already taken.

    Returns:
        The created Admin, or None if nothing was created
    """
    if not password:
        logger.info("No default admin password configured; skipping admin seed")
        return None
    if username_exists(db, username) or email_exists(db, email):
        return None

    now = datetime.utcnow()
    admin = Admin(
        username=username,
        email=email.lower(),
        password_hash=hash_password(password),
        name=name or username,
        role=Role.ADMIN,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)

    logger.info("Seeded default admin %s", admin.username)
    return admin


def apply_status(principal: Union[User, Analyst], target: AccountStatus) -> None:
    """
    Move a user or analyst to target status, enforcing the transition table.

    Does not commit.

    Raises:
        InvalidTransitionError: If the move is not allowed from the current status
    """
    current = principal.account_status
    if target not in ACCOUNT_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(
            f"Cannot move account from {current.value} to {target.value}"
        )
    principal.account_status = target
    principal.updated_at = datetime.utcnow()


def suspend(db: DBSession, principal_class: PrincipalClass, principal_id: UUID) -> Principal:
    """
    Suspend a principal and revoke all of its refresh sessions.

    Suspending an already suspended principal is a conflict.
    """
    principal = require_principal(db, principal_class, principal_id)

    if isinstance(principal, Admin):
        if not principal.is_active:
            raise InvalidTransitionError("Admin account is already disabled")
        principal.is_active = False
        principal.updated_at = datetime.utcnow()
    else:
        apply_status(principal, AccountStatus.SUSPENDED)

    db.add(principal)
    session_store.revoke_all_for_subject(db, principal_class, principal_id, commit=False)
    db.commit()
    db.refresh(principal)

    logger.info("Suspended %s %s", principal_class.value, principal_id)
    return principal


def _reinstated_status(db: DBSession, principal: Union[User, Analyst]) -> AccountStatus:
    if not isinstance(principal, Analyst):
        return AccountStatus.ACTIVE
    application = db.exec(
        select(AnalystApplication).where(AnalystApplication.analyst_id == principal.id)
    ).first()
    if application is None:
        return AccountStatus.PENDING_DOCUMENT
    return ACCOUNT_STATUS_FOR[application.status]


def reinstate(db: DBSession, principal_class: PrincipalClass, principal_id: UUID) -> Principal:
    """
    Lift a suspension.

    Users return to ACTIVE. Analysts return to the status their application
    implies, so only an approved analyst becomes ACTIVE again.
    """
    principal = require_principal(db, principal_class, principal_id)

    if isinstance(principal, Admin):
        if principal.is_active:
            raise InvalidTransitionError("Admin account is not disabled")
        principal.is_active = True
        principal.updated_at = datetime.utcnow()
    else:
        if principal.account_status != AccountStatus.SUSPENDED:
            raise InvalidTransitionError("User is not suspended")
        apply_status(principal, _reinstated_status(db, principal))

    db.add(principal)
    db.commit()
    db.refresh(principal)

    logger.info("Reinstated %s %s", principal_class.value, principal_id)
    return principal


def assign_role(
    db: DBSession,
    principal_class: PrincipalClass,
    principal_id: UUID,
    role: Role,
) -> Principal:
    """
    Change the role claim of a user or analyst.

    All refresh sessions are revoked so no token with the old role can be
    refreshed; outstanding access tokens lapse on their own short expiry.
    """
    if principal_class == PrincipalClass.ADMIN or role not in ASSIGNABLE_ROLES:
        raise InvalidRoleError()

    principal = require_principal(db, principal_class, principal_id)
    if principal.role == role:
        return principal

    principal.role = role
    principal.updated_at = datetime.utcnow()
    db.add(principal)
    session_store.revoke_all_for_subject(db, principal_class, principal_id, commit=False)
    db.commit()
    db.refresh(principal)

    logger.info("Assigned role %s to %s %s", role.value, principal_class.value, principal_id)
    return principal
