"""
IP Platform - Refresh Session Store

Durable record of issued refresh credentials.
Sessions enable immediate revocation, rotation and reuse detection.

Security:
- Token values are unique at the table level; a collision is rejected
- Rotation claims the presented row with a single conditional UPDATE, so two
  concurrent refreshes with the same token can never both succeed
- Expired and revoked rows are removed by a periodic sweep, never on the
  request path
"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session as DBSession, select

from ipplatform.auth.errors import TokenCollisionError
from ipplatform.auth.models import PrincipalClass, RefreshSession


logger = logging.getLogger(__name__)


def create_session(
    db: DBSession,
    token: str,
    principal_class: PrincipalClass,
    principal_id: UUID,
    ttl: timedelta,
    remember_me: bool = False,
    commit: bool = True,
) -> RefreshSession:
    """
    Persist a new refresh session.

    Args:
        db: Database session
        token: Raw refresh token
        principal_class: Subject's principal table
        principal_id: Subject identifier
        ttl: Session lifetime
        remember_me: Long-lived session flag, inherited on rotation
        commit: Commit immediately; pass False to join a wider transaction

    Returns:
        Created RefreshSession

    Raises:
        TokenCollisionError: If the token value already exists
    """
    now = datetime.utcnow()
    session = RefreshSession(
        token=token,
        principal_class=principal_class,
        principal_id=principal_id,
        expires_at=now + ttl,
        revoked=False,
        remember_me=remember_me,
        created_at=now,
    )

    db.add(session)
    try:
        if commit:
            db.commit()
            db.refresh(session)
        else:
            db.flush()
    except IntegrityError as e:
        db.rollback()
        logger.error("Refresh token collision for %s %s", principal_class.value, principal_id)
        raise TokenCollisionError() from e

    return session


def find_by_token(db: DBSession, token: str) -> Optional[RefreshSession]:
    """Look up a refresh session by its raw token value."""
    statement = select(RefreshSession).where(RefreshSession.token == token)
    return db.exec(statement).first()


def claim_for_rotation(db: DBSession, token: str, now: Optional[datetime] = None) -> bool:
    """
    Atomically revoke a session only if it is still valid.

    Compare-and-swap on the revoked flag: the UPDATE matches only a row
    that is unrevoked and unexpired. Does not commit; the caller commits
    together with the replacement session.

    Returns:
        True if this caller consumed the session, False if it was already
        revoked, expired or missing
    """
    now = now or datetime.utcnow()
    statement = (
        update(RefreshSession)
        .where(
            RefreshSession.token == token,
            RefreshSession.revoked == False,  # noqa: E712
            RefreshSession.expires_at > now,
        )
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(statement)
    return result.rowcount == 1


def revoke_session(db: DBSession, session: RefreshSession) -> None:
    """
    Mark a single session revoked (logout one device).

    Idempotent: revoking an already revoked session is a no-op.
    """
    if session.revoked:
        return
    session.revoked = True
    db.add(session)
    db.commit()


def revoke_all_for_subject(
    db: DBSession,
    principal_class: PrincipalClass,
    principal_id: UUID,
    commit: bool = True,
) -> int:
    """
    Revoke every session owned by a subject (force logout everywhere).

    Use cases:
        - Logout all devices
        - Password change or reset
        - Refresh token reuse detection
        - Suspension and role changes

    Returns:
        Number of sessions revoked
    """
    statement = (
        update(RefreshSession)
        .where(
            RefreshSession.principal_class == principal_class,
            RefreshSession.principal_id == principal_id,
            RefreshSession.revoked == False,  # noqa: E712
        )
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(statement)
    if commit:
        db.commit()
    return result.rowcount


def get_active_sessions(
    db: DBSession,
    principal_class: PrincipalClass,
    principal_id: UUID,
) -> list[RefreshSession]:
    """Get all valid sessions for a subject."""
    now = datetime.utcnow()

    statement = select(RefreshSession).where(
        RefreshSession.principal_class == principal_class,
        RefreshSession.principal_id == principal_id,
        RefreshSession.revoked == False,  # noqa: E712
        RefreshSession.expires_at > now,
    )

    return list(db.exec(statement).all())


def sweep_expired_or_revoked(db: DBSession, now: Optional[datetime] = None) -> int:
    """
    Delete sessions that are expired or revoked.

    Should be run periodically (see ipplatform.auth.cleanup).

    Returns:
        Number of sessions deleted
    """
    now = now or datetime.utcnow()
    statement = delete(RefreshSession).where(
        or_(RefreshSession.expires_at < now, RefreshSession.revoked == True)  # noqa: E712
    )
    result = db.execute(statement)
    db.commit()
    return result.rowcount
