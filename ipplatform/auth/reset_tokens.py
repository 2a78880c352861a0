"""
IP Platform - Password Reset Tokens

One-shot tokens minted by forgot-password and consumed by reset-password.
"""

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID
import secrets

from sqlalchemy import delete, or_, update
from sqlmodel import Session as DBSession, select

from ipplatform.auth.models import PasswordResetToken, PrincipalClass


def issue_reset_token(
    db: DBSession,
    principal_class: PrincipalClass,
    principal_id: UUID,
    ttl: timedelta,
) -> PasswordResetToken:
    """
    Replace any earlier tokens for the principal with a fresh one.

    Deleting the old rows first means only the most recent link works.
    """
    db.execute(
        delete(PasswordResetToken).where(
            PasswordResetToken.principal_class == principal_class,
            PasswordResetToken.principal_id == principal_id,
        )
    )

    now = datetime.utcnow()
    reset_token = PasswordResetToken(
        token=secrets.token_urlsafe(32),
        principal_class=principal_class,
        principal_id=principal_id,
        expires_at=now + ttl,
        used=False,
        created_at=now,
    )
    db.add(reset_token)
    db.commit()
    db.refresh(reset_token)
    return reset_token


def find_reset_token(db: DBSession, token: str) -> Optional[PasswordResetToken]:
    statement = select(PasswordResetToken).where(PasswordResetToken.token == token)
    return db.exec(statement).first()


def sweep_used_or_expired(db: DBSession, now: Optional[datetime] = None) -> int:
    """Delete reset tokens that are used or past expiry."""
    now = now or datetime.utcnow()
    result = db.execute(
        delete(PasswordResetToken).where(
            or_(PasswordResetToken.used == True, PasswordResetToken.expires_at < now)  # noqa: E712
        )
    )
    db.commit()
    return result.rowcount


def consume_reset_token(db: DBSession, token: str, now: Optional[datetime] = None) -> bool:
    """
    Atomically mark a token used if it is still valid.

    Does not commit; the caller commits with the password change so that
    two concurrent resets with one token cannot both win.

    Returns:
        True if this caller consumed the token
    """
    now = now or datetime.utcnow()
    result = db.execute(
        update(PasswordResetToken)
        .where(
            PasswordResetToken.token == token,
            PasswordResetToken.used == False,  # noqa: E712
            PasswordResetToken.expires_at > now,
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
