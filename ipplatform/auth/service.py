"""
IP Platform - Authentication Service

Central orchestrator for registration, login, refresh-token rotation,
logout, and password lifecycle across all three principal classes.

Registration:
    role = user     -> account ACTIVE, welcome mail, no tokens
    role = analyst  -> account PENDING_DOCUMENT, empty application, token
                       pair issued immediately so document upload calls can
                       be authenticated; login stays blocked until approval

Login is refused for any non-ACTIVE account with a status-specific message.
Unknown usernames and wrong passwords produce the same generic failure.

Refresh rotation:
    The presented refresh session is consumed with a compare-and-swap and a
    new pair is issued in the same transaction. Presenting an already
    revoked or expired token revokes every session of that subject.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session as DBSession, select

from ipplatform.auth import accounts, applications, notifications, reset_tokens
from ipplatform.auth import sessions as session_store
from ipplatform.auth.accounts import Principal, principal_class_of, status_of
from ipplatform.auth.errors import (
    AccountNotActiveError,
    EmailTakenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidResetTokenError,
    InvalidRoleError,
    SessionExpiredError,
    UsernameTakenError,
    WrongCurrentPasswordError,
)
from ipplatform.auth.models import AccountStatus, Analyst, Role, User
from ipplatform.auth.notifications import NotificationSink
from ipplatform.auth.password import (
    hash_password,
    needs_rehash,
    validate_password_strength,
    verify_password,
)
from ipplatform.auth.tokens import CredentialSigner
from ipplatform.config import Settings, settings as default_settings


logger = logging.getLogger(__name__)

SELF_REGISTRATION_ROLES = {Role.USER, Role.ANALYST}

# Statuses that may keep refreshing; analysts need this to finish their application
REFRESHABLE_STATUSES = {
    AccountStatus.ACTIVE,
    AccountStatus.PENDING_DOCUMENT,
    AccountStatus.PENDING_REVIEW,
}


@dataclass
class TokenPair:
    """Access + refresh credentials returned by login, refresh and analyst registration."""
    access_token: str
    refresh_token: str
    expires_in: int
    principal: Principal


@dataclass
class Registration:
    principal: Principal
    tokens: Optional[TokenPair] = None


@lru_cache
def _timing_hash() -> str:
    # Checked against when the username is unknown so both failure paths cost a bcrypt round
    return hash_password("timing-equalizer-Password1")


class AuthService:
    """
    Coordinates the account state machine, the session store and the signer.

    One instance per request, bound to that request's database session.
    """

    def __init__(
        self,
        db: DBSession,
        signer: CredentialSigner,
        notifier: NotificationSink,
        config: Settings = default_settings,
    ):
        self.db = db
        self.signer = signer
        self.notifier = notifier
        self.config = config

    # =========================================================================
    # REGISTER
    # =========================================================================

    def register(
        self,
        username: str,
        email: str,
        password: str,
        name: Optional[str] = None,
        role: str = Role.USER.value,
    ) -> Registration:
        """
        Create a user or analyst account.

        Raises:
            UsernameTakenError / EmailTakenError: Collides with any principal class
            WeakPasswordError: Password policy not met
            InvalidRoleError: Role other than user or analyst
        """
        username = username.strip()
        email = email.strip().lower()

        if accounts.username_exists(self.db, username):
            raise UsernameTakenError()
        if accounts.email_exists(self.db, email):
            raise EmailTakenError()

        validate_password_strength(password)

        try:
            selected_role = Role(str(role).strip().lower())
        except ValueError:
            raise InvalidRoleError()
        if selected_role not in SELF_REGISTRATION_ROLES:
            raise InvalidRoleError("Registration is only allowed for user or analyst roles.")

        display_name = name.strip() if name and name.strip() else username
        now = datetime.utcnow()

        if selected_role == Role.ANALYST:
            principal = Analyst(
                username=username,
                email=email,
                password_hash=hash_password(password),
                name=display_name,
                role=Role.ANALYST,
                account_status=AccountStatus.PENDING_DOCUMENT,
                created_at=now,
                updated_at=now,
            )
            self.db.add(principal)
            applications.create_application(self.db, principal)
        else:
            principal = User(
                username=username,
                email=email,
                password_hash=hash_password(password),
                name=display_name,
                role=Role.USER,
                account_status=AccountStatus.ACTIVE,
                provider="local",
                created_at=now,
                updated_at=now,
            )
            self.db.add(principal)

        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration
            self.db.rollback()
            if accounts.username_exists(self.db, username):
                raise UsernameTakenError()
            raise EmailTakenError()
        self.db.refresh(principal)

        logger.info("Registered %s %s", principal_class_of(principal).value, principal.username)

        if selected_role == Role.ANALYST:
            subject, body = notifications.analyst_pending_message(display_name)
            notifications.notify(self.notifier, email, subject, body)
            return Registration(principal=principal, tokens=self._issue_token_pair(principal, False))

        subject, body = notifications.welcome_message(display_name)
        notifications.notify(self.notifier, email, subject, body)
        return Registration(principal=principal)

    # =========================================================================
    # LOGIN
    # =========================================================================

    def login(self, username: str, password: str, remember_me: bool = False) -> TokenPair:
        """
        Authenticate with username and password.

        Raises:
            InvalidCredentialsError: Unknown username, wrong password, or a
                federated-only account without a password
            AccountNotActiveError: Credentials matched but status is not ACTIVE
        """
        principal = accounts.find_by_username(self.db, username.strip())

        if principal is None:
            verify_password(password, _timing_hash())
            logger.warning("Login failed: unknown username")
            raise InvalidCredentialsError()

        if not principal.password_hash or not verify_password(password, principal.password_hash):
            logger.warning("Login failed for %s: bad password", principal.username)
            raise InvalidCredentialsError()

        status = status_of(principal)
        if status != AccountStatus.ACTIVE:
            logger.info("Login blocked for %s: status %s", principal.username, status.value)
            raise AccountNotActiveError(status)

        # Upgrade the hash when the configured work factor has increased
        if needs_rehash(principal.password_hash):
            principal.password_hash = hash_password(password)
            self.db.add(principal)
            self.db.commit()

        pair = self._issue_token_pair(principal, remember_me)
        logger.info("Login succeeded for %s", principal.username)
        return pair

    # =========================================================================
    # REFRESH (with rotation)
    # =========================================================================

    def refresh(self, raw_refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair, consuming the old one.

        Raises:
            InvalidRefreshTokenError: Token unknown to the session store
            SessionExpiredError: Token already revoked or expired; every
                session of the subject is revoked
            AccountNotActiveError: Subject has been suspended or rejected
        """
        stored = session_store.find_by_token(self.db, raw_refresh_token)
        if stored is None:
            raise InvalidRefreshTokenError()

        principal_class = stored.principal_class
        principal_id = stored.principal_id
        remember_me = stored.remember_me

        if not session_store.claim_for_rotation(self.db, raw_refresh_token):
            self.db.rollback()
            revoked = session_store.revoke_all_for_subject(self.db, principal_class, principal_id)
            logger.warning(
                "Refresh token reuse for %s %s; revoked %d sessions",
                principal_class.value, principal_id, revoked,
            )
            raise SessionExpiredError()

        principal = accounts.get_principal(self.db, principal_class, principal_id)
        if principal is None:
            self.db.commit()
            raise InvalidRefreshTokenError()

        status = status_of(principal)
        if status not in REFRESHABLE_STATUSES:
            self.db.commit()
            raise AccountNotActiveError(status)

        pair = self._issue_token_pair(principal, remember_me, commit=False)
        self.db.commit()
        return pair

    # =========================================================================
    # LOGOUT
    # =========================================================================

    def logout(self, raw_refresh_token: str) -> None:
        """Revoke one session. Unknown tokens are ignored."""
        stored = session_store.find_by_token(self.db, raw_refresh_token)
        if stored is not None:
            session_store.revoke_session(self.db, stored)
            logger.info("Logged out session of %s %s", stored.principal_class.value, stored.principal_id)

    def logout_all(self, principal: Principal) -> int:
        """Revoke every session of the principal."""
        principal_class = principal_class_of(principal)
        count = session_store.revoke_all_for_subject(self.db, principal_class, principal.id)
        logger.info("Logged out %d sessions of %s", count, principal.username)
        return count

    # =========================================================================
    # PASSWORD LIFECYCLE
    # =========================================================================

    def forgot_password(self, email: str) -> None:
        """
        Mint a reset token and mail it.

        Always succeeds from the caller's point of view so addresses cannot
        be enumerated; federated-only accounts are silently skipped.
        """
        principal = accounts.find_by_email(self.db, email.strip().lower())
        if principal is None or not principal.password_hash:
            return

        ttl_minutes = self.config.PASSWORD_RESET_EXPIRE_MINUTES
        reset_token = reset_tokens.issue_reset_token(
            self.db,
            principal_class_of(principal),
            principal.id,
            timedelta(minutes=ttl_minutes),
        )

        subject, body = notifications.password_reset_message(reset_token.token, ttl_minutes)
        notifications.notify(self.notifier, principal.email, subject, body)
        logger.info("Password reset issued for %s", principal.username)

    def reset_password(self, token: str, new_password: str) -> None:
        """
        Consume a reset token and set a new password.

        The token is burned even if the owning account has disappeared.
        All sessions of the principal are revoked.

        Raises:
            WeakPasswordError: New password does not meet policy
            InvalidResetTokenError: Token unknown, used or expired
        """
        validate_password_strength(new_password)

        stored = reset_tokens.find_reset_token(self.db, token)
        if stored is None:
            raise InvalidResetTokenError()

        principal_class = stored.principal_class
        principal_id = stored.principal_id

        if not reset_tokens.consume_reset_token(self.db, token):
            self.db.rollback()
            raise InvalidResetTokenError()

        principal = accounts.get_principal(self.db, principal_class, principal_id)
        if principal is None:
            self.db.commit()
            raise InvalidResetTokenError()

        principal.password_hash = hash_password(new_password)
        principal.updated_at = datetime.utcnow()
        self.db.add(principal)
        session_store.revoke_all_for_subject(self.db, principal_class, principal_id, commit=False)
        self.db.commit()

        logger.info("Password reset completed for %s", principal.username)

    def change_password(
        self,
        principal: Principal,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Change password after confirming the current one.

        Every session is revoked, including the caller's.

        Raises:
            WrongCurrentPasswordError: Current password wrong or account has none
            WeakPasswordError: New password does not meet policy
        """
        if not principal.password_hash or not verify_password(current_password, principal.password_hash):
            raise WrongCurrentPasswordError()

        validate_password_strength(new_password)

        principal.password_hash = hash_password(new_password)
        principal.updated_at = datetime.utcnow()
        self.db.add(principal)
        session_store.revoke_all_for_subject(
            self.db, principal_class_of(principal), principal.id, commit=False
        )
        self.db.commit()

        logger.info("Password changed for %s", principal.username)

    # =========================================================================
    # FEDERATED LOGIN
    # =========================================================================

    def provision_oauth_user(
        self,
        email: str,
        name: Optional[str],
        provider: str,
        provider_id: str,
    ) -> TokenPair:
        """
        Find or create the user behind a federated identity and issue tokens.

        Returning identity -> profile refreshed; local user with the same
        email -> provider linked; otherwise a new ACTIVE user without a
        password is created.

        Raises:
            EmailTakenError: Email belongs to an analyst or admin
            AccountNotActiveError: Linked user is not ACTIVE
        """
        email = email.strip().lower()
        user = self.db.exec(
            select(User).where(User.provider == provider, User.provider_id == provider_id)
        ).first()

        if user is None:
            existing = accounts.find_by_email(self.db, email)
            if existing is not None and not isinstance(existing, User):
                raise EmailTakenError()
            user = existing

        now = datetime.utcnow()
        if user is None:
            user = User(
                username=self._generate_username(email),
                email=email,
                name=name or email,
                password_hash=None,
                role=Role.USER,
                account_status=AccountStatus.ACTIVE,
                created_at=now,
            )
            logger.info("Provisioned federated user %s via %s", user.username, provider)

        if name:
            user.name = name
        user.provider = provider
        user.provider_id = provider_id
        user.updated_at = now
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        if user.account_status != AccountStatus.ACTIVE:
            raise AccountNotActiveError(user.account_status)

        return self._issue_token_pair(user, False)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def get_principal(self, principal_class, principal_id: UUID) -> Principal:
        return accounts.require_principal(self.db, principal_class, principal_id)

    def _issue_token_pair(
        self,
        principal: Principal,
        remember_me: bool,
        commit: bool = True,
    ) -> TokenPair:
        """Sign an access token and persist a matching refresh session."""
        principal_class = principal_class_of(principal)
        days = (
            self.config.REMEMBER_ME_EXPIRE_DAYS
            if remember_me
            else self.config.REFRESH_TOKEN_EXPIRE_DAYS
        )
        ttl = timedelta(days=days)

        access_token = self.signer.issue_access_token(
            str(principal.id), principal.role.value, principal_class
        )
        refresh_token = self.signer.issue_refresh_token(str(principal.id), ttl)

        session_store.create_session(
            self.db,
            token=refresh_token,
            principal_class=principal_class,
            principal_id=principal.id,
            ttl=ttl,
            remember_me=remember_me,
            commit=commit,
        )

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.signer.access_token_expiry_seconds,
            principal=principal,
        )

    def _generate_username(self, email: str) -> str:
        base = re.sub(r"[^a-zA-Z0-9]", "", email.split("@")[0]) or "user"
        candidate = base
        suffix = 1
        while accounts.username_exists(self.db, candidate):
            candidate = f"{base}{suffix}"
            suffix += 1
        return candidate
