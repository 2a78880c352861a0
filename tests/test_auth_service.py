"""
IP Platform - Auth Orchestrator Tests

Registration, login, refresh rotation with reuse detection, logout,
password lifecycle and federated provisioning, exercised against the
service layer directly.

Run with: pytest tests/test_auth_service.py -v
"""

from datetime import timedelta

import pytest

from ipplatform.auth import applications, reset_tokens
from ipplatform.auth import sessions as session_store
from ipplatform.auth.errors import (
    AccountNotActiveError,
    EmailTakenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidResetTokenError,
    InvalidRoleError,
    SessionExpiredError,
    UsernameTakenError,
    WeakPasswordError,
    WrongCurrentPasswordError,
)
from ipplatform.auth.models import (
    AccountStatus,
    ApplicationStatus,
    PrincipalClass,
    Role,
    User,
)
from ipplatform.auth.service import AuthService
from ipplatform.auth.tokens import TokenType
from tests.conftest import (
    ADMIN_PASSWORD,
    PDF_BYTES,
    USER_PASSWORD,
    FailingNotifier,
    create_user,
    reset_token_from,
)


# =============================================================================
# REGISTRATION
# =============================================================================

class TestRegister:
    """Self-registration of users and analysts."""

    def test_register_user_is_active_without_tokens(self, service, notifier):
        registration = service.register("dave", "Dave@Test.com", "Password1", name="Dave")

        assert registration.tokens is None
        assert isinstance(registration.principal, User)
        assert registration.principal.account_status == AccountStatus.ACTIVE
        assert registration.principal.email == "dave@test.com"
        assert notifier.to("dave@test.com")[0]["subject"].startswith("Welcome")

    def test_register_analyst_gets_tokens_and_application(self, db_session, service, signer):
        registration = service.register("erin", "erin@test.com", "Password1", role="ANALYST")
        analyst = registration.principal

        assert analyst.account_status == AccountStatus.PENDING_DOCUMENT
        claims = signer.verify(registration.tokens.access_token, TokenType.ACCESS)
        assert claims.role == "analyst"
        assert claims.pcl == PrincipalClass.ANALYST
        application = applications.get_application_for_analyst(db_session, analyst.id)
        assert application.status == ApplicationStatus.AWAITING_DOCUMENTS

    def test_username_taken_across_principal_classes(self, service, test_admin):
        with pytest.raises(UsernameTakenError):
            service.register("root", "fresh@test.com", "Password1")

    def test_email_taken_across_principal_classes(self, service, test_admin):
        with pytest.raises(EmailTakenError):
            service.register("fresh", "ROOT@test.com", "Password1", role="analyst")

    def test_weak_password(self, service):
        with pytest.raises(WeakPasswordError):
            service.register("frank", "frank@test.com", "password")

    @pytest.mark.parametrize("role", ["admin", "superuser"])
    def test_invalid_role(self, service, role):
        with pytest.raises(InvalidRoleError):
            service.register("gina", "gina@test.com", "Password1", role=role)

    def test_notification_failure_keeps_registration(self, db_session, signer):
        service = AuthService(db_session, signer, FailingNotifier())

        registration = service.register("hank", "hank@test.com", "Password1")

        assert registration.principal.id is not None

    def test_register_then_login_only_for_users(self, service):
        service.register("ivan", "ivan@test.com", "Password1", role="user")
        service.register("judy", "judy@test.com", "Password1", role="analyst")

        assert service.login("ivan", "Password1").access_token
        with pytest.raises(AccountNotActiveError) as exc_info:
            service.login("judy", "Password1")
        assert exc_info.value.status == AccountStatus.PENDING_DOCUMENT
        assert "upload your identity documents" in exc_info.value.message


# =============================================================================
# LOGIN
# =============================================================================

class TestLogin:
    """Password login for every principal class."""

    def test_login_user(self, service, signer, test_user):
        pair = service.login("bob", USER_PASSWORD)

        claims = signer.verify(pair.access_token, TokenType.ACCESS)
        assert claims.principal_id == test_user.id
        assert claims.pcl == PrincipalClass.USER
        assert pair.expires_in == 900

    def test_login_admin(self, service, signer, test_admin):
        pair = service.login("root", ADMIN_PASSWORD)

        assert signer.verify(pair.access_token, TokenType.ACCESS).role == "admin"

    def test_wrong_password_and_unknown_user_are_indistinguishable(self, service, test_user):
        with pytest.raises(InvalidCredentialsError) as wrong_password:
            service.login("bob", "WrongPass1")
        with pytest.raises(InvalidCredentialsError) as unknown_user:
            service.login("nobody", "WrongPass1")

        assert wrong_password.value.message == unknown_user.value.message
        assert wrong_password.value.code == unknown_user.value.code

    def test_status_checked_only_after_password(self, db_session, service):
        create_user(db_session, "sam", "sam@test.com", USER_PASSWORD, AccountStatus.SUSPENDED)

        with pytest.raises(InvalidCredentialsError):
            service.login("sam", "WrongPass1")
        with pytest.raises(AccountNotActiveError):
            service.login("sam", USER_PASSWORD)

    def test_remember_me_session_lifetime(self, db_session, service, test_user):
        short = service.login("bob", USER_PASSWORD)
        persistent = service.login("bob", USER_PASSWORD, remember_me=True)

        short_session = session_store.find_by_token(db_session, short.refresh_token)
        long_session = session_store.find_by_token(db_session, persistent.refresh_token)

        assert short_session.expires_at - short_session.created_at == timedelta(days=7)
        assert long_session.expires_at - long_session.created_at == timedelta(days=30)
        assert long_session.remember_me is True

    def test_login_rehashes_weak_hash(self, db_session, service, monkeypatch):
        import bcrypt
        from ipplatform.config import settings

        user = create_user(db_session, "old", "old@test.com", USER_PASSWORD)
        monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 5)

        service.login("old", USER_PASSWORD)

        db_session.refresh(user)
        assert user.password_hash.startswith("$2b$05$")
        assert bcrypt.checkpw(USER_PASSWORD.encode(), user.password_hash.encode())


# =============================================================================
# REFRESH
# =============================================================================

class TestRefresh:
    """Rotation and reuse detection."""

    def test_refresh_rotates(self, db_session, service, test_user):
        pair = service.login("bob", USER_PASSWORD)

        rotated = service.refresh(pair.refresh_token)

        assert rotated.refresh_token != pair.refresh_token
        assert session_store.find_by_token(db_session, pair.refresh_token).revoked is True
        assert session_store.find_by_token(db_session, rotated.refresh_token).is_valid()

    def test_same_token_succeeds_exactly_once(self, db_session, service, test_user):
        pair = service.login("bob", USER_PASSWORD)
        rotated = service.refresh(pair.refresh_token)

        with pytest.raises(SessionExpiredError):
            service.refresh(pair.refresh_token)

        # Reuse revoked the whole family, including the fresh token
        assert session_store.get_active_sessions(db_session, PrincipalClass.USER, test_user.id) == []
        with pytest.raises(SessionExpiredError):
            service.refresh(rotated.refresh_token)

    def test_unknown_token(self, service):
        with pytest.raises(InvalidRefreshTokenError):
            service.refresh("not-a-token")

    def test_expired_session_triggers_revocation(self, db_session, service, signer, test_user):
        live = service.login("bob", USER_PASSWORD)
        stale = signer.issue_refresh_token(str(test_user.id), timedelta(seconds=-1))
        session_store.create_session(
            db_session, stale, PrincipalClass.USER, test_user.id, timedelta(seconds=-1)
        )

        with pytest.raises(SessionExpiredError):
            service.refresh(stale)

        assert session_store.find_by_token(db_session, live.refresh_token).revoked is True

    def test_remember_me_inherited(self, db_session, service, test_user):
        pair = service.login("bob", USER_PASSWORD, remember_me=True)

        rotated = service.refresh(pair.refresh_token)

        assert session_store.find_by_token(db_session, rotated.refresh_token).remember_me is True

    def test_pending_analyst_can_refresh(self, service):
        registration = service.register("kate", "kate@test.com", "Password1", role="analyst")

        assert service.refresh(registration.tokens.refresh_token).access_token


# =============================================================================
# LOGOUT
# =============================================================================

class TestLogout:
    """Single-session and all-session logout."""

    def test_logout_is_idempotent(self, db_session, service, test_user):
        pair = service.login("bob", USER_PASSWORD)

        service.logout(pair.refresh_token)
        service.logout(pair.refresh_token)

        assert session_store.find_by_token(db_session, pair.refresh_token).revoked is True

    def test_logout_unknown_token_is_silent(self, service):
        service.logout("never-issued")

    def test_logout_all(self, service, test_user):
        first = service.login("bob", USER_PASSWORD)
        second = service.login("bob", USER_PASSWORD)

        assert service.logout_all(test_user) == 2
        for pair in (first, second):
            with pytest.raises(SessionExpiredError):
                service.refresh(pair.refresh_token)


# =============================================================================
# PASSWORD LIFECYCLE
# =============================================================================

class TestPasswordReset:
    """forgot-password / reset-password."""

    def test_forgot_password_unknown_email_is_silent(self, service, notifier):
        service.forgot_password("ghost@test.com")

        assert notifier.sent == []

    def test_forgot_password_sends_link(self, db_session, service, notifier, test_user):
        service.forgot_password("BOB@test.com")

        token = reset_token_from(notifier, "bob@test.com")
        assert "/reset-password?token=" in notifier.to("bob@test.com")[-1]["body"]
        assert reset_tokens.find_reset_token(db_session, token).is_valid()

    def test_reset_password(self, service, notifier, test_user):
        pair = service.login("bob", USER_PASSWORD)
        service.forgot_password("bob@test.com")
        token = reset_token_from(notifier, "bob@test.com")

        service.reset_password(token, "BrandNew9")

        assert service.login("bob", "BrandNew9").access_token
        with pytest.raises(InvalidCredentialsError):
            service.login("bob", USER_PASSWORD)
        with pytest.raises(SessionExpiredError):
            service.refresh(pair.refresh_token)

    def test_reset_token_single_use(self, service, notifier, test_user):
        service.forgot_password("bob@test.com")
        token = reset_token_from(notifier, "bob@test.com")

        service.reset_password(token, "BrandNew9")

        with pytest.raises(InvalidResetTokenError):
            service.reset_password(token, "Another99")

    def test_second_request_invalidates_first_link(self, service, notifier, test_user):
        service.forgot_password("bob@test.com")
        first = reset_token_from(notifier, "bob@test.com")
        service.forgot_password("bob@test.com")

        with pytest.raises(InvalidResetTokenError):
            service.reset_password(first, "BrandNew9")

    def test_expired_reset_token(self, db_session, service, test_user):
        token = reset_tokens.issue_reset_token(
            db_session, PrincipalClass.USER, test_user.id, timedelta(minutes=-1)
        ).token

        with pytest.raises(InvalidResetTokenError):
            service.reset_password(token, "BrandNew9")

    def test_weak_password_keeps_token_usable(self, db_session, service, notifier, test_user):
        service.forgot_password("bob@test.com")
        token = reset_token_from(notifier, "bob@test.com")

        with pytest.raises(WeakPasswordError):
            service.reset_password(token, "weak")

        service.reset_password(token, "BrandNew9")


class TestChangePassword:
    """Authenticated password change."""

    def test_change_password_revokes_every_session(self, service, test_user):
        first = service.login("bob", USER_PASSWORD)
        second = service.login("bob", USER_PASSWORD, remember_me=True)

        service.change_password(test_user, USER_PASSWORD, "Changed123")

        for pair in (first, second):
            with pytest.raises(SessionExpiredError):
                service.refresh(pair.refresh_token)
        assert service.login("bob", "Changed123").access_token

    def test_wrong_current_password(self, service, test_user):
        with pytest.raises(WrongCurrentPasswordError):
            service.change_password(test_user, "NotMine123", "Changed123")

    def test_weak_new_password(self, service, test_user):
        with pytest.raises(WeakPasswordError):
            service.change_password(test_user, USER_PASSWORD, "short")


# =============================================================================
# FEDERATED LOGIN
# =============================================================================

class TestFederatedProvisioning:
    """Accounts created or linked through an external identity provider."""

    def test_new_federated_user(self, service, signer):
        pair = service.provision_oauth_user("liz.w@gmail.com", "Liz W", "google", "g-123")
        user = pair.principal

        assert user.password_hash is None
        assert user.username == "lizw"
        assert user.provider == "google"
        assert signer.verify(pair.access_token, TokenType.ACCESS).role == Role.USER.value

    def test_returning_federated_user_reuses_account(self, service):
        first = service.provision_oauth_user("liz@gmail.com", "Liz", "google", "g-123")
        again = service.provision_oauth_user("liz@gmail.com", "Elizabeth", "google", "g-123")

        assert again.principal.id == first.principal.id
        assert again.principal.name == "Elizabeth"

    def test_links_existing_local_user(self, service, test_user):
        pair = service.provision_oauth_user("bob@test.com", None, "github", "gh-9")

        assert pair.principal.id == test_user.id
        assert pair.principal.provider == "github"
        assert service.login("bob", USER_PASSWORD).access_token

    def test_generated_username_avoids_collision(self, service, test_user):
        pair = service.provision_oauth_user("bob@elsewhere.com", "Other Bob", "google", "g-7")

        assert pair.principal.username == "bob1"

    def test_email_owned_by_admin_refused(self, service, test_admin):
        with pytest.raises(EmailTakenError):
            service.provision_oauth_user("root@test.com", "Root", "google", "g-1")

    def test_federated_only_account_cannot_use_password(self, service, notifier):
        pair = service.provision_oauth_user("max@gmail.com", "Max", "google", "g-5")

        with pytest.raises(InvalidCredentialsError):
            service.login(pair.principal.username, "Anything1")
        with pytest.raises(WrongCurrentPasswordError):
            service.change_password(pair.principal, "Anything1", "Changed123")

        service.forgot_password("max@gmail.com")
        assert notifier.to("max@gmail.com") == []


# =============================================================================
# END-TO-END
# =============================================================================

class TestAnalystJourney:
    """Register, document, submit, approve, log in."""

    def test_alice_becomes_active_analyst(self, db_session, service, notifier, test_admin):
        registration = service.register("alice", "a@x.com", "Secret1!", role="analyst")
        alice = registration.principal

        assert registration.tokens.access_token
        assert alice.account_status == AccountStatus.PENDING_DOCUMENT

        applications.upload_document(
            db_session, alice.id, "PASSPORT", "passport.pdf", "application/pdf", PDF_BYTES
        )
        application = applications.submit_application(db_session, alice.id, notifier)

        db_session.refresh(alice)
        assert alice.account_status == AccountStatus.PENDING_REVIEW
        assert application.status == ApplicationStatus.SUBMITTED

        applications.approve_application(db_session, application.id, test_admin.username, None, notifier)

        db_session.refresh(alice)
        db_session.refresh(application)
        assert alice.account_status == AccountStatus.ACTIVE
        assert application.status == ApplicationStatus.APPROVED

        pair = service.login("alice", "Secret1!")
        assert pair.principal.id == alice.id
