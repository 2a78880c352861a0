"""
IP Platform - Authentication API Test Suite

Integration tests through the HTTP surface for:
- Register / login / refresh / logout
- Bearer token gate (TOKEN_EXPIRED vs TOKEN_INVALID)
- Password reset and change
- Security headers

Run with: pytest tests/test_auth.py -v
"""

from datetime import timedelta

from ipplatform.auth.models import PrincipalClass
from tests.conftest import (
    USER_PASSWORD,
    auth_headers,
    login_user,
    reset_token_from,
)


# =============================================================================
# REGISTER
# =============================================================================

class TestRegisterEndpoint:
    """Integration tests for POST /auth/register."""

    def test_register_user(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"username": "dave", "email": "dave@test.com", "password": "Password1"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["tokens"] is None
        assert data["principal"]["account_status"] == "ACTIVE"
        assert data["principal"]["principal_class"] == "USER"

    def test_register_analyst_returns_tokens(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={
                "username": "erin",
                "email": "erin@test.com",
                "password": "Password1",
                "role": "analyst",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["principal"]["account_status"] == "PENDING_DOCUMENT"
        assert data["tokens"]["access_token"]
        assert data["tokens"]["refresh_token"]

    def test_register_weak_password(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"username": "frank", "email": "frank@test.com", "password": "password"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "WEAK_PASSWORD"

    def test_register_duplicate_username(self, client, test_user):
        response = client.post(
            "/api/v1/auth/register",
            json={"username": "bob", "email": "other@test.com", "password": "Password1"},
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "USERNAME_TAKEN"

    def test_register_bad_email_format(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"username": "gina", "email": "not-an-email", "password": "Password1"},
        )

        assert response.status_code == 422


# =============================================================================
# LOGIN
# =============================================================================

class TestLoginEndpoint:
    """Integration tests for POST /auth/login."""

    def test_login_success(self, client, test_user):
        response = client.post(
            "/api/v1/auth/login",
            json={"username": "bob", "password": USER_PASSWORD},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 900
        assert data["principal"]["username"] == "bob"

    def test_login_failures_look_identical(self, client, test_user):
        wrong_password = client.post(
            "/api/v1/auth/login",
            json={"username": "bob", "password": "WrongPass1"},
        )
        unknown_user = client.post(
            "/api/v1/auth/login",
            json={"username": "nobody", "password": "WrongPass1"},
        )

        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert wrong_password.json()["detail"] == "Invalid credentials"

    def test_login_pending_analyst(self, client):
        client.post(
            "/api/v1/auth/register",
            json={
                "username": "erin",
                "email": "erin@test.com",
                "password": "Password1",
                "role": "analyst",
            },
        )

        response = client.post(
            "/api/v1/auth/login",
            json={"username": "erin", "password": "Password1"},
        )

        assert response.status_code == 401
        assert response.json()["error_code"] == "ACCOUNT_NOT_ACTIVE"
        assert "identity documents" in response.json()["detail"]


# =============================================================================
# REFRESH / LOGOUT
# =============================================================================

class TestRefreshAndLogout:
    """Rotation and session revocation over HTTP."""

    def test_refresh_rotation_and_reuse(self, client, test_user):
        tokens = login_user(client, "bob", USER_PASSWORD)

        first = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        replay = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert first.status_code == 200
        assert replay.status_code == 401
        assert replay.json()["error_code"] == "SESSION_EXPIRED"

        # The rotated token died with the rest of the family
        rotated = client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": first.json()["refresh_token"]},
        )
        assert rotated.status_code == 401

    def test_refresh_unknown_token(self, client):
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": "bogus"})

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_TOKEN"

    def test_logout_twice(self, client, test_user):
        tokens = login_user(client, "bob", USER_PASSWORD)
        body = {"refresh_token": tokens["refresh_token"]}

        assert client.post("/api/v1/auth/logout", json=body).status_code == 200
        assert client.post("/api/v1/auth/logout", json=body).status_code == 200
        assert client.post("/api/v1/auth/refresh", json=body).status_code == 401

    def test_logout_all(self, client, test_user):
        first = login_user(client, "bob", USER_PASSWORD)
        second = login_user(client, "bob", USER_PASSWORD)

        response = client.post(
            "/api/v1/auth/logout-all",
            headers=auth_headers(first["access_token"]),
        )

        assert response.status_code == 200
        assert response.json()["sessions_revoked"] == 2
        for tokens in (first, second):
            refreshed = client.post(
                "/api/v1/auth/refresh",
                json={"refresh_token": tokens["refresh_token"]},
            )
            assert refreshed.status_code == 401


# =============================================================================
# BEARER TOKEN GATE
# =============================================================================

class TestRequestAuthenticator:
    """The middleware distinguishes expired from invalid tokens."""

    def test_me_with_valid_token(self, client, test_user):
        tokens = login_user(client, "bob", USER_PASSWORD)

        response = client.get("/api/v1/auth/me", headers=auth_headers(tokens["access_token"]))

        assert response.status_code == 200
        assert response.json()["email"] == "bob@test.com"

    def test_missing_header_on_protected_route(self, client):
        response = client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error_code"] == "NOT_AUTHENTICATED"

    def test_missing_header_on_public_route(self, client):
        assert client.get("/health").status_code == 200

    def test_expired_token(self, client, signer, test_user):
        token = signer.issue_access_token(
            str(test_user.id), "user", PrincipalClass.USER, ttl=timedelta(seconds=-10)
        )

        response = client.get("/health", headers=auth_headers(token))

        assert response.status_code == 401
        assert response.json()["error_code"] == "TOKEN_EXPIRED"

    def test_garbage_token(self, client):
        response = client.get("/api/v1/auth/me", headers=auth_headers("garbage"))

        assert response.status_code == 401
        assert response.json()["error_code"] == "TOKEN_INVALID"

    def test_refresh_token_as_bearer(self, client, test_user):
        tokens = login_user(client, "bob", USER_PASSWORD)

        response = client.get("/api/v1/auth/me", headers=auth_headers(tokens["refresh_token"]))

        assert response.status_code == 401
        assert response.json()["error_code"] == "TOKEN_INVALID"

    def test_non_bearer_scheme_passes_through(self, client):
        response = client.get("/health", headers={"Authorization": "Basic Ym9iOnB3"})

        assert response.status_code == 200

    def test_security_headers(self, client):
        response = client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Request-ID"]


# =============================================================================
# PASSWORD LIFECYCLE
# =============================================================================

class TestPasswordEndpoints:
    """forgot / reset / change password over HTTP."""

    def test_forgot_password_same_answer_for_unknown_email(self, client, test_user):
        known = client.post("/api/v1/auth/forgot-password", json={"email": "bob@test.com"})
        unknown = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@test.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    def test_reset_password_flow(self, client, notifier, test_user):
        client.post("/api/v1/auth/forgot-password", json={"email": "bob@test.com"})
        token = reset_token_from(notifier, "bob@test.com")

        response = client.post(
            "/api/v1/auth/reset-password",
            json={"token": token, "new_password": "BrandNew9"},
        )
        replay = client.post(
            "/api/v1/auth/reset-password",
            json={"token": token, "new_password": "Another99"},
        )

        assert response.status_code == 200
        assert replay.status_code == 401
        assert replay.json()["error_code"] == "INVALID_OR_EXPIRED_TOKEN"
        assert login_user(client, "bob", "BrandNew9") is not None

    def test_change_password_revokes_sessions(self, client, test_user):
        tokens = login_user(client, "bob", USER_PASSWORD)

        response = client.post(
            "/api/v1/auth/change-password",
            headers=auth_headers(tokens["access_token"]),
            json={"current_password": USER_PASSWORD, "new_password": "Changed123"},
        )
        refreshed = client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": tokens["refresh_token"]},
        )

        assert response.status_code == 200
        assert refreshed.status_code == 401
        assert login_user(client, "bob", "Changed123") is not None

    def test_change_password_wrong_current(self, client, test_user):
        tokens = login_user(client, "bob", USER_PASSWORD)

        response = client.post(
            "/api/v1/auth/change-password",
            headers=auth_headers(tokens["access_token"]),
            json={"current_password": "NotMine123", "new_password": "Changed123"},
        )

        assert response.status_code == 401
        assert response.json()["error_code"] == "WRONG_CURRENT_PASSWORD"
