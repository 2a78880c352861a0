"""
IP Platform - Authentication Routes

API endpoints for authentication:
- POST /auth/register         - Create user or analyst account
- POST /auth/login            - Authenticate and issue token pair
- POST /auth/refresh          - Rotate refresh token
- POST /auth/logout           - Revoke one refresh session
- POST /auth/logout-all       - Revoke every session of the caller
- POST /auth/forgot-password  - Mail a reset link
- POST /auth/reset-password   - Set a new password with a reset token
- POST /auth/change-password  - Change password while logged in
- GET  /auth/me               - Current principal profile

Handlers are plain functions so blocking database and bcrypt work runs in
the threadpool. Service errors are rendered by the app-level handler.
"""

from fastapi import APIRouter, Depends, status

from ipplatform.auth.dependencies import (
    AuthenticatedPrincipal,
    get_auth_service,
    get_current_principal,
)
from ipplatform.auth.schemas import (
    ChangePasswordRequest,
    ErrorResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutAllResponse,
    MessageResponse,
    PrincipalResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
)
from ipplatform.auth.service import AuthService, TokenPair


router = APIRouter(prefix="/auth", tags=["authentication"])

FORGOT_PASSWORD_MESSAGE = "If that email is registered, a reset link has been sent."


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        principal=PrincipalResponse.from_principal(pair.principal),
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Register a user or analyst",
)
def register(body: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    """
    Create a new account.

    Analysts receive a token pair immediately so they can upload documents;
    ordinary users log in separately.
    """
    registration = service.register(
        username=body.username,
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role,
    )

    if registration.tokens is not None:
        return RegisterResponse(
            message=(
                "Analyst registration received. Upload your identity documents "
                "and submit your application for review."
            ),
            principal=PrincipalResponse.from_principal(registration.principal),
            tokens=_token_response(registration.tokens),
        )

    return RegisterResponse(
        message="Registration successful. You can now log in.",
        principal=PrincipalResponse.from_principal(registration.principal),
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Authenticate and issue tokens",
)
def login(body: LoginRequest, service: AuthService = Depends(get_auth_service)):
    pair = service.login(body.username, body.password, remember_me=body.remember_me)
    return _token_response(pair)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Exchange a refresh token for a new pair",
)
def refresh(body: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    """
    Rotate the refresh token.

    The presented token is consumed; replaying it revokes every session
    of its owner.
    """
    pair = service.refresh(body.refresh_token)
    return _token_response(pair)


@router.post("/logout", response_model=MessageResponse, summary="Revoke one session")
def logout(body: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    service.logout(body.refresh_token)
    return MessageResponse(message="Logged out")


@router.post(
    "/logout-all",
    response_model=LogoutAllResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Revoke every session of the caller",
)
def logout_all(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    account = service.get_principal(principal.principal_class, principal.principal_id)
    count = service.logout_all(account)
    return LogoutAllResponse(sessions_revoked=count)


@router.post("/forgot-password", response_model=MessageResponse, summary="Request a reset link")
def forgot_password(body: ForgotPasswordRequest, service: AuthService = Depends(get_auth_service)):
    service.forgot_password(body.email)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    summary="Set a new password with a reset token",
)
def reset_password(body: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    service.reset_password(body.token, body.new_password)
    return MessageResponse(message="Password has been reset. Please log in again.")


@router.post(
    "/change-password",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    summary="Change password and log out everywhere",
)
def change_password(
    body: ChangePasswordRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    account = service.get_principal(principal.principal_class, principal.principal_id)
    service.change_password(account, body.current_password, body.new_password)
    return MessageResponse(message="Password changed. Please log in again.")


@router.get("/me", response_model=PrincipalResponse, summary="Current principal profile")
def get_me(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    account = service.get_principal(principal.principal_class, principal.principal_id)
    return PrincipalResponse.from_principal(account)
