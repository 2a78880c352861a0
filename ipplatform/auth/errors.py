"""
IP Platform - Service Error Taxonomy

Every business-rule violation raised by the auth core is a ServiceError.
The HTTP layer renders them uniformly; anything else is an internal error
and never crosses the boundary with detail attached.

Families:
- AuthFailure (401): credentials, tokens, status-gated login
- PermissionDeniedError (403): authenticated but not allowed
- ValidationFailure (400): weak password, bad enum, empty application
- ConflictFailure (409): taken names, illegal or duplicate transitions
- NotFoundError (404): unknown principal, application, document
"""

from typing import Optional

from ipplatform.auth.models import AccountStatus


class ServiceError(Exception):
    """Base class for errors surfaced to callers with a safe message."""

    status_code: int = 400
    code: str = "SERVICE_ERROR"
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# =============================================================================
# AUTH FAILURES
# =============================================================================

class AuthFailure(ServiceError):
    status_code = 401
    code = "AUTH_FAILED"
    default_message = "Authentication failed"


class InvalidCredentialsError(AuthFailure):
    """Unknown username or wrong password. Never says which."""
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class AccountNotActiveError(AuthFailure):
    """
    Credentials matched but the account may not log in yet.

    The message names the status so clients can route the principal.
    """
    code = "ACCOUNT_NOT_ACTIVE"

    MESSAGES = {
        AccountStatus.PENDING_DOCUMENT: (
            "Your analyst account is incomplete. Please upload your "
            "identity documents to continue."
        ),
        AccountStatus.PENDING_REVIEW: (
            "Your identity documents are currently under admin review. "
            "You will receive an email once a decision has been made."
        ),
        AccountStatus.REJECTED: (
            "Your analyst application was rejected. "
            "Please contact support for more information."
        ),
        AccountStatus.SUSPENDED: (
            "Your account has been suspended. Please contact support."
        ),
    }

    def __init__(self, status: AccountStatus):
        self.status = status
        super().__init__(self.MESSAGES.get(status, "Account is not active"))


class InvalidRefreshTokenError(AuthFailure):
    code = "INVALID_TOKEN"
    default_message = "Invalid refresh token"


class SessionExpiredError(AuthFailure):
    """Raised when an expired or revoked refresh token is presented."""
    code = "SESSION_EXPIRED"
    default_message = "Refresh token expired or revoked. Please log in again."


class InvalidResetTokenError(AuthFailure):
    code = "INVALID_OR_EXPIRED_TOKEN"
    default_message = "Invalid or expired reset link"


class WrongCurrentPasswordError(AuthFailure):
    code = "WRONG_CURRENT_PASSWORD"
    default_message = "Current password is incorrect"


class NotAuthenticatedError(AuthFailure):
    """No bearer token on a route that requires one."""
    code = "NOT_AUTHENTICATED"
    default_message = "Authentication required"


# =============================================================================
# AUTHORIZATION FAILURES
# =============================================================================

class PermissionDeniedError(ServiceError):
    status_code = 403
    code = "PERMISSION_DENIED"
    default_message = "Permission denied"


# =============================================================================
# VALIDATION FAILURES
# =============================================================================

class ValidationFailure(ServiceError):
    status_code = 400
    code = "VALIDATION_FAILED"
    default_message = "Invalid request"


class WeakPasswordError(ValidationFailure):
    code = "WEAK_PASSWORD"


class InvalidRoleError(ValidationFailure):
    code = "INVALID_ROLE"
    default_message = "Invalid role. Allowed values: user, analyst"


class EmptyApplicationError(ValidationFailure):
    code = "EMPTY_APPLICATION"
    default_message = "Please upload at least one identity document before submitting."


class InvalidDocumentError(ValidationFailure):
    code = "INVALID_DOCUMENT"


# =============================================================================
# CONFLICT FAILURES
# =============================================================================

class ConflictFailure(ServiceError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Request conflicts with current state"


class UsernameTakenError(ConflictFailure):
    code = "USERNAME_TAKEN"
    default_message = "Username already taken"


class EmailTakenError(ConflictFailure):
    code = "EMAIL_TAKEN"
    default_message = "Email already registered"


class ApplicationLockedError(ConflictFailure):
    code = "APPLICATION_LOCKED"
    default_message = "Application already submitted and cannot be modified."


class NotYetSubmittedError(ConflictFailure):
    code = "NOT_YET_SUBMITTED"
    default_message = "Analyst has not submitted documents yet."


class AlreadyApprovedError(ConflictFailure):
    code = "ALREADY_APPROVED"
    default_message = "Already approved."


class CannotRejectApprovedError(ConflictFailure):
    code = "CANNOT_REJECT_APPROVED"
    default_message = "Cannot reject an approved application."


class InvalidTransitionError(ConflictFailure):
    code = "INVALID_TRANSITION"


class TokenCollisionError(ConflictFailure):
    code = "TOKEN_COLLISION"
    default_message = "Credential could not be issued"


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class PrincipalNotFoundError(NotFoundError):
    code = "PRINCIPAL_NOT_FOUND"
    default_message = "User not found"


class ApplicationNotFoundError(NotFoundError):
    code = "APPLICATION_NOT_FOUND"
    default_message = "Application not found"


class DocumentNotFoundError(NotFoundError):
    code = "DOCUMENT_NOT_FOUND"
    default_message = "Document not found"
