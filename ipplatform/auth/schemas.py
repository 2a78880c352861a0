"""
IP Platform - Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models.

Password policy is enforced by the service layer so that a weak password
is reported with the same error body on every route.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
import re

from pydantic import BaseModel, Field, field_validator

from ipplatform.auth.accounts import Principal, principal_class_of, status_of
from ipplatform.auth.models import (
    AccountStatus,
    AnalystApplication,
    AnalystDocument,
    ApplicationStatus,
    DocumentType,
    PrincipalClass,
)


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")


def _normalize_email(v: str) -> str:
    """Basic email format check (allows .local for development)."""
    v = v.strip()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email format")
    return v.lower()


# =============================================================================
# AUTH
# =============================================================================

class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., description="Contact address")
    password: str = Field(..., description="Plaintext password")
    name: Optional[str] = Field(default=None, max_length=255)
    role: str = Field(default="user", description="user or analyst")

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _normalize_email(v)

    @field_validator("username")
    @classmethod
    def username_charset(cls, v):
        v = v.strip()
        if not re.match(r"^[a-zA-Z0-9_.-]+$", v):
            raise ValueError("Username may only contain letters, digits, '.', '_' and '-'")
        return v


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    username: str
    password: str
    remember_me: bool = Field(default=False, description="Request a 30-day session")


class RefreshRequest(BaseModel):
    """Request body for POST /auth/refresh and POST /auth/logout."""
    refresh_token: str = Field(..., description="Refresh token")


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class PrincipalResponse(BaseModel):
    """Public view of any principal."""
    id: UUID
    username: str
    email: str
    name: Optional[str]
    role: str
    principal_class: PrincipalClass
    account_status: AccountStatus
    created_at: datetime

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            id=principal.id,
            username=principal.username,
            email=principal.email,
            name=principal.name,
            role=principal.role.value,
            principal_class=principal_class_of(principal),
            account_status=status_of(principal),
            created_at=principal.created_at,
        )


class TokenResponse(BaseModel):
    """Response body for login, refresh and analyst registration."""
    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="Refresh token; single use")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(..., description="Seconds until the access token expires")
    principal: PrincipalResponse


class RegisterResponse(BaseModel):
    message: str
    principal: PrincipalResponse
    tokens: Optional[TokenResponse] = None


class MessageResponse(BaseModel):
    message: str


class LogoutAllResponse(BaseModel):
    message: str = Field(default="All sessions revoked")
    sessions_revoked: int


# =============================================================================
# ANALYST APPLICATION
# =============================================================================

class ApplicationDetailsRequest(BaseModel):
    """Request body for PUT /analyst/application."""
    purpose: Optional[str] = Field(default=None, max_length=2000)
    organization: Optional[str] = Field(default=None, max_length=255)


class DocumentResponse(BaseModel):
    id: UUID
    document_type: DocumentType
    file_name: str
    content_type: str
    size_bytes: int
    uploaded_at: datetime

    class Config:
        from_attributes = True


class ApplicationResponse(BaseModel):
    id: UUID
    analyst_id: UUID
    status: ApplicationStatus
    purpose: Optional[str]
    organization: Optional[str]
    admin_note: Optional[str]
    reviewed_by: Optional[str]
    submitted_at: Optional[datetime]
    reviewed_at: Optional[datetime]
    created_at: datetime
    documents: list[DocumentResponse] = []

    @classmethod
    def build(
        cls,
        application: AnalystApplication,
        documents: list[AnalystDocument],
    ) -> "ApplicationResponse":
        return cls(
            id=application.id,
            analyst_id=application.analyst_id,
            status=application.status,
            purpose=application.purpose,
            organization=application.organization,
            admin_note=application.admin_note,
            reviewed_by=application.reviewed_by,
            submitted_at=application.submitted_at,
            reviewed_at=application.reviewed_at,
            created_at=application.created_at,
            documents=[DocumentResponse.model_validate(d) for d in documents],
        )


# =============================================================================
# ADMIN
# =============================================================================

class ApplicationSummary(BaseModel):
    """Row in the admin review queue."""
    id: UUID
    status: ApplicationStatus
    analyst_id: UUID
    analyst_username: Optional[str]
    analyst_email: Optional[str]
    submitted_at: Optional[datetime]
    created_at: datetime


class ApproveRequest(BaseModel):
    admin_note: Optional[str] = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class RoleAssignmentRequest(BaseModel):
    role: str = Field(..., description="user or analyst")


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    error_code: Optional[str] = None
