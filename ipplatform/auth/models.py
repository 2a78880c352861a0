"""
IP Platform - Authentication Database Models

SQLModel-based models for the three principal classes, the analyst
application workflow and the durable credentials (refresh sessions and
password reset tokens).
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as bcrypt hashes only (absent for federated logins)
- Refresh sessions are the only persisted credential; access tokens never are
- All timestamps in UTC
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, String, Boolean, DateTime, LargeBinary, Text, Enum as SQLEnum


class Role(str, Enum):
    """
    Role claim carried in access tokens.

    Permissions are deny-by-default; each role has explicit grants.
    """
    USER = "user"
    ANALYST = "analyst"
    ADMIN = "admin"


class PrincipalClass(str, Enum):
    """Tag identifying which principal table an identity lives in."""
    USER = "USER"
    ANALYST = "ANALYST"
    ADMIN = "ADMIN"


class AccountStatus(str, Enum):
    """
    Lifecycle status of a user or analyst account.

    Only ACTIVE principals may log in.
    """
    ACTIVE = "ACTIVE"
    PENDING_DOCUMENT = "PENDING_DOCUMENT"
    PENDING_REVIEW = "PENDING_REVIEW"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class ApplicationStatus(str, Enum):
    """Review status of an analyst application."""
    AWAITING_DOCUMENTS = "AWAITING_DOCUMENTS"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DocumentType(str, Enum):
    """Accepted identity document kinds."""
    AADHAAR_CARD = "AADHAAR_CARD"
    PAN_CARD = "PAN_CARD"
    PASSPORT = "PASSPORT"
    VOTER_ID = "VOTER_ID"
    BIRTH_CERTIFICATE = "BIRTH_CERTIFICATE"
    DRIVING_LICENSE = "DRIVING_LICENSE"
    OTHER = "OTHER"


class PrincipalBase(SQLModel):
    """
    Columns shared by every principal table.

    Username and email are unique per table here; uniqueness across all
    three tables is enforced by the registration path.
    """
    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique principal identifier"
    )
    username: str = Field(
        max_length=255,
        unique=True,
        index=True,
        nullable=False,
        description="Login identifier"
    )
    email: str = Field(
        max_length=255,
        unique=True,
        index=True,
        nullable=False,
        description="Contact address"
    )
    password_hash: Optional[str] = Field(
        default=None,
        max_length=255,
        description="bcrypt password hash (absent for federated logins)"
    )
    name: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        description="Account creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        description="Last update timestamp"
    )


class User(PrincipalBase, table=True):
    """
    Ordinary platform user.

    Attributes:
        role: RBAC role (user, or analyst when promoted by an admin)
        account_status: Lifecycle status; only ACTIVE may log in
        provider: "local" or the federated identity provider name
        provider_id: Subject identifier at the federated provider
    """
    __tablename__ = "users"

    role: Role = Field(default=Role.USER, nullable=False)
    account_status: AccountStatus = Field(default=AccountStatus.ACTIVE, nullable=False)
    provider: str = Field(default="local", max_length=32, nullable=False)
    provider_id: Optional[str] = Field(default=None, max_length=255, index=True)


class Analyst(PrincipalBase, table=True):
    """
    Analyst principal, gated behind document review.

    account_status moves in lockstep with the attached application.
    """
    __tablename__ = "analysts"

    role: Role = Field(default=Role.ANALYST, nullable=False)
    account_status: AccountStatus = Field(
        default=AccountStatus.PENDING_DOCUMENT,
        nullable=False
    )

    # Relationships
    application: Optional["AnalystApplication"] = Relationship(
        back_populates="analyst",
        sa_relationship_kwargs={"uselist": False},
    )


class Admin(PrincipalBase, table=True):
    """
    Administrator account. Seeded on startup, never self-registered.

    Admins only have an active/inactive flag instead of the full status model.
    """
    __tablename__ = "admins"

    role: Role = Field(default=Role.ADMIN, nullable=False)
    is_active: bool = Field(default=True, nullable=False)


class AnalystApplication(SQLModel, table=True):
    """
    Reviewable record of an analyst's registration.

    Attributes:
        analyst_id: Owning analyst (one-to-one)
        status: Review status, kept in lockstep with the analyst account status
        purpose: Optional reason for requesting analyst access
        organization: Optional organization name
        admin_note: Approval note or rejection reason
        reviewed_by: Username of the reviewing admin
        submitted_at: When the analyst submitted for review
        reviewed_at: When an admin approved or rejected
    """
    __tablename__ = "analyst_applications"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique application identifier"
    )
    analyst_id: UUID = Field(
        foreign_key="analysts.id",
        nullable=False,
        unique=True,
        index=True,
        description="Reference to analyst"
    )
    status: ApplicationStatus = Field(
        default=ApplicationStatus.AWAITING_DOCUMENTS,
        sa_column=Column(
            SQLEnum(ApplicationStatus),
            nullable=False,
            default=ApplicationStatus.AWAITING_DOCUMENTS,
            index=True,
        ),
    )
    purpose: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    organization: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    admin_note: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    reviewed_by: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    submitted_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    reviewed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, nullable=False, default=datetime.utcnow),
    )

    # Relationships
    analyst: Optional[Analyst] = Relationship(back_populates="application")
    documents: list["AnalystDocument"] = Relationship(back_populates="application")


class AnalystDocument(SQLModel, table=True):
    """
    Identity document stored in the database as binary content.

    Immutable once attached; may only be deleted before submission.
    """
    __tablename__ = "analyst_documents"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    application_id: UUID = Field(
        foreign_key="analyst_applications.id",
        nullable=False,
        index=True,
    )
    document_type: DocumentType = Field(sa_column=Column(SQLEnum(DocumentType), nullable=False))
    file_name: str = Field(sa_column=Column(String(255), nullable=False))
    content_type: str = Field(sa_column=Column(String(100), nullable=False))
    content: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    size_bytes: int = Field(nullable=False)
    uploaded_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, nullable=False, default=datetime.utcnow),
    )

    # Relationships
    application: Optional[AnalystApplication] = Relationship(back_populates="documents")


class RefreshSession(SQLModel, table=True):
    """
    Durable, revocable refresh credential.

    One row per issued refresh token. Rotation revokes the presented row
    and inserts a new one; presenting a revoked or expired token is treated
    as a theft signal.

    Attributes:
        token: Raw refresh token (unique)
        principal_class: Table the subject lives in
        principal_id: Subject identifier within that table
        expires_at: Session expiration timestamp
        revoked: Set on logout, rotation, password change, reuse detection
        remember_me: Whether the long lifetime was requested; inherited on rotation
    """
    __tablename__ = "refresh_sessions"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    token: str = Field(
        sa_column=Column(String(512), unique=True, index=True, nullable=False),
        description="Raw refresh token"
    )
    principal_class: PrincipalClass = Field(
        sa_column=Column(SQLEnum(PrincipalClass), nullable=False)
    )
    principal_id: UUID = Field(nullable=False, index=True)
    expires_at: datetime = Field(sa_column=Column(DateTime, nullable=False, index=True))
    revoked: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    remember_me: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, nullable=False, default=datetime.utcnow),
    )

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """A session is valid while not revoked and not yet expired."""
        now = now or datetime.utcnow()
        return not self.revoked and now < self.expires_at


class PasswordResetToken(SQLModel, table=True):
    """
    One-shot password reset token.

    Created on forgot-password, consumed on reset. Once used it can never
    be replayed, even before expiry.
    """
    __tablename__ = "password_reset_tokens"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    token: str = Field(
        sa_column=Column(String(128), unique=True, index=True, nullable=False)
    )
    principal_class: PrincipalClass = Field(
        sa_column=Column(SQLEnum(PrincipalClass), nullable=False)
    )
    principal_id: UUID = Field(nullable=False, index=True)
    expires_at: datetime = Field(sa_column=Column(DateTime, nullable=False))
    used: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, nullable=False, default=datetime.utcnow),
    )

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return not self.used and now < self.expires_at
