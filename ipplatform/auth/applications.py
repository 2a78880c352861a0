"""
IP Platform - Analyst Application Workflow

Document-review state machine that gates analyst login.

Application status and the owning analyst's account status move together:

    AWAITING_DOCUMENTS  <->  PENDING_DOCUMENT
    SUBMITTED           <->  PENDING_REVIEW
    UNDER_REVIEW        <->  PENDING_REVIEW
    APPROVED            <->  ACTIVE
    REJECTED            <->  REJECTED

Every transition writes both rows in one commit; if anything fails before
the commit the session is rolled back, so neither row moves alone.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlmodel import Session as DBSession, select

from ipplatform.auth import notifications
from ipplatform.auth.accounts import ACCOUNT_STATUS_FOR, apply_status
from ipplatform.auth.errors import (
    AlreadyApprovedError,
    ApplicationLockedError,
    ApplicationNotFoundError,
    CannotRejectApprovedError,
    DocumentNotFoundError,
    EmptyApplicationError,
    InvalidDocumentError,
    InvalidTransitionError,
    NotYetSubmittedError,
)
from ipplatform.auth.models import (
    AccountStatus,
    Analyst,
    AnalystApplication,
    AnalystDocument,
    ApplicationStatus,
    DocumentType,
)
from ipplatform.auth.notifications import NotificationSink
from ipplatform.config import settings


logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png", "application/pdf")

DEFAULT_REJECTION_REASON = "Your application did not meet our requirements."


# =============================================================================
# LOOKUPS
# =============================================================================

def get_application(db: DBSession, application_id: UUID) -> AnalystApplication:
    application = db.get(AnalystApplication, application_id)
    if application is None:
        raise ApplicationNotFoundError(f"Application not found: {application_id}")
    return application


def get_application_for_analyst(db: DBSession, analyst_id: UUID) -> AnalystApplication:
    statement = select(AnalystApplication).where(AnalystApplication.analyst_id == analyst_id)
    application = db.exec(statement).first()
    if application is None:
        raise ApplicationNotFoundError("No analyst application found for this account")
    return application


def list_documents(db: DBSession, application_id: UUID) -> list[AnalystDocument]:
    statement = (
        select(AnalystDocument)
        .where(AnalystDocument.application_id == application_id)
        .order_by(AnalystDocument.uploaded_at)
    )
    return list(db.exec(statement).all())


def list_applications(
    db: DBSession,
    status: Optional[ApplicationStatus] = None,
) -> list[AnalystApplication]:
    """List applications oldest first, optionally filtered by status."""
    statement = select(AnalystApplication)
    if status is not None:
        statement = statement.where(AnalystApplication.status == status)
    statement = statement.order_by(AnalystApplication.created_at)
    return list(db.exec(statement).all())


# =============================================================================
# ANALYST: SELF-SERVICE (only while AWAITING_DOCUMENTS)
# =============================================================================

def create_application(db: DBSession, analyst: Analyst) -> AnalystApplication:
    """
    Attach an empty application to a newly registered analyst.

    Does not commit; registration commits the analyst and application together.
    """
    application = AnalystApplication(
        analyst_id=analyst.id,
        status=ApplicationStatus.AWAITING_DOCUMENTS,
        created_at=datetime.utcnow(),
    )
    db.add(application)
    return application


def _guard_editable(application: AnalystApplication) -> None:
    if application.status != ApplicationStatus.AWAITING_DOCUMENTS:
        raise ApplicationLockedError()


def save_details(
    db: DBSession,
    analyst_id: UUID,
    purpose: Optional[str],
    organization: Optional[str],
) -> AnalystApplication:
    application = get_application_for_analyst(db, analyst_id)
    _guard_editable(application)

    application.purpose = purpose
    application.organization = organization
    db.add(application)
    db.commit()
    db.refresh(application)
    return application


def upload_document(
    db: DBSession,
    analyst_id: UUID,
    document_type: str,
    file_name: Optional[str],
    content_type: Optional[str],
    content: bytes,
) -> AnalystDocument:
    """
    Validate and attach an identity document.

    Raises:
        ApplicationLockedError: Application already submitted
        InvalidDocumentError: Unknown type, unsupported format, empty or too large
    """
    application = get_application_for_analyst(db, analyst_id)
    _guard_editable(application)

    try:
        doc_type = DocumentType(document_type.upper())
    except (ValueError, AttributeError):
        allowed = ", ".join(t.value for t in DocumentType)
        raise InvalidDocumentError(
            f"Invalid document type: {document_type}. Allowed: {allowed}"
        )

    if not content:
        raise InvalidDocumentError("File must not be empty")
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidDocumentError(
            f"Invalid file type: {content_type}. Only JPEG, PNG, and PDF files are accepted."
        )
    if len(content) > settings.MAX_DOCUMENT_SIZE_BYTES:
        max_mb = settings.MAX_DOCUMENT_SIZE_BYTES // (1024 * 1024)
        raise InvalidDocumentError(f"File too large. Max allowed: {max_mb}MB.")

    document = AnalystDocument(
        application_id=application.id,
        document_type=doc_type,
        file_name=file_name or "document",
        content_type=content_type,
        content=content,
        size_bytes=len(content),
        uploaded_at=datetime.utcnow(),
    )
    db.add(document)
    db.commit()
    db.refresh(document)

    logger.info("Document %s attached to application %s", document.id, application.id)
    return document


def delete_document(db: DBSession, analyst_id: UUID, document_id: UUID) -> None:
    application = get_application_for_analyst(db, analyst_id)
    _guard_editable(application)

    document = db.get(AnalystDocument, document_id)
    if document is None or document.application_id != application.id:
        raise DocumentNotFoundError()

    db.delete(document)
    db.commit()


# =============================================================================
# TRANSITIONS
# =============================================================================

def _transition(
    db: DBSession,
    application: AnalystApplication,
    target: ApplicationStatus,
    expected_account_status: AccountStatus,
) -> Analyst:
    """
    Move application and analyst together in one commit.

    The analyst must currently hold expected_account_status; a suspended
    analyst cannot be moved through review. Pending edits already made to
    the application are discarded if the transition fails.
    """
    analyst = db.get(Analyst, application.analyst_id)

    try:
        if analyst.account_status != expected_account_status:
            raise InvalidTransitionError(
                f"Account is {analyst.account_status.value}, "
                f"expected {expected_account_status.value}"
            )
        new_account_status = ACCOUNT_STATUS_FOR[target]
        if new_account_status != analyst.account_status:
            apply_status(analyst, new_account_status)
        application.status = target
        db.add(application)
        db.add(analyst)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(application)
    db.refresh(analyst)
    return analyst


def submit_application(
    db: DBSession,
    analyst_id: UUID,
    notifier: NotificationSink,
) -> AnalystApplication:
    """
    Submit for review: AWAITING_DOCUMENTS -> SUBMITTED, account -> PENDING_REVIEW.

    Raises:
        ApplicationLockedError: Already submitted or processed
        EmptyApplicationError: No documents attached
    """
    application = get_application_for_analyst(db, analyst_id)
    _guard_editable(application)

    if not list_documents(db, application.id):
        raise EmptyApplicationError()

    application.submitted_at = datetime.utcnow()
    analyst = _transition(
        db, application, ApplicationStatus.SUBMITTED, AccountStatus.PENDING_DOCUMENT
    )

    logger.info("Application %s submitted by %s", application.id, analyst.username)
    subject, body = notifications.application_submitted_message(analyst.name or analyst.username)
    notifications.notify(notifier, analyst.email, subject, body)
    return application


def open_for_review(db: DBSession, application_id: UUID) -> AnalystApplication:
    """
    Fetch an application for an admin.

    The first open of a SUBMITTED application marks it UNDER_REVIEW;
    later opens change nothing.
    """
    application = get_application(db, application_id)
    if application.status == ApplicationStatus.SUBMITTED:
        _transition(db, application, ApplicationStatus.UNDER_REVIEW, AccountStatus.PENDING_REVIEW)
        logger.info("Application %s moved to review", application.id)
    return application


def get_document_file(db: DBSession, application_id: UUID, document_id: UUID) -> AnalystDocument:
    application = get_application(db, application_id)
    document = db.get(AnalystDocument, document_id)
    if document is None or document.application_id != application.id:
        raise DocumentNotFoundError("Document does not belong to this application")
    return document


def approve_application(
    db: DBSession,
    application_id: UUID,
    admin_username: str,
    admin_note: Optional[str],
    notifier: NotificationSink,
) -> AnalystApplication:
    """
    Approve: application -> APPROVED, analyst -> ACTIVE.

    Raises:
        AlreadyApprovedError: Application is already approved
        NotYetSubmittedError: Application still awaiting documents
        InvalidTransitionError: Application was already rejected
    """
    application = get_application(db, application_id)

    if application.status == ApplicationStatus.APPROVED:
        raise AlreadyApprovedError()
    if application.status == ApplicationStatus.AWAITING_DOCUMENTS:
        raise NotYetSubmittedError()
    if application.status == ApplicationStatus.REJECTED:
        raise InvalidTransitionError("Application was already rejected")

    application.admin_note = admin_note
    application.reviewed_by = admin_username
    application.reviewed_at = datetime.utcnow()
    analyst = _transition(db, application, ApplicationStatus.APPROVED, AccountStatus.PENDING_REVIEW)

    logger.info("Application %s approved by %s", application.id, admin_username)
    subject, body = notifications.application_approved_message(analyst.name or analyst.username)
    notifications.notify(notifier, analyst.email, subject, body)
    return application


def reject_application(
    db: DBSession,
    application_id: UUID,
    admin_username: str,
    reason: Optional[str],
    notifier: NotificationSink,
) -> AnalystApplication:
    """
    Reject: application -> REJECTED, analyst -> REJECTED.

    Raises:
        CannotRejectApprovedError: Application is already approved
        NotYetSubmittedError: Application still awaiting documents
        InvalidTransitionError: Application was already rejected
    """
    application = get_application(db, application_id)

    if application.status == ApplicationStatus.APPROVED:
        raise CannotRejectApprovedError()
    if application.status == ApplicationStatus.AWAITING_DOCUMENTS:
        raise NotYetSubmittedError()
    if application.status == ApplicationStatus.REJECTED:
        raise InvalidTransitionError("Application was already rejected")

    reason = reason.strip() if reason and reason.strip() else DEFAULT_REJECTION_REASON
    application.admin_note = reason
    application.reviewed_by = admin_username
    application.reviewed_at = datetime.utcnow()
    analyst = _transition(db, application, ApplicationStatus.REJECTED, AccountStatus.PENDING_REVIEW)

    logger.info("Application %s rejected by %s", application.id, admin_username)
    subject, body = notifications.application_rejected_message(
        analyst.name or analyst.username, reason
    )
    notifications.notify(notifier, analyst.email, subject, body)
    return application
