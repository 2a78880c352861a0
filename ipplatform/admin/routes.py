"""
IP Platform - Admin API Routes

Admin-only endpoints:
- Analyst application review queue (list, open, preview documents,
  approve, reject)
- Principal management (list, suspend, reinstate, role assignment)

Opening a SUBMITTED application moves it to UNDER_REVIEW.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlmodel import Session as DBSession

from ipplatform.auth import accounts, applications
from ipplatform.auth.dependencies import (
    AuthenticatedPrincipal,
    Permission,
    get_db,
    get_notifier,
    require_permission,
)
from ipplatform.auth.errors import InvalidRoleError, ValidationFailure
from ipplatform.auth.models import Analyst, ApplicationStatus, PrincipalClass, Role
from ipplatform.auth.notifications import NotificationSink
from ipplatform.auth.schemas import (
    ApplicationResponse,
    ApplicationSummary,
    ApproveRequest,
    ErrorResponse,
    PrincipalResponse,
    RejectRequest,
    RoleAssignmentRequest,
)


router = APIRouter(prefix="/admin", tags=["admin"])

require_reviewer = require_permission(Permission.REVIEW_APPLICATIONS)
require_manager = require_permission(Permission.MANAGE_PRINCIPALS)


# =============================================================================
# Helpers
# =============================================================================

def _parse_status(value: Optional[str]) -> Optional[ApplicationStatus]:
    if value is None:
        return None
    try:
        return ApplicationStatus(value.upper())
    except ValueError:
        allowed = ", ".join(s.value.lower() for s in ApplicationStatus)
        raise ValidationFailure(f"Invalid status filter. Allowed: {allowed}")


def _parse_principal_class(value: str) -> PrincipalClass:
    try:
        return PrincipalClass(value.upper())
    except ValueError:
        raise ValidationFailure("Principal class must be user, analyst or admin")


def _admin_username(db: DBSession, principal: AuthenticatedPrincipal) -> str:
    return accounts.require_principal(db, principal.principal_class, principal.principal_id).username


# =============================================================================
# Application review
# =============================================================================

@router.get("/applications", response_model=List[ApplicationSummary])
def list_applications(
    status: Optional[str] = Query(default=None, description="Filter, e.g. submitted"),
    principal: AuthenticatedPrincipal = Depends(require_reviewer),
    db: DBSession = Depends(get_db),
):
    """List applications oldest first."""
    summaries = []
    for application in applications.list_applications(db, _parse_status(status)):
        analyst = db.get(Analyst, application.analyst_id)
        summaries.append(ApplicationSummary(
            id=application.id,
            status=application.status,
            analyst_id=application.analyst_id,
            analyst_username=analyst.username if analyst else None,
            analyst_email=analyst.email if analyst else None,
            submitted_at=application.submitted_at,
            created_at=application.created_at,
        ))
    return summaries


@router.get(
    "/applications/{application_id}",
    response_model=ApplicationResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_application(
    application_id: UUID,
    principal: AuthenticatedPrincipal = Depends(require_reviewer),
    db: DBSession = Depends(get_db),
):
    application = applications.open_for_review(db, application_id)
    return ApplicationResponse.build(application, applications.list_documents(db, application.id))


@router.get(
    "/applications/{application_id}/documents/{document_id}/view",
    responses={404: {"model": ErrorResponse}},
)
def view_document(
    application_id: UUID,
    document_id: UUID,
    principal: AuthenticatedPrincipal = Depends(require_reviewer),
    db: DBSession = Depends(get_db),
):
    """Stream the stored document inline for preview."""
    document = applications.get_document_file(db, application_id, document_id)
    return Response(
        content=document.content,
        media_type=document.content_type,
        headers={"Content-Disposition": f'inline; filename="{document.file_name}"'},
    )


@router.post(
    "/applications/{application_id}/approve",
    response_model=ApplicationResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def approve_application(
    application_id: UUID,
    body: Optional[ApproveRequest] = None,
    principal: AuthenticatedPrincipal = Depends(require_reviewer),
    db: DBSession = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    application = applications.approve_application(
        db,
        application_id,
        admin_username=_admin_username(db, principal),
        admin_note=body.admin_note if body else None,
        notifier=notifier,
    )
    return ApplicationResponse.build(application, applications.list_documents(db, application.id))


@router.post(
    "/applications/{application_id}/reject",
    response_model=ApplicationResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def reject_application(
    application_id: UUID,
    body: Optional[RejectRequest] = None,
    principal: AuthenticatedPrincipal = Depends(require_reviewer),
    db: DBSession = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    application = applications.reject_application(
        db,
        application_id,
        admin_username=_admin_username(db, principal),
        reason=body.reason if body else None,
        notifier=notifier,
    )
    return ApplicationResponse.build(application, applications.list_documents(db, application.id))


# =============================================================================
# Principal management
# =============================================================================

@router.get("/principals", response_model=List[PrincipalResponse])
def list_principals(
    principal: AuthenticatedPrincipal = Depends(require_manager),
    db: DBSession = Depends(get_db),
):
    return [PrincipalResponse.from_principal(p) for p in accounts.list_principals(db)]


@router.post(
    "/principals/{principal_class}/{principal_id}/suspend",
    response_model=PrincipalResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def suspend_principal(
    principal_class: str,
    principal_id: UUID,
    principal: AuthenticatedPrincipal = Depends(require_manager),
    db: DBSession = Depends(get_db),
):
    target_class = _parse_principal_class(principal_class)
    if target_class == principal.principal_class and principal_id == principal.principal_id:
        raise ValidationFailure("Admins cannot suspend themselves")
    return PrincipalResponse.from_principal(accounts.suspend(db, target_class, principal_id))


@router.post(
    "/principals/{principal_class}/{principal_id}/reinstate",
    response_model=PrincipalResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def reinstate_principal(
    principal_class: str,
    principal_id: UUID,
    principal: AuthenticatedPrincipal = Depends(require_manager),
    db: DBSession = Depends(get_db),
):
    target_class = _parse_principal_class(principal_class)
    return PrincipalResponse.from_principal(accounts.reinstate(db, target_class, principal_id))


@router.put(
    "/principals/{principal_class}/{principal_id}/role",
    response_model=PrincipalResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def assign_role(
    principal_class: str,
    principal_id: UUID,
    body: RoleAssignmentRequest,
    principal: AuthenticatedPrincipal = Depends(require_manager),
    db: DBSession = Depends(get_db),
):
    target_class = _parse_principal_class(principal_class)
    try:
        role = Role(body.role.strip().lower())
    except ValueError:
        raise InvalidRoleError()
    return PrincipalResponse.from_principal(
        accounts.assign_role(db, target_class, principal_id, role)
    )
