"""
IP Platform - Analyst Application Routes

Self-service endpoints for a registered analyst working on their own
application:
- GET    /analyst/application                  - View application and documents
- PUT    /analyst/application                  - Save purpose / organization
- POST   /analyst/application/documents        - Upload an identity document
- DELETE /analyst/application/documents/{id}   - Remove a document
- POST   /analyst/application/submit           - Submit for admin review

All edits are refused once the application has been submitted.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlmodel import Session as DBSession

from ipplatform.auth import applications
from ipplatform.auth.dependencies import (
    AuthenticatedPrincipal,
    Permission,
    get_db,
    get_notifier,
    require_principal_class,
)
from ipplatform.auth.models import PrincipalClass
from ipplatform.auth.notifications import NotificationSink
from ipplatform.auth.schemas import (
    ApplicationDetailsRequest,
    ApplicationResponse,
    DocumentResponse,
    ErrorResponse,
    MessageResponse,
)
from ipplatform.config import settings


router = APIRouter(prefix="/analyst", tags=["analyst"])

require_analyst = require_principal_class(PrincipalClass.ANALYST, Permission.SUBMIT_APPLICATION)


def _application_response(db: DBSession, analyst_id: UUID) -> ApplicationResponse:
    application = applications.get_application_for_analyst(db, analyst_id)
    return ApplicationResponse.build(application, applications.list_documents(db, application.id))


@router.get("/application", response_model=ApplicationResponse, summary="View own application")
def get_application(
    principal: AuthenticatedPrincipal = Depends(require_analyst),
    db: DBSession = Depends(get_db),
):
    return _application_response(db, principal.principal_id)


@router.put(
    "/application",
    response_model=ApplicationResponse,
    responses={409: {"model": ErrorResponse}},
    summary="Save application details",
)
def save_details(
    body: ApplicationDetailsRequest,
    principal: AuthenticatedPrincipal = Depends(require_analyst),
    db: DBSession = Depends(get_db),
):
    applications.save_details(db, principal.principal_id, body.purpose, body.organization)
    return _application_response(db, principal.principal_id)


@router.post(
    "/application/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Upload an identity document",
)
def upload_document(
    document_type: str = Form(...),
    file: UploadFile = File(...),
    principal: AuthenticatedPrincipal = Depends(require_analyst),
    db: DBSession = Depends(get_db),
):
    """
    Attach a JPEG, PNG or PDF document of at most 5 MB.

    At most one byte past the limit is read so oversized uploads are
    rejected without buffering them whole.
    """
    content = file.file.read(settings.MAX_DOCUMENT_SIZE_BYTES + 1)
    document = applications.upload_document(
        db,
        principal.principal_id,
        document_type=document_type,
        file_name=file.filename,
        content_type=file.content_type,
        content=content,
    )
    return DocumentResponse.model_validate(document)


@router.delete(
    "/application/documents/{document_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Remove a document before submission",
)
def delete_document(
    document_id: UUID,
    principal: AuthenticatedPrincipal = Depends(require_analyst),
    db: DBSession = Depends(get_db),
):
    applications.delete_document(db, principal.principal_id, document_id)
    return MessageResponse(message="Document removed")


@router.post(
    "/application/submit",
    response_model=ApplicationResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Submit application for review",
)
def submit_application(
    principal: AuthenticatedPrincipal = Depends(require_analyst),
    db: DBSession = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    applications.submit_application(db, principal.principal_id, notifier)
    return _application_response(db, principal.principal_id)
