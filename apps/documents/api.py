from typing import List, Optional
from uuid import UUID

from django.http import HttpRequest
from ninja import Router, File, Form
from ninja.errors import HttpError
from ninja.files import UploadedFile

from apps.identity.decorators import require_permission
from apps.identity.permissions import Permissions
from apps.audit.audit_service import log_action, AuditAction
from . import services
from .schemas import DocumentOut, DocumentUpdateIn, DownloadOut

router = Router(tags=["Documents"])


def _document_or_404(request, document_id: UUID, permission: str):
    user = require_permission(request, permission)
    document = services.get_document(user, document_id)
    if not document:
        raise HttpError(404, "Document not found")
    return document


@router.get("/", response=List[DocumentOut], auth=None)
def list_documents(request: HttpRequest, project_id: Optional[UUID] = None):
    user = require_permission(request, Permissions.DOCUMENT_VIEW)
    return services.list_documents(user, project_id=project_id)


@router.post("/upload", response=DocumentOut, auth=None)
def upload_document(
    request: HttpRequest,
    project_id: UUID = Form(...),
    label: str = Form(...),
    visibility: Optional[str] = Form(None),
    file: UploadedFile = File(...),
):
    """Multipart upload: file, project_id, label and optional visibility."""
    user = require_permission(request, Permissions.DOCUMENT_UPLOAD)
    try:
        document = services.upload_document(user, project_id, file, label, visibility)
    except LookupError as e:
        raise HttpError(404, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=document.org_id,
        action=AuditAction.UPLOAD_DOCUMENT,
        target_type="Document",
        target_id=document.id,
        target_label=document.label,
        performed_by=user,
    )
    return document


@router.get("/{document_id}", response=DocumentOut, auth=None)
def get_document(request: HttpRequest, document_id: UUID):
    return _document_or_404(request, document_id, Permissions.DOCUMENT_VIEW)


@router.get("/{document_id}/download", response=DownloadOut, auth=None)
def download_document(request: HttpRequest, document_id: UUID):
    document = _document_or_404(request, document_id, Permissions.DOCUMENT_VIEW)
    return {"download_url": services.get_download_url(document)}


@router.patch("/{document_id}", response=DocumentOut, auth=None)
def update_document(request: HttpRequest, document_id: UUID, payload: DocumentUpdateIn):
    document = _document_or_404(request, document_id, Permissions.DOCUMENT_MANAGE)
    try:
        document = services.update_document(document, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=document.org_id,
        action=AuditAction.UPDATE_DOCUMENT,
        target_type="Document",
        target_id=document.id,
        target_label=document.label,
        performed_by=request.user,
        context={"visibility": document.visibility},
    )
    return document


@router.delete("/{document_id}", auth=None)
def delete_document(request: HttpRequest, document_id: UUID):
    document = _document_or_404(request, document_id, Permissions.DOCUMENT_MANAGE)
    services.delete_document(document)
    log_action(
        org_id=document.org_id,
        action=AuditAction.DELETE_DOCUMENT,
        target_type="Document",
        target_id=document_id,
        target_label=document.label,
        performed_by=request.user,
    )
    return {"success": True}
