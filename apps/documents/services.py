"""
Project documents: upload, listing with visibility rules, metadata
updates and deletion of the stored objects.
"""
import logging
from typing import List, Optional
from uuid import UUID

from django.core.files.uploadedfile import UploadedFile
from django.db.models import Q

from apps.identity.models import User, UserRole
from apps.projects.services import get_accessible_project
from . import storage_service
from .models import Document, DocumentVisibility

logger = logging.getLogger(__name__)


def visible_documents(user: User):
    """Documents the user may see: everything for agency members, public ones and own uploads for clients."""
    qs = Document.objects.filter(org_id=user.org_id)
    if user.role == UserRole.CLIENT:
        qs = qs.filter(Q(visibility=DocumentVisibility.PUBLIC) | Q(created_by_id=user.id))
    return qs


def upload_document(
    user: User,
    project_id: UUID,
    file: UploadedFile,
    label: str,
    visibility: Optional[str] = None,
) -> Document:
    """
    Store the file under project-<id>/ and create the Document row.
    If the row cannot be created the stored file is removed again.

    Raises:
        ValueError: Invalid label, visibility or file
        LookupError: Project not reachable by the user
    """
    label = (label or '').strip()
    if not label:
        raise ValueError("Label is required")
    if visibility and visibility not in DocumentVisibility.values:
        raise ValueError(f"Invalid visibility: {visibility}")

    project = get_accessible_project(user, project_id)
    if not project:
        raise LookupError("Project not found")

    path = storage_service.save_file(file, f"project-{project.id}")
    try:
        document = Document.objects.create(
            org_id=project.org_id,
            project_id=project.id,
            label=label,
            original_name=file.name or "",
            storage_path=path,
            mime_type=file.content_type,
            size_bytes=file.size,
            visibility=visibility or DocumentVisibility.PRIVATE,
            created_by_id=user.id,
        )
    except Exception as e:
        logger.error(f"Document row creation failed for {path}: {e}")
        storage_service.delete_file(path)
        raise

    logger.info(f"Uploaded document {document.id} to project {project.id}")
    return document


def list_documents(user: User, project_id: Optional[UUID] = None) -> List[Document]:
    """Documents of the projects the user can reach. Clients only see public ones (and their own)."""
    if project_id:
        project = get_accessible_project(user, project_id)
        if not project:
            return []
        project_ids = [project.id]
    else:
        from apps.projects.services import list_projects
        project_ids = [p.id for p in list_projects(user)]
    return list(visible_documents(user).filter(project_id__in=project_ids))


def get_document(user: User, document_id: UUID) -> Optional[Document]:
    document = visible_documents(user).filter(id=document_id).first()
    if document and get_accessible_project(user, document.project_id):
        return document
    return None


def update_document(document: Document, data: dict) -> Document:
    if data.get('label') is not None:
        if not data['label'].strip():
            raise ValueError("Label is required")
        document.label = data['label'].strip()
    if data.get('visibility') is not None:
        if data['visibility'] not in DocumentVisibility.values:
            raise ValueError(f"Invalid visibility: {data['visibility']}")
        document.visibility = data['visibility']
    document.save()
    return document


def delete_document(document: Document) -> None:
    storage_service.delete_file(document.storage_path)
    document.delete()
    logger.info(f"Deleted document {document.id}")


def delete_project_documents(project_id: UUID) -> int:
    """Remove every document of a project, stored objects included."""
    documents = list(Document.objects.filter(project_id=project_id))
    for document in documents:
        storage_service.delete_file(document.storage_path)
    Document.objects.filter(project_id=project_id).delete()
    return len(documents)


def get_download_url(document: Document) -> str:
    return storage_service.get_download_url(document.storage_path)
