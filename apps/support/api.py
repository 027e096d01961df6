import hmac
import json
from typing import List, Optional
from uuid import UUID

from django.conf import settings
from django.http import HttpRequest
from ninja import Router, File, Form
from ninja.errors import HttpError
from ninja.files import UploadedFile
from pydantic import ValidationError

from apps.identity.decorators import require_permission, get_org_id
from apps.identity.permissions import Permissions
from apps.audit.audit_service import log_action, AuditAction
from . import services
from .schemas import (
    CategoryOut, PriorityOut,
    TicketIn, TicketUpdateIn, TicketStatusIn, TicketOut, TicketDetailOut,
    MessageIn, MessageOut, AttachmentOut, DownloadOut,
    SlaNotifyIn, SlaNotifyOut,
)

router = Router(tags=["Support"])


def _ticket_or_404(request, ticket_id: UUID, permission: str = Permissions.SUPPORT_VIEW):
    user = require_permission(request, permission)
    ticket = services.get_ticket(user, ticket_id)
    if not ticket:
        raise HttpError(404, "Ticket not found")
    return ticket


# =============================================================================
# Reference data
# =============================================================================

@router.get("/categories", response=List[CategoryOut], auth=None)
def list_categories(request: HttpRequest):
    require_permission(request, Permissions.SUPPORT_VIEW)
    return services.list_categories(get_org_id(request))


@router.get("/priorities", response=List[PriorityOut], auth=None)
def list_priorities(request: HttpRequest):
    require_permission(request, Permissions.SUPPORT_VIEW)
    return services.list_priorities(get_org_id(request))


# =============================================================================
# Tickets
# =============================================================================

@router.get("/tickets", response=List[TicketOut], auth=None)
def list_tickets(
    request: HttpRequest,
    status: Optional[str] = None,
    client_id: Optional[UUID] = None,
    priority: Optional[str] = None,
):
    user = require_permission(request, Permissions.SUPPORT_VIEW)
    return services.list_tickets(user, status=status, client_id=client_id, priority=priority)


@router.post("/tickets", response=TicketOut, auth=None)
def create_ticket(request: HttpRequest, payload: TicketIn):
    user = require_permission(request, Permissions.SUPPORT_CREATE)
    try:
        ticket = services.create_ticket(user, payload.dict())
    except LookupError as e:
        raise HttpError(404, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=ticket.org_id,
        action=AuditAction.CREATE_TICKET,
        target_type="Ticket",
        target_id=ticket.id,
        target_label=ticket.subject,
        performed_by=user,
    )
    return ticket


@router.get("/tickets/{ticket_id}", response=TicketDetailOut, auth=None)
def get_ticket(request: HttpRequest, ticket_id: UUID):
    """Ticket with its conversation. Internal notes are hidden from clients."""
    ticket = _ticket_or_404(request, ticket_id)
    ticket.visible_messages = services.list_messages(ticket, request.user)
    return ticket


@router.patch("/tickets/{ticket_id}", response=TicketOut, auth=None)
def update_ticket(request: HttpRequest, ticket_id: UUID, payload: TicketUpdateIn):
    ticket = _ticket_or_404(request, ticket_id, Permissions.SUPPORT_MANAGE)
    try:
        return services.update_ticket(ticket, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/tickets/{ticket_id}/status", response=TicketOut, auth=None)
def change_status(request: HttpRequest, ticket_id: UUID, payload: TicketStatusIn):
    ticket = _ticket_or_404(request, ticket_id, Permissions.SUPPORT_MANAGE)
    previous = ticket.status
    try:
        ticket = services.change_ticket_status(ticket, payload.status)
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=ticket.org_id,
        action=AuditAction.CHANGE_TICKET_STATUS,
        target_type="Ticket",
        target_id=ticket.id,
        target_label=ticket.subject,
        performed_by=request.user,
        context={"from": previous, "to": ticket.status},
    )
    return ticket


# =============================================================================
# Messages
# =============================================================================

@router.get("/tickets/{ticket_id}/messages", response=List[MessageOut], auth=None)
def list_messages(request: HttpRequest, ticket_id: UUID):
    ticket = _ticket_or_404(request, ticket_id)
    return services.list_messages(ticket, request.user)


@router.post("/tickets/{ticket_id}/messages", response=MessageOut, auth=None)
def reply_ticket(request: HttpRequest, ticket_id: UUID, payload: MessageIn):
    ticket = _ticket_or_404(request, ticket_id, Permissions.SUPPORT_CREATE)
    try:
        return services.reply_ticket(ticket, request.user, payload.body, payload.visibility)
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))


# =============================================================================
# Attachments
# =============================================================================

@router.get("/tickets/{ticket_id}/attachments", response=List[AttachmentOut], auth=None)
def list_attachments(request: HttpRequest, ticket_id: UUID):
    return services.list_attachments(_ticket_or_404(request, ticket_id))


@router.post("/tickets/{ticket_id}/attachments", response=AttachmentOut, auth=None)
def upload_attachment(
    request: HttpRequest,
    ticket_id: UUID,
    label: Optional[str] = Form(None),
    file: UploadedFile = File(...),
):
    ticket = _ticket_or_404(request, ticket_id, Permissions.SUPPORT_CREATE)
    try:
        return services.upload_attachment(request.user, ticket, file, label)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/tickets/{ticket_id}/attachments/{attachment_id}/download", response=DownloadOut, auth=None)
def download_attachment(request: HttpRequest, ticket_id: UUID, attachment_id: UUID):
    ticket = _ticket_or_404(request, ticket_id)
    attachment = services.get_attachment(ticket, attachment_id)
    if not attachment:
        raise HttpError(404, "Attachment not found")
    return {"download_url": services.get_attachment_download_url(attachment)}


# =============================================================================
# SLA cron
# =============================================================================

@router.post("/sla/notify", response=SlaNotifyOut, auth=None)
def sla_notify(request: HttpRequest):
    """
    Called by a scheduler with the X-Cron-Secret header.

    Body (optional): {"dueSoon": [{id, subject, client_id}], "overdue": [...]}.
    Without batches the SLA sweep picks the tickets itself.
    """
    secret = request.headers.get('X-Cron-Secret') or ''
    if not settings.CRON_SECRET or not hmac.compare_digest(secret.encode(), settings.CRON_SECRET.encode()):
        raise HttpError(401, "Unauthorized")

    try:
        data = json.loads(request.body) if request.body and request.content_type == 'application/json' else {}
        data = data or {}
        payload = SlaNotifyIn.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise HttpError(400, f"Invalid payload: {e}")

    if payload.due_soon or payload.overdue:
        result = services.notify_sla_batches(
            [t.id for t in payload.due_soon], [t.id for t in payload.overdue],
        )
    else:
        result = services.run_sla_sweep()
    return {"ok": True, "warnings_sent": result.warnings_sent, "breaches_sent": result.breaches_sent}
