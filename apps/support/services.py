"""
Support tickets: creation with SLA deadlines, conversation, status
workflow, attachments and SLA reminders.

Agency members see every ticket of their org; CLIENT users only the tickets
of their client accounts and never the internal messages.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from uuid import UUID

from django.conf import settings
from django.core.files.uploadedfile import UploadedFile
from django.db import transaction
from django.utils import timezone
from django.template.defaultfilters import linebreaksbr
from django.utils.html import escape

from apps.clients.services import can_access_client, get_accessible_client_ids, get_client_recipients
from apps.documents import storage_service
from apps.identity.models import User
from apps.notifications.email_service import notify, render_email
from . import sla
from .dtos import SlaSweepResult
from .models import (
    MessageVisibility, Ticket, TicketAttachment, TicketCategory, TicketMessage,
    TicketPriority, TicketStatus,
)

logger = logging.getLogger(__name__)

EVENT_TICKET_CREATED = 'ticket.created'
EVENT_MESSAGE_CREATED = 'ticket.message.created'
EVENT_STATUS_CHANGED = 'ticket.status.changed'
EVENT_SLA_REMINDER = 'sla.reminder'

ALLOWED_TRANSITIONS = {
    TicketStatus.OPEN: {
        TicketStatus.IN_PROGRESS, TicketStatus.WAITING_CUSTOMER, TicketStatus.RESOLVED, TicketStatus.CLOSED,
    },
    TicketStatus.IN_PROGRESS: {
        TicketStatus.OPEN, TicketStatus.WAITING_CUSTOMER, TicketStatus.RESOLVED, TicketStatus.CLOSED,
    },
    TicketStatus.WAITING_CUSTOMER: {
        TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED,
    },
    TicketStatus.RESOLVED: {TicketStatus.OPEN, TicketStatus.CLOSED},
    TicketStatus.CLOSED: {TicketStatus.OPEN},
}

# Tickets the SLA sweep watches. Waiting on the customer pauses reminders.
SLA_ACTIVE_STATUSES = (TicketStatus.OPEN, TicketStatus.IN_PROGRESS)


# =============================================================================
# Lookups
# =============================================================================

def _visible_tickets(user: User):
    return Ticket.objects.filter(
        org_id=user.org_id, client_id__in=get_accessible_client_ids(user),
    ).select_related('category', 'priority')


def list_tickets(
    user: User,
    status: Optional[str] = None,
    client_id: Optional[UUID] = None,
    priority: Optional[str] = None,
) -> List[Ticket]:
    qs = _visible_tickets(user)
    if status:
        qs = qs.filter(status=status)
    if client_id:
        qs = qs.filter(client_id=client_id)
    if priority:
        qs = qs.filter(priority__code=priority)
    return list(qs)


def get_ticket(user: User, ticket_id) -> Optional[Ticket]:
    return _visible_tickets(user).filter(id=ticket_id).first()


def list_messages(ticket: Ticket, user: User) -> List[TicketMessage]:
    qs = ticket.messages.select_related('author')
    if not user.is_agency_member:
        qs = qs.filter(visibility=MessageVisibility.PUBLIC)
    return list(qs)


def list_categories(org_id: UUID) -> List[TicketCategory]:
    return list(TicketCategory.objects.filter(org_id=org_id, is_active=True))


def list_priorities(org_id: UUID) -> List[TicketPriority]:
    return list(TicketPriority.objects.filter(org_id=org_id))


def _resolve_refs(org_id: UUID, client_id, data: dict) -> dict:
    """Validate category, priority and project ids against the org and client."""
    refs = {}
    if data.get('category_id'):
        refs['category'] = TicketCategory.objects.filter(org_id=org_id, id=data['category_id']).first()
        if not refs['category']:
            raise ValueError("Category not found")
    if data.get('priority_id'):
        refs['priority'] = TicketPriority.objects.filter(org_id=org_id, id=data['priority_id']).first()
        if not refs['priority']:
            raise ValueError("Priority not found")
    if data.get('project_id'):
        from apps.projects.models import Project
        if not Project.objects.filter(id=data['project_id'], org_id=org_id, client_id=client_id).exists():
            raise ValueError("Project does not belong to this client")
        refs['project_id'] = data['project_id']
    return refs


# =============================================================================
# E-mail
# =============================================================================

def _notify_client(ticket: Ticket, subject: str, html: str, event_type: str, excerpt: str = "",
                   exclude: Iterable[str] = ()) -> None:
    excluded = set(exclude)
    recipients = [r for r in get_client_recipients(ticket.client_id) if r not in excluded]
    if not recipients:
        logger.warning(f"Ticket {ticket.id}: no recipient for {event_type}")
        return
    try:
        notify(
            org_id=ticket.org_id,
            recipients=recipients,
            subject=f"[{settings.EMAIL_BRAND_NAME}] {subject}",
            html=html,
            event_type=event_type,
            ticket_id=ticket.id,
            excerpt=excerpt,
        )
    except Exception as e:
        logger.warning(f"Ticket {ticket.id}: {event_type} e-mail not sent ({e})")


# =============================================================================
# Tickets
# =============================================================================

def create_ticket(user: User, data: dict) -> Ticket:
    """
    Open a ticket for one of the user's clients.

    SLA deadlines are computed from the priority. An optional first message is
    stored as public, and the client receives an acknowledgment e-mail.

    Raises:
        ValueError: Missing subject, unknown category/priority/project
        LookupError: Client not reachable by the user
    """
    subject = (data.get('subject') or '').strip()
    if not subject:
        raise ValueError("Subject is required")
    client_id = data.get('client_id')
    if not client_id or not can_access_client(user, client_id):
        raise LookupError("Client not found")

    refs = _resolve_refs(user.org_id, client_id, data)
    now = timezone.now()

    with transaction.atomic():
        ticket = Ticket.objects.create(
            org_id=user.org_id,
            client_id=client_id,
            subject=subject,
            created_by=user,
            last_customer_activity=None if user.is_agency_member else now,
            last_admin_activity=now if user.is_agency_member else None,
            **refs,
        )
        if ticket.priority:
            ticket.first_response_due_at, ticket.resolve_due_at = sla.compute_sla_deadlines(
                ticket.priority, ticket.created_at
            )
            ticket.save(update_fields=['first_response_due_at', 'resolve_due_at'])
        message = (data.get('message') or '').strip()
        if message:
            TicketMessage.objects.create(
                ticket=ticket, author=user, body=message, visibility=MessageVisibility.PUBLIC,
            )

    logger.info(f"Ticket {ticket.id} opened for client {client_id}")
    _notify_client(
        ticket,
        f"Ticket créé: {ticket.subject}",
        render_email(
            "Ticket créé",
            f"Votre ticket a été créé.<br/>Sujet: <b>{escape(ticket.subject)}</b>.<br/>Réf: {ticket.id}",
        ),
        EVENT_TICKET_CREATED,
        excerpt=ticket.subject,
    )
    return ticket


def update_ticket(ticket: Ticket, data: dict) -> Ticket:
    """Agency-side edits. A new priority recomputes the deadlines from the opening time."""
    if data.get('subject') is not None:
        if not data['subject'].strip():
            raise ValueError("Subject is required")
        ticket.subject = data['subject'].strip()

    refs = _resolve_refs(ticket.org_id, ticket.client_id, data)
    for field, value in refs.items():
        setattr(ticket, field, value)
    if 'priority' in refs:
        ticket.first_response_due_at, ticket.resolve_due_at = sla.compute_sla_deadlines(
            ticket.priority, ticket.created_at
        )
    ticket.save()
    return ticket


def reply_ticket(ticket: Ticket, user: User, body: str, visibility: str = MessageVisibility.PUBLIC) -> TicketMessage:
    """
    Add a message to the conversation.

    Clients can only post public messages. The first public reply from the
    agency stamps first_response_at. Public messages are e-mailed to the client.
    """
    body = (body or '').strip()
    if not body:
        raise ValueError("Message cannot be empty")
    if visibility not in MessageVisibility.values:
        raise ValueError(f"Invalid visibility: {visibility}")
    if visibility == MessageVisibility.INTERNAL and not user.is_agency_member:
        raise PermissionError("Clients cannot post internal notes")
    if ticket.status == TicketStatus.CLOSED:
        raise ValueError("Ticket is closed")

    now = timezone.now()
    with transaction.atomic():
        message = TicketMessage.objects.create(ticket=ticket, author=user, body=body, visibility=visibility)
        if user.is_agency_member:
            ticket.last_admin_activity = now
            if visibility == MessageVisibility.PUBLIC and ticket.first_response_at is None:
                ticket.first_response_at = now
        else:
            ticket.last_customer_activity = now
            if ticket.status == TicketStatus.WAITING_CUSTOMER:
                ticket.status = TicketStatus.IN_PROGRESS
        ticket.save()

    if visibility == MessageVisibility.PUBLIC:
        _notify_client(
            ticket,
            f"Nouveau message sur votre ticket: {ticket.subject}",
            render_email("Nouveau message", linebreaksbr(body)),
            EVENT_MESSAGE_CREATED,
            excerpt=body,
            exclude=[user.email],
        )
    return message


def change_ticket_status(ticket: Ticket, status: str) -> Ticket:
    """
    Move a ticket along the workflow. Resolving (or closing) stamps
    resolved_at, reopening clears it. The client is notified.
    """
    if status not in TicketStatus.values:
        raise ValueError(f"Invalid status: {status}")
    if status == ticket.status:
        return ticket
    if status not in ALLOWED_TRANSITIONS[ticket.status]:
        raise ValueError(f"Cannot move a ticket from {ticket.status} to {status}")

    previous = ticket.status
    ticket.status = status
    if status in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
        ticket.resolved_at = ticket.resolved_at or timezone.now()
    elif status == TicketStatus.OPEN:
        ticket.resolved_at = None
    ticket.save()
    logger.info(f"Ticket {ticket.id}: {previous} -> {status}")

    _notify_client(
        ticket,
        f"Statut mis à jour: {ticket.subject}",
        render_email(
            "Changement de statut",
            f"Le ticket <b>{escape(ticket.subject)}</b> est maintenant: <b>{ticket.get_status_display()}</b>.",
        ),
        EVENT_STATUS_CHANGED,
        excerpt=status,
    )
    return ticket


# =============================================================================
# Attachments
# =============================================================================

def upload_attachment(user: User, ticket: Ticket, file: UploadedFile, label: Optional[str] = None) -> TicketAttachment:
    """Store the file under tickets/<id>/. Same validation rules as project documents."""
    label = (label or '').strip() or file.name or "Pièce jointe"
    path = storage_service.save_file(file, f"tickets/{ticket.id}")
    try:
        attachment = TicketAttachment.objects.create(
            ticket=ticket,
            label=label[:255],
            original_name=file.name or "",
            storage_path=path,
            mime_type=file.content_type,
            size_bytes=file.size,
            created_by_id=user.id,
        )
    except Exception as e:
        logger.error(f"Attachment row creation failed for {path}: {e}")
        storage_service.delete_file(path)
        raise
    return attachment


def list_attachments(ticket: Ticket) -> List[TicketAttachment]:
    return list(ticket.attachments.all())


def get_attachment(ticket: Ticket, attachment_id) -> Optional[TicketAttachment]:
    return ticket.attachments.filter(id=attachment_id).first()


def get_attachment_download_url(attachment: TicketAttachment) -> str:
    return storage_service.get_download_url(attachment.storage_path)


# =============================================================================
# SLA reminders
# =============================================================================

REMINDER_PRE = 'pre'
REMINDER_OVER = 'over'


def send_sla_reminder(ticket: Ticket, kind: str, now: Optional[datetime] = None) -> bool:
    """
    E-mail a "due soon" (pre) or "breached" (over) reminder, at most once per
    kind and ticket. Returns False when it was already sent.
    """
    now = now or timezone.now()
    stamp = 'sla_warning_sent_at' if kind == REMINDER_PRE else 'sla_breach_sent_at'

    with transaction.atomic():
        locked = Ticket.objects.select_for_update().get(id=ticket.id)
        if getattr(locked, stamp):
            return False
        setattr(locked, stamp, now)
        locked.save(update_fields=[stamp, 'updated_at'])
    setattr(ticket, stamp, now)

    if kind == REMINDER_PRE:
        subject = "Rappel SLA: échéance imminente"
        label = "Pré-échéance"
    else:
        subject = "SLA dépassé: ticket en retard"
        label = "Dépassement"
    _notify_client(
        ticket,
        subject,
        render_email(
            "Rappel SLA",
            f"Ticket: <b>{escape(ticket.subject)}</b><br/>Type: {label}",
            preheader="Rappel automatique SLA",
        ),
        EVENT_SLA_REMINDER,
        excerpt=kind,
    )
    return True


def run_sla_sweep(now: Optional[datetime] = None, warning_window: Optional[timedelta] = None) -> SlaSweepResult:
    """Send the due reminders for every active ticket with deadlines."""
    now = now or timezone.now()
    tickets = Ticket.objects.filter(
        status__in=SLA_ACTIVE_STATUSES, sla_breach_sent_at__isnull=True,
    ).exclude(first_response_due_at__isnull=True, resolve_due_at__isnull=True)

    warnings = breaches = 0
    for ticket in tickets:
        state = sla.get_sla_state(ticket, now, warning_window)
        if state.breached:
            breaches += int(send_sla_reminder(ticket, REMINDER_OVER, now))
        elif state.due_soon and not ticket.sla_warning_sent_at:
            warnings += int(send_sla_reminder(ticket, REMINDER_PRE, now))

    if warnings or breaches:
        logger.info(f"SLA sweep: {warnings} warning(s), {breaches} breach(es)")
    return SlaSweepResult(warnings_sent=warnings, breaches_sent=breaches)


def notify_sla_batches(due_soon: Iterable[UUID], overdue: Iterable[UUID]) -> SlaSweepResult:
    """Reminders for tickets picked by an external scheduler."""
    warnings = sum(
        int(send_sla_reminder(ticket, REMINDER_PRE)) for ticket in Ticket.objects.filter(id__in=list(due_soon))
    )
    breaches = sum(
        int(send_sla_reminder(ticket, REMINDER_OVER)) for ticket in Ticket.objects.filter(id__in=list(overdue))
    )
    return SlaSweepResult(warnings_sent=warnings, breaches_sent=breaches)
