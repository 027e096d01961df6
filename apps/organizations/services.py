"""
Services for Organizations app.
This is the public API for other apps to interact with organizations.
"""
import logging
from typing import Optional

from django.db import transaction
from .models import Organization
from .dtos import (
    OnboardingRequest, OnboardingResponse, OrganizationOut,
    AdminOverviewDTO, RecentItemDTO,
)
from apps.identity.services import create_user
from apps.identity.models import UserRole

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5
SETTINGS_FIELDS = ('name', 'address', 'phone', 'email', 'website', 'legal_notice', 'logo')


def get_organization(org_id) -> Optional[Organization]:
    return Organization.objects.filter(id=org_id).first()


def get_organization_dto(org_id) -> Optional[OrganizationOut]:
    """
    Get an organization by ID and return as DTO.
    This is the only way other apps should access organization data.
    """
    org = get_organization(org_id)
    return OrganizationOut.from_orm(org) if org else None


def onboard_organization(payload: OnboardingRequest) -> OnboardingResponse:
    """Create a tenant and its first administrator in one transaction."""
    with transaction.atomic():
        org = Organization.objects.create(**payload.organization.dict())

        user_payload = payload.admin_user
        user_payload.role = UserRole.ADMIN
        user_dto = create_user(org_id=org.id, payload=user_payload)

    logger.info(f"Onboarded organization {org.id} ({org.name})")
    return OnboardingResponse(
        organization=OrganizationOut.from_orm(org),
        admin_user=user_dto,
    )


def update_organization_settings(org_id, data: dict) -> Optional[Organization]:
    """Update the agency profile printed on documents. None values are ignored."""
    org = get_organization(org_id)
    if not org:
        return None

    changed = []
    for key in SETTINGS_FIELDS:
        if data.get(key) is not None:
            setattr(org, key, data[key])
            changed.append(key)

    if changed:
        if not (org.name or "").strip():
            raise ValueError("Organization name cannot be empty")
        org.save(update_fields=changed + ['updated_at'])
    return org


def _recent(qs, label_field: str) -> list[RecentItemDTO]:
    return [
        RecentItemDTO(
            id=obj.id,
            label=getattr(obj, label_field),
            status=getattr(obj, 'status', '') or getattr(obj, 'visibility', ''),
            created_at=obj.created_at,
        )
        for obj in qs.order_by('-created_at')[:RECENT_LIMIT]
    ]


def get_admin_overview(org_id) -> AdminOverviewDTO:
    """Dashboard counters and the five latest projects, tasks, clients and documents."""
    from apps.clients.models import Client
    from apps.projects.models import Project, Task
    from apps.documents.models import Document
    from apps.support.models import Ticket, TicketStatus
    from apps.billing.models import Invoice, InvoiceStatus

    projects = Project.objects.filter(org_id=org_id)
    tasks = Task.objects.filter(org_id=org_id)
    clients = Client.objects.filter(org_id=org_id)
    documents = Document.objects.filter(org_id=org_id)

    return AdminOverviewDTO(
        projects_count=projects.count(),
        tasks_count=tasks.count(),
        clients_count=clients.count(),
        documents_count=documents.count(),
        open_tickets_count=Ticket.objects.filter(org_id=org_id).exclude(
            status__in=[TicketStatus.RESOLVED, TicketStatus.CLOSED]
        ).count(),
        unpaid_invoices_count=Invoice.objects.filter(
            org_id=org_id,
            status__in=[InvoiceStatus.ISSUED, InvoiceStatus.SENT, InvoiceStatus.OVERDUE],
        ).count(),
        recent_projects=_recent(projects, 'title'),
        recent_tasks=_recent(tasks, 'title'),
        recent_clients=_recent(clients, 'name'),
        recent_documents=_recent(documents, 'label'),
    )
