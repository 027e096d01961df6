"""
Client accounts, memberships and prospects.

get_accessible_client_ids() is the single rule every other app uses to
scope what a user may see inside a tenant.
"""
import logging
from typing import List, Optional
from uuid import UUID

from django.db import transaction

from apps.identity.models import User, UserRole
from .models import Client, ClientMember, Prospect, ProspectStatus

logger = logging.getLogger(__name__)

CLIENT_FIELDS = ('name', 'contact_email', 'phone', 'address')
PROSPECT_FIELDS = ('name', 'email', 'phone', 'status', 'source', 'notes')


# =============================================================================
# Access scoping
# =============================================================================

def get_accessible_client_ids(user: User) -> List[UUID]:
    """
    Agency members see every client of their org; CLIENT users only the
    accounts they are members of.
    """
    if not user or not user.is_authenticated or not user.org_id:
        return []
    if user.is_agency_member:
        return list(Client.objects.filter(org_id=user.org_id).values_list('id', flat=True))
    return list(
        ClientMember.objects.filter(user_id=user.id, client__org_id=user.org_id)
        .values_list('client_id', flat=True)
    )


def can_access_client(user: User, client_id: UUID) -> bool:
    return client_id in get_accessible_client_ids(user)


def get_client(org_id, client_id) -> Optional[Client]:
    return Client.objects.filter(org_id=org_id, id=client_id).first()


# =============================================================================
# Clients
# =============================================================================

def list_clients(user: User) -> List[Client]:
    return list(Client.objects.filter(id__in=get_accessible_client_ids(user)))


def create_client(org_id, data: dict) -> Client:
    name = (data.get('name') or '').strip()
    if not name:
        raise ValueError("Client name is required")
    client = Client.objects.create(
        org_id=org_id,
        name=name,
        **{k: data.get(k) or "" for k in CLIENT_FIELDS if k != 'name'},
    )
    logger.info(f"Created client {client.id} ({client.name}) in org {org_id}")
    return client


def update_client(org_id, client_id, data: dict) -> Optional[Client]:
    client = get_client(org_id, client_id)
    if not client:
        return None
    for key in CLIENT_FIELDS:
        if data.get(key) is not None:
            setattr(client, key, data[key])
    if not client.name.strip():
        raise ValueError("Client name is required")
    client.save()
    return client


def delete_client(org_id, client_id) -> bool:
    """
    Delete a client account.

    Raises:
        ValueError: the client still has quotes or invoices
    """
    from apps.billing.models import Quote, Invoice

    client = get_client(org_id, client_id)
    if not client:
        return False
    if Quote.objects.filter(client_id=client.id).exists() or Invoice.objects.filter(client_id=client.id).exists():
        raise ValueError("Client has quotes or invoices and cannot be deleted")
    client.delete()
    logger.info(f"Deleted client {client_id} in org {org_id}")
    return True


def add_member(org_id, client_id, user_id, is_primary: bool = False) -> ClientMember:
    client = get_client(org_id, client_id)
    if not client:
        raise ValueError("Client not found")
    user = User.objects.filter(id=user_id, org_id=org_id).first()
    if not user:
        raise ValueError("User not found in this organization")
    if user.role != UserRole.CLIENT:
        raise ValueError("Only CLIENT users can be attached to a client account")

    with transaction.atomic():
        if is_primary:
            ClientMember.objects.filter(client=client, is_primary=True).update(is_primary=False)
        member, _ = ClientMember.objects.update_or_create(
            client=client, user_id=user.id, defaults={'is_primary': is_primary}
        )
    return member


def remove_member(org_id, client_id, user_id) -> bool:
    deleted, _ = ClientMember.objects.filter(
        client__org_id=org_id, client_id=client_id, user_id=user_id
    ).delete()
    return bool(deleted)


def list_members(org_id, client_id) -> List[ClientMember]:
    return list(ClientMember.objects.filter(client__org_id=org_id, client_id=client_id))


def get_client_recipients(client_id) -> List[str]:
    """Addresses to notify for a client: contact e-mail first, then members."""
    client = Client.objects.filter(id=client_id).first()
    if not client:
        return []
    recipients = [client.contact_email] if client.contact_email else []
    member_ids = ClientMember.objects.filter(client=client).values_list('user_id', flat=True)
    for email in User.objects.filter(id__in=member_ids, is_active=True).values_list('email', flat=True):
        if email and email not in recipients:
            recipients.append(email)
    return recipients


# =============================================================================
# Prospects
# =============================================================================

def _validate_prospect_status(status: Optional[str]):
    if status is not None and status not in ProspectStatus.values:
        raise ValueError(f"Invalid prospect status: {status}")


def list_prospects(org_id, status: Optional[str] = None) -> List[Prospect]:
    qs = Prospect.objects.filter(org_id=org_id)
    if status:
        qs = qs.filter(status=status)
    return list(qs)


def create_prospect(org_id, data: dict) -> Prospect:
    if not (data.get('name') or '').strip():
        raise ValueError("Prospect name is required")
    _validate_prospect_status(data.get('status'))
    return Prospect.objects.create(
        org_id=org_id,
        **{k: data[k] for k in PROSPECT_FIELDS if data.get(k) is not None},
    )


def update_prospect(org_id, prospect_id, data: dict) -> Optional[Prospect]:
    prospect = Prospect.objects.filter(org_id=org_id, id=prospect_id).first()
    if not prospect:
        return None
    _validate_prospect_status(data.get('status'))
    for key in PROSPECT_FIELDS:
        if data.get(key) is not None:
            setattr(prospect, key, data[key])
    prospect.save()
    return prospect


def delete_prospect(org_id, prospect_id) -> bool:
    deleted, _ = Prospect.objects.filter(org_id=org_id, id=prospect_id).delete()
    return bool(deleted)


def convert_prospect_to_client(org_id, prospect_id) -> Client:
    """
    Turn a prospect into a client account. The prospect is removed in the
    same transaction.
    """
    with transaction.atomic():
        prospect = Prospect.objects.select_for_update().filter(org_id=org_id, id=prospect_id).first()
        if not prospect:
            raise ValueError("Prospect not found")
        client = Client.objects.create(
            org_id=org_id,
            name=prospect.name,
            contact_email=prospect.email,
            phone=prospect.phone,
        )
        prospect.delete()

    logger.info(f"Converted prospect {prospect_id} into client {client.id}")
    return client
