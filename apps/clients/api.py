from typing import List, Optional
from uuid import UUID

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.identity.decorators import require_permission, get_org_id
from apps.identity.permissions import Permissions
from apps.audit.audit_service import log_action, AuditAction
from . import services
from .schemas import (
    ClientIn, ClientUpdateIn, ClientOut, ClientMemberIn, ClientMemberOut,
    ProspectIn, ProspectUpdateIn, ProspectOut,
)

router = Router(tags=["Clients"])


# =============================================================================
# Clients
# =============================================================================

@router.get("/", response=List[ClientOut], auth=None)
def list_clients(request: HttpRequest):
    """Clients visible to the caller (all of the org for agency members)."""
    user = require_permission(request, Permissions.CLIENT_VIEW)
    return services.list_clients(user)


@router.post("/", response=ClientOut, auth=None)
def create_client(request: HttpRequest, payload: ClientIn):
    user = require_permission(request, Permissions.CLIENT_MANAGE)
    org_id = get_org_id(request)
    try:
        client = services.create_client(org_id, payload.dict())
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=org_id,
        action=AuditAction.CREATE_CLIENT,
        target_type="Client",
        target_id=client.id,
        target_label=client.name,
        performed_by=user,
    )
    return client


@router.get("/{client_id}", response=ClientOut, auth=None)
def get_client(request: HttpRequest, client_id: UUID):
    require_permission(request, Permissions.CLIENT_VIEW)
    client = services.get_client(get_org_id(request), client_id)
    if not client:
        raise HttpError(404, "Client not found")
    return client


@router.patch("/{client_id}", response=ClientOut, auth=None)
def update_client(request: HttpRequest, client_id: UUID, payload: ClientUpdateIn):
    user = require_permission(request, Permissions.CLIENT_MANAGE)
    org_id = get_org_id(request)
    try:
        client = services.update_client(org_id, client_id, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))
    if not client:
        raise HttpError(404, "Client not found")

    log_action(
        org_id=org_id,
        action=AuditAction.UPDATE_CLIENT,
        target_type="Client",
        target_id=client.id,
        target_label=client.name,
        performed_by=user,
        context=payload.dict(exclude_unset=True),
    )
    return client


@router.delete("/{client_id}", auth=None)
def delete_client(request: HttpRequest, client_id: UUID):
    user = require_permission(request, Permissions.CLIENT_MANAGE)
    org_id = get_org_id(request)
    try:
        deleted = services.delete_client(org_id, client_id)
    except ValueError as e:
        raise HttpError(400, str(e))
    if not deleted:
        raise HttpError(404, "Client not found")

    log_action(
        org_id=org_id,
        action=AuditAction.DELETE_CLIENT,
        target_type="Client",
        target_id=client_id,
        performed_by=user,
    )
    return {"success": True}


@router.get("/{client_id}/members", response=List[ClientMemberOut], auth=None)
def list_members(request: HttpRequest, client_id: UUID):
    require_permission(request, Permissions.CLIENT_MANAGE)
    return services.list_members(get_org_id(request), client_id)


@router.post("/{client_id}/members", response=ClientMemberOut, auth=None)
def add_member(request: HttpRequest, client_id: UUID, payload: ClientMemberIn):
    require_permission(request, Permissions.CLIENT_MANAGE)
    try:
        return services.add_member(get_org_id(request), client_id, payload.user_id, payload.is_primary)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/{client_id}/members/{user_id}", auth=None)
def remove_member(request: HttpRequest, client_id: UUID, user_id: UUID):
    require_permission(request, Permissions.CLIENT_MANAGE)
    if not services.remove_member(get_org_id(request), client_id, user_id):
        raise HttpError(404, "Membership not found")
    return {"success": True}


# =============================================================================
# Prospects
# =============================================================================

@router.get("/prospects/", response=List[ProspectOut], auth=None)
def list_prospects(request: HttpRequest, status: Optional[str] = None):
    require_permission(request, Permissions.PROSPECT_MANAGE)
    return services.list_prospects(get_org_id(request), status=status)


@router.post("/prospects/", response=ProspectOut, auth=None)
def create_prospect(request: HttpRequest, payload: ProspectIn):
    require_permission(request, Permissions.PROSPECT_MANAGE)
    try:
        return services.create_prospect(get_org_id(request), payload.dict())
    except ValueError as e:
        raise HttpError(400, str(e))


@router.patch("/prospects/{prospect_id}", response=ProspectOut, auth=None)
def update_prospect(request: HttpRequest, prospect_id: UUID, payload: ProspectUpdateIn):
    require_permission(request, Permissions.PROSPECT_MANAGE)
    try:
        prospect = services.update_prospect(get_org_id(request), prospect_id, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))
    if not prospect:
        raise HttpError(404, "Prospect not found")
    return prospect


@router.delete("/prospects/{prospect_id}", auth=None)
def delete_prospect(request: HttpRequest, prospect_id: UUID):
    require_permission(request, Permissions.PROSPECT_MANAGE)
    if not services.delete_prospect(get_org_id(request), prospect_id):
        raise HttpError(404, "Prospect not found")
    return {"success": True}


@router.post("/prospects/{prospect_id}/convert", response=ClientOut, auth=None)
def convert_prospect(request: HttpRequest, prospect_id: UUID):
    """Create a client from the prospect and remove the prospect."""
    user = require_permission(request, Permissions.CLIENT_MANAGE)
    org_id = get_org_id(request)
    try:
        client = services.convert_prospect_to_client(org_id, prospect_id)
    except ValueError as e:
        raise HttpError(404, str(e))

    log_action(
        org_id=org_id,
        action=AuditAction.CONVERT_PROSPECT,
        target_type="Client",
        target_id=client.id,
        target_label=client.name,
        performed_by=user,
        context={"prospect_id": str(prospect_id)},
    )
    return client
