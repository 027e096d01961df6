from typing import List
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import has_permission, get_org_id
from apps.identity.permissions import Permissions
from apps.audit.audit_service import log_action, AuditAction
from .models import Organization
from .dtos import (
    OrganizationOut, OrganizationIn, OrganizationSettingsIn,
    OnboardingRequest, OnboardingResponse, AdminOverviewDTO,
)
from .services import onboard_organization, update_organization_settings, get_admin_overview

router = Router(tags=["Organizations"])


def _ensure_same_org(request: HttpRequest, org_id: UUID):
    # Users can only reach their own organization, unless they are superusers
    if not request.user.is_superuser and request.user.org_id != org_id:
        raise HttpError(403, "Permission denied: Cannot access other organizations")


@router.post("/onboard", response=OnboardingResponse, auth=None)
def create_onboard(request: HttpRequest, payload: OnboardingRequest):
    """
    **Public Endpoint**: Register a new agency.

    Creates the Organization tenant and its initial administrator.
    """
    try:
        return onboard_organization(payload)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("", response=List[OrganizationOut], auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def list_organizations(request: HttpRequest):
    if request.user.is_superuser:
        return list(Organization.objects.all())
    if request.user.org_id:
        return list(Organization.objects.filter(id=request.user.org_id))
    return []


# =============================================================================
# Current organization settings & dashboard
# =============================================================================

@router.get("/current/settings", response=OrganizationOut, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def get_current_settings(request: HttpRequest):
    return get_object_or_404(Organization, id=get_org_id(request))


@router.patch("/current/settings", response=OrganizationOut, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def update_current_settings(request: HttpRequest, payload: OrganizationSettingsIn):
    org_id = get_org_id(request)
    try:
        org = update_organization_settings(org_id, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))
    if not org:
        raise HttpError(404, "Organization not found")

    log_action(
        org_id=org_id,
        action=AuditAction.UPDATE_ORG_SETTINGS,
        target_type="Organization",
        target_id=org.id,
        target_label=org.name,
        performed_by=request.user,
        context=payload.dict(exclude_unset=True),
    )
    return org


@router.get("/current/overview", response=AdminOverviewDTO, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def admin_overview(request: HttpRequest):
    """Admin dashboard counters and latest records."""
    return get_admin_overview(get_org_id(request))


# =============================================================================
# Organization by id
# =============================================================================

@router.get("/{org_id}", response=OrganizationOut, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def get_organization(request: HttpRequest, org_id: UUID):
    _ensure_same_org(request, org_id)
    return get_object_or_404(Organization, id=org_id)


@router.put("/{org_id}", response=OrganizationOut, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def update_organization(request: HttpRequest, org_id: UUID, payload: OrganizationIn):
    _ensure_same_org(request, org_id)
    org = get_object_or_404(Organization, id=org_id)
    for attr, value in payload.dict().items():
        setattr(org, attr, value)
    org.save()
    return org
