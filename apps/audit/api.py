from datetime import date
from typing import List, Optional
from uuid import UUID

from django.shortcuts import get_object_or_404
from ninja import Router

from apps.identity.decorators import require_permission, get_org_id
from apps.identity.permissions import Permissions
from .models import AuditLog
from .dtos import AuditLogOut

router = Router(tags=["Audit"])


def _serialize_log(log: AuditLog) -> dict:
    return {
        "id": log.id,
        "org_id": log.org_id,
        "action": log.action,
        "target_type": log.target_type,
        "target_id": log.target_id,
        "target_label": log.target_label,
        "performed_by_name": log.performed_by.display_name if log.performed_by else None,
        "performed_at": log.performed_at,
        "context": log.context,
    }


@router.get("/logs", response=List[AuditLogOut], auth=None)
def list_audit_logs(
    request,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
):
    """
    List audit log entries for the organization, newest first.
    Filters: action, target type/id and an inclusive date range.
    """
    require_permission(request, Permissions.AUDIT_VIEW)
    qs = AuditLog.objects.filter(org_id=get_org_id(request)).select_related("performed_by")

    if action:
        qs = qs.filter(action=action)
    if target_type:
        qs = qs.filter(target_type=target_type)
    if target_id:
        qs = qs.filter(target_id=target_id)
    if start_date:
        qs = qs.filter(performed_at__date__gte=start_date)
    if end_date:
        qs = qs.filter(performed_at__date__lte=end_date)

    return [_serialize_log(log) for log in qs[:max(1, min(limit, 500))]]


@router.get("/logs/{log_id}", response=AuditLogOut, auth=None)
def get_audit_log(request, log_id: UUID):
    require_permission(request, Permissions.AUDIT_VIEW)
    log = get_object_or_404(
        AuditLog.objects.select_related("performed_by"), id=log_id, org_id=get_org_id(request)
    )
    return _serialize_log(log)
