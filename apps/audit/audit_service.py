"""
Centralized audit logging service.

Use log_action() to record any critical mutation. It never raises, so a
logging failure will never break the calling request.

Usage:
    from apps.audit.audit_service import log_action, AuditAction

    log_action(
        org_id=org_id,
        action=AuditAction.ACCEPT_QUOTE,
        target_type="Quote",
        target_id=quote.id,
        target_label=quote.number,
        performed_by=request.user,
        context={"invoice_id": str(invoice.id)},
    )
"""
import logging
from uuid import UUID
from typing import Optional

from django.db import transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """
    Canonical string constants for audit log actions.
    """
    # ── Organization & users ──────────────────────────────────────────
    UPDATE_ORG_SETTINGS = "UPDATE_ORG_SETTINGS"

    # ── Clients & prospects ───────────────────────────────────────────
    CREATE_CLIENT = "CREATE_CLIENT"
    UPDATE_CLIENT = "UPDATE_CLIENT"
    DELETE_CLIENT = "DELETE_CLIENT"
    CONVERT_PROSPECT = "CONVERT_PROSPECT"

    # ── Projects ──────────────────────────────────────────────────────
    CREATE_PROJECT = "CREATE_PROJECT"
    DELETE_PROJECT = "DELETE_PROJECT"

    # ── Documents ─────────────────────────────────────────────────────
    UPLOAD_DOCUMENT = "UPLOAD_DOCUMENT"
    UPDATE_DOCUMENT = "UPDATE_DOCUMENT"
    DELETE_DOCUMENT = "DELETE_DOCUMENT"

    # ── Billing ───────────────────────────────────────────────────────
    CREATE_QUOTE = "CREATE_QUOTE"
    SEND_QUOTE = "SEND_QUOTE"
    ACCEPT_QUOTE = "ACCEPT_QUOTE"
    REJECT_QUOTE = "REJECT_QUOTE"
    DELETE_QUOTE = "DELETE_QUOTE"
    CREATE_INVOICE = "CREATE_INVOICE"
    CANCEL_INVOICE = "CANCEL_INVOICE"
    DELETE_INVOICE = "DELETE_INVOICE"

    # ── Payments ──────────────────────────────────────────────────────
    INITIATE_PAYMENT = "INITIATE_PAYMENT"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    PAYMENT_REFUSED = "PAYMENT_REFUSED"

    # ── Support ───────────────────────────────────────────────────────
    CREATE_TICKET = "CREATE_TICKET"
    CHANGE_TICKET_STATUS = "CHANGE_TICKET_STATUS"


def log_action(
    *,
    org_id: UUID,
    action: str,
    target_type: str,
    target_id: UUID,
    performed_by=None,
    target_label: str = "",
    context: Optional[dict] = None,
) -> Optional[AuditLog]:
    """
    Create an AuditLog entry for a critical action.

    Never raises. The insert runs in a savepoint so a failure cannot poison
    an enclosing transaction.

    Args:
        org_id:        Organization UUID for multi-tenant isolation.
        action:        Action constant from AuditAction.
        target_type:   Type of the object acted on (e.g. "Invoice").
        target_id:     Primary key of the object acted on.
        performed_by:  Django User instance, or None for system actions.
        target_label:  Optional human-readable description of the object.
        context:       Optional dict of additional metadata stored as JSON.

    Returns:
        The created AuditLog instance, or None if creation failed.
    """
    if performed_by is not None and not getattr(performed_by, 'is_authenticated', False):
        performed_by = None
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                org_id=org_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                target_label=target_label[:255],
                performed_by=performed_by,
                context=context or {},
            )
    except Exception:
        logger.exception(f"Failed to write audit log {action} for {target_type} {target_id}")
        return None
