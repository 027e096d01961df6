from typing import List, Optional
from uuid import UUID

from django.http import HttpRequest, HttpResponse
from ninja import Router
from ninja.errors import HttpError

from apps.identity.decorators import require_permission, get_org_id
from apps.identity.permissions import Permissions
from apps.audit.audit_service import log_action, AuditAction
from apps.core.task_service import TaskService
from . import services, pdf_service
from .models import QuoteItem, InvoiceItem
from .schemas import (
    ItemIn, ItemUpdateIn, ItemOut,
    QuoteIn, QuoteUpdateIn, QuoteOut,
    InvoiceIn, InvoiceUpdateIn, InvoiceOut,
)

router = Router(tags=["Billing"])


def _quote_or_404(request, quote_id: UUID, permission: str = Permissions.BILLING_VIEW):
    user = require_permission(request, permission)
    quote = services.get_quote(user, quote_id)
    if not quote:
        raise HttpError(404, "Quote not found")
    return quote


def _invoice_or_404(request, invoice_id: UUID, permission: str = Permissions.BILLING_VIEW):
    user = require_permission(request, permission)
    invoice = services.get_invoice(user, invoice_id)
    if not invoice:
        raise HttpError(404, "Invoice not found")
    return invoice


def _audit(request, action, document, context=None):
    log_action(
        org_id=document.org_id,
        action=action,
        target_type=type(document).__name__,
        target_id=document.id,
        target_label=document.number,
        performed_by=request.user,
        context=context,
    )


def _pdf_response(content: bytes, filename: str) -> HttpResponse:
    response = HttpResponse(content, content_type='application/pdf')
    response['Content-Disposition'] = f'inline; filename="{filename}"'
    return response


# =============================================================================
# Quotes
# =============================================================================

@router.get("/quotes", response=List[QuoteOut], auth=None)
def list_quotes(request: HttpRequest, status: Optional[str] = None, client_id: Optional[UUID] = None):
    user = require_permission(request, Permissions.BILLING_VIEW)
    return services.list_quotes(user, status=status, client_id=client_id)


@router.post("/quotes", response=QuoteOut, auth=None)
def create_quote(request: HttpRequest, payload: QuoteIn):
    user = require_permission(request, Permissions.BILLING_MANAGE)
    try:
        quote = services.create_quote(get_org_id(request), payload.dict(), created_by=user)
    except ValueError as e:
        raise HttpError(400, str(e))
    _audit(request, AuditAction.CREATE_QUOTE, quote, {"total_ttc": str(quote.total_ttc)})
    return quote


@router.get("/quotes/{quote_id}", response=QuoteOut, auth=None)
def get_quote(request: HttpRequest, quote_id: UUID):
    return _quote_or_404(request, quote_id)


@router.patch("/quotes/{quote_id}", response=QuoteOut, auth=None)
def update_quote(request: HttpRequest, quote_id: UUID, payload: QuoteUpdateIn):
    quote = _quote_or_404(request, quote_id, Permissions.BILLING_MANAGE)
    try:
        return services.update_quote(quote, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/quotes/{quote_id}", auth=None)
def delete_quote(request: HttpRequest, quote_id: UUID):
    quote = _quote_or_404(request, quote_id, Permissions.BILLING_MANAGE)
    try:
        services.delete_quote(quote)
    except ValueError as e:
        raise HttpError(400, str(e))
    _audit(request, AuditAction.DELETE_QUOTE, quote)
    return {"success": True}


@router.post("/quotes/{quote_id}/send", response=QuoteOut, auth=None)
def send_quote(request: HttpRequest, quote_id: UUID):
    """Mark as sent and e-mail the client a link to the PDF."""
    quote = _quote_or_404(request, quote_id, Permissions.BILLING_MANAGE)
    try:
        quote = services.send_quote(quote)
    except ValueError as e:
        raise HttpError(400, str(e))
    _audit(request, AuditAction.SEND_QUOTE, quote)
    return quote


@router.post("/quotes/{quote_id}/accept", response=InvoiceOut, auth=None)
def accept_quote(request: HttpRequest, quote_id: UUID):
    """Client (or agency) accepts a sent quote. Returns the generated invoice."""
    quote = _quote_or_404(request, quote_id)
    try:
        invoice = services.accept_quote(quote)
    except ValueError as e:
        raise HttpError(400, str(e))
    _audit(request, AuditAction.ACCEPT_QUOTE, quote, {"invoice_number": invoice.number})
    return invoice


@router.post("/quotes/{quote_id}/reject", response=QuoteOut, auth=None)
def reject_quote(request: HttpRequest, quote_id: UUID):
    quote = _quote_or_404(request, quote_id)
    try:
        quote = services.reject_quote(quote)
    except ValueError as e:
        raise HttpError(400, str(e))
    _audit(request, AuditAction.REJECT_QUOTE, quote)
    return quote


@router.post("/quotes/{quote_id}/cancel", response=QuoteOut, auth=None)
def cancel_quote(request: HttpRequest, quote_id: UUID):
    quote = _quote_or_404(request, quote_id, Permissions.BILLING_MANAGE)
    try:
        return services.cancel_quote(quote)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/quotes/{quote_id}/pdf", auth=None)
def quote_pdf(request: HttpRequest, quote_id: UUID):
    quote = _quote_or_404(request, quote_id)
    try:
        content = pdf_service.generate_quote_pdf(quote)
    except ImportError as e:
        raise HttpError(500, str(e))
    return _pdf_response(content, pdf_service.pdf_filename(quote))


@router.post("/quotes/{quote_id}/pdf/store", auth=None)
def store_quote_pdf(request: HttpRequest, quote_id: UUID):
    """Render the PDF in the background and keep it in storage."""
    quote = _quote_or_404(request, quote_id, Permissions.BILLING_MANAGE)
    task_id = TaskService.store_billing_pdf(kind="quote", document_id=quote.id)
    return {"task_id": task_id}


# =============================================================================
# Quote items
# =============================================================================

@router.post("/quotes/{quote_id}/items", response=ItemOut, auth=None)
def add_quote_item(request: HttpRequest, quote_id: UUID, payload: ItemIn):
    quote = _quote_or_404(request, quote_id, Permissions.BILLING_MANAGE)
    try:
        return services.add_quote_item(quote, payload.dict())
    except ValueError as e:
        raise HttpError(400, str(e))


def _quote_item_or_404(request, item_id: int) -> QuoteItem:
    user = require_permission(request, Permissions.BILLING_MANAGE)
    item = QuoteItem.objects.select_related('quote').filter(id=item_id).first()
    if not item or not services.get_quote(user, item.quote_id):
        raise HttpError(404, "Item not found")
    return item


@router.patch("/quote-items/{item_id}", response=ItemOut, auth=None)
def update_quote_item(request: HttpRequest, item_id: int, payload: ItemUpdateIn):
    item = _quote_item_or_404(request, item_id)
    try:
        return services.update_quote_item(item, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/quote-items/{item_id}", auth=None)
def delete_quote_item(request: HttpRequest, item_id: int):
    item = _quote_item_or_404(request, item_id)
    try:
        services.delete_quote_item(item)
    except ValueError as e:
        raise HttpError(400, str(e))
    return {"success": True}


# =============================================================================
# Invoices
# =============================================================================

@router.get("/invoices", response=List[InvoiceOut], auth=None)
def list_invoices(request: HttpRequest, status: Optional[str] = None, client_id: Optional[UUID] = None):
    user = require_permission(request, Permissions.BILLING_VIEW)
    return services.list_invoices(user, status=status, client_id=client_id)


@router.post("/invoices", response=InvoiceOut, auth=None)
def create_invoice(request: HttpRequest, payload: InvoiceIn):
    user = require_permission(request, Permissions.BILLING_MANAGE)
    try:
        invoice = services.create_invoice(get_org_id(request), payload.dict(), created_by=user)
    except ValueError as e:
        raise HttpError(400, str(e))
    _audit(request, AuditAction.CREATE_INVOICE, invoice, {"total_ttc": str(invoice.total_ttc)})
    return invoice


@router.get("/invoices/{invoice_id}", response=InvoiceOut, auth=None)
def get_invoice(request: HttpRequest, invoice_id: UUID):
    return _invoice_or_404(request, invoice_id)


@router.patch("/invoices/{invoice_id}", response=InvoiceOut, auth=None)
def update_invoice(request: HttpRequest, invoice_id: UUID, payload: InvoiceUpdateIn):
    invoice = _invoice_or_404(request, invoice_id, Permissions.BILLING_MANAGE)
    try:
        return services.update_invoice(invoice, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/invoices/{invoice_id}", auth=None)
def delete_invoice(request: HttpRequest, invoice_id: UUID):
    invoice = _invoice_or_404(request, invoice_id, Permissions.BILLING_MANAGE)
    try:
        services.delete_invoice(invoice)
    except ValueError as e:
        raise HttpError(400, str(e))
    _audit(request, AuditAction.DELETE_INVOICE, invoice)
    return {"success": True}


@router.post("/invoices/{invoice_id}/cancel", response=InvoiceOut, auth=None)
def cancel_invoice(request: HttpRequest, invoice_id: UUID):
    invoice = _invoice_or_404(request, invoice_id, Permissions.BILLING_MANAGE)
    try:
        invoice = services.cancel_invoice(invoice)
    except ValueError as e:
        raise HttpError(400, str(e))
    _audit(request, AuditAction.CANCEL_INVOICE, invoice)
    return invoice


@router.get("/invoices/{invoice_id}/pdf", auth=None)
def invoice_pdf(request: HttpRequest, invoice_id: UUID):
    invoice = _invoice_or_404(request, invoice_id)
    try:
        content = pdf_service.generate_invoice_pdf(invoice)
    except ImportError as e:
        raise HttpError(500, str(e))
    return _pdf_response(content, pdf_service.pdf_filename(invoice))


@router.post("/invoices/{invoice_id}/pdf/store", auth=None)
def store_invoice_pdf(request: HttpRequest, invoice_id: UUID):
    invoice = _invoice_or_404(request, invoice_id, Permissions.BILLING_MANAGE)
    task_id = TaskService.store_billing_pdf(kind="invoice", document_id=invoice.id)
    return {"task_id": task_id}


# =============================================================================
# Invoice items
# =============================================================================

@router.post("/invoices/{invoice_id}/items", response=ItemOut, auth=None)
def add_invoice_item(request: HttpRequest, invoice_id: UUID, payload: ItemIn):
    invoice = _invoice_or_404(request, invoice_id, Permissions.BILLING_MANAGE)
    try:
        return services.add_invoice_item(invoice, payload.dict())
    except ValueError as e:
        raise HttpError(400, str(e))


def _invoice_item_or_404(request, item_id: int) -> InvoiceItem:
    user = require_permission(request, Permissions.BILLING_MANAGE)
    item = InvoiceItem.objects.select_related('invoice').filter(id=item_id).first()
    if not item or not services.get_invoice(user, item.invoice_id):
        raise HttpError(404, "Item not found")
    return item


@router.patch("/invoice-items/{item_id}", response=ItemOut, auth=None)
def update_invoice_item(request: HttpRequest, item_id: int, payload: ItemUpdateIn):
    item = _invoice_item_or_404(request, item_id)
    try:
        return services.update_invoice_item(item, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/invoice-items/{item_id}", auth=None)
def delete_invoice_item(request: HttpRequest, item_id: int):
    item = _invoice_item_or_404(request, item_id)
    try:
        services.delete_invoice_item(item)
    except ValueError as e:
        raise HttpError(400, str(e))
    return {"success": True}
