"""
Quotes and invoices: numbering, line items, totals and status transitions.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.clients.services import get_accessible_client_ids, get_client, get_client_recipients
from apps.identity.models import User
from . import totals
from .models import (
    DocumentSequence, Quote, QuoteItem, QuoteStatus, Invoice, InvoiceItem, InvoiceStatus,
)

logger = logging.getLogger(__name__)

QUOTE_PREFIX = 'D'
INVOICE_PREFIX = 'F'
ITEM_FIELDS = ('label', 'qty', 'unit_price', 'vat_rate', 'position')

QUOTE_EDITABLE = (QuoteStatus.DRAFT, QuoteStatus.SENT)
INVOICE_EDITABLE = (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED)
INVOICE_OPEN = (InvoiceStatus.ISSUED, InvoiceStatus.SENT, InvoiceStatus.OVERDUE)


def next_number(org_id: UUID, prefix: str, today: Optional[date] = None) -> str:
    """
    Take the next number of the sequence, e.g. F-2026-0007.
    Must run inside a transaction, the sequence row stays locked until commit.
    """
    year = (today or timezone.localdate()).year
    sequence, _ = DocumentSequence.objects.select_for_update().get_or_create(
        org_id=org_id, prefix=prefix, year=year,
    )
    sequence.last_value += 1
    sequence.save(update_fields=['last_value'])
    return f"{prefix}-{year}-{sequence.last_value:04d}"


def _clean_currency(value: Optional[str], org_id: UUID) -> str:
    if not value:
        from apps.organizations.models import Organization
        org = Organization.objects.filter(id=org_id).first()
        return org.default_currency if org else settings.DEFAULT_CURRENCY
    value = value.strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise ValueError(f"Invalid currency: {value}")
    return value


def _check_client_and_project(org_id: UUID, client_id, project_id) -> None:
    from apps.projects.models import Project

    if not get_client(org_id, client_id):
        raise ValueError("Client not found")
    if project_id and not Project.objects.filter(id=project_id, org_id=org_id, client_id=client_id).exists():
        raise ValueError("Project does not belong to this client")


def _item_fields(data: dict) -> dict:
    fields = {k: data[k] for k in ITEM_FIELDS if data.get(k) is not None}
    if 'label' in fields and not fields['label'].strip():
        raise ValueError("Item label is required")
    return fields


# =============================================================================
# Quotes
# =============================================================================

def list_quotes(user: User, status: Optional[str] = None, client_id=None) -> List[Quote]:
    qs = Quote.objects.filter(org_id=user.org_id, client_id__in=get_accessible_client_ids(user))
    if status:
        qs = qs.filter(status=status)
    if client_id:
        qs = qs.filter(client_id=client_id)
    return list(qs.prefetch_related('items'))


def get_quote(user: User, quote_id) -> Optional[Quote]:
    return Quote.objects.filter(
        id=quote_id, org_id=user.org_id, client_id__in=get_accessible_client_ids(user)
    ).first()


def recalculate_quote_totals(quote: Quote) -> Quote:
    quote.apply_totals(totals.compute_totals(quote.items.all()))
    quote.save(update_fields=['total_ht', 'total_tva', 'total_ttc', 'updated_at'])
    return quote


def create_quote(org_id: UUID, data: dict, created_by: Optional[User] = None) -> Quote:
    _check_client_and_project(org_id, data.get('client_id'), data.get('project_id'))
    items = data.get('items') or []
    for item in items:
        totals.validate_line(item.get('qty', 1), item['unit_price'], item.get('vat_rate', 0))

    with transaction.atomic():
        quote = Quote.objects.create(
            org_id=org_id,
            client_id=data['client_id'],
            project_id=data.get('project_id'),
            number=next_number(org_id, QUOTE_PREFIX),
            currency=_clean_currency(data.get('currency'), org_id),
            expires_at=data.get('expires_at'),
            notes=data.get('notes') or "",
            created_by_id=created_by.id if created_by else None,
        )
        for position, item in enumerate(items):
            fields = _item_fields(item)
            fields.setdefault('position', position)
            QuoteItem.objects.create(quote=quote, **fields)
        recalculate_quote_totals(quote)

    logger.info(f"Created quote {quote.number} for client {quote.client_id}")
    return quote


def update_quote(quote: Quote, data: dict) -> Quote:
    if quote.status not in QUOTE_EDITABLE:
        raise ValueError(f"Quote {quote.number} can no longer be modified")
    if 'project_id' in data:
        _check_client_and_project(quote.org_id, quote.client_id, data['project_id'])
        quote.project_id = data['project_id']
    if data.get('currency'):
        quote.currency = _clean_currency(data['currency'], quote.org_id)
    if 'expires_at' in data:
        quote.expires_at = data['expires_at']
    if data.get('notes') is not None:
        quote.notes = data['notes']
    quote.save()
    return quote


def delete_quote(quote: Quote) -> None:
    if quote.status != QuoteStatus.DRAFT:
        raise ValueError("Only draft quotes can be deleted")
    quote.delete()
    logger.info(f"Deleted quote {quote.number}")


def add_quote_item(quote: Quote, data: dict) -> QuoteItem:
    if quote.status not in QUOTE_EDITABLE:
        raise ValueError(f"Quote {quote.number} can no longer be modified")
    fields = _item_fields(data)
    if 'label' not in fields or 'unit_price' not in fields:
        raise ValueError("Item label and unit price are required")
    totals.validate_line(fields.get('qty', 1), fields['unit_price'], fields.get('vat_rate', 0))

    with transaction.atomic():
        fields.setdefault('position', quote.items.count())
        item = QuoteItem.objects.create(quote=quote, **fields)
        recalculate_quote_totals(quote)
    return item


def update_quote_item(item: QuoteItem, data: dict) -> QuoteItem:
    quote = item.quote
    if quote.status not in QUOTE_EDITABLE:
        raise ValueError(f"Quote {quote.number} can no longer be modified")
    for key, value in _item_fields(data).items():
        setattr(item, key, value)
    totals.validate_line(item.qty, item.unit_price, item.vat_rate)

    with transaction.atomic():
        item.save()
        recalculate_quote_totals(quote)
    return item


def delete_quote_item(item: QuoteItem) -> None:
    quote = item.quote
    if quote.status not in QUOTE_EDITABLE:
        raise ValueError(f"Quote {quote.number} can no longer be modified")
    with transaction.atomic():
        item.delete()
        recalculate_quote_totals(quote)


def send_quote(quote: Quote, today: Optional[date] = None) -> Quote:
    """
    Mark the quote as sent (default expiry: today + QUOTE_VALIDITY_DAYS) and
    e-mail the client. A failed e-mail does not undo the status change.
    """
    if quote.status not in (QuoteStatus.DRAFT, QuoteStatus.SENT):
        raise ValueError(f"Quote in status {quote.status} cannot be sent")

    today = today or timezone.localdate()
    quote.status = QuoteStatus.SENT
    if not quote.expires_at:
        quote.expires_at = today + timedelta(days=settings.QUOTE_VALIDITY_DAYS)
    quote.save(update_fields=['status', 'expires_at', 'updated_at'])
    logger.info(f"Quote {quote.number} sent, expires {quote.expires_at}")

    _email_quote(quote)
    return quote


def _email_quote(quote: Quote) -> None:
    from apps.notifications.email_service import notify, render_email

    recipients = get_client_recipients(quote.client_id)
    if not recipients:
        logger.warning(f"Quote {quote.number}: client has no e-mail address")
        return

    pdf_url = f"{settings.APP_BASE_URL}/api/billing/quotes/{quote.id}/pdf"
    html = render_email(
        "Votre devis",
        f"Bonjour,<br/>Veuillez trouver votre devis <b>{quote.number}</b> d'un montant de "
        f"<b>{quote.total_ttc:.2f} {quote.currency}</b>, valable jusqu'au "
        f"{quote.expires_at:%d/%m/%Y}.<br/><br/>"
        f"Consultez / téléchargez : <a href=\"{pdf_url}\">{pdf_url}</a>",
        preheader=f"Devis {quote.number}",
    )
    try:
        notify(
            org_id=quote.org_id,
            recipients=recipients,
            subject=f"[{settings.EMAIL_BRAND_NAME}] Devis {quote.number}",
            html=html,
            event_type='quote.sent',
            excerpt=quote.number,
        )
    except Exception as e:
        logger.warning(f"Quote {quote.number}: e-mail not sent ({e})")


def accept_quote(quote: Quote, today: Optional[date] = None) -> Invoice:
    """
    Accept a sent, unexpired quote and turn it into an issued invoice due
    in INVOICE_PAYMENT_TERMS_DAYS, with the same items and totals.
    """
    today = today or timezone.localdate()

    with transaction.atomic():
        quote = Quote.objects.select_for_update().get(id=quote.id)
        if quote.status != QuoteStatus.SENT:
            raise ValueError("Only sent quotes can be accepted")
        if quote.expires_at and quote.expires_at < today:
            raise ValueError("Quote has expired and can no longer be accepted")

        quote.status = QuoteStatus.ACCEPTED
        quote.save(update_fields=['status', 'updated_at'])

        invoice = Invoice.objects.create(
            org_id=quote.org_id,
            client_id=quote.client_id,
            project_id=quote.project_id,
            number=next_number(quote.org_id, INVOICE_PREFIX, today),
            currency=quote.currency,
            total_ht=quote.total_ht,
            total_tva=quote.total_tva,
            total_ttc=quote.total_ttc,
            status=InvoiceStatus.ISSUED,
            due_date=today + timedelta(days=settings.INVOICE_PAYMENT_TERMS_DAYS),
            source_quote=quote,
        )
        InvoiceItem.objects.bulk_create([
            InvoiceItem(
                invoice=invoice,
                label=item.label,
                qty=item.qty,
                unit_price=item.unit_price,
                vat_rate=item.vat_rate,
                position=item.position,
            )
            for item in quote.items.all()
        ])

    logger.info(f"Quote {quote.number} accepted, invoice {invoice.number} issued")
    return invoice


def reject_quote(quote: Quote) -> Quote:
    if quote.status != QuoteStatus.SENT:
        raise ValueError("Only sent quotes can be rejected")
    quote.status = QuoteStatus.REJECTED
    quote.save(update_fields=['status', 'updated_at'])
    logger.info(f"Quote {quote.number} rejected")
    return quote


def cancel_quote(quote: Quote) -> Quote:
    if quote.status not in (QuoteStatus.DRAFT, QuoteStatus.SENT):
        raise ValueError(f"Quote in status {quote.status} cannot be canceled")
    quote.status = QuoteStatus.CANCELED
    quote.save(update_fields=['status', 'updated_at'])
    logger.info(f"Quote {quote.number} canceled")
    return quote


def expire_quotes(today: Optional[date] = None) -> int:
    """Sent quotes past their expiry date become expired. Returns the count."""
    today = today or timezone.localdate()
    count = Quote.objects.filter(
        status=QuoteStatus.SENT, expires_at__lt=today,
    ).update(status=QuoteStatus.EXPIRED, updated_at=timezone.now())
    if count:
        logger.info(f"Expired {count} quote(s)")
    return count


# =============================================================================
# Invoices
# =============================================================================

def list_invoices(user: User, status: Optional[str] = None, client_id=None) -> List[Invoice]:
    qs = Invoice.objects.filter(org_id=user.org_id, client_id__in=get_accessible_client_ids(user))
    if status:
        qs = qs.filter(status=status)
    if client_id:
        qs = qs.filter(client_id=client_id)
    return list(qs.prefetch_related('items'))


def get_invoice(user: User, invoice_id) -> Optional[Invoice]:
    return Invoice.objects.filter(
        id=invoice_id, org_id=user.org_id, client_id__in=get_accessible_client_ids(user)
    ).first()


def recalculate_invoice_totals(invoice: Invoice) -> Invoice:
    invoice.apply_totals(totals.compute_totals(invoice.items.all()))
    invoice.save(update_fields=['total_ht', 'total_tva', 'total_ttc', 'updated_at'])
    return invoice


def create_invoice(org_id: UUID, data: dict, created_by: Optional[User] = None) -> Invoice:
    _check_client_and_project(org_id, data.get('client_id'), data.get('project_id'))
    status = data.get('status') or InvoiceStatus.ISSUED
    if status not in (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED):
        raise ValueError("New invoices are either draft or issued")
    items = data.get('items') or []
    for item in items:
        totals.validate_line(item.get('qty', 1), item['unit_price'], item.get('vat_rate', 0))

    with transaction.atomic():
        invoice = Invoice.objects.create(
            org_id=org_id,
            client_id=data['client_id'],
            project_id=data.get('project_id'),
            number=next_number(org_id, INVOICE_PREFIX),
            currency=_clean_currency(data.get('currency'), org_id),
            status=status,
            due_date=data.get('due_date'),
            external_ref=data.get('external_ref') or "",
            notes=data.get('notes') or "",
            created_by_id=created_by.id if created_by else None,
        )
        for position, item in enumerate(items):
            fields = _item_fields(item)
            fields.setdefault('position', position)
            InvoiceItem.objects.create(invoice=invoice, **fields)
        recalculate_invoice_totals(invoice)

    logger.info(f"Created invoice {invoice.number} ({invoice.status}) for client {invoice.client_id}")
    return invoice


def update_invoice(invoice: Invoice, data: dict) -> Invoice:
    if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELED):
        raise ValueError(f"Invoice {invoice.number} can no longer be modified")
    if data.get('status') is not None:
        if data['status'] not in (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED, InvoiceStatus.SENT):
            raise ValueError(f"Status {data['status']} cannot be set directly")
        invoice.status = data['status']
    if 'project_id' in data:
        _check_client_and_project(invoice.org_id, invoice.client_id, data['project_id'])
        invoice.project_id = data['project_id']
    if data.get('currency'):
        invoice.currency = _clean_currency(data['currency'], invoice.org_id)
    for key in ('due_date', 'external_ref', 'notes'):
        if key in data and data[key] is not None:
            setattr(invoice, key, data[key])
    invoice.save()
    logger.info(f"Updated invoice {invoice.number}")
    return invoice


def delete_invoice(invoice: Invoice) -> None:
    from apps.payments.models import Payment

    if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED):
        raise ValueError("Only draft or issued invoices can be deleted")
    if Payment.objects.filter(invoice_id=invoice.id).exists():
        raise ValueError("Invoice has payments and cannot be deleted")
    invoice.delete()
    logger.info(f"Deleted invoice {invoice.number}")


def _check_invoice_editable(invoice: Invoice) -> None:
    if invoice.status not in INVOICE_EDITABLE:
        raise ValueError(f"Invoice {invoice.number} can no longer be modified")


def add_invoice_item(invoice: Invoice, data: dict) -> InvoiceItem:
    _check_invoice_editable(invoice)
    fields = _item_fields(data)
    if 'label' not in fields or 'unit_price' not in fields:
        raise ValueError("Item label and unit price are required")
    totals.validate_line(fields.get('qty', 1), fields['unit_price'], fields.get('vat_rate', 0))

    with transaction.atomic():
        fields.setdefault('position', invoice.items.count())
        item = InvoiceItem.objects.create(invoice=invoice, **fields)
        recalculate_invoice_totals(invoice)
    return item


def update_invoice_item(item: InvoiceItem, data: dict) -> InvoiceItem:
    invoice = item.invoice
    _check_invoice_editable(invoice)
    for key, value in _item_fields(data).items():
        setattr(item, key, value)
    totals.validate_line(item.qty, item.unit_price, item.vat_rate)

    with transaction.atomic():
        item.save()
        recalculate_invoice_totals(invoice)
    return item


def delete_invoice_item(item: InvoiceItem) -> None:
    invoice = item.invoice
    _check_invoice_editable(invoice)
    with transaction.atomic():
        item.delete()
        recalculate_invoice_totals(invoice)


def cancel_invoice(invoice: Invoice) -> Invoice:
    if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELED):
        raise ValueError(f"Invoice in status {invoice.status} cannot be canceled")
    invoice.status = InvoiceStatus.CANCELED
    invoice.save(update_fields=['status', 'updated_at'])
    logger.info(f"Invoice {invoice.number} canceled")
    return invoice


def mark_invoice_paid(invoice: Invoice) -> Invoice:
    """Settle an invoice. Canceled invoices stay canceled; the payment is left for manual refund."""
    if invoice.status == InvoiceStatus.PAID:
        return invoice
    if invoice.status == InvoiceStatus.CANCELED:
        logger.warning(f"Payment received on canceled invoice {invoice.number}; status left unchanged")
        return invoice
    invoice.status = InvoiceStatus.PAID
    invoice.paid_at = timezone.now()
    invoice.save(update_fields=['status', 'paid_at', 'updated_at'])
    logger.info(f"Invoice {invoice.number} paid")
    return invoice


def mark_overdue_invoices(today: Optional[date] = None) -> int:
    """Issued or sent invoices past their due date become overdue. Returns the count."""
    today = today or timezone.localdate()
    count = Invoice.objects.filter(
        status__in=[InvoiceStatus.ISSUED, InvoiceStatus.SENT], due_date__lt=today,
    ).update(status=InvoiceStatus.OVERDUE, updated_at=timezone.now())
    if count:
        logger.info(f"Marked {count} invoice(s) overdue")
    return count
