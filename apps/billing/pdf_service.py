"""
PDF rendering for quotes and invoices.
Uses WeasyPrint to turn the HTML templates under billing/pdf/ into PDF bytes.
"""
import logging
from io import BytesIO

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.template.loader import render_to_string
from django.utils import timezone

from .models import Quote, Invoice

logger = logging.getLogger(__name__)


def _get_weasyprint():
    """Lazy import WeasyPrint, it pulls in system libraries (pango, cairo)."""
    try:
        from weasyprint import HTML
        return HTML
    except ImportError:
        logger.error("WeasyPrint is not installed. Install with: pip install weasyprint")
        raise ImportError(
            "WeasyPrint is required for PDF generation. "
            "Install it with: pip install weasyprint"
        )


def _base_context(document) -> dict:
    from apps.clients.models import Client
    from apps.organizations.models import Organization
    from apps.projects.models import Project

    return {
        'organization': Organization.objects.filter(id=document.org_id).first(),
        'client': Client.objects.filter(id=document.client_id).first(),
        'project': Project.objects.filter(id=document.project_id).first() if document.project_id else None,
        'items': list(document.items.all()),
        'currency': document.currency,
        'total_ht': document.total_ht,
        'total_tva': document.total_tva,
        'total_ttc': document.total_ttc,
        'notes': document.notes,
        'generated_at': timezone.localtime(),
    }


def build_quote_context(quote: Quote) -> dict:
    context = _base_context(quote)
    context.update({
        'title': 'DEVIS',
        'document': quote,
        'status': quote.get_status_display(),
    })
    return context


def build_invoice_context(invoice: Invoice) -> dict:
    from apps.payments.services import is_payable

    context = _base_context(invoice)
    context.update({
        'title': 'FACTURE',
        'document': invoice,
        'status': invoice.get_status_display(),
        'payable': is_payable(invoice),
        'payment_url': f"{settings.APP_BASE_URL}/factures-devis?invoice_id={invoice.id}",
    })
    return context


def _render_pdf(template: str, context: dict) -> bytes:
    HTML = _get_weasyprint()
    html_content = render_to_string(template, context)

    pdf_file = BytesIO()
    HTML(string=html_content).write_pdf(pdf_file)
    pdf_file.seek(0)
    return pdf_file.read()


def generate_quote_pdf(quote: Quote) -> bytes:
    return _render_pdf('billing/pdf/quote.html', build_quote_context(quote))


def generate_invoice_pdf(invoice: Invoice) -> bytes:
    return _render_pdf('billing/pdf/invoice.html', build_invoice_context(invoice))


def pdf_filename(document) -> str:
    kind = 'devis' if isinstance(document, Quote) else 'facture'
    return f"{kind}-{document.number}.pdf"


def store_billing_pdf(kind: str, document_id) -> str:
    """
    Render the PDF of a quote or invoice, save it to storage and remember
    the URL on the document. Returns the stored URL.
    """
    model = {'quote': Quote, 'invoice': Invoice}.get(kind)
    if model is None:
        raise ValueError(f"Unknown billing document kind: {kind}")

    document = model.objects.get(id=document_id)
    content = generate_quote_pdf(document) if kind == 'quote' else generate_invoice_pdf(document)

    path = default_storage.save(
        f"billing/{document.org_id}/{pdf_filename(document)}", ContentFile(content)
    )
    document.pdf_url = default_storage.url(path)
    document.save(update_fields=['pdf_url', 'updated_at'])
    logger.info(f"Stored PDF for {kind} {document.number} at {path}")
    return document.pdf_url
