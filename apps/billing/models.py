import uuid
from decimal import Decimal
from django.db import models

from . import totals


class QuoteStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    SENT = 'sent', 'Sent'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'
    EXPIRED = 'expired', 'Expired'
    CANCELED = 'canceled', 'Canceled'


class InvoiceStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    ISSUED = 'issued', 'Issued'
    SENT = 'sent', 'Sent'
    PAID = 'paid', 'Paid'
    OVERDUE = 'overdue', 'Overdue'
    CANCELED = 'canceled', 'Canceled'


class DocumentSequence(models.Model):
    """
    Per-organization counter behind quote (D) and invoice (F) numbers.
    Rows are locked with select_for_update while a number is taken.
    """
    org_id = models.UUIDField()
    prefix = models.CharField(max_length=4)
    year = models.PositiveSmallIntegerField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = ['org_id', 'prefix', 'year']

    def __str__(self):
        return f"{self.prefix}-{self.year}: {self.last_value}"


class BillingDocument(models.Model):
    """Fields shared by quotes and invoices."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    client_id = models.UUIDField(db_index=True)  # Client reference
    project_id = models.UUIDField(null=True, blank=True, db_index=True)  # Project reference

    number = models.CharField(max_length=20)
    currency = models.CharField(max_length=3, default='XOF')
    total_ht = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_tva = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_ttc = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True, default="")
    pdf_url = models.CharField(max_length=500, blank=True, default="")

    created_by_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ['-created_at']

    def __str__(self):
        return self.number

    def apply_totals(self, result: 'totals.Totals'):
        self.total_ht = result.total_ht
        self.total_tva = result.total_tva
        self.total_ttc = result.total_ttc


class Quote(BillingDocument):
    status = models.CharField(max_length=20, choices=QuoteStatus.choices, default=QuoteStatus.DRAFT)
    expires_at = models.DateField(null=True, blank=True)

    class Meta(BillingDocument.Meta):
        unique_together = ['org_id', 'number']


class Invoice(BillingDocument):
    status = models.CharField(max_length=20, choices=InvoiceStatus.choices, default=InvoiceStatus.ISSUED)
    due_date = models.DateField(null=True, blank=True)
    external_ref = models.CharField(max_length=100, blank=True, default="")
    source_quote = models.ForeignKey(
        Quote, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices'
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta(BillingDocument.Meta):
        unique_together = ['org_id', 'number']


class LineItem(models.Model):
    label = models.CharField(max_length=255)
    qty = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('1'))
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    vat_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'), help_text="Percent")
    position = models.PositiveIntegerField(default=0)

    class Meta:
        abstract = True
        ordering = ['position', 'id']

    def __str__(self):
        return self.label

    @property
    def line_ht(self) -> Decimal:
        return totals.round_money(totals.line_ht(self.qty, self.unit_price))

    @property
    def line_tva(self) -> Decimal:
        return totals.round_money(totals.line_tva(self.qty, self.unit_price, self.vat_rate))

    @property
    def line_ttc(self) -> Decimal:
        return self.line_ht + self.line_tva


class QuoteItem(LineItem):
    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name='items')


class InvoiceItem(LineItem):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
