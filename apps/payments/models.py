import uuid
from django.db import models


class PaymentAttemptStatus(models.TextChoices):
    CREATED = 'created', 'Created'
    REDIRECTED = 'redirected', 'Redirected'
    WEBHOOKED = 'webhooked', 'Webhooked'
    CHECKED = 'checked', 'Checked'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    REFUSED = 'refused', 'Refused'
    CANCELED = 'canceled', 'Canceled'


class PaymentChannel(models.TextChoices):
    ALL = 'ALL', 'All'
    MOBILE_MONEY = 'MOBILE_MONEY', 'Mobile money'
    CREDIT_CARD = 'CREDIT_CARD', 'Credit card'
    WALLET = 'WALLET', 'Wallet'


class PaymentAttempt(models.Model):
    """
    One checkout session opened with the gateway for an invoice.
    The transaction id is the invoice number, so paying the same invoice
    twice reuses the same row.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    invoice_id = models.UUIDField(db_index=True)  # billing.Invoice reference

    transaction_id = models.CharField(max_length=128, unique=True)
    payment_token = models.CharField(max_length=255, blank=True, default="")
    payment_url = models.URLField(max_length=1000, blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=PaymentAttemptStatus.choices,
        default=PaymentAttemptStatus.CREATED,
    )
    channel = models.CharField(max_length=20, choices=PaymentChannel.choices, default=PaymentChannel.ALL)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3)

    notify_count = models.PositiveIntegerField(default=0)
    last_checked_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.transaction_id} ({self.status})"


class Payment(models.Model):
    """Settled (or refused) payment reported by the gateway for an invoice."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    invoice_id = models.UUIDField(db_index=True)

    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3)
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    method = models.CharField(max_length=50, blank=True, default="")
    gateway_transaction_id = models.CharField(max_length=128, blank=True, default="", db_index=True)
    operator_id = models.CharField(max_length=128, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    raw_payload = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['gateway_transaction_id', 'status']),
        ]

    def __str__(self):
        return f"{self.amount} {self.currency} ({self.status})"
