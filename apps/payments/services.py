"""
Online invoice payment through CinetPay.

Flow:
    1. initiate_payment() opens a checkout session and upserts the
       PaymentAttempt (one per invoice, keyed by transaction id).
    2. The gateway posts a signed notification -> handle_notification().
    3. The customer comes back from the checkout page -> handle_return().
    4. reconcile_pending_attempts() re-checks whatever is still undecided.

Every path ends in reconcile_transaction(), which asks the gateway for the
real status and applies it idempotently.
"""
import hashlib
import hmac
import logging
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from urllib.parse import urlencode

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.audit.audit_service import log_action, AuditAction
from apps.billing import services as billing_services
from apps.billing.models import Invoice, InvoiceStatus
from apps.billing.totals import to_decimal
from .dtos import PaymentInitDTO
from .gateway import CinetPayClient, InvalidSignatureError, PaymentGatewayError, TransactionCheck, get_client
from .models import Payment, PaymentAttempt, PaymentAttemptStatus, PaymentChannel, PaymentStatus

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES = ('XOF', 'USD', 'EUR')
MAX_TRANSACTION_ID_LENGTH = 128

# Order matters: the gateway signs the plain concatenation of these fields.
SIGNATURE_FIELDS = (
    'cpm_site_id',
    'cpm_trans_id',
    'cpm_trans_date',
    'cpm_amount',
    'cpm_currency',
    'signature',
    'payment_method',
    'cel_phone_num',
    'cpm_phone_prefixe',
    'cpm_language',
    'cpm_version',
    'cpm_payment_config',
    'cpm_page_action',
    'cpm_custom',
    'cpm_designation',
    'cpm_error_message',
)

PENDING_ATTEMPT_STATUSES = (
    PaymentAttemptStatus.REDIRECTED,
    PaymentAttemptStatus.WEBHOOKED,
    PaymentAttemptStatus.CHECKED,
)


# =============================================================================
# Initiation
# =============================================================================

def transaction_id_for(invoice: Invoice) -> str:
    """
    Invoice numbers restart per organization, so the number is suffixed with
    the tenant to stay unique on the gateway side.
    """
    return f"{invoice.number}-{invoice.org_id.hex[:8]}"


def payable_amount(invoice: Invoice) -> int:
    """TTC rounded half-up to a whole unit. Raises ValueError when the gateway would refuse it."""
    currency = invoice.currency.upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValueError(f"Unsupported currency: {invoice.currency}")
    if invoice.total_ttc is None or invoice.total_ttc <= 0:
        raise ValueError("Invoice amount must be positive")

    amount = int(to_decimal(invoice.total_ttc).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    if currency != 'USD' and amount % 5 != 0:
        raise ValueError("Amount must be a multiple of 5 for this currency")
    return amount


def check_payable(invoice: Invoice, today: Optional[date] = None) -> int:
    if invoice.status != InvoiceStatus.ISSUED:
        raise ValueError("Only issued invoices can be paid")
    today = today or timezone.localdate()
    if invoice.due_date and invoice.due_date < today:
        raise ValueError("Invoice is past its due date")
    return payable_amount(invoice)


def is_payable(invoice: Invoice, today: Optional[date] = None) -> bool:
    try:
        check_payable(invoice, today)
    except ValueError:
        return False
    return True


def initiate_payment(
    invoice_id,
    user,
    today: Optional[date] = None,
    client: Optional[CinetPayClient] = None,
) -> PaymentInitDTO:
    """
    Open a checkout session for an invoice the user can see.

    Raises:
        LookupError: invoice missing or outside the user's clients.
        ValueError: invoice not payable.
        PaymentGatewayError: the gateway refused or could not be reached.
    """
    invoice = billing_services.get_invoice(user, invoice_id)
    if not invoice:
        raise LookupError("Invoice not found")

    amount = check_payable(invoice, today)
    currency = invoice.currency.upper()
    transaction_id = transaction_id_for(invoice)

    session = (client or get_client()).init_payment(
        transaction_id=transaction_id,
        amount=amount,
        currency=currency,
        description=f"Facture {invoice.number}",
        channels=PaymentChannel.ALL,
    )

    PaymentAttempt.objects.update_or_create(
        transaction_id=transaction_id,
        defaults={
            'org_id': invoice.org_id,
            'invoice_id': invoice.id,
            'payment_token': session.payment_token,
            'payment_url': session.payment_url,
            'status': PaymentAttemptStatus.REDIRECTED,
            'channel': PaymentChannel.ALL,
            'amount': Decimal(amount),
            'currency': currency,
        },
    )
    logger.info(f"Payment session opened for invoice {invoice.number} ({amount} {currency})")

    log_action(
        org_id=invoice.org_id,
        action=AuditAction.INITIATE_PAYMENT,
        target_type="Invoice",
        target_id=invoice.id,
        target_label=invoice.number,
        performed_by=user,
        context={"transaction_id": transaction_id, "amount": amount, "currency": currency},
    )

    return PaymentInitDTO(
        payment_token=session.payment_token,
        payment_url=session.payment_url,
        transaction_id=transaction_id,
        invoice_id=invoice.id,
    )


# =============================================================================
# Notifications
# =============================================================================

def compute_notification_signature(form, secret: str) -> str:
    concatenated = ''.join(str(form.get(name) or '') for name in SIGNATURE_FIELDS)
    return hmac.new(secret.encode('utf-8'), concatenated.encode('utf-8'), hashlib.sha256).hexdigest()


def verify_notification_signature(form, token: Optional[str]) -> bool:
    secret = settings.CINETPAY_SECRET_KEY
    if not token or not secret:
        return False
    expected = compute_notification_signature(form, secret)
    return hmac.compare_digest(token.encode('utf-8'), expected.encode('utf-8'))


def handle_notification(form, token: Optional[str], client: Optional[CinetPayClient] = None) -> dict:
    """
    Process a gateway notification.

    Raises InvalidSignatureError or ValueError (bad transaction id). An
    unknown attempt is acknowledged with ok=False so the gateway stops retrying.
    """
    if not verify_notification_signature(form, token):
        logger.warning("Rejected payment notification with an invalid signature")
        raise InvalidSignatureError("invalid signature")

    transaction_id = str(form.get('cpm_trans_id') or '')
    if not transaction_id or len(transaction_id) > MAX_TRANSACTION_ID_LENGTH:
        raise ValueError("invalid transaction id")

    with transaction.atomic():
        attempt = PaymentAttempt.objects.select_for_update().filter(transaction_id=transaction_id).first()
        if not attempt:
            logger.warning(f"Notification for unknown transaction {transaction_id}")
            return {"ok": False, "reason": "attempt_not_found"}
        attempt.notify_count += 1
        if attempt.status != PaymentAttemptStatus.COMPLETED:
            attempt.status = PaymentAttemptStatus.WEBHOOKED
        attempt.save(update_fields=['notify_count', 'status', 'updated_at'])

    reconcile_transaction(transaction_id, client=client)
    return {"ok": True}


# =============================================================================
# Reconciliation
# =============================================================================

def _record_accepted(attempt: PaymentAttempt, check: TransactionCheck) -> None:
    amount = to_decimal(check.amount or 0)
    currency = (check.currency or attempt.currency).upper()

    payment = Payment.objects.filter(
        gateway_transaction_id=attempt.transaction_id, status=PaymentStatus.ACCEPTED,
    ).first()
    if not payment:
        payment = Payment.objects.create(
            org_id=attempt.org_id,
            invoice_id=attempt.invoice_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.ACCEPTED,
            method=check.payment_method or "",
            gateway_transaction_id=attempt.transaction_id,
            operator_id=check.operator_id or "",
            paid_at=timezone.now(),
            raw_payload=check.raw,
        )
        log_action(
            org_id=attempt.org_id,
            action=AuditAction.RECORD_PAYMENT,
            target_type="Invoice",
            target_id=attempt.invoice_id,
            target_label=attempt.transaction_id,
            context={"amount": str(amount), "currency": currency, "method": payment.method},
        )

    covered = payment.currency == attempt.currency and payment.amount >= attempt.amount
    if covered:
        invoice = Invoice.objects.select_for_update().filter(id=attempt.invoice_id).first()
        if invoice:
            billing_services.mark_invoice_paid(invoice)
    else:
        logger.warning(
            f"Payment {attempt.transaction_id} accepted for {payment.amount} {payment.currency}, "
            f"expected {attempt.amount} {attempt.currency}; invoice left unpaid"
        )
    attempt.status = PaymentAttemptStatus.COMPLETED


def _record_refused(attempt: PaymentAttempt, check: TransactionCheck) -> None:
    exists = Payment.objects.filter(
        gateway_transaction_id=attempt.transaction_id, status=PaymentStatus.REFUSED,
    ).exists()
    if not exists:
        Payment.objects.create(
            org_id=attempt.org_id,
            invoice_id=attempt.invoice_id,
            amount=to_decimal(check.amount or attempt.amount),
            currency=(check.currency or attempt.currency).upper(),
            status=PaymentStatus.REFUSED,
            method=check.payment_method or "",
            gateway_transaction_id=attempt.transaction_id,
            operator_id=check.operator_id or "",
            raw_payload=check.raw,
        )
        log_action(
            org_id=attempt.org_id,
            action=AuditAction.PAYMENT_REFUSED,
            target_type="Invoice",
            target_id=attempt.invoice_id,
            target_label=attempt.transaction_id,
        )
    attempt.status = PaymentAttemptStatus.FAILED


def reconcile_transaction(transaction_id: str, client: Optional[CinetPayClient] = None) -> Optional[str]:
    """
    Ask the gateway for the real status of a transaction and apply it.
    Returns the gateway status (ACCEPTED, REFUSED, ...) or None for an unknown attempt.
    """
    if not PaymentAttempt.objects.filter(transaction_id=transaction_id).exists():
        return None

    check = (client or get_client()).check_payment(transaction_id)

    with transaction.atomic():
        attempt = PaymentAttempt.objects.select_for_update().get(transaction_id=transaction_id)
        if attempt.status == PaymentAttemptStatus.COMPLETED:
            return check.status

        if check.status == 'ACCEPTED':
            _record_accepted(attempt, check)
        elif check.status == 'REFUSED':
            _record_refused(attempt, check)
        else:
            attempt.status = PaymentAttemptStatus.CHECKED

        attempt.last_checked_at = timezone.now()
        attempt.save(update_fields=['status', 'last_checked_at', 'updated_at'])

    logger.info(f"Transaction {transaction_id} reconciled: {check.status or 'UNKNOWN'} -> {attempt.status}")
    return check.status


def handle_return(transaction_id: Optional[str], client: Optional[CinetPayClient] = None) -> str:
    """Customer back from the checkout page. Returns the frontend URL to redirect to."""
    base = f"{settings.APP_BASE_URL}/factures-devis"
    if not transaction_id:
        return f"{base}?error=1"

    attempt = PaymentAttempt.objects.filter(transaction_id=transaction_id).first()
    if not attempt:
        logger.warning(f"Return for unknown transaction {transaction_id}")
        return f"{base}?error=1"

    if attempt.status not in (PaymentAttemptStatus.COMPLETED, PaymentAttemptStatus.FAILED):
        attempt.status = PaymentAttemptStatus.REDIRECTED
        attempt.save(update_fields=['status', 'updated_at'])

    try:
        status = reconcile_transaction(transaction_id, client=client)
    except PaymentGatewayError as e:
        logger.error(f"Check on return failed for {transaction_id}: {e}")
        status = None

    if status == 'ACCEPTED':
        outcome = 'success'
    elif status == 'REFUSED':
        outcome = 'error'
    else:
        outcome = 'pending'
    return f"{base}?{urlencode({outcome: 1, 'invoice_id': attempt.invoice_id})}"


def reconcile_pending_attempts(now=None, client: Optional[CinetPayClient] = None) -> int:
    """Re-check attempts left undecided for longer than PAYMENT_RECONCILE_AFTER_MINUTES."""
    now = now or timezone.now()
    cutoff = now - timedelta(minutes=settings.PAYMENT_RECONCILE_AFTER_MINUTES)
    transaction_ids = list(
        PaymentAttempt.objects.filter(
            status__in=PENDING_ATTEMPT_STATUSES, updated_at__lt=cutoff,
        ).values_list('transaction_id', flat=True)
    )

    client = client or get_client()
    count = 0
    for transaction_id in transaction_ids:
        try:
            reconcile_transaction(transaction_id, client=client)
            count += 1
        except PaymentGatewayError as e:
            logger.error(f"Reconciliation of {transaction_id} failed: {e}")
    return count


# =============================================================================
# Queries
# =============================================================================

def list_invoice_payments(invoice: Invoice):
    return list(Payment.objects.filter(invoice_id=invoice.id))


def list_invoice_attempts(invoice: Invoice):
    return list(PaymentAttempt.objects.filter(invoice_id=invoice.id))
