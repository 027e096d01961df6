from typing import List
from uuid import UUID

from django.http import HttpRequest, HttpResponse, HttpResponseRedirect
from ninja import Router
from ninja.errors import HttpError

from apps.identity.decorators import require_permission
from apps.identity.permissions import Permissions
from apps.billing import services as billing_services
from . import services
from .gateway import InvalidSignatureError, PaymentGatewayError
from .schemas import PaymentInitOut, PaymentOut, PaymentAttemptOut

router = Router(tags=["Payments"])


@router.post("/invoices/{invoice_id}/pay", response=PaymentInitOut, auth=None)
def pay_invoice(request: HttpRequest, invoice_id: UUID):
    """Open a CinetPay checkout session. The frontend redirects to payment_url."""
    user = require_permission(request, Permissions.PAYMENT_INITIATE)
    try:
        return services.initiate_payment(invoice_id, user)
    except LookupError as e:
        raise HttpError(404, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))
    except PaymentGatewayError as e:
        raise HttpError(400, f"Payment initialization failed: {e}")


@router.get("/invoices/{invoice_id}/payments", response=List[PaymentOut], auth=None)
def list_payments(request: HttpRequest, invoice_id: UUID):
    user = require_permission(request, Permissions.BILLING_VIEW)
    invoice = billing_services.get_invoice(user, invoice_id)
    if not invoice:
        raise HttpError(404, "Invoice not found")
    return services.list_invoice_payments(invoice)


@router.get("/invoices/{invoice_id}/attempts", response=List[PaymentAttemptOut], auth=None)
def list_attempts(request: HttpRequest, invoice_id: UUID):
    user = require_permission(request, Permissions.BILLING_MANAGE)
    invoice = billing_services.get_invoice(user, invoice_id)
    if not invoice:
        raise HttpError(404, "Invoice not found")
    return services.list_invoice_attempts(invoice)


# =============================================================================
# Gateway callbacks (unauthenticated)
# =============================================================================

@router.post("/webhooks/cinetpay", auth=None)
def cinetpay_webhook(request: HttpRequest):
    """Form-encoded notification, signed with an HMAC in the x-token header."""
    try:
        return services.handle_notification(request.POST, request.headers.get('x-token'))
    except InvalidSignatureError:
        return HttpResponse("invalid signature", status=401)
    except ValueError as e:
        return HttpResponse(str(e), status=400)
    except PaymentGatewayError as e:
        raise HttpError(502, str(e))


@router.api_operation(["GET", "POST"], "/return", auth=None)
def payment_return(request: HttpRequest):
    """Customer lands here after the checkout page; redirect to the frontend."""
    transaction_id = request.GET.get('transaction_id') or request.POST.get('transaction_id')
    return HttpResponseRedirect(services.handle_return(transaction_id))
