"""
CinetPay checkout API client.

Two calls are used: opening a payment session (``/payment``) and checking a
transaction server-side (``/payment/check``). Notifications posted by the
gateway are never trusted on their own; the check call is the source of truth.

Settings:
    CINETPAY_BASE_URL, CINETPAY_APIKEY, CINETPAY_SITE_ID,
    CINETPAY_NOTIFY_URL, CINETPAY_RETURN_URL, CINETPAY_TIMEOUT
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """The gateway could not be reached or answered with an error."""


class InvalidSignatureError(Exception):
    """A notification's HMAC token does not match its fields."""


@dataclass(frozen=True)
class PaymentSession:
    payment_token: str
    payment_url: str


@dataclass(frozen=True)
class TransactionCheck:
    status: str
    amount: Optional[str] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    operator_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class CinetPayClient:

    def __init__(self, base_url: str = None, apikey: str = None, site_id: str = None, timeout: int = None):
        self.base_url = (base_url or settings.CINETPAY_BASE_URL).rstrip('/')
        self.apikey = apikey or settings.CINETPAY_APIKEY
        self.site_id = site_id or settings.CINETPAY_SITE_ID
        self.timeout = timeout or settings.CINETPAY_TIMEOUT

    def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"CinetPay request to {path} failed: {e}")
            raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            message = body.get('message') or response.text[:200]
            logger.error(f"CinetPay {path} returned {response.status_code}: {message}")
            raise PaymentGatewayError(f"Payment gateway error ({response.status_code}): {message}")
        return body

    def init_payment(
        self,
        transaction_id: str,
        amount: int,
        currency: str,
        description: str,
        channels: str = 'ALL',
    ) -> PaymentSession:
        """Open a checkout session. Returns the token and the hosted payment URL."""
        body = self._post('/payment', {
            'apikey': self.apikey,
            'site_id': self.site_id,
            'transaction_id': transaction_id,
            'amount': amount,
            'currency': currency,
            'description': description,
            'notify_url': settings.CINETPAY_NOTIFY_URL,
            'return_url': settings.CINETPAY_RETURN_URL,
            'channels': channels,
        })
        data = body.get('data') or {}
        if not data.get('payment_url'):
            raise PaymentGatewayError(f"Payment init refused: {body.get('message') or 'no payment url'}")
        return PaymentSession(
            payment_token=data.get('payment_token') or "",
            payment_url=data['payment_url'],
        )

    def check_payment(self, transaction_id: str) -> TransactionCheck:
        body = self._post('/payment/check', {
            'apikey': self.apikey,
            'site_id': self.site_id,
            'transaction_id': transaction_id,
        })
        data = body.get('data') or {}
        amount = data.get('amount')
        return TransactionCheck(
            status=str(data.get('status') or '').upper(),
            amount=str(amount) if amount is not None else None,
            currency=data.get('currency'),
            payment_method=data.get('payment_method'),
            operator_id=data.get('operator_id'),
            raw=body,
        )


def get_client() -> CinetPayClient:
    return CinetPayClient()
