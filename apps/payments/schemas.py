from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from ninja import Schema


class PaymentInitOut(Schema):
    payment_token: str
    payment_url: str
    transaction_id: str


class PaymentOut(Schema):
    id: UUID
    invoice_id: UUID
    amount: Decimal
    currency: str
    status: str
    method: str
    gateway_transaction_id: str
    operator_id: str
    paid_at: Optional[datetime] = None
    created_at: datetime


class PaymentAttemptOut(Schema):
    id: UUID
    invoice_id: UUID
    transaction_id: str
    status: str
    channel: str
    amount: Decimal
    currency: str
    notify_count: int
    last_checked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
