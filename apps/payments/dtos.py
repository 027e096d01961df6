"""DTOs for the payments app."""
from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class PaymentInitDTO:
    payment_token: str
    payment_url: str
    transaction_id: str
    invoice_id: UUID
