"""
Django Ninja schemas for quotes, invoices and their line items.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from ninja import Schema
from pydantic import Field


QTY = dict(max_digits=12, decimal_places=2)
PRICE = dict(max_digits=14, decimal_places=2)
RATE = dict(max_digits=5, decimal_places=2)


class ItemIn(Schema):
    label: str
    qty: Decimal = Field(Decimal('1'), **QTY)
    unit_price: Decimal = Field(..., **PRICE)
    vat_rate: Decimal = Field(Decimal('0'), **RATE)
    position: Optional[int] = None


class ItemUpdateIn(Schema):
    label: Optional[str] = None
    qty: Optional[Decimal] = Field(None, **QTY)
    unit_price: Optional[Decimal] = Field(None, **PRICE)
    vat_rate: Optional[Decimal] = Field(None, **RATE)
    position: Optional[int] = None


class ItemOut(Schema):
    id: int
    label: str
    qty: Decimal
    unit_price: Decimal
    vat_rate: Decimal
    position: int
    line_ht: Decimal
    line_tva: Decimal
    line_ttc: Decimal


class QuoteIn(Schema):
    client_id: UUID
    project_id: Optional[UUID] = None
    currency: Optional[str] = None
    expires_at: Optional[date] = None
    notes: str = ""
    items: List[ItemIn] = []


class QuoteUpdateIn(Schema):
    project_id: Optional[UUID] = None
    currency: Optional[str] = None
    expires_at: Optional[date] = None
    notes: Optional[str] = None


class QuoteOut(Schema):
    id: UUID
    client_id: UUID
    project_id: Optional[UUID] = None
    number: str
    currency: str
    status: str
    total_ht: Decimal
    total_tva: Decimal
    total_ttc: Decimal
    expires_at: Optional[date] = None
    notes: str
    pdf_url: str
    created_at: datetime
    items: List[ItemOut] = []

    @staticmethod
    def resolve_items(obj):
        return list(obj.items.all())


class InvoiceIn(Schema):
    client_id: UUID
    project_id: Optional[UUID] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[date] = None
    external_ref: str = ""
    notes: str = ""
    items: List[ItemIn] = []


class InvoiceUpdateIn(Schema):
    project_id: Optional[UUID] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[date] = None
    external_ref: Optional[str] = None
    notes: Optional[str] = None


class InvoiceOut(Schema):
    id: UUID
    client_id: UUID
    project_id: Optional[UUID] = None
    number: str
    currency: str
    status: str
    total_ht: Decimal
    total_tva: Decimal
    total_ttc: Decimal
    due_date: Optional[date] = None
    external_ref: str
    notes: str
    pdf_url: str
    source_quote_id: Optional[UUID] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    items: List[ItemOut] = []

    @staticmethod
    def resolve_items(obj):
        return list(obj.items.all())
