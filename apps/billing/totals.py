"""
Totals engine for quotes and invoices.

Line HT = qty x unit price, line TVA = line HT x rate / 100. The document
sums are accumulated unrounded, HT and TVA are then rounded half up to
cents and TTC is their sum, so TTC == HT + TVA on every document.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable

TWO_PLACES = Decimal('0.01')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class Totals:
    total_ht: Decimal
    total_tva: Decimal
    total_ttc: Decimal


ZERO_TOTALS = Totals(Decimal('0.00'), Decimal('0.00'), Decimal('0.00'))


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps floats like 0.1 from turning into 0.1000000000000000055...
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Invalid amount: {value!r}")


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def validate_line(qty, unit_price, vat_rate) -> None:
    qty, unit_price, vat_rate = to_decimal(qty), to_decimal(unit_price), to_decimal(vat_rate)
    if qty < 0:
        raise ValueError("Quantity cannot be negative")
    if unit_price < 0:
        raise ValueError("Unit price cannot be negative")
    if vat_rate < 0 or vat_rate > HUNDRED:
        raise ValueError("VAT rate must be between 0 and 100")


def line_ht(qty, unit_price) -> Decimal:
    return to_decimal(qty) * to_decimal(unit_price)


def line_tva(qty, unit_price, vat_rate) -> Decimal:
    return line_ht(qty, unit_price) * to_decimal(vat_rate) / HUNDRED


def _field(item, name):
    return item[name] if isinstance(item, dict) else getattr(item, name)


def compute_totals(items: Iterable) -> Totals:
    """Items are model instances or dicts with qty, unit_price and vat_rate."""
    sum_ht = Decimal('0')
    sum_tva = Decimal('0')
    for item in items:
        qty, unit_price, vat_rate = _field(item, 'qty'), _field(item, 'unit_price'), _field(item, 'vat_rate')
        validate_line(qty, unit_price, vat_rate)
        sum_ht += line_ht(qty, unit_price)
        sum_tva += line_tva(qty, unit_price, vat_rate)

    total_ht = round_money(sum_ht)
    total_tva = round_money(sum_tva)
    return Totals(total_ht=total_ht, total_tva=total_tva, total_ttc=total_ht + total_tva)
