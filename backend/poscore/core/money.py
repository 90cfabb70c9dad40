"""Money helpers and order total arithmetic."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

MONEY_PLACES = Decimal("0.001")
ZERO = Decimal("0")


def money(value) -> Decimal:
    """Quantize to the fixed 3-decimal currency precision."""
    if value is None:
        return ZERO.quantize(MONEY_PLACES)
    return Decimal(str(value)).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    delivery_fee: Decimal
    service_charge: Decimal
    grand_total: Decimal


def discount_for(subtotal: Decimal, discount_type: Optional[str], discount_value) -> Decimal:
    """Discount amount for a subtotal; fixed discounts never exceed the subtotal."""
    if not discount_type or not discount_value:
        return money(ZERO)
    value = Decimal(str(discount_value))
    if discount_type == "percentage":
        amount = subtotal * min(value, Decimal("100")) / Decimal("100")
    else:
        amount = value
    return money(min(max(amount, ZERO), subtotal))


def compute_totals(
    line_totals: Iterable[Decimal],
    discount_type: Optional[str] = None,
    discount_value=None,
    tax_rate=ZERO,
    delivery_fee=ZERO,
    service_charge=ZERO,
) -> Totals:
    subtotal = money(sum((Decimal(str(t)) for t in line_totals), ZERO))
    discount_amount = discount_for(subtotal, discount_type, discount_value)
    taxable = subtotal - discount_amount
    tax_amount = money(taxable * Decimal(str(tax_rate or 0)) / Decimal("100"))
    delivery_fee = money(delivery_fee)
    service_charge = money(service_charge)
    grand_total = money(taxable + tax_amount + delivery_fee + service_charge)
    return Totals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        delivery_fee=delivery_fee,
        service_charge=service_charge,
        grand_total=grand_total,
    )
