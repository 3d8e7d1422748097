"""
Order and cart pricing.

All arithmetic runs on Decimal and every component is rounded to cents
before the total is formed, so total == subtotal + tax + shipping - discount
holds exactly on the stored values.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple, Union

from errors import ValidationError

Number = Union[int, float, str, Decimal]

TAX_RATE = Decimal("0.08")
FREE_SHIPPING_THRESHOLD = Decimal("50")
SHIPPING_FEE = Decimal("5.99")
CENT = Decimal("0.01")


def to_money(value: Number) -> Decimal:
    # str() first so 0.1 + 0.2 style float noise doesn't leak into Decimal
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Number, quantity: int) -> Decimal:
    return to_money(to_money(unit_price) * quantity)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal

    @property
    def free_shipping(self) -> bool:
        return self.subtotal >= FREE_SHIPPING_THRESHOLD

    def as_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "shipping": float(self.shipping),
            "discount": float(self.discount),
            "total": float(self.total),
        }


def calculate_totals(lines: Iterable[Tuple[Number, int]], discount: Number = 0) -> PriceBreakdown:
    """Price a list of (unit_price, quantity) pairs.

    Tax is a flat 8% of the subtotal, shipping is free from $50 up and 5.99
    below that. The discount is an absolute amount and may not push the
    total below zero.
    """
    subtotal = sum((line_total(price, qty) for price, qty in lines), Decimal("0.00"))
    tax = to_money(subtotal * TAX_RATE)
    shipping = Decimal("0.00") if subtotal >= FREE_SHIPPING_THRESHOLD else SHIPPING_FEE
    discount = to_money(discount)
    if discount < 0:
        raise ValidationError("Discount cannot be negative")
    gross = subtotal + tax + shipping
    if discount > gross:
        raise ValidationError("Discount cannot exceed the order amount")
    return PriceBreakdown(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=gross - discount,
    )
