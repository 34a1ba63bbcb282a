# storefront/domain/pricing.py
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

from storefront.utils.settings import TAX_RATE, FREE_SHIPPING_THRESHOLD, FLAT_SHIPPING_FEE

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal


def compute_totals(lines: Iterable[Tuple[Decimal, int]]) -> Totals:
    """
    lines: (unit_price, quantity) pairs.

    Shipping is free only when the subtotal is strictly above the threshold.
    """
    subtotal = to_money(sum((Decimal(str(price)) * qty for price, qty in lines), Decimal("0")))
    tax = to_money(subtotal * TAX_RATE)
    shipping = Decimal("0.00") if subtotal > FREE_SHIPPING_THRESHOLD else to_money(FLAT_SHIPPING_FEE)
    return Totals(
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping,
        total=to_money(subtotal + tax + shipping),
    )
