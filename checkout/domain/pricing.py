# checkout/domain/pricing.py
"""Jedyna formula cen w serwisie (autoryzacja, rekonsyliacja, widok koszyka).

Kwoty wewnatrz serwisu sa Decimal w jednostkach waluty. Do procesora idzie
int w groszach/centach - konwersja tylko przez to_minor_units, raz na kwote.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

from checkout.domain.snapshot import PricingBreakdown
from checkout.utils.settings import FREE_SHIPPING_THRESHOLD, FLAT_SHIPPING_FEE, TAX_RATE

CENT = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_pricing(lines: Iterable[Tuple[Decimal, int]]) -> PricingBreakdown:
    """lines: pary (cena jednostkowa, ilosc)."""
    subtotal = quantize(sum((Decimal(price) * qty for price, qty in lines), Decimal("0.00")))
    shipping = Decimal("0.00") if subtotal >= FREE_SHIPPING_THRESHOLD else quantize(FLAT_SHIPPING_FEE)
    tax = quantize(subtotal * TAX_RATE)
    total = subtotal + shipping + tax
    return PricingBreakdown(subtotal=subtotal, shipping=shipping, tax=tax, total=total)


def to_minor_units(amount: Decimal) -> int:
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
