# Overview: Service-layer operations for pricing; pure cart, discount and fee arithmetic.

"""
Cart pricing over immutable snapshots. No database access.

All amounts are integer cents, all percentages integer basis points
(1000 bps = 10%). Percentages round to the nearest cent, half-up.

Order of application:
1. subtotal = sum(quantity * unit_price - line_discount)
2. promo discount (percentage / fixed / buy_x_get_y), clamped to its
   maximum and to the subtotal
3. membership tier discount on the ORIGINAL subtotal, clamped to its
   maximum and so that the total stays >= 0
4. total = subtotal - promo - tier + tax (tax is always 0)

Payment fees are computed per payment line and never change the total.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0

    @property
    def gross_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def total_cents(self) -> int:
        return self.gross_cents - self.discount_cents


@dataclass(frozen=True)
class PromoSnapshot:
    """Applicable promo discount. Callers pass None when it is not valid."""
    type: str
    value: int
    minimum_amount_cents: Optional[int] = None
    maximum_discount_cents: Optional[int] = None
    minimum_quantity: Optional[int] = None
    get_quantity: Optional[int] = None

    @classmethod
    def from_model(cls, discount) -> "PromoSnapshot":
        return cls(
            type=discount.type,
            value=discount.value or 0,
            minimum_amount_cents=discount.minimum_amount_cents,
            maximum_discount_cents=discount.maximum_discount_cents,
            minimum_quantity=discount.minimum_quantity,
            get_quantity=discount.get_quantity,
        )


@dataclass(frozen=True)
class TierSnapshot:
    percentage_bps: int
    minimum_purchase_cents: int = 0
    maximum_discount_cents: Optional[int] = None
    is_active: bool = True

    @classmethod
    def from_model(cls, tier) -> "TierSnapshot":
        return cls(
            percentage_bps=tier.discount_percentage_bps or 0,
            minimum_purchase_cents=tier.minimum_purchase_cents or 0,
            maximum_discount_cents=tier.maximum_discount_cents,
            is_active=bool(tier.is_active),
        )


@dataclass(frozen=True)
class PricingResult:
    subtotal_cents: int
    discount_cents: int
    customer_discount_cents: int
    customer_discount_bps: int
    tax_cents: int
    total_cents: int
    lines: tuple = field(default_factory=tuple)


def apply_bps(amount_cents: int, bps: int) -> int:
    """amount * bps / 10000, rounded to the nearest cent (half-up)."""
    return (amount_cents * bps + 5000) // 10000


def calculate_subtotal(lines: Iterable[CartLine]) -> int:
    return sum(line.total_cents for line in lines)


def _buy_x_get_y_amount(lines: Iterable[CartLine], buy: int | None, get: int | None) -> int:
    if not buy or not get or buy <= 0 or get <= 0:
        return 0
    group = buy + get
    return sum((line.quantity // group) * get * line.unit_price_cents for line in lines)


def calculate_promo_discount(lines: tuple, subtotal_cents: int, promo: PromoSnapshot | None) -> int:
    if promo is None or subtotal_cents <= 0:
        return 0
    if promo.minimum_amount_cents and subtotal_cents < promo.minimum_amount_cents:
        return 0

    if promo.type == "percentage":
        amount = apply_bps(subtotal_cents, promo.value)
    elif promo.type == "fixed":
        amount = promo.value
    elif promo.type == "buy_x_get_y":
        amount = _buy_x_get_y_amount(lines, promo.minimum_quantity, promo.get_quantity)
    else:
        return 0

    if promo.maximum_discount_cents is not None:
        amount = min(amount, promo.maximum_discount_cents)
    return max(0, min(amount, subtotal_cents))


def calculate_customer_discount(
    subtotal_cents: int,
    promo_cents: int,
    tier: TierSnapshot | None,
) -> tuple[int, int]:
    """Return (amount_cents, applied_bps). applied_bps is 0 when nothing applies."""
    if tier is None or not tier.is_active or tier.percentage_bps <= 0:
        return 0, 0
    if subtotal_cents < tier.minimum_purchase_cents:
        return 0, 0

    amount = apply_bps(subtotal_cents, tier.percentage_bps)
    if tier.maximum_discount_cents is not None:
        amount = min(amount, tier.maximum_discount_cents)
    amount = max(0, min(amount, subtotal_cents - promo_cents))
    if amount == 0:
        return 0, 0
    return amount, tier.percentage_bps


def price_cart(
    lines: Iterable[CartLine],
    promo: PromoSnapshot | None = None,
    tier: TierSnapshot | None = None,
) -> PricingResult:
    lines = tuple(lines)
    subtotal = calculate_subtotal(lines)
    promo_cents = calculate_promo_discount(lines, subtotal, promo)
    tier_cents, tier_bps = calculate_customer_discount(subtotal, promo_cents, tier)
    tax = 0
    return PricingResult(
        subtotal_cents=subtotal,
        discount_cents=promo_cents,
        customer_discount_cents=tier_cents,
        customer_discount_bps=tier_bps,
        tax_cents=tax,
        total_cents=subtotal - promo_cents - tier_cents + tax,
        lines=lines,
    )


def calculate_payment_fee(amount_cents: int, fee_bps: int, fee_fixed_cents: int) -> int:
    return apply_bps(amount_cents, fee_bps or 0) + (fee_fixed_cents or 0)


def calculate_change(paid_cents: int, total_cents: int) -> int:
    return max(0, paid_cents - total_cents)
