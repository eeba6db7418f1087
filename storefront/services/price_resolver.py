"""Single source of truth for the price a customer pays.

Product cards, detail pages and the checkout step all go through
:func:`resolve` so that a discount shown on one screen is never silently
dropped (or kept) on another.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple, Union

from storefront.services.time_window import (
    DeadlineLike,
    InstantLike,
    RemainingTime,
    evaluate,
)

Price = Union[int, float, Decimal]


@dataclass(frozen=True)
class PricingInput:
    base_price: Price
    original_price: Optional[Price] = None
    markdown_active: bool = False
    deadline: DeadlineLike = None


@dataclass(frozen=True)
class ResolvedPrice:
    effective_price: Price
    display_original_price: Optional[Price] = None
    discount_percent: int = 0

    @property
    def has_discount(self) -> bool:
        return self.display_original_price is not None

    def to_dict(self) -> dict:
        return {
            "effective_price": self.effective_price,
            "display_original_price": self.display_original_price,
            "discount_percent": self.discount_percent,
        }


def _original(pricing: PricingInput) -> Price:
    return pricing.original_price if pricing.original_price is not None else 0


def discount_percent(original_price: Price, effective_price: Price) -> int:
    """Whole-number percentage, halves rounded away from zero."""
    if not original_price or original_price <= 0:
        return 0
    ratio = (Decimal(str(original_price)) - Decimal(str(effective_price))) / Decimal(str(original_price))
    return int((ratio * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_markdown_live(pricing: PricingInput, remaining: RemainingTime) -> bool:
    return bool(
        pricing.markdown_active
        and not remaining.is_expired
        and _original(pricing) > pricing.base_price
    )


def resolve(pricing: PricingInput, remaining: RemainingTime) -> ResolvedPrice:
    """
    Resolve the effective price.

    While the markdown window is open the base (discounted) price applies and
    the original price is shown struck through. Outside the window the
    original price is the real price whenever one is known, so an expired
    markdown can never linger as the permanent price.
    """
    if is_markdown_live(pricing, remaining):
        return ResolvedPrice(
            effective_price=pricing.base_price,
            display_original_price=pricing.original_price,
            discount_percent=discount_percent(pricing.original_price, pricing.base_price),
        )

    original = _original(pricing)
    effective = original if original > 0 else pricing.base_price
    return ResolvedPrice(effective_price=effective)


def price_snapshot(pricing: PricingInput, now: InstantLike) -> Tuple[RemainingTime, ResolvedPrice]:
    """Evaluate the countdown and resolve the price for the same instant."""
    remaining = evaluate(pricing.deadline, now)
    return remaining, resolve(pricing, remaining)


__all__ = [
    "PricingInput",
    "ResolvedPrice",
    "discount_percent",
    "is_markdown_live",
    "resolve",
    "price_snapshot",
]
