from datetime import datetime, timedelta, timezone

from storefront.services.price_resolver import (
    PricingInput,
    discount_percent,
    is_markdown_live,
    price_snapshot,
    resolve,
)
from storefront.services.time_window import EXPIRED, evaluate

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _markdown(base=80000, original=100000, active=True, deadline=None):
    return PricingInput(
        base_price=base,
        original_price=original,
        markdown_active=active,
        deadline=deadline if deadline is not None else NOW + timedelta(seconds=90),
    )


def test_live_markdown_shows_discount():
    pricing = _markdown()
    resolved = resolve(pricing, evaluate(pricing.deadline, NOW))

    assert resolved.effective_price == 80000
    assert resolved.display_original_price == 100000
    assert resolved.discount_percent == 20
    assert resolved.has_discount


def test_expired_markdown_falls_back_to_original_price():
    pricing = _markdown(deadline=NOW - timedelta(seconds=1))
    remaining, resolved = price_snapshot(pricing, NOW)

    assert remaining.is_expired
    assert resolved.effective_price == 100000
    assert resolved.display_original_price is None
    assert resolved.discount_percent == 0


def test_inactive_markdown_uses_original_price_even_with_time_left():
    pricing = _markdown(active=False)
    resolved = resolve(pricing, evaluate(pricing.deadline, NOW))

    assert resolved.effective_price == 100000
    assert resolved.discount_percent == 0
    assert not resolved.has_discount


def test_without_original_price_base_price_applies():
    pricing = PricingInput(base_price=75000, original_price=None, markdown_active=True, deadline=NOW + timedelta(hours=1))
    resolved = resolve(pricing, evaluate(pricing.deadline, NOW))

    assert resolved.effective_price == 75000
    assert resolved.display_original_price is None


def test_original_not_above_base_is_not_a_discount():
    pricing = _markdown(base=100000, original=100000)
    resolved = resolve(pricing, evaluate(pricing.deadline, NOW))

    assert resolved.effective_price == 100000
    assert resolved.discount_percent == 0
    assert not is_markdown_live(pricing, evaluate(pricing.deadline, NOW))


def test_zero_original_price_keeps_base_price():
    pricing = PricingInput(base_price=50000, original_price=0)
    assert resolve(pricing, EXPIRED).effective_price == 50000


def test_regular_product_with_higher_list_price_charges_list_price():
    # Outside any markdown window the original price is the real price
    pricing = PricingInput(base_price=250000, original_price=300000, markdown_active=False)
    assert resolve(pricing, EXPIRED).effective_price == 300000


def test_discount_percent_rounds_half_up():
    assert discount_percent(200, 199) == 1  # 0.5%
    assert discount_percent(300, 200) == 33
    assert discount_percent(300, 100) == 67
    assert discount_percent(0, 100) == 0
    assert discount_percent(None, 100) == 0


def test_resolution_is_pure():
    pricing = _markdown()
    remaining = evaluate(pricing.deadline, NOW)
    assert resolve(pricing, remaining) == resolve(pricing, remaining)
