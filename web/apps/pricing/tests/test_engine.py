"""Pure pricing functions: no database involved."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from apps.common.exceptions import CouponAlreadyUsed, CouponExpired, CouponInvalid
from apps.pricing.engine import (
    CartLine,
    CouponTerms,
    DiscountTerms,
    DiscountType,
    PricedProduct,
    ShippingRule,
    apply_best_discount,
    apply_coupon,
    compute_shipping,
    compute_subtotal,
    compute_totals,
    money,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
D = Decimal


def _coupon(**kw):
    values = dict(id=1, code="SAVE", discount_type=DiscountType.PERCENTAGE, value=D("10"),
                  expiry_date=NOW + timedelta(days=1))
    values.update(kw)
    return CouponTerms(**values)


def _discount(**kw):
    values = dict(id=1, name="Promo", discount_type=DiscountType.PERCENTAGE, value=D("10"),
                  start_date=NOW - timedelta(days=1), end_date=NOW + timedelta(days=1))
    values.update(kw)
    return DiscountTerms(**values)


def test_money_rounds_half_up():
    assert money(D("1.005")) == D("1.01")
    assert money(D("2")) == D("2.00")


def test_subtotal():
    lines = [CartLine(1, D("19.99"), 3), CartLine(2, D("0.01"), 1)]
    assert compute_subtotal(lines) == D("59.98")
    assert compute_subtotal([]) == D("0.00")


@pytest.mark.parametrize(
    "subtotal,expected",
    [(D("0.00"), D("50.00")), (D("999.99"), D("50.00")), (D("1000.00"), D("0.00")), (D("5000"), D("0.00"))],
)
def test_default_shipping_rule(subtotal, expected):
    assert compute_shipping(subtotal) == expected


def test_configured_shipping_rule():
    rule = ShippingRule(charge=D("7.5"), free_threshold=D("60"))
    assert compute_shipping(D("59.99"), rule) == D("7.50")
    assert compute_shipping(D("60.00"), rule) == D("0.00")


def test_percentage_coupon():
    assert apply_coupon(D("250.00"), _coupon(), 1, NOW) == D("25.00")


def test_fixed_coupon_is_capped_at_base():
    c = _coupon(discount_type=DiscountType.FIXED, value=D("80"))
    assert apply_coupon(D("30.00"), c, 1, NOW) == D("30.00")


def test_coupon_failures():
    with pytest.raises(CouponInvalid):
        apply_coupon(D("10"), None, 1, NOW)
    with pytest.raises(CouponExpired):
        apply_coupon(D("10"), _coupon(expiry_date=NOW - timedelta(seconds=1)), 1, NOW)
    with pytest.raises(CouponAlreadyUsed):
        apply_coupon(D("10"), _coupon(used_by=frozenset({1})), 1, NOW)
    # anonymous previews skip the per-user check
    assert apply_coupon(D("10"), _coupon(used_by=frozenset({1})), None, NOW) == D("1.00")


def test_totals_with_coupon_on_subtotal_plus_shipping():
    totals = compute_totals(
        [CartLine(1, D("100.00"), 2)], None, _coupon(value=D("20")), user_id=5, now=NOW, coupon_requested=True
    )
    assert totals.subtotal == D("200.00")
    assert totals.shipping_cost == D("50.00")
    assert totals.discount_amount == D("50.00")
    assert totals.final_amount == D("200.00")
    assert totals.coupon_id == 1


def test_totals_missing_coupon_raises_when_requested():
    with pytest.raises(CouponInvalid):
        compute_totals([CartLine(1, D("1"), 1)], None, None, 1, NOW, coupon_requested=True)


def test_totals_never_negative():
    c = _coupon(discount_type=DiscountType.FIXED, value=D("10000"))
    totals = compute_totals([CartLine(1, D("5.00"), 1)], None, c, 1, NOW)
    assert totals.final_amount == D("0.00")


class TestBestDiscount:
    product = PricedProduct(id=10, price=D("80.00"), category_ids=frozenset({3}))

    def test_no_discount(self):
        out = apply_best_discount(self.product, [], NOW)
        assert out.final_price == D("80.00")
        assert out.has_discount is False
        assert out.discount_id is None

    def test_highest_value_wins(self):
        out = apply_best_discount(
            self.product,
            [_discount(id=1, value=D("10")), _discount(id=2, name="Big", value=D("30"))],
            NOW,
        )
        assert out.discount_id == 2
        assert out.final_price == D("56.00")
        assert out.discount_percentage == D("30.00")

    def test_scope_by_product_or_category(self):
        other_product = _discount(id=1, value=D("50"), product_ids=frozenset({99}))
        same_category = _discount(id=2, value=D("5"), category_ids=frozenset({3}))
        out = apply_best_discount(self.product, [other_product, same_category], NOW)
        assert out.discount_id == 2
        assert out.discount_amount == D("4.00")

    @pytest.mark.parametrize(
        "kw",
        [
            {"is_active": False},
            {"start_date": NOW + timedelta(hours=1)},
            {"end_date": NOW - timedelta(hours=1)},
            {"usage_limit": 3, "used_count": 3},
            {"min_order_amount": D("100")},
        ],
    )
    def test_ineligible_discounts_are_skipped(self, kw):
        out = apply_best_discount(self.product, [_discount(**kw)], NOW)
        assert out.has_discount is False

    def test_max_discount_amount_caps(self):
        d = _discount(value=D("50"), max_discount_amount=D("15"))
        out = apply_best_discount(self.product, [d], NOW)
        assert out.discount_amount == D("15.00")
        assert out.final_price == D("65.00")

    def test_fixed_discount_floors_at_zero(self):
        d = _discount(discount_type=DiscountType.FIXED, value=D("500"))
        out = apply_best_discount(self.product, [d], NOW)
        assert out.final_price == D("0.00")
        assert out.discount_percentage == D("100.00")
