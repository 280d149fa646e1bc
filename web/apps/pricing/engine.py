"""Pricing engine: order totals, shipping, coupons and catalog discounts.

Everything here is a pure function over plain dataclasses. Lookups of
shipping configuration, coupons and active discounts happen in the
repository layer; the engine only receives their values. Money is
``Decimal`` quantized to cents, and no output is ever negative.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Optional

from apps.common.exceptions import CouponAlreadyUsed, CouponExpired, CouponInvalid

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def money(value) -> Decimal:
    """Quantize a number to cents (half-up)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def floor_zero(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


class DiscountType(str, Enum):
    FIXED = "Fixed"
    PERCENTAGE = "Percentage"


@dataclass(frozen=True)
class CartLine:
    product_id: int
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class ShippingRule:
    """Flat shipping charge waived at or above a subtotal threshold."""

    charge: Decimal
    free_threshold: Decimal


DEFAULT_SHIPPING_RULE = ShippingRule(charge=Decimal("50.00"), free_threshold=Decimal("1000.00"))


@dataclass(frozen=True)
class CouponTerms:
    id: int
    code: str
    discount_type: DiscountType
    value: Decimal
    expiry_date: datetime
    used_by: frozenset = frozenset()


@dataclass(frozen=True)
class DiscountTerms:
    """A scope-based promotion as seen by the engine.

    An empty ``product_ids`` and ``category_ids`` pair means the discount
    applies to every product.
    """

    id: int
    name: str
    discount_type: DiscountType
    value: Decimal
    start_date: datetime
    end_date: datetime
    product_ids: frozenset = frozenset()
    category_ids: frozenset = frozenset()
    min_order_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    used_count: int = 0
    is_active: bool = True

    @property
    def unrestricted(self) -> bool:
        return not self.product_ids and not self.category_ids


@dataclass(frozen=True)
class PricedProduct:
    id: int
    price: Decimal
    category_ids: frozenset = field(default_factory=frozenset)


@dataclass(frozen=True)
class DiscountedPrice:
    final_price: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal
    has_discount: bool
    discount_id: Optional[int] = None
    discount_name: Optional[str] = None


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    coupon_id: Optional[int] = None


def compute_subtotal(lines: Iterable[CartLine]) -> Decimal:
    """Sum of unit price times quantity over all lines."""
    return money(sum((line.unit_price * line.quantity for line in lines), ZERO))


def compute_shipping(subtotal: Decimal, rule: Optional[ShippingRule] = None) -> Decimal:
    """Flat charge, or zero once the subtotal reaches the free threshold.

    Args:
        subtotal: Order subtotal.
        rule: Active shipping configuration; the default rule is used when
            none is configured.
    """
    rule = rule or DEFAULT_SHIPPING_RULE
    if subtotal >= rule.free_threshold:
        return ZERO
    return money(rule.charge)


def _discount_amount(amount_base: Decimal, discount_type: DiscountType, value: Decimal) -> Decimal:
    if discount_type == DiscountType.PERCENTAGE:
        amount = amount_base * value / HUNDRED
    else:
        amount = value
    return money(min(floor_zero(amount), floor_zero(amount_base)))


def apply_coupon(
    amount_base: Decimal,
    coupon: Optional[CouponTerms],
    user_id: Optional[int],
    now: datetime,
) -> Decimal:
    """Validate a coupon for a user and return the discount it grants.

    Raises:
        CouponInvalid: ``coupon`` is None (unknown code).
        CouponExpired: The coupon's expiry date is in the past.
        CouponAlreadyUsed: ``user_id`` has redeemed the coupon before.
    """
    if coupon is None:
        raise CouponInvalid("Coupon not found or is invalid.")
    if coupon.expiry_date < now:
        raise CouponExpired("This coupon has expired.")
    if user_id is not None and user_id in coupon.used_by:
        raise CouponAlreadyUsed("You have already used this coupon")
    return _discount_amount(amount_base, coupon.discount_type, coupon.value)


def _eligible(discount: DiscountTerms, product: PricedProduct, now: datetime) -> bool:
    if not discount.is_active:
        return False
    if not (discount.start_date <= now <= discount.end_date):
        return False
    if discount.usage_limit is not None and discount.used_count >= discount.usage_limit:
        return False
    if discount.min_order_amount is not None and product.price < discount.min_order_amount:
        return False
    return (
        discount.unrestricted
        or product.id in discount.product_ids
        or bool(product.category_ids & discount.category_ids)
    )


def apply_best_discount(
    product: PricedProduct,
    discounts: Iterable[DiscountTerms],
    now: datetime,
) -> DiscountedPrice:
    """Pick the applicable discount with the highest raw value.

    Usage counters are read, never written.
    """
    candidates = [d for d in discounts if _eligible(d, product, now)]
    if not candidates:
        return DiscountedPrice(
            final_price=money(product.price),
            discount_amount=ZERO,
            discount_percentage=ZERO,
            has_discount=False,
        )

    best = max(candidates, key=lambda d: d.value)
    amount = _discount_amount(product.price, best.discount_type, best.value)
    if best.max_discount_amount is not None:
        amount = min(amount, money(best.max_discount_amount))
    percentage = ZERO
    if product.price > ZERO:
        percentage = money(amount / product.price * HUNDRED)
    return DiscountedPrice(
        final_price=money(floor_zero(product.price - amount)),
        discount_amount=amount,
        discount_percentage=percentage,
        has_discount=amount > ZERO,
        discount_id=best.id,
        discount_name=best.name,
    )


def final_amount(subtotal: Decimal, shipping_cost: Decimal, discount_amount: Decimal) -> Decimal:
    return money(floor_zero(subtotal + shipping_cost - discount_amount))


def compute_totals(
    lines: Iterable[CartLine],
    shipping_rule: Optional[ShippingRule],
    coupon: Optional[CouponTerms],
    user_id: Optional[int],
    now: datetime,
    coupon_requested: bool = False,
) -> OrderTotals:
    """Compute every monetary field of a candidate order.

    The coupon applies to ``subtotal + shipping``. ``coupon_requested``
    says whether the caller asked for a coupon at all, so a lookup miss
    surfaces as ``CouponInvalid`` instead of silently pricing without one.
    """
    subtotal = compute_subtotal(lines)
    shipping = compute_shipping(subtotal, shipping_rule)
    discount = ZERO
    if coupon_requested or coupon is not None:
        discount = apply_coupon(subtotal + shipping, coupon, user_id, now)
    return OrderTotals(
        subtotal=subtotal,
        shipping_cost=shipping,
        discount_amount=discount,
        final_amount=final_amount(subtotal, shipping, discount),
        coupon_id=coupon.id if coupon is not None else None,
    )
