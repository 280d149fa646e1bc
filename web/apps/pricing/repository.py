"""Django-backed lookups feeding the pricing engine.

The engine works on frozen dataclasses; this module maps ORM rows into
them and owns the few writes pricing needs (coupon redemption and the
shipping configuration).
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.db.models import Q

from apps.common.exceptions import CouponAlreadyUsed

from .engine import (
    CouponTerms,
    DiscountedPrice,
    DiscountTerms,
    DiscountType,
    PricedProduct,
    ShippingRule,
    apply_best_discount,
)
from .models import Coupon, Discount, ShippingConfig

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def coupon_terms(coupon: Coupon) -> CouponTerms:
    return CouponTerms(
        id=coupon.id,
        code=coupon.code,
        discount_type=DiscountType(coupon.discount_type),
        value=coupon.value,
        expiry_date=coupon.expiry_date,
        used_by=frozenset(coupon.used_by.values_list("id", flat=True)),
    )


def discount_terms(discount: Discount) -> DiscountTerms:
    return DiscountTerms(
        id=discount.id,
        name=discount.name,
        discount_type=DiscountType(discount.discount_type),
        value=discount.value,
        start_date=discount.start_date,
        end_date=discount.end_date,
        product_ids=frozenset(p.id for p in discount.applicable_products.all()),
        category_ids=frozenset(c.id for c in discount.applicable_categories.all()),
        min_order_amount=discount.min_order_amount,
        max_discount_amount=discount.max_discount_amount,
        usage_limit=discount.usage_limit,
        used_count=discount.used_count,
        is_active=discount.is_active and discount.status == Discount.Status.ACTIVE,
    )


class DjangoCouponBook:
    """Coupon lookup and single-use redemption tracking."""

    def find_by_code(self, code: str) -> Optional[CouponTerms]:
        coupon = Coupon.objects.filter(code=normalize_code(code)).first()
        return coupon_terms(coupon) if coupon else None

    def mark_used(self, coupon_id: int, user_id: int) -> None:
        """Record a redemption; the through table's unique pair makes this
        the final arbiter when the same user races two orders."""
        through = Coupon.used_by.through
        _, created = through.objects.get_or_create(coupon_id=coupon_id, user_id=user_id)
        if not created:
            raise CouponAlreadyUsed("You have already used this coupon")
        logger.info("coupon redeemed", extra={"coupon_id": coupon_id, "user_id": user_id})

    def unmark_used(self, coupon_id: int, user_id: int) -> None:
        Coupon.used_by.through.objects.filter(coupon_id=coupon_id, user_id=user_id).delete()


class DjangoShippingConfigStore:
    def active(self) -> Optional[ShippingRule]:
        cfg = ShippingConfig.objects.filter(is_active=True).first()
        if cfg is None:
            return None
        return ShippingRule(charge=cfg.shipping_charge, free_threshold=cfg.free_shipping_threshold)

    def update(self, charge: Decimal, free_threshold: Decimal) -> ShippingConfig:
        """Update the active configuration, creating it on first use."""
        cfg = ShippingConfig.objects.filter(is_active=True).first()
        if cfg is None:
            cfg = ShippingConfig(is_active=True)
        cfg.shipping_charge = charge
        cfg.free_shipping_threshold = free_threshold
        cfg.save()
        logger.info(
            "shipping config updated",
            extra={"shipping_charge": str(charge), "free_shipping_threshold": str(free_threshold)},
        )
        return cfg


def active_discounts(now: datetime, product_ids=None, category_ids=None) -> list[DiscountTerms]:
    """Discounts whose window contains ``now``.

    When product/category ids are given, only discounts scoped to them or
    unrestricted ones are loaded.
    """
    qs = Discount.objects.filter(
        is_active=True,
        status=Discount.Status.ACTIVE,
        start_date__lte=now,
        end_date__gte=now,
    )
    if product_ids is not None or category_ids is not None:
        scope = Q(applicable_products__isnull=True, applicable_categories__isnull=True)
        if product_ids:
            scope |= Q(applicable_products__in=list(product_ids))
        if category_ids:
            scope |= Q(applicable_categories__in=list(category_ids))
        qs = qs.filter(scope)
    qs = qs.distinct().prefetch_related("applicable_products", "applicable_categories")
    return [discount_terms(d) for d in qs]


def best_prices(products, now: datetime) -> dict[int, DiscountedPrice]:
    """Catalog price of each product after its best active discount.

    Args:
        products: ``catalog.Product`` instances.
    """
    products = list(products)
    if not products:
        return {}
    category_ids = {p.category_id for p in products} | {p.subcategory_id for p in products if p.subcategory_id}
    discounts = active_discounts(now, product_ids=[p.id for p in products], category_ids=category_ids)
    out = {}
    for p in products:
        cats = frozenset(c for c in (p.category_id, p.subcategory_id) if c)
        out[p.id] = apply_best_discount(PricedProduct(id=p.id, price=p.price, category_ids=cats), discounts, now)
    return out
