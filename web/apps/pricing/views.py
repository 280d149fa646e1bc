"""HTTP views for coupons, shipping configuration and discounts."""

import logging

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.catalog.models import Category, Product
from apps.common.exceptions import Conflict, InvalidRequest, NotFound

from .engine import (
    DEFAULT_SHIPPING_RULE,
    ZERO,
    CartLine,
    DiscountType,
    apply_coupon,
    compute_shipping,
    compute_subtotal,
    final_amount,
    floor_zero,
    money,
)
from .models import Coupon, Discount
from .repository import DjangoCouponBook, DjangoShippingConfigStore, active_discounts, best_prices, normalize_code
from .schemas import (
    CouponApplyDTO,
    CouponCreateDTO,
    CouponOut,
    CouponUpdateDTO,
    DiscountAdminOut,
    DiscountCalculateDTO,
    DiscountCreateDTO,
    DiscountOut,
    DiscountUpdateDTO,
    ShippingCalculateDTO,
    ShippingConfigDTO,
)

logger = logging.getLogger(__name__)


def _shipping_json(rule) -> dict:
    return {
        "shippingCharge": str(rule.charge),
        "freeShippingThreshold": str(rule.free_threshold),
        "isActive": True,
    }


class CouponValidateView(APIView):
    """Public check that a code exists and has not expired."""

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupons"

    def get(self, request):
        code = normalize_code(request.GET.get("code", ""))
        if not code:
            raise InvalidRequest("Coupon code is required")
        terms = DjangoCouponBook().find_by_code(code)
        apply_coupon(ZERO, terms, None, timezone.now())
        coupon = Coupon.objects.get(pk=terms.id)
        return Response(CouponOut.from_model(coupon, include_id=False).to_json())


class CouponApplyView(APIView):
    """Preview a coupon against an order total for the current user.

    Nothing is redeemed here; redemption happens when an order is placed.
    """

    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupons"

    def post(self, request):
        dto = CouponApplyDTO.model_validate(request.data)
        terms = DjangoCouponBook().find_by_code(dto.code)
        discount = apply_coupon(dto.order_total, terms, request.user.id, timezone.now())
        coupon = Coupon.objects.get(pk=terms.id)
        return Response(
            {
                "coupon": CouponOut.from_model(coupon, include_id=False).to_json(),
                "discountAmount": str(discount),
                "finalAmount": str(final_amount(dto.order_total, ZERO, discount)),
                "originalAmount": str(dto.order_total),
            }
        )


class CouponAdminView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response([CouponOut.from_model(c).to_json() for c in Coupon.objects.all()])

    def post(self, request):
        dto = CouponCreateDTO.model_validate(request.data)
        try:
            with transaction.atomic():
                coupon = Coupon.objects.create(
                    code=dto.code,
                    discount_type=dto.discount_type.value,
                    value=dto.value,
                    expiry_date=dto.expiry_date,
                )
        except IntegrityError:
            raise Conflict(f"Coupon {dto.code} already exists", code="DUPLICATE_COUPON")
        logger.info("coupon created", extra={"coupon_id": coupon.id, "code": coupon.code})
        return Response(CouponOut.from_model(coupon).to_json(), status=status.HTTP_201_CREATED)


class ShippingConfigView(APIView):
    """GET is public and falls back to the default rule; PUT is admin-only."""

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAdminUser()]

    def get(self, request):
        rule = DjangoShippingConfigStore().active() or DEFAULT_SHIPPING_RULE
        return Response(_shipping_json(rule))

    def put(self, request):
        dto = ShippingConfigDTO.model_validate(request.data)
        store = DjangoShippingConfigStore()
        store.update(dto.shipping_charge, dto.free_shipping_threshold)
        return Response(_shipping_json(store.active()))


class ShippingCalculateView(APIView):
    """Shipping quote for a cart priced at current product prices."""

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "shipping"

    def post(self, request):
        dto = ShippingCalculateDTO.model_validate(request.data)
        ids = {i.product_id for i in dto.items}
        prices = dict(Product.objects.filter(pk__in=ids).values_list("id", "price"))
        missing = sorted(ids - prices.keys())
        if missing:
            raise NotFound(f"Product not found with ID: {missing[0]}")

        subtotal = compute_subtotal(CartLine(i.product_id, prices[i.product_id], i.quantity) for i in dto.items)
        rule = DjangoShippingConfigStore().active() or DEFAULT_SHIPPING_RULE
        shipping = compute_shipping(subtotal, rule)
        return Response(
            {
                "shippingCost": str(shipping),
                "totalPrice": str(subtotal),
                "shippingCharge": str(rule.charge),
                "freeShippingThreshold": str(rule.free_threshold),
                "qualifiesForFreeShipping": subtotal >= rule.free_threshold,
            }
        )


class ActiveDiscountsView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        now = timezone.now()
        ids = [d.id for d in active_discounts(now)]
        qs = Discount.objects.filter(pk__in=ids).prefetch_related("applicable_products", "applicable_categories")
        return Response([DiscountOut.from_model(d).to_json() for d in qs])


def _get_coupon(pk: int) -> Coupon:
    coupon = Coupon.objects.filter(pk=pk).first()
    if coupon is None:
        raise NotFound(f"Coupon not found with ID: {pk}")
    return coupon


class CouponDetailView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request, pk: int):
        return Response(CouponOut.from_model(_get_coupon(pk)).to_json())

    def put(self, request, pk: int):
        coupon = _get_coupon(pk)
        dto = CouponUpdateDTO.model_validate(request.data)
        changes = {k: v for k, v in dto.model_dump(exclude_unset=True).items() if v is not None}
        for name, value in changes.items():
            setattr(coupon, name, value.value if name == "discount_type" else value)
        if coupon.discount_type == DiscountType.PERCENTAGE.value and coupon.value > 100:
            raise InvalidRequest("Percentage coupons cannot exceed 100")
        try:
            with transaction.atomic():
                coupon.save()
        except IntegrityError:
            raise Conflict(f"Coupon {coupon.code} already exists", code="DUPLICATE_COUPON")
        coupon.refresh_from_db()
        logger.info("coupon updated", extra={"coupon_id": coupon.id, "fields": sorted(changes)})
        return Response(CouponOut.from_model(coupon).to_json())

    def delete(self, request, pk: int):
        coupon = _get_coupon(pk)
        coupon.delete()
        logger.info("coupon deleted", extra={"coupon_id": pk})
        return Response({"message": "Coupon deleted successfully"})


# ---- discount administration ----

def _get_discount(pk: int) -> Discount:
    discount = Discount.objects.prefetch_related("applicable_products", "applicable_categories").filter(pk=pk).first()
    if discount is None:
        raise NotFound(f"Discount not found with ID: {pk}")
    return discount


def _check_targets(dto: DiscountCreateDTO) -> None:
    missing = set(dto.product_ids) - set(Product.objects.filter(pk__in=dto.product_ids).values_list("id", flat=True))
    if missing:
        raise NotFound(f"Product not found with ID: {min(missing)}")
    missing = set(dto.category_ids) - set(
        Category.objects.filter(pk__in=dto.category_ids).values_list("id", flat=True)
    )
    if missing:
        raise NotFound(f"Category not found with ID: {min(missing)}")


@transaction.atomic
def _write_discount(discount: Discount, dto: DiscountCreateDTO) -> Discount:
    discount.name = dto.name
    discount.description = dto.description
    discount.discount_type = dto.discount_type.value
    discount.value = dto.value
    discount.min_order_amount = dto.min_order_amount
    discount.max_discount_amount = dto.max_discount_amount
    discount.start_date = dto.start_date
    discount.end_date = dto.end_date
    discount.status = dto.status.value
    discount.is_active = dto.is_active
    discount.usage_limit = dto.usage_limit
    discount.save()
    discount.applicable_products.set(dto.product_ids)
    discount.applicable_categories.set(dto.category_ids)
    return _get_discount(discount.pk)


def _as_create_dto(discount: Discount) -> dict:
    return {
        "name": discount.name,
        "description": discount.description,
        "discount_type": discount.discount_type,
        "value": discount.value,
        "min_order_amount": discount.min_order_amount,
        "max_discount_amount": discount.max_discount_amount,
        "start_date": discount.start_date,
        "end_date": discount.end_date,
        "status": discount.status,
        "is_active": discount.is_active,
        "product_ids": [p.id for p in discount.applicable_products.all()],
        "category_ids": [c.id for c in discount.applicable_categories.all()],
        "usage_limit": discount.usage_limit,
    }


class DiscountAdminView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        qs = Discount.objects.prefetch_related("applicable_products", "applicable_categories")
        return Response([DiscountAdminOut.from_model(d).to_json() for d in qs])

    def post(self, request):
        dto = DiscountCreateDTO.model_validate(request.data)
        _check_targets(dto)
        discount = _write_discount(Discount(), dto)
        logger.info("discount created", extra={"discount_id": discount.id, "discount_name": discount.name})
        return Response(DiscountAdminOut.from_model(discount).to_json(), status=status.HTTP_201_CREATED)


class DiscountDetailView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request, pk: int):
        return Response(DiscountAdminOut.from_model(_get_discount(pk)).to_json())

    def put(self, request, pk: int):
        discount = _get_discount(pk)
        changes = DiscountUpdateDTO.model_validate(request.data).model_dump(exclude_unset=True)
        dto = DiscountCreateDTO.model_validate({**_as_create_dto(discount), **changes})
        _check_targets(dto)
        discount = _write_discount(discount, dto)
        logger.info("discount updated", extra={"discount_id": pk, "fields": sorted(changes)})
        return Response(DiscountAdminOut.from_model(discount).to_json())

    def delete(self, request, pk: int):
        _get_discount(pk).delete()
        logger.info("discount deleted", extra={"discount_id": pk})
        return Response({"message": "Discount deleted successfully"})


class DiscountCalculateView(APIView):
    """Price a cart with each line's best active discount.

    Nothing is redeemed; usage counters are only read.
    """

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "discounts"

    def post(self, request):
        dto = DiscountCalculateDTO.model_validate(request.data)
        ids = {i.product_id for i in dto.items}
        products = {p.id: p for p in Product.objects.filter(pk__in=ids)}
        missing = sorted(ids - products.keys())
        if missing:
            raise NotFound(f"Product not found with ID: {missing[0]}")

        prices = best_prices(products.values(), timezone.now())
        lines = []
        subtotal = discount_total = ZERO
        for item in dto.items:
            product, pricing = products[item.product_id], prices[item.product_id]
            line_discount = money(pricing.discount_amount * item.quantity)
            line_total = money(product.price * item.quantity)
            subtotal += line_total
            discount_total += line_discount
            lines.append(
                {
                    "productId": product.id,
                    "quantity": item.quantity,
                    "price": str(product.price),
                    "finalPrice": str(pricing.final_price),
                    "discountAmount": str(line_discount),
                    "discountName": pricing.discount_name,
                }
            )
        return Response(
            {
                "items": lines,
                "subtotal": str(money(subtotal)),
                "discountAmount": str(money(discount_total)),
                "totalAmount": str(money(floor_zero(subtotal - discount_total))),
            }
        )
