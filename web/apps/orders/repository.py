"""Repository layer for persisting orders.

This module maps the domain ``Order`` to ``OrderModel``/``OrderLineModel``
rows and provides the other Django-backed ports the order service needs:
a catalog reader and a unit of work built on ``transaction.atomic``. The
domain layer stays unaware of ORM details.
"""

from contextlib import contextmanager
from typing import Dict, Iterable, Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.catalog.models import Product

from .domain import (
    Availability,
    ManualPaymentProof,
    Order,
    OrderLine,
    OrderStatus,
    PaymentDetails,
    ProductSnapshot,
    ShippingAddress,
)
from .models import OrderLineModel, OrderModel


class DjangoCatalog:
    """Read-only view of products for pricing and validation."""

    def get_products(self, product_ids: Iterable[int]) -> Dict[int, ProductSnapshot]:
        rows = Product.objects.filter(pk__in=list(product_ids)).only("id", "title", "price", "availability")
        return {
            p.id: ProductSnapshot(
                id=p.id,
                title=p.title,
                price=p.price,
                availability=Availability(p.availability),
            )
            for p in rows
        }


class _TransactionScope:
    def on_rollback(self, callback, *args) -> None:
        # The database transaction undoes every write on failure
        return None


class DjangoUnitOfWork:
    """All-or-nothing scope backed by a database transaction."""

    @contextmanager
    def begin(self):
        with transaction.atomic():
            yield _TransactionScope()


def _address_to_json(address: ShippingAddress) -> dict:
    return {
        "name": address.name,
        "line1": address.line1,
        "city": address.city,
        "postalCode": address.postal_code,
        "country": address.country,
        "contactNumber": address.contact_number,
    }


def _address_from_json(data: dict) -> ShippingAddress:
    return ShippingAddress(
        name=data["name"],
        line1=data["line1"],
        city=data["city"],
        postal_code=data["postalCode"],
        country=data["country"],
        contact_number=data["contactNumber"],
    )


def to_domain(obj: OrderModel) -> Order:
    """Map an ``OrderModel`` (with its lines) to the domain ``Order``."""
    payment = None
    if obj.payment_id:
        payment = PaymentDetails(payment_id=obj.payment_id, status=obj.payment_status or "Completed")
    proof = None
    if obj.screenshot_url:
        proof = ManualPaymentProof(screenshot_url=obj.screenshot_url, submitted_at=obj.proof_submitted_at)
    return Order(
        id=obj.id,
        user_id=obj.user_id,
        lines=[
            OrderLine(product_id=ln.product_id, quantity=ln.quantity, price_at_purchase=ln.price_at_purchase)
            for ln in obj.lines.all()
        ],
        shipping_address=_address_from_json(obj.shipping_address),
        subtotal=obj.subtotal,
        shipping_cost=obj.shipping_cost,
        discount_amount=obj.discount_amount,
        final_amount=obj.final_amount,
        status=OrderStatus(obj.status),
        coupon_id=obj.coupon_id,
        payment=payment,
        manual_payment=proof,
        number=obj.internal_id,
        created_at=obj.created_at,
    )


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM.

    Orders are never deleted; after creation only the status and payment
    records are written.
    """

    def add(self, order: Order) -> Order:
        """Persist a new order with its line items.

        Args:
            order: Domain ``Order`` with ``id`` set to None.

        Returns:
            The stored order, with id, order number and creation time.
        """
        obj = OrderModel.objects.create(
            user_id=order.user_id,
            status=order.status.value,
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            discount_amount=order.discount_amount,
            final_amount=order.final_amount,
            coupon_id=order.coupon_id,
            shipping_address=_address_to_json(order.shipping_address),
        )
        OrderLineModel.objects.bulk_create(
            [
                OrderLineModel(
                    order=obj,
                    position=pos,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price_at_purchase=line.price_at_purchase,
                )
                for pos, line in enumerate(order.lines)
            ]
        )
        return to_domain(obj)

    def get(self, order_id: UUID, for_update: bool = False) -> Optional[Order]:
        """Fetch an order by id.

        Args:
            order_id: Order UUID.
            for_update: Lock the order row until the surrounding
                transaction ends (``SELECT ... FOR UPDATE``).
        """
        qs = OrderModel.objects.prefetch_related("lines")
        if for_update:
            qs = qs.select_for_update()
        obj = qs.filter(pk=order_id).first()
        return to_domain(obj) if obj else None

    def save(self, order: Order) -> Order:
        OrderModel.objects.filter(pk=order.id).update(
            status=order.status.value,
            payment_id=order.payment.payment_id if order.payment else None,
            payment_status=order.payment.status if order.payment else None,
            screenshot_url=order.manual_payment.screenshot_url if order.manual_payment else None,
            proof_submitted_at=order.manual_payment.submitted_at if order.manual_payment else None,
            updated_at=timezone.now(),
        )
        return self.get(order.id)

    def list_for_user(self, user_id: int):
        qs = OrderModel.objects.filter(user_id=user_id).prefetch_related("lines").order_by("-internal_id")
        return [to_domain(o) for o in qs]
