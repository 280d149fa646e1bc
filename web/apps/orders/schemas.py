"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders
API and the read model returned to clients. Field names follow the
camelCase wire format through aliases; Python code uses snake_case.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import Order, OrderStatus, RequestedItem, ShippingAddress


class OrderItemIn(BaseModel):
    """Input schema for a single order line item."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId", gt=0)
    quantity: int = Field(gt=0)

    def to_domain(self) -> RequestedItem:
        return RequestedItem(product_id=self.product_id, quantity=self.quantity)


class ShippingAddressIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=120)
    line1: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=120)
    postal_code: str = Field(alias="postalCode", min_length=1, max_length=20)
    country: str = Field(min_length=1, max_length=80)
    contact_number: str = Field(alias="contactNumber", min_length=5, max_length=20)

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(**self.model_dump())


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        order_items: Requested lines in the order they are reserved. An
            empty list is accepted here and rejected by the service with
            ``EMPTY_ORDER``.
        coupon_code: Optional coupon; blank strings count as no coupon.
        shipping_address: Delivery address.
        payment_method: ``online`` starts in Pending Confirmation,
            ``manual`` in Awaiting Manual Payment.
    """

    model_config = ConfigDict(populate_by_name=True)

    order_items: list[OrderItemIn] = Field(alias="orderItems", default_factory=list)
    coupon_code: Optional[str] = Field(alias="couponCode", default=None, max_length=40)
    shipping_address: ShippingAddressIn = Field(alias="shippingAddress")
    payment_method: Literal["online", "manual"] = Field(alias="paymentMethod", default="online")

    @field_validator("coupon_code")
    @classmethod
    def blank_coupon_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip().upper()


class UpdateStatusDTO(BaseModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def accept_member_name(cls, v):
        """Allow ``DISPATCHED`` as well as the wire value ``Dispatched``."""
        if isinstance(v, str) and v in OrderStatus.__members__:
            return OrderStatus[v]
        return v


class FulfillPaymentDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(alias="paymentId", default="", max_length=128)
    payment_status: str = Field(alias="paymentStatus", default="")

    @field_validator("payment_status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return v.strip().lower()


# ---- Read models ----
class OrderLineOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")
    quantity: int
    price_at_purchase: Decimal = Field(alias="priceAtPurchase")


class PaymentOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(alias="paymentId")
    status: str


class ManualPaymentOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    screenshot_url: str = Field(alias="screenshotUrl")
    submitted_at: datetime = Field(alias="submittedAt")


class OrderReadDTO(BaseModel):
    """Order as returned by the API."""

    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    number: Optional[int] = None
    user_id: int = Field(alias="userId")
    status: OrderStatus
    order_items: list[OrderLineOut] = Field(alias="orderItems")
    shipping_address: ShippingAddressIn = Field(alias="shippingAddress")
    subtotal: Decimal
    shipping_cost: Decimal = Field(alias="shippingCost")
    discount_amount: Decimal = Field(alias="discountAmount")
    final_amount: Decimal = Field(alias="finalAmount")
    coupon_id: Optional[int] = Field(alias="couponId", default=None)
    payment_details: Optional[PaymentOut] = Field(alias="paymentDetails", default=None)
    manual_payment: Optional[ManualPaymentOut] = Field(alias="manualPayment", default=None)
    created_at: Optional[datetime] = Field(alias="createdAt", default=None)

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        addr = order.shipping_address
        return cls(
            id=order.id,
            number=order.number,
            user_id=order.user_id,
            status=order.status,
            order_items=[
                OrderLineOut(product_id=ln.product_id, quantity=ln.quantity, price_at_purchase=ln.price_at_purchase)
                for ln in order.lines
            ],
            shipping_address=ShippingAddressIn(
                name=addr.name,
                line1=addr.line1,
                city=addr.city,
                postal_code=addr.postal_code,
                country=addr.country,
                contact_number=addr.contact_number,
            ),
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            discount_amount=order.discount_amount,
            final_amount=order.final_amount,
            coupon_id=order.coupon_id,
            payment_details=(
                PaymentOut(payment_id=order.payment.payment_id, status=order.payment.status)
                if order.payment
                else None
            ),
            manual_payment=(
                ManualPaymentOut(
                    screenshot_url=order.manual_payment.screenshot_url,
                    submitted_at=order.manual_payment.submitted_at,
                )
                if order.manual_payment
                else None
            ),
            created_at=order.created_at,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
