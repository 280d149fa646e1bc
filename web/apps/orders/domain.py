"""Domain models, ports and service for orders.

This module contains the dataclasses used as DTOs for orders, the
protocol definitions (ports) for the collaborators the order workflow
needs (catalog, inventory ledger, order repository, coupons, shipping
configuration, unit of work, object storage, notifier), the order
lifecycle transition table and the domain service that drives it.

Nothing in here imports Django; the ORM-backed adapters live in
``repository.py`` and ``apps.catalog.ledger``, the in-process ones in
``adapters.py``.
"""

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Protocol
from uuid import UUID

from apps.common.exceptions import Forbidden, InvalidRequest, InvalidTransition, NotFound
from apps.pricing.engine import CartLine, CouponTerms, ShippingRule, compute_totals

logger = logging.getLogger(__name__)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Order lifecycle statuses. Values are the wire representation."""

    PENDING_CONFIRMATION = "Pending Confirmation"
    AWAITING_PAYMENT = "Awaiting Payment"
    AWAITING_MANUAL_PAYMENT = "Awaiting Manual Payment"
    PENDING_VERIFICATION = "Pending Verification"
    DISPATCHED = "Dispatched"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def holds_reservation(self) -> bool:
        """True while the order's stock is reserved but not yet committed."""
        return self in RESERVATION_HELD_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

RESERVATION_HELD_STATUSES = frozenset(
    {
        OrderStatus.PENDING_CONFIRMATION,
        OrderStatus.AWAITING_PAYMENT,
        OrderStatus.AWAITING_MANUAL_PAYMENT,
        OrderStatus.PENDING_VERIFICATION,
    }
)

# Statuses an online payment confirmation may dispatch from.
ONLINE_PAYMENT_STATUSES = frozenset({OrderStatus.PENDING_CONFIRMATION, OrderStatus.AWAITING_PAYMENT})


class Availability(str, Enum):
    IN_STOCK = "IN_STOCK"
    MADE_TO_ORDER = "MADE_TO_ORDER"


class LedgerEffect(str, Enum):
    """Inventory ledger operation applied to every line of an order."""

    NONE = "none"
    RESERVE = "reserve"
    COMMIT = "commit"
    RELEASE = "release"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class ProductSnapshot:
    """Catalog data the order workflow reads for one product."""

    id: int
    title: str
    price: Decimal
    availability: Availability


@dataclass(frozen=True)
class RequestedItem:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class OrderLine:
    """A line item with the unit price captured when the order was placed.

    Frozen: the price snapshot never changes after creation even if the
    product's live price does.
    """

    product_id: int
    quantity: int
    price_at_purchase: Decimal


@dataclass(frozen=True)
class ShippingAddress:
    name: str
    line1: str
    city: str
    postal_code: str
    country: str
    contact_number: str


@dataclass(frozen=True)
class PaymentDetails:
    payment_id: str
    status: str = "Completed"


@dataclass(frozen=True)
class ManualPaymentProof:
    screenshot_url: str
    submitted_at: datetime


@dataclass
class Order:
    """Container for order data.

    Attributes:
        id: Persistent identifier, or None if not yet saved.
        user_id: Owner of the order.
        lines: Ordered line items.
        shipping_address: Delivery address.
        subtotal, shipping_cost, discount_amount, final_amount: Money
            fields computed at creation.
        status: Current OrderStatus.
        coupon_id: Redeemed coupon, if any.
        payment: Payment confirmation record, once fulfilled.
        manual_payment: Uploaded payment proof, if any.
    """

    id: Optional[UUID]
    user_id: int
    lines: List[OrderLine]
    shipping_address: ShippingAddress
    subtotal: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    status: OrderStatus = OrderStatus.PENDING_CONFIRMATION
    coupon_id: Optional[int] = None
    payment: Optional[PaymentDetails] = None
    manual_payment: Optional[ManualPaymentProof] = None
    number: Optional[int] = None
    created_at: Optional[datetime] = None


# ---- Transition table ----
@dataclass(frozen=True)
class Transition:
    """Outcome of asking whether ``current -> target`` is allowed."""

    ok: bool
    effect: LedgerEffect = LedgerEffect.NONE
    reason: str = ""


_PRE_DISPATCH = (
    OrderStatus.PENDING_CONFIRMATION,
    OrderStatus.AWAITING_PAYMENT,
    OrderStatus.AWAITING_MANUAL_PAYMENT,
)

TRANSITIONS: Dict[tuple, LedgerEffect] = {
    (OrderStatus.PENDING_CONFIRMATION, OrderStatus.AWAITING_PAYMENT): LedgerEffect.NONE,
    **{(s, OrderStatus.PENDING_VERIFICATION): LedgerEffect.NONE for s in _PRE_DISPATCH},
    **{(s, OrderStatus.DISPATCHED): LedgerEffect.COMMIT for s in _PRE_DISPATCH},
    (OrderStatus.PENDING_VERIFICATION, OrderStatus.DISPATCHED): LedgerEffect.COMMIT,
    **{(s, OrderStatus.CANCELLED): LedgerEffect.RELEASE for s in RESERVATION_HELD_STATUSES},
    (OrderStatus.DISPATCHED, OrderStatus.CANCELLED): LedgerEffect.NONE,
    (OrderStatus.DISPATCHED, OrderStatus.DELIVERED): LedgerEffect.NONE,
}


def resolve_transition(current: OrderStatus, target: OrderStatus) -> Transition:
    """Look up ``current -> target`` in the transition table.

    A same-status request is allowed with no effect. Leaving a terminal
    status, or any pair missing from the table, is rejected.
    """
    if current == target:
        return Transition(ok=True)
    if current.is_terminal:
        return Transition(ok=False, reason=f"Order is already {current.value}")
    effect = TRANSITIONS.get((current, target))
    if effect is None:
        return Transition(ok=False, reason=f"Cannot move order from {current.value} to {target.value}")
    return Transition(ok=True, effect=effect)


# ---- Ports (DIP) ----
class CatalogPort(Protocol):
    def get_products(self, product_ids: Iterable[int]) -> Dict[int, ProductSnapshot]:
        """Return snapshots for the ids that exist; missing ids are omitted."""
        raise NotImplementedError()


class InventoryLedgerPort(Protocol):
    """Atomic stock operations. All are no-ops for made-to-order products.

    ``reserve`` raises InsufficientStock when fewer units are available
    than requested; every operation raises NotFound for unknown products.
    """

    def reserve(self, product_id: int, quantity: int) -> None:
        raise NotImplementedError()

    def commit(self, product_id: int, quantity: int) -> None:
        raise NotImplementedError()

    def release(self, product_id: int, quantity: int) -> None:
        raise NotImplementedError()

    def uncommit(self, product_id: int, quantity: int) -> None:
        """Undo ``commit``: put the units back on hand and under reservation."""
        raise NotImplementedError()


class OrderRepositoryPort(Protocol):
    def add(self, order: Order) -> Order:
        """Persist a new order and return it with its id assigned."""
        raise NotImplementedError()

    def get(self, order_id: UUID, for_update: bool = False) -> Optional[Order]:
        raise NotImplementedError()

    def save(self, order: Order) -> Order:
        """Persist the mutable fields (status and payment records)."""
        raise NotImplementedError()


class CouponBookPort(Protocol):
    def find_by_code(self, code: str) -> Optional[CouponTerms]:
        raise NotImplementedError()

    def mark_used(self, coupon_id: int, user_id: int) -> None:
        raise NotImplementedError()

    def unmark_used(self, coupon_id: int, user_id: int) -> None:
        raise NotImplementedError()


class ShippingConfigPort(Protocol):
    def active(self) -> Optional[ShippingRule]:
        raise NotImplementedError()


class RollbackScope(Protocol):
    def on_rollback(self, callback: Callable, *args) -> None:
        """Register an undo action for stores without transactions."""
        raise NotImplementedError()


class UnitOfWorkPort(Protocol):
    def begin(self) -> AbstractContextManager:
        """Open an all-or-nothing scope yielding a RollbackScope."""
        raise NotImplementedError()


class ObjectStoragePort(Protocol):
    def upload(self, content: bytes, content_type: str, filename: str, folder: str) -> str:
        """Store an object and return its public URL."""
        raise NotImplementedError()


class NotifierPort(Protocol):
    def order_placed(self, order: Order) -> None:
        raise NotImplementedError()

    def order_status_changed(self, order: Order, previous: OrderStatus) -> None:
        raise NotImplementedError()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Domain service ----
class OrderService:
    """Domain service for the order lifecycle.

    Order creation prices the cart, reserves stock line by line and
    persists the order inside one unit of work; status changes are routed
    through ``resolve_transition`` which decides the single ledger effect
    applied to every line.
    """

    PROOF_FOLDER = "payment_screenshots"

    def __init__(
        self,
        catalog: CatalogPort,
        ledger: InventoryLedgerPort,
        orders: OrderRepositoryPort,
        coupons: CouponBookPort,
        shipping: ShippingConfigPort,
        uow: UnitOfWorkPort,
        storage: Optional[ObjectStoragePort] = None,
        notifier: Optional[NotifierPort] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.catalog = catalog
        self.ledger = ledger
        self.orders = orders
        self.coupons = coupons
        self.shipping = shipping
        self.uow = uow
        self.storage = storage
        self.notifier = notifier
        self.clock = clock

    # -- creation --
    def create_order(
        self,
        user_id: int,
        items: List[RequestedItem],
        shipping_address: ShippingAddress,
        coupon_code: Optional[str] = None,
        manual_payment: bool = False,
    ) -> Order:
        """Price the cart, reserve every line and persist the order.

        Line items are reserved in request order. If any reservation
        fails, reservations already made for earlier lines are rolled back
        and no order is stored.

        Raises:
            InvalidRequest: ``EMPTY_ORDER`` or a non-positive quantity.
            NotFound: A product does not exist.
            CouponInvalid / CouponExpired / CouponAlreadyUsed: Coupon checks.
            InsufficientStock: A line cannot be reserved.
        """
        if not items:
            raise InvalidRequest("No order items provided", code="EMPTY_ORDER")
        for item in items:
            if item.quantity <= 0:
                raise InvalidRequest(f"Quantity must be positive for product {item.product_id}")

        products = self.catalog.get_products({i.product_id for i in items})
        for item in items:
            if item.product_id not in products:
                raise NotFound(f"Product not found with ID: {item.product_id}")

        lines = [
            OrderLine(
                product_id=item.product_id,
                quantity=item.quantity,
                price_at_purchase=products[item.product_id].price,
            )
            for item in items
        ]

        coupon = self.coupons.find_by_code(coupon_code) if coupon_code else None
        totals = compute_totals(
            [CartLine(line.product_id, line.price_at_purchase, line.quantity) for line in lines],
            self.shipping.active(),
            coupon,
            user_id,
            self.clock(),
            coupon_requested=bool(coupon_code),
        )

        order = Order(
            id=None,
            user_id=user_id,
            lines=lines,
            shipping_address=shipping_address,
            subtotal=totals.subtotal,
            shipping_cost=totals.shipping_cost,
            discount_amount=totals.discount_amount,
            final_amount=totals.final_amount,
            status=OrderStatus.AWAITING_MANUAL_PAYMENT if manual_payment else OrderStatus.PENDING_CONFIRMATION,
            coupon_id=totals.coupon_id,
        )

        with self.uow.begin() as scope:
            for line in lines:
                self.ledger.reserve(line.product_id, line.quantity)
                scope.on_rollback(self.ledger.release, line.product_id, line.quantity)
            if totals.coupon_id is not None:
                self.coupons.mark_used(totals.coupon_id, user_id)
                scope.on_rollback(self.coupons.unmark_used, totals.coupon_id, user_id)
            created = self.orders.add(order)

        logger.info(
            "order created",
            extra={
                "order_id": str(created.id),
                "user_id": user_id,
                "status": created.status.value,
                "final_amount": str(created.final_amount),
                "lines": len(created.lines),
            },
        )
        self._notify("order_placed", created)
        return created

    # -- lifecycle --
    def change_status(
        self,
        order_id: UUID,
        target: OrderStatus,
        allowed_from: Optional[Iterable[OrderStatus]] = None,
        **changes,
    ) -> Order:
        """Move an order to ``target``, applying the table's ledger effect.

        Re-submitting the current status returns the order unchanged and
        touches no inventory.

        Args:
            order_id: Order to update.
            target: Requested status.
            allowed_from: Narrows the table to these source statuses.
            **changes: Extra Order fields to set alongside the status
                (payment records).

        Raises:
            NotFound: Unknown order.
            InvalidTransition: The table does not allow ``current -> target``.
        """
        with self.uow.begin() as scope:
            order = self._load(order_id, for_update=True)
            previous = order.status
            if allowed_from is not None and previous not in allowed_from:
                raise InvalidTransition(f"Cannot move order from {previous.value} to {target.value}")
            if previous == target:
                return order
            transition = resolve_transition(previous, target)
            if not transition.ok:
                raise InvalidTransition(transition.reason)

            self._apply(transition.effect, order, scope)
            order = replace(order, status=target, **changes)
            order = self.orders.save(order)

        logger.info(
            "order status changed",
            extra={
                "order_id": str(order_id),
                "from_status": previous.value,
                "to_status": target.value,
                "ledger_effect": transition.effect.value,
            },
        )
        self._notify("order_status_changed", order, previous)
        return order

    def fulfill_payment(
        self,
        order_id: UUID,
        payment_id: str,
        payment_status: str,
        user_id: Optional[int] = None,
        is_admin: bool = False,
    ) -> Order:
        """Record a completed online payment and dispatch the order.

        Only orders waiting for an online payment qualify. Manual-payment
        orders are dispatched by an admin once the proof is verified.

        Raises:
            InvalidRequest: ``PAYMENT_NOT_COMPLETED`` unless a payment id is
                given and ``payment_status`` is ``"completed"``.
            InvalidTransition: The order is not awaiting an online payment.
        """
        if not payment_id or payment_status != "completed":
            raise InvalidRequest("Payment must be completed to fulfill order", code="PAYMENT_NOT_COMPLETED")
        self.get_order(order_id, user_id=user_id, is_admin=is_admin)
        return self.change_status(
            order_id,
            OrderStatus.DISPATCHED,
            allowed_from=ONLINE_PAYMENT_STATUSES,
            payment=PaymentDetails(payment_id=payment_id, status="Completed"),
        )

    def submit_payment_proof(
        self,
        order_id: UUID,
        user_id: int,
        content: bytes,
        content_type: str,
        filename: str,
    ) -> Order:
        """Upload a manual-payment screenshot and mark the order for review.

        The transition is checked before uploading so rejected requests do
        not leave orphan objects in storage. A new upload while the order
        is already pending verification replaces the previous proof.

        Raises:
            NotFound: Unknown order.
            Forbidden: ``user_id`` does not own the order.
            InvalidTransition: The order can no longer accept a proof.
        """
        order = self._load(order_id)
        if order.user_id != user_id:
            raise Forbidden("Not authorized for this order.")
        transition = resolve_transition(order.status, OrderStatus.PENDING_VERIFICATION)
        if not transition.ok:
            raise InvalidTransition(transition.reason)
        if self.storage is None:
            raise RuntimeError("OrderService has no object storage configured")

        url = self.storage.upload(content, content_type, filename, self.PROOF_FOLDER)
        proof = ManualPaymentProof(screenshot_url=url, submitted_at=self.clock())
        logger.info("payment proof stored", extra={"order_id": str(order_id), "url": url})

        with self.uow.begin():
            current = self._load(order_id, for_update=True)
            if current.status == OrderStatus.PENDING_VERIFICATION:
                return self.orders.save(replace(current, manual_payment=proof))
        return self.change_status(order_id, OrderStatus.PENDING_VERIFICATION, manual_payment=proof)

    def get_order(self, order_id: UUID, user_id: Optional[int] = None, is_admin: bool = False) -> Order:
        order = self._load(order_id)
        if not is_admin and order.user_id != user_id:
            raise Forbidden("Not authorized for this order.")
        return order

    # -- helpers --
    def _load(self, order_id: UUID, for_update: bool = False) -> Order:
        order = self.orders.get(order_id, for_update=for_update)
        if order is None:
            raise NotFound("Order not found")
        return order

    def _apply(self, effect: LedgerEffect, order: Order, scope: RollbackScope) -> None:
        if effect == LedgerEffect.NONE:
            return
        operation, inverse = {
            LedgerEffect.RESERVE: (self.ledger.reserve, self.ledger.release),
            LedgerEffect.COMMIT: (self.ledger.commit, self.ledger.uncommit),
            LedgerEffect.RELEASE: (self.ledger.release, self.ledger.reserve),
        }[effect]
        for line in order.lines:
            operation(line.product_id, line.quantity)
            scope.on_rollback(inverse, line.product_id, line.quantity)

    def _notify(self, event: str, *args) -> None:
        # Notifications are best effort and never fail the operation
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, event)(*args)
        except Exception:
            logger.exception("notification failed", extra={"event": event})
