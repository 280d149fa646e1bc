"""Inventory ledger backed by the Django ORM.

All writes to ``Product.quantity`` and ``Product.reserved`` go through
``InventoryLedger``. Each operation is a single conditional ``UPDATE``
whose ``WHERE`` clause carries the guard predicate, so the check and the
write happen in one round trip and two concurrent requests can never
both observe the same free units:

    UPDATE products SET reserved = reserved + :qty
    WHERE id = :id AND availability = 'IN_STOCK' AND quantity >= reserved + :qty

When the update touches no row the ledger reads the product once to tell
apart the three outcomes: missing product, made-to-order product (no-op)
and a failed guard.
"""

import logging

from django.db.models import F

from apps.common.exceptions import InsufficientStock, InvalidRequest, NotFound, ReservationMismatch

from .models import Product

logger = logging.getLogger(__name__)

IN_STOCK = Product.Availability.IN_STOCK


def _check_quantity(quantity: int) -> None:
    if quantity <= 0:
        raise InvalidRequest(f"Quantity must be positive, got {quantity}")


class InventoryLedger:
    """Atomic reserve/commit/release/restock operations on product stock.

    Made-to-order products never participate in the bookkeeping: every
    operation on them succeeds without touching any counter.
    """

    def _state(self, product_id: int):
        row = (
            Product.objects.filter(pk=product_id)
            .values("availability", "quantity", "reserved", "title")
            .first()
        )
        if row is None:
            raise NotFound(f"Product not found with ID: {product_id}")
        return row

    def reserve(self, product_id: int, quantity: int) -> None:
        """Earmark ``quantity`` units of a product for an unconfirmed order.

        Raises:
            NotFound: The product does not exist.
            InsufficientStock: Fewer than ``quantity`` units are available.
        """
        _check_quantity(quantity)
        updated = Product.objects.filter(
            pk=product_id,
            availability=IN_STOCK,
            quantity__gte=F("reserved") + quantity,
        ).update(reserved=F("reserved") + quantity)
        if updated:
            logger.info("stock reserved", extra={"product_id": product_id, "quantity": quantity})
            return

        row = self._state(product_id)
        if row["availability"] != IN_STOCK:
            return
        available = row["quantity"] - row["reserved"]
        raise InsufficientStock(
            f"Not enough stock available for {row['title']}. "
            f"Only {available} available, {quantity} requested."
        )

    def commit(self, product_id: int, quantity: int) -> None:
        """Turn a reservation into a sale: decrement quantity and reserved."""
        _check_quantity(quantity)
        updated = Product.objects.filter(
            pk=product_id,
            availability=IN_STOCK,
            reserved__gte=quantity,
            quantity__gte=quantity,
        ).update(quantity=F("quantity") - quantity, reserved=F("reserved") - quantity)
        if updated:
            logger.info("stock committed", extra={"product_id": product_id, "quantity": quantity})
            return

        row = self._state(product_id)
        if row["availability"] != IN_STOCK:
            return
        raise ReservationMismatch(
            f"Cannot commit {quantity} units of product {product_id}: only {row['reserved']} reserved"
        )

    def release(self, product_id: int, quantity: int) -> None:
        """Give reserved units back to availability."""
        _check_quantity(quantity)
        updated = Product.objects.filter(
            pk=product_id,
            availability=IN_STOCK,
            reserved__gte=quantity,
        ).update(reserved=F("reserved") - quantity)
        if updated:
            logger.info("stock released", extra={"product_id": product_id, "quantity": quantity})
            return

        row = self._state(product_id)
        if row["availability"] != IN_STOCK:
            return
        raise ReservationMismatch(
            f"Cannot release {quantity} units of product {product_id}: only {row['reserved']} reserved"
        )

    def uncommit(self, product_id: int, quantity: int) -> None:
        """Reverse a ``commit``: restore both quantity and reserved."""
        _check_quantity(quantity)
        updated = Product.objects.filter(pk=product_id, availability=IN_STOCK).update(
            quantity=F("quantity") + quantity, reserved=F("reserved") + quantity
        )
        if updated:
            logger.info("stock commit reversed", extra={"product_id": product_id, "quantity": quantity})
            return
        self._state(product_id)

    def restock(self, product_id: int, quantity: int) -> None:
        """Add newly received units to a product's total quantity."""
        _check_quantity(quantity)
        updated = Product.objects.filter(pk=product_id, availability=IN_STOCK).update(
            quantity=F("quantity") + quantity
        )
        if updated:
            logger.info("stock replenished", extra={"product_id": product_id, "quantity": quantity})
            return
        row = self._state(product_id)
        if row["availability"] != IN_STOCK:
            raise InvalidRequest("Made-to-order products do not track stock", code="NOT_STOCK_TRACKED")
