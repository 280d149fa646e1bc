"""In-process adapters for the orders domain ports.

These implementations keep everything in memory. They back the domain
unit tests and local runs where no database or storage service is
available, and they follow the same contracts as the Django adapters:

- ``InMemoryInventoryLedger`` makes every check-and-apply atomic with a
  lock, mirroring the conditional ``UPDATE`` of the ORM ledger.
- ``CompensatingUnitOfWork`` has no transactions to lean on, so it keeps
  a log of undo actions and runs it in reverse when the scope fails.
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from apps.common.exceptions import CouponAlreadyUsed, InsufficientStock, NotFound, ReservationMismatch
from apps.pricing.engine import CouponTerms, ShippingRule

from .domain import (
    Availability,
    InventoryLedgerPort,
    ObjectStoragePort,
    Order,
    ProductSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass
class StockRecord:
    id: int
    title: str
    price: Decimal
    availability: Availability
    quantity: int = 0
    reserved: int = 0

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved


class InMemoryCatalog:
    """Product store shared by the in-memory catalog reader and ledger."""

    def __init__(self):
        self.products: Dict[int, StockRecord] = {}

    def add_product(
        self,
        product_id: int,
        price: Decimal,
        quantity: int = 0,
        reserved: int = 0,
        availability: Availability = Availability.IN_STOCK,
        title: Optional[str] = None,
    ) -> StockRecord:
        rec = StockRecord(
            id=product_id,
            title=title or f"Product {product_id}",
            price=Decimal(price),
            availability=availability,
            quantity=quantity,
            reserved=reserved,
        )
        self.products[product_id] = rec
        return rec

    def get_products(self, product_ids: Iterable[int]) -> Dict[int, ProductSnapshot]:
        return {
            pid: ProductSnapshot(id=rec.id, title=rec.title, price=rec.price, availability=rec.availability)
            for pid in product_ids
            if (rec := self.products.get(pid)) is not None
        }


class InMemoryInventoryLedger(InventoryLedgerPort):
    """Thread-safe ledger over an ``InMemoryCatalog``."""

    def __init__(self, catalog: InMemoryCatalog):
        self.catalog = catalog
        self._lock = threading.Lock()

    def _record(self, product_id: int) -> StockRecord:
        rec = self.catalog.products.get(product_id)
        if rec is None:
            raise NotFound(f"Product not found with ID: {product_id}")
        return rec

    def reserve(self, product_id: int, quantity: int) -> None:
        with self._lock:
            rec = self._record(product_id)
            if rec.availability != Availability.IN_STOCK:
                return
            if rec.available_quantity < quantity:
                raise InsufficientStock(
                    f"Not enough stock available for {rec.title}. "
                    f"Only {rec.available_quantity} available, {quantity} requested."
                )
            rec.reserved += quantity

    def commit(self, product_id: int, quantity: int) -> None:
        with self._lock:
            rec = self._record(product_id)
            if rec.availability != Availability.IN_STOCK:
                return
            if rec.reserved < quantity or rec.quantity < quantity:
                raise ReservationMismatch(f"Cannot commit {quantity} units of product {product_id}")
            rec.quantity -= quantity
            rec.reserved -= quantity

    def release(self, product_id: int, quantity: int) -> None:
        with self._lock:
            rec = self._record(product_id)
            if rec.availability != Availability.IN_STOCK:
                return
            if rec.reserved < quantity:
                raise ReservationMismatch(f"Cannot release {quantity} units of product {product_id}")
            rec.reserved -= quantity

    def uncommit(self, product_id: int, quantity: int) -> None:
        with self._lock:
            rec = self._record(product_id)
            if rec.availability != Availability.IN_STOCK:
                return
            rec.quantity += quantity
            rec.reserved += quantity


class InMemoryOrderRepository:
    """Order store handing out copies so callers cannot mutate it in place."""

    def __init__(self):
        self.orders: Dict[uuid.UUID, Order] = {}
        self._seq = 0

    def add(self, order: Order) -> Order:
        self._seq += 1
        stored = replace(
            order,
            id=uuid.uuid4(),
            number=self._seq,
            created_at=datetime.now(timezone.utc),
        )
        self.orders[stored.id] = stored
        return copy.deepcopy(stored)

    def get(self, order_id: uuid.UUID, for_update: bool = False) -> Optional[Order]:
        order = self.orders.get(order_id)
        return copy.deepcopy(order) if order else None

    def save(self, order: Order) -> Order:
        self.orders[order.id] = copy.deepcopy(order)
        return copy.deepcopy(order)


class InMemoryCouponBook:
    def __init__(self, coupons: Iterable[CouponTerms] = ()):
        self.coupons: Dict[str, CouponTerms] = {c.code.upper(): c for c in coupons}

    def find_by_code(self, code: str) -> Optional[CouponTerms]:
        return self.coupons.get((code or "").strip().upper())

    def mark_used(self, coupon_id: int, user_id: int) -> None:
        for code, coupon in self.coupons.items():
            if coupon.id == coupon_id:
                if user_id in coupon.used_by:
                    raise CouponAlreadyUsed("You have already used this coupon")
                self.coupons[code] = replace(coupon, used_by=coupon.used_by | {user_id})
                return
        raise NotFound(f"Coupon {coupon_id} not found")

    def unmark_used(self, coupon_id: int, user_id: int) -> None:
        for code, coupon in self.coupons.items():
            if coupon.id == coupon_id:
                self.coupons[code] = replace(coupon, used_by=coupon.used_by - {user_id})
                return


class StaticShippingConfig:
    def __init__(self, rule: Optional[ShippingRule] = None):
        self.rule = rule

    def active(self) -> Optional[ShippingRule]:
        return self.rule


class CompensationLog:
    """Undo actions recorded while a scope runs."""

    def __init__(self):
        self.actions: List[Tuple[Callable, tuple]] = []

    def on_rollback(self, callback: Callable, *args) -> None:
        self.actions.append((callback, args))

    def unwind(self) -> None:
        for callback, args in reversed(self.actions):
            try:
                callback(*args)
            except Exception:
                logger.exception("compensation failed", extra={"action": getattr(callback, "__name__", "?")})
        self.actions.clear()


class CompensatingUnitOfWork:
    """Unit of work for stores without multi-document transactions."""

    @contextmanager
    def begin(self):
        log = CompensationLog()
        try:
            yield log
        except Exception:
            log.unwind()
            raise


class ObjectStorageStub(ObjectStoragePort):
    """Stub object storage returning a deterministic-looking public URL.

    Nothing is stored; the URL embeds a random id and keeps the original
    file extension.
    """

    def __init__(self, base_url: str = "https://storage.local"):
        self.base_url = base_url.rstrip("/")
        self.uploads: List[Tuple[str, str, int]] = []

    def upload(self, content: bytes, content_type: str, filename: str, folder: str) -> str:
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
        url = f"{self.base_url}/{folder}/{uuid.uuid4().hex}.{ext}"
        self.uploads.append((folder, content_type, len(content)))
        return url
