from datetime import datetime, timezone

import pytest

from apps.orders.adapters import (
    CompensatingUnitOfWork,
    InMemoryCatalog,
    InMemoryCouponBook,
    InMemoryInventoryLedger,
    InMemoryOrderRepository,
    ObjectStorageStub,
    StaticShippingConfig,
)
from apps.orders.domain import OrderService, RequestedItem, ShippingAddress

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def order_placed(self, order):
        self.events.append(("placed", order.id, order.status))

    def order_status_changed(self, order, previous):
        self.events.append(("changed", order.id, previous, order.status))


class World:
    """In-memory wiring of OrderService plus handles on every adapter."""

    def __init__(self, coupons=()):
        self.catalog = InMemoryCatalog()
        self.ledger = InMemoryInventoryLedger(self.catalog)
        self.orders = InMemoryOrderRepository()
        self.coupons = InMemoryCouponBook(coupons)
        self.shipping = StaticShippingConfig()
        self.storage = ObjectStorageStub()
        self.notifier = RecordingNotifier()
        self.service = OrderService(
            catalog=self.catalog,
            ledger=self.ledger,
            orders=self.orders,
            coupons=self.coupons,
            shipping=self.shipping,
            uow=CompensatingUnitOfWork(),
            storage=self.storage,
            notifier=self.notifier,
            clock=lambda: NOW,
        )

    def stock(self, product_id):
        rec = self.catalog.products[product_id]
        return rec.quantity, rec.reserved


@pytest.fixture
def world():
    return World()


@pytest.fixture
def address():
    return ShippingAddress(
        name="Alice Doe",
        line1="1 Main Street",
        city="Springfield",
        postal_code="12345",
        country="US",
        contact_number="5550100200",
    )


@pytest.fixture
def place(world, address):
    """Create an order for user 1 from ``(product_id, quantity)`` pairs."""

    def _place(*pairs, user_id=1, **kw):
        items = [RequestedItem(product_id=p, quantity=q) for p, q in pairs]
        return world.service.create_order(user_id, items, address, **kw)

    return _place


@pytest.fixture
def make_world():
    return World
