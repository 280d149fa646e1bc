"""Service provider helpers for wiring OrderService with ports.

This module exposes a small factory function `get_order_service` that
returns a configured `OrderService` instance backed by the Django ORM
adapters. Object storage goes through the HTTP client when
settings.USE_HTTP_ADAPTERS is truthy; otherwise the in-process stub is
used, which suits tests and local development.
"""

from django.conf import settings

from apps.catalog.ledger import InventoryLedger
from apps.notifications.mailer import OrderMailer
from apps.pricing.repository import DjangoCouponBook, DjangoShippingConfigStore

from .adapters import ObjectStorageStub
from .domain import ObjectStoragePort, OrderService
from .http_adapters import HttpObjectStorageClient
from .repository import DjangoCatalog, DjangoUnitOfWork, OrderRepository


def get_object_storage() -> ObjectStoragePort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpObjectStorageClient()
    return ObjectStorageStub(getattr(settings, "OBJECT_STORAGE_PUBLIC_URL", "https://storage.local"))


def get_order_service() -> OrderService:
    """Return a configured OrderService instance.

    Returns:
        OrderService: A service instance with ORM-backed ports, the
        configured object storage and the email notifier.
    """
    return OrderService(
        catalog=DjangoCatalog(),
        ledger=InventoryLedger(),
        orders=OrderRepository(),
        coupons=DjangoCouponBook(),
        shipping=DjangoShippingConfigStore(),
        uow=DjangoUnitOfWork(),
        storage=get_object_storage(),
        notifier=OrderMailer(),
    )
