from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.HTTP_RETRY_BACKOFF_BASE = 0
    settings.HTTP_RETRY_MAX_SLEEP = 0


@pytest.fixture(autouse=True)
def clear_throttle_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def customer(django_user_model):
    return django_user_model.objects.create_user(username="alice", email="alice@example.com", password="pw")


@pytest.fixture
def other_customer(django_user_model):
    return django_user_model.objects.create_user(username="bob", email="bob@example.com", password="pw")


@pytest.fixture
def staff(django_user_model):
    return django_user_model.objects.create_user(
        username="staff", email="staff@example.com", password="pw", is_staff=True
    )


@pytest.fixture
def customer_client(customer):
    c = APIClient()
    c.force_authenticate(user=customer)
    return c


@pytest.fixture
def staff_client(staff):
    c = APIClient()
    c.force_authenticate(user=staff)
    return c


@pytest.fixture
def category(db):
    from apps.catalog.models import Category

    return Category.objects.create(name="Prints")


@pytest.fixture
def make_product(category):
    from apps.catalog.models import Product

    seq = iter(range(1, 10_000))

    def _make(price="100.00", quantity=10, reserved=0, availability="IN_STOCK", **kw):
        n = next(seq)
        return Product.objects.create(
            title=kw.pop("title", f"Product {n}"),
            sku=kw.pop("sku", f"SKU-{n:04d}"),
            price=Decimal(price),
            category=kw.pop("category", category),
            availability=availability,
            quantity=quantity,
            reserved=reserved,
            **kw,
        )

    return _make


@pytest.fixture
def address_payload():
    return {
        "name": "Alice Doe",
        "line1": "1 Main Street",
        "city": "Springfield",
        "postalCode": "12345",
        "country": "US",
        "contactNumber": "5550100200",
    }
