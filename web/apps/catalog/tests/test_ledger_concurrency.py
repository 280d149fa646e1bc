"""Concurrent reservations against a real database.

Each thread runs on its own connection, so the guarded UPDATE is the only
thing standing between the racers. SQLite serializes writers at the file
level and is skipped.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection, connections

from apps.catalog.ledger import InventoryLedger
from apps.catalog.models import Product
from apps.common.exceptions import InsufficientStock

RACERS = 20


@pytest.mark.django_db(transaction=True)
def test_parallel_reservations_never_oversell(make_product):
    if connection.vendor == "sqlite":
        pytest.skip("needs a database with row-level locking")
    p = make_product(quantity=8)
    ledger = InventoryLedger()
    barrier = threading.Barrier(RACERS)

    def attempt(_):
        barrier.wait()
        try:
            ledger.reserve(p.id, 1)
            return True
        except InsufficientStock:
            return False
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=RACERS) as pool:
        results = list(pool.map(attempt, range(RACERS)))

    assert results.count(True) == 8
    row = Product.objects.get(pk=p.id)
    assert (row.quantity, row.reserved) == (8, 8)
