"""Concurrent reservations never oversell.

The in-memory ledger is exercised from many threads at once; the ORM
ledger relies on the same guard expressed as a conditional UPDATE and is
raced on PostgreSQL in apps/catalog/tests/test_ledger_concurrency.py.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from apps.common.exceptions import InsufficientStock
from apps.orders.domain import RequestedItem


def test_parallel_reservations_stop_at_available_quantity(world):
    world.catalog.add_product(1, Decimal("5.00"), quantity=10)
    barrier = threading.Barrier(25)

    def attempt(_):
        barrier.wait()
        try:
            world.ledger.reserve(1, 1)
            return True
        except InsufficientStock:
            return False

    with ThreadPoolExecutor(max_workers=25) as pool:
        results = list(pool.map(attempt, range(25)))

    assert results.count(True) == 10
    assert world.stock(1) == (10, 10)


def test_parallel_orders_leave_invariant_intact(world, address):
    world.catalog.add_product(1, Decimal("5.00"), quantity=7)
    world.catalog.add_product(2, Decimal("5.00"), quantity=100)
    barrier = threading.Barrier(12)

    def attempt(_):
        barrier.wait()
        try:
            world.service.create_order(1, [RequestedItem(2, 1), RequestedItem(1, 2)], address)
            return True
        except InsufficientStock:
            return False

    with ThreadPoolExecutor(max_workers=12) as pool:
        results = list(pool.map(attempt, range(12)))

    placed = results.count(True)
    assert placed == 3
    assert world.stock(1) == (7, 6)
    # failed orders released their reservation on product 2
    assert world.stock(2) == (100, 3)
    assert len(world.orders.orders) == 3


def test_two_racers_for_the_last_unit(world):
    world.catalog.add_product(1, Decimal("5.00"), quantity=1)
    barrier = threading.Barrier(2)

    def attempt(_):
        barrier.wait()
        try:
            world.ledger.reserve(1, 1)
            return True
        except InsufficientStock:
            return False

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(attempt, range(2)))

    assert sorted(results) == [False, True]
    assert world.stock(1) == (1, 1)
