"""ORM ledger: conditional updates keep 0 <= reserved <= quantity."""

import pytest

from apps.catalog.ledger import InventoryLedger
from apps.common.exceptions import InsufficientStock, InvalidRequest, NotFound, ReservationMismatch

pytestmark = pytest.mark.django_db


@pytest.fixture
def ledger():
    return InventoryLedger()


def _counts(product):
    product.refresh_from_db()
    return product.quantity, product.reserved


def test_reserve_commit_release_cycle(ledger, make_product):
    p = make_product(quantity=10)

    ledger.reserve(p.id, 4)
    assert _counts(p) == (10, 4)

    ledger.commit(p.id, 3)
    assert _counts(p) == (7, 1)

    ledger.release(p.id, 1)
    assert _counts(p) == (7, 0)


def test_reserve_up_to_exact_availability(ledger, make_product):
    p = make_product(quantity=5, reserved=2)
    ledger.reserve(p.id, 3)
    assert _counts(p) == (5, 5)

    with pytest.raises(InsufficientStock) as e:
        ledger.reserve(p.id, 1)
    assert "Only 0 available, 1 requested" in e.value.message
    assert _counts(p) == (5, 5)


def test_reserve_unknown_product(ledger):
    with pytest.raises(NotFound):
        ledger.reserve(424242, 1)


@pytest.mark.parametrize("op", ["reserve", "commit", "release", "uncommit", "restock"])
def test_non_positive_quantity_is_rejected(ledger, make_product, op):
    p = make_product(quantity=5, reserved=1)
    with pytest.raises(InvalidRequest):
        getattr(ledger, op)(p.id, 0)
    assert _counts(p) == (5, 1)


def test_commit_more_than_reserved_is_a_mismatch(ledger, make_product):
    p = make_product(quantity=10, reserved=2)
    with pytest.raises(ReservationMismatch):
        ledger.commit(p.id, 3)
    assert _counts(p) == (10, 2)


def test_release_more_than_reserved_is_a_mismatch(ledger, make_product):
    p = make_product(quantity=10, reserved=1)
    with pytest.raises(ReservationMismatch):
        ledger.release(p.id, 2)
    assert _counts(p) == (10, 1)


@pytest.mark.parametrize("op", ["reserve", "commit", "release", "uncommit"])
def test_made_to_order_is_a_no_op(ledger, make_product, op):
    p = make_product(availability="MADE_TO_ORDER", quantity=0)
    getattr(ledger, op)(p.id, 50)
    assert _counts(p) == (0, 0)


def test_restock_adds_quantity_only(ledger, make_product):
    p = make_product(quantity=2, reserved=2)
    ledger.restock(p.id, 8)
    assert _counts(p) == (10, 2)


def test_restock_made_to_order_is_rejected(ledger, make_product):
    p = make_product(availability="MADE_TO_ORDER", quantity=0)
    with pytest.raises(InvalidRequest) as e:
        ledger.restock(p.id, 3)
    assert str(e.value) == "NOT_STOCK_TRACKED"


def test_sequential_reservations_never_oversell(ledger, make_product):
    p = make_product(quantity=7)
    outcomes = []
    for _ in range(10):
        try:
            ledger.reserve(p.id, 1)
            outcomes.append(True)
        except InsufficientStock:
            outcomes.append(False)
    assert outcomes.count(True) == 7
    assert _counts(p) == (7, 7)


def test_uncommit_restores_quantity_and_reservation(ledger, make_product):
    p = make_product(quantity=10)
    ledger.reserve(p.id, 4)
    ledger.commit(p.id, 4)
    assert _counts(p) == (6, 0)

    ledger.uncommit(p.id, 4)
    assert _counts(p) == (10, 4)


def test_uncommit_unknown_product(ledger):
    with pytest.raises(NotFound):
        ledger.uncommit(424242, 1)
