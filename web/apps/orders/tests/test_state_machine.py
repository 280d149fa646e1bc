"""Order lifecycle: transition table and the ledger effects it drives."""

import itertools
from decimal import Decimal

import pytest

from apps.common.exceptions import Forbidden, InvalidRequest, InvalidTransition, NotFound, ReservationMismatch
from apps.orders.domain import (
    TRANSITIONS,
    LedgerEffect,
    OrderStatus,
    resolve_transition,
)

S = OrderStatus


class SpyLedger:
    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    def reserve(self, product_id, quantity):
        self.calls.append(("reserve", product_id, quantity))
        self.inner.reserve(product_id, quantity)

    def commit(self, product_id, quantity):
        self.calls.append(("commit", product_id, quantity))
        self.inner.commit(product_id, quantity)

    def release(self, product_id, quantity):
        self.calls.append(("release", product_id, quantity))
        self.inner.release(product_id, quantity)

    def uncommit(self, product_id, quantity):
        self.calls.append(("uncommit", product_id, quantity))
        self.inner.uncommit(product_id, quantity)


EXPECTED = {
    (S.PENDING_CONFIRMATION, S.AWAITING_PAYMENT): LedgerEffect.NONE,
    (S.PENDING_CONFIRMATION, S.PENDING_VERIFICATION): LedgerEffect.NONE,
    (S.AWAITING_PAYMENT, S.PENDING_VERIFICATION): LedgerEffect.NONE,
    (S.AWAITING_MANUAL_PAYMENT, S.PENDING_VERIFICATION): LedgerEffect.NONE,
    (S.PENDING_CONFIRMATION, S.DISPATCHED): LedgerEffect.COMMIT,
    (S.AWAITING_PAYMENT, S.DISPATCHED): LedgerEffect.COMMIT,
    (S.AWAITING_MANUAL_PAYMENT, S.DISPATCHED): LedgerEffect.COMMIT,
    (S.PENDING_VERIFICATION, S.DISPATCHED): LedgerEffect.COMMIT,
    (S.PENDING_CONFIRMATION, S.CANCELLED): LedgerEffect.RELEASE,
    (S.AWAITING_PAYMENT, S.CANCELLED): LedgerEffect.RELEASE,
    (S.AWAITING_MANUAL_PAYMENT, S.CANCELLED): LedgerEffect.RELEASE,
    (S.PENDING_VERIFICATION, S.CANCELLED): LedgerEffect.RELEASE,
    (S.DISPATCHED, S.CANCELLED): LedgerEffect.NONE,
    (S.DISPATCHED, S.DELIVERED): LedgerEffect.NONE,
}


def test_transition_table_matches_lifecycle():
    assert TRANSITIONS == EXPECTED


@pytest.mark.parametrize("current,target", list(itertools.product(S, S)))
def test_resolve_transition_covers_every_pair(current, target):
    t = resolve_transition(current, target)
    if current == target:
        assert t.ok and t.effect == LedgerEffect.NONE
    elif (current, target) in EXPECTED:
        assert t.ok and t.effect == EXPECTED[(current, target)]
    else:
        assert not t.ok and t.reason


@pytest.mark.parametrize("terminal", [S.DELIVERED, S.CANCELLED])
def test_terminal_states_reject_everything_else(terminal):
    for target in S:
        if target != terminal:
            assert not resolve_transition(terminal, target).ok


def _force_status(world, order, status):
    stored = world.orders.orders[order.id]
    stored.status = status


@pytest.mark.parametrize("current,target", sorted(EXPECTED, key=lambda p: (p[0].value, p[1].value)))
def test_change_status_applies_effect_once_per_line(world, place, current, target):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    world.catalog.add_product(2, Decimal("10.00"), quantity=10)
    order = place((1, 2), (2, 3))
    if current == S.DISPATCHED:
        world.ledger.commit(1, 2)
        world.ledger.commit(2, 3)
    _force_status(world, order, current)

    spy = SpyLedger(world.ledger)
    world.service.ledger = spy
    out = world.service.change_status(order.id, target)

    assert out.status == target
    effect = EXPECTED[(current, target)]
    if effect == LedgerEffect.NONE:
        assert spy.calls == []
    else:
        assert spy.calls == [(effect.value, 1, 2), (effect.value, 2, 3)]


def test_same_status_is_a_no_op(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 2))
    spy = SpyLedger(world.ledger)
    world.service.ledger = spy

    out = world.service.change_status(order.id, S.PENDING_CONFIRMATION)

    assert out.status == S.PENDING_CONFIRMATION
    assert spy.calls == []
    assert world.stock(1) == (10, 2)


def test_dispatch_commits_and_cancel_releases(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    a = place((1, 2))
    b = place((1, 3))
    assert world.stock(1) == (10, 5)

    world.service.change_status(a.id, S.DISPATCHED)
    assert world.stock(1) == (8, 3)

    world.service.change_status(b.id, S.CANCELLED)
    assert world.stock(1) == (8, 0)


def test_cancel_after_dispatch_does_not_restore_stock(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 4))
    world.service.change_status(order.id, S.DISPATCHED)
    world.service.change_status(order.id, S.CANCELLED)
    assert world.stock(1) == (6, 0)


def test_leaving_terminal_state_is_rejected(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 1))
    world.service.change_status(order.id, S.CANCELLED)
    with pytest.raises(InvalidTransition) as e:
        world.service.change_status(order.id, S.DISPATCHED)
    assert str(e.value) == "INVALID_TRANSITION"
    assert world.stock(1) == (10, 0)


def test_failed_dispatch_on_later_line_restores_earlier_lines(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    world.catalog.add_product(2, Decimal("10.00"), quantity=10)
    order = place((1, 2), (2, 3))
    world.catalog.products[2].reserved = 0

    with pytest.raises(ReservationMismatch):
        world.service.change_status(order.id, S.DISPATCHED)

    assert world.stock(1) == (10, 2)
    assert world.stock(2) == (10, 0)
    assert world.orders.orders[order.id].status == S.PENDING_CONFIRMATION


def test_failed_cancel_on_later_line_re_reserves_earlier_lines(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    world.catalog.add_product(2, Decimal("10.00"), quantity=10)
    order = place((1, 2), (2, 3))
    world.catalog.products[2].reserved = 1

    with pytest.raises(ReservationMismatch):
        world.service.change_status(order.id, S.CANCELLED)

    assert world.stock(1) == (10, 2)
    assert world.orders.orders[order.id].status == S.PENDING_CONFIRMATION


def test_failed_save_after_commit_is_undone(world, place, monkeypatch):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 4))
    spy = SpyLedger(world.ledger)
    world.service.ledger = spy

    def boom(order):
        raise RuntimeError("disk full")

    monkeypatch.setattr(world.orders, "save", boom)
    with pytest.raises(RuntimeError):
        world.service.change_status(order.id, S.DISPATCHED)

    assert spy.calls == [("commit", 1, 4), ("uncommit", 1, 4)]
    assert world.stock(1) == (10, 4)


def test_status_change_notifies_with_previous_status(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 1))
    world.service.change_status(order.id, S.AWAITING_PAYMENT)
    assert world.notifier.events[-1] == ("changed", order.id, S.PENDING_CONFIRMATION, S.AWAITING_PAYMENT)


def test_unknown_order(world):
    import uuid

    with pytest.raises(NotFound):
        world.service.change_status(uuid.uuid4(), S.DISPATCHED)


# ---- payments ----

def test_fulfill_payment_records_payment_and_dispatches(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 2))

    out = world.service.fulfill_payment(order.id, "pay_123", "completed", user_id=1)

    assert out.status == S.DISPATCHED
    assert out.payment.payment_id == "pay_123"
    assert world.stock(1) == (8, 0)


@pytest.mark.parametrize("payment_id,payment_status", [("pay_1", "pending"), ("", "completed")])
def test_fulfill_payment_requires_completed_payment(world, place, payment_id, payment_status):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 2))
    with pytest.raises(InvalidRequest) as e:
        world.service.fulfill_payment(order.id, payment_id, payment_status, user_id=1)
    assert str(e.value) == "PAYMENT_NOT_COMPLETED"
    assert world.stock(1) == (10, 2)


def test_fulfill_payment_by_other_user_is_forbidden(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 1))
    with pytest.raises(Forbidden):
        world.service.fulfill_payment(order.id, "pay_1", "completed", user_id=2)
    out = world.service.fulfill_payment(order.id, "pay_1", "completed", user_id=2, is_admin=True)
    assert out.status == S.DISPATCHED


def test_fulfill_payment_from_awaiting_payment(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 2))
    world.service.change_status(order.id, S.AWAITING_PAYMENT)

    out = world.service.fulfill_payment(order.id, "pay_9", "completed", user_id=1)

    assert out.status == S.DISPATCHED
    assert world.stock(1) == (8, 0)


def test_fulfill_payment_rejects_manual_payment_order(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 2), manual_payment=True)

    with pytest.raises(InvalidTransition):
        world.service.fulfill_payment(order.id, "fake", "completed", user_id=1)

    assert world.orders.orders[order.id].status == S.AWAITING_MANUAL_PAYMENT
    assert world.stock(1) == (10, 2)


def test_fulfill_payment_rejects_order_awaiting_proof_review(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 2), manual_payment=True)
    world.service.submit_payment_proof(order.id, 1, b"\x89PNG", "image/png", "proof.png")

    for is_admin in (False, True):
        with pytest.raises(InvalidTransition):
            world.service.fulfill_payment(order.id, "fake", "completed", user_id=1, is_admin=is_admin)

    assert world.orders.orders[order.id].status == S.PENDING_VERIFICATION
    assert world.stock(1) == (10, 2)
    # the admin status endpoint still dispatches after reviewing the proof
    assert world.service.change_status(order.id, S.DISPATCHED).status == S.DISPATCHED


def test_fulfill_payment_twice_is_rejected(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 2))
    world.service.fulfill_payment(order.id, "pay_1", "completed", user_id=1)

    with pytest.raises(InvalidTransition):
        world.service.fulfill_payment(order.id, "pay_1", "completed", user_id=1)
    assert world.stock(1) == (8, 0)


def test_payment_proof_moves_order_to_pending_verification(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 1), manual_payment=True)

    out = world.service.submit_payment_proof(order.id, 1, b"\x89PNG", "image/png", "proof.png")

    assert out.status == S.PENDING_VERIFICATION
    assert out.manual_payment.screenshot_url.startswith("https://storage.local/payment_screenshots/")
    assert out.manual_payment.screenshot_url.endswith(".png")
    assert world.storage.uploads == [("payment_screenshots", "image/png", 4)]
    assert world.stock(1) == (10, 1)


def test_second_proof_replaces_the_first(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 1), manual_payment=True)
    first = world.service.submit_payment_proof(order.id, 1, b"a", "image/png", "a.png")
    second = world.service.submit_payment_proof(order.id, 1, b"bb", "image/jpeg", "b.jpg")

    assert second.status == S.PENDING_VERIFICATION
    assert second.manual_payment.screenshot_url != first.manual_payment.screenshot_url
    assert second.manual_payment.screenshot_url.endswith(".jpg")


def test_payment_proof_only_by_owner(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 1), manual_payment=True)
    with pytest.raises(Forbidden):
        world.service.submit_payment_proof(order.id, 2, b"a", "image/png", "a.png")
    assert world.storage.uploads == []


def test_payment_proof_rejected_after_dispatch_without_upload(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 1))
    world.service.change_status(order.id, S.DISPATCHED)
    with pytest.raises(InvalidTransition):
        world.service.submit_payment_proof(order.id, 1, b"a", "image/png", "a.png")
    assert world.storage.uploads == []


def test_get_order_owner_or_admin(world, place):
    world.catalog.add_product(1, Decimal("10.00"), quantity=10)
    order = place((1, 1))
    assert world.service.get_order(order.id, user_id=1).id == order.id
    assert world.service.get_order(order.id, user_id=99, is_admin=True).id == order.id
    with pytest.raises(Forbidden):
        world.service.get_order(order.id, user_id=99)
