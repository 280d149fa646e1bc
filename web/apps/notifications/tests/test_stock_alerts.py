import pytest

from apps.common.exceptions import InvalidRequest, NotFound
from apps.notifications import service
from apps.notifications.models import StockNotification

pytestmark = pytest.mark.django_db

URL = "/api/notifications/stock-alerts/"


# ---- service ----

def test_subscribe_creates_pending_alert(make_product, customer):
    p = make_product(quantity=0)
    note, created = service.subscribe(p.id, " Alice@Example.com ", user=customer)
    assert created is True
    assert note.email == "alice@example.com"
    assert note.status == StockNotification.Status.PENDING


def test_subscribe_rejects_orderable_products(make_product):
    in_stock = make_product(quantity=3)
    mto = make_product(availability="MADE_TO_ORDER", quantity=0)
    for p in (in_stock, mto):
        with pytest.raises(InvalidRequest) as e:
            service.subscribe(p.id, "x@example.com")
        assert str(e.value) == "ALREADY_IN_STOCK"


def test_subscribe_fully_reserved_product_is_allowed(make_product):
    p = make_product(quantity=2, reserved=2)
    _, created = service.subscribe(p.id, "x@example.com")
    assert created


def test_duplicate_pending_subscription(make_product):
    p = make_product(quantity=0)
    service.subscribe(p.id, "x@example.com")
    with pytest.raises(InvalidRequest) as e:
        service.subscribe(p.id, "X@example.com")
    assert str(e.value) == "ALREADY_SUBSCRIBED"


def test_cancelled_subscription_is_reactivated(make_product, customer):
    p = make_product(quantity=0)
    note, _ = service.subscribe(p.id, "x@example.com")
    note.status = StockNotification.Status.CANCELLED
    note.save()

    again, created = service.subscribe(p.id, "x@example.com", user=customer)

    assert created is False
    assert again.id == note.id
    assert again.status == StockNotification.Status.PENDING
    assert again.user_id == customer.id
    assert StockNotification.objects.count() == 1


def test_subscribe_unknown_product():
    with pytest.raises(NotFound):
        service.subscribe(98765, "x@example.com")


def test_send_requires_stock(make_product):
    p = make_product(quantity=0)
    with pytest.raises(InvalidRequest) as e:
        service.send_stock_alerts(p.id)
    assert str(e.value) == "NOT_IN_STOCK"


def test_send_marks_sent_and_keeps_failures_pending(make_product, monkeypatch, mailoutbox):
    p = make_product(quantity=0)
    service.subscribe(p.id, "ok@example.com")
    service.subscribe(p.id, "bounce@example.com")
    p.quantity = 4
    p.save()

    from apps.notifications import mailer

    real_send = mailer.send_mail

    def flaky(subject, body, sender, to, **kw):
        if to == ["bounce@example.com"]:
            raise ConnectionError("smtp refused")
        return real_send(subject, body, sender, to, **kw)

    monkeypatch.setattr(mailer, "send_mail", flaky)
    report = service.send_stock_alerts(p.id)

    assert (report.total, report.successful, report.failed) == (2, 1, 1)
    assert [m.to for m in mailoutbox] == [["ok@example.com"]]
    assert p.title in mailoutbox[0].subject
    ok = StockNotification.objects.get(email="ok@example.com")
    assert ok.status == StockNotification.Status.SENT and ok.notified_at is not None
    bounced = StockNotification.objects.get(email="bounce@example.com")
    assert bounced.status == StockNotification.Status.PENDING

    # a second run only retries the failed address
    monkeypatch.setattr(mailer, "send_mail", real_send)
    report = service.send_stock_alerts(p.id)
    assert (report.total, report.successful) == (1, 1)


def test_cancel_only_own_alert(make_product, customer, other_customer):
    p = make_product(quantity=0)
    note, _ = service.subscribe(p.id, "alice@example.com", user=customer)
    with pytest.raises(NotFound):
        service.cancel(note.id, other_customer)
    assert service.cancel(note.id, customer).status == StockNotification.Status.CANCELLED


# ---- API ----

def test_api_subscribe_defaults_to_account_email(customer_client, make_product):
    p = make_product(quantity=0)
    r = customer_client.post(URL, {"productId": p.id}, format="json")
    assert r.status_code == 201, r.content
    note = r.json()["notification"]
    assert note["email"] == "alice@example.com"
    assert note["status"] == "pending"
    assert note["product"]["id"] == p.id

    r = customer_client.get(URL)
    assert [n["id"] for n in r.json()] == [note["id"]]


def test_api_resubscribe_after_cancel_returns_200(customer_client, make_product):
    p = make_product(quantity=0)
    alert_id = customer_client.post(URL, {"productId": p.id}, format="json").json()["notification"]["id"]

    r = customer_client.delete(f"{URL}{alert_id}/")
    assert r.status_code == 200
    assert customer_client.get(URL).json() == []

    r = customer_client.post(URL, {"productId": p.id}, format="json")
    assert r.status_code == 200
    assert r.json()["notification"]["id"] == alert_id


def test_api_subscribe_in_stock_is_400(customer_client, make_product):
    p = make_product(quantity=5)
    r = customer_client.post(URL, {"productId": p.id}, format="json")
    assert r.status_code == 400
    assert r.json()["detail"] == "ALREADY_IN_STOCK"


def test_api_subscribe_bad_email(customer_client, make_product):
    p = make_product(quantity=0)
    r = customer_client.post(URL, {"productId": p.id, "email": "not-an-email"}, format="json")
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


def test_api_admin_send_and_list(staff_client, customer_client, make_product, mailoutbox):
    p = make_product(quantity=0)
    customer_client.post(URL, {"productId": p.id}, format="json")

    r = staff_client.post(f"/api/notifications/stock-alerts/send/{p.id}/")
    assert r.status_code == 400
    assert r.json()["detail"] == "NOT_IN_STOCK"

    p.quantity = 1
    p.save()
    r = staff_client.post(f"/api/notifications/stock-alerts/send/{p.id}/")
    assert r.status_code == 200
    assert r.json()["successful"] == 1
    assert len(mailoutbox) == 1

    r = staff_client.post(f"/api/notifications/stock-alerts/send/{p.id}/")
    assert r.json() == {"message": "No pending notifications found for this product", "total": 0}

    r = staff_client.get("/api/notifications/admin/stock-alerts/", {"status": "sent"})
    assert [n["email"] for n in r.json()] == ["alice@example.com"]


def test_api_send_needs_admin(customer_client, make_product):
    p = make_product(quantity=1)
    assert customer_client.post(f"/api/notifications/stock-alerts/send/{p.id}/").status_code == 403
