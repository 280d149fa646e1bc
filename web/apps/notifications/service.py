"""Back-in-stock alerts.

Customers subscribe to a product that cannot currently be ordered; an
admin (or the restock endpoint) later sends one email per pending
subscription. A subscription is unique per (product, email) and is
reactivated rather than duplicated when the same address asks again.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.catalog.models import Product
from apps.common.exceptions import InvalidRequest, NotFound

from .mailer import send_html_mail
from .models import StockNotification

logger = logging.getLogger(__name__)


def _orderable(product: Product) -> bool:
    if product.availability == Product.Availability.MADE_TO_ORDER:
        return True
    return product.available_quantity > 0


def _get_product(product_id: int) -> Product:
    product = Product.objects.filter(pk=product_id).first()
    if product is None:
        raise NotFound("Product not found")
    return product


def subscribe(product_id: int, email: str, user=None) -> tuple[StockNotification, bool]:
    """Register ``email`` for a back-in-stock alert.

    Returns:
        (notification, created): ``created`` is False when an existing
        cancelled or already-sent subscription was reactivated.

    Raises:
        NotFound: Unknown product.
        InvalidRequest: ``ALREADY_IN_STOCK`` when the product can be ordered
            now; ``ALREADY_SUBSCRIBED`` for a pending duplicate.
    """
    product = _get_product(product_id)
    if _orderable(product):
        raise InvalidRequest("Product is already in stock", code="ALREADY_IN_STOCK")

    email = email.strip().lower()
    with transaction.atomic():
        existing = StockNotification.objects.select_for_update().filter(product=product, email=email).first()
        if existing is None:
            note = StockNotification.objects.create(product=product, email=email, user=user)
            logger.info("stock alert created", extra={"product_id": product.id, "alert_id": note.id})
            return note, True
        if existing.status == StockNotification.Status.PENDING:
            raise InvalidRequest("You already have a notification for this product", code="ALREADY_SUBSCRIBED")
        existing.status = StockNotification.Status.PENDING
        existing.notified_at = None
        if user is not None and existing.user_id is None:
            existing.user = user
        existing.save(update_fields=["status", "notified_at", "user", "updated_at"])
        logger.info("stock alert reactivated", extra={"product_id": product.id, "alert_id": existing.id})
        return existing, False


def cancel(alert_id: int, user) -> StockNotification:
    note = StockNotification.objects.filter(pk=alert_id, user=user).first()
    if note is None:
        raise NotFound("Notification not found")
    note.status = StockNotification.Status.CANCELLED
    note.save(update_fields=["status", "updated_at"])
    return note


@dataclass
class SendReport:
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: list = field(default_factory=list)


def send_stock_alerts(product_id: int, product: Optional[Product] = None) -> SendReport:
    """Email every pending subscriber of a product that is orderable again.

    A failed delivery leaves the subscription pending so the next run
    retries it.

    Raises:
        NotFound: Unknown product.
        InvalidRequest: ``NOT_IN_STOCK`` when nothing can be ordered yet.
    """
    product = product or _get_product(product_id)
    if not _orderable(product):
        raise InvalidRequest("Product is not in stock", code="NOT_IN_STOCK")

    report = SendReport()
    pending = StockNotification.objects.filter(product=product, status=StockNotification.Status.PENDING)
    product_url = f"{settings.FRONTEND_URL.rstrip('/')}/products/{product.id}"
    for note in pending:
        report.total += 1
        ok = send_html_mail(
            note.email,
            f"{product.title} is back in stock!",
            "notifications/back_in_stock.html",
            {"product": product, "product_url": product_url},
        )
        if ok:
            note.status = StockNotification.Status.SENT
            note.notified_at = timezone.now()
            note.save(update_fields=["status", "notified_at", "updated_at"])
            report.successful += 1
        else:
            report.failed += 1
        report.results.append({"email": note.email, "success": ok})

    logger.info(
        "stock alerts sent",
        extra={"product_id": product.id, "total": report.total, "failed": report.failed},
    )
    return report
