"""Outgoing email.

``send_html_mail`` wraps Django's ``send_mail`` with an HTML body rendered
from this app's templates. Delivery is best effort: failures are logged
and reported as ``False``, never raised, so a broken mail server cannot
fail an order or a stock update.

``OrderMailer`` implements the order service's notifier port.
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils.html import strip_tags

logger = logging.getLogger(__name__)


def send_html_mail(to: str, subject: str, template: str, context: dict) -> bool:
    """Render ``template`` and send it to a single recipient.

    Returns:
        bool: True when the backend accepted the message.
    """
    context = {"store_name": settings.STORE_NAME, **context}
    html = render_to_string(template, context)
    try:
        send_mail(
            subject,
            strip_tags(html),
            settings.DEFAULT_FROM_EMAIL,
            [to],
            html_message=html,
            fail_silently=False,
        )
    except Exception:
        logger.exception("email delivery failed", extra={"to": to, "subject": subject})
        return False
    logger.info("email sent", extra={"to": to, "subject": subject})
    return True


def _email_for(user_id: int) -> str | None:
    return get_user_model().objects.filter(pk=user_id).values_list("email", flat=True).first() or None


class OrderMailer:
    """Notifier sending order confirmation and status-change emails."""

    def order_placed(self, order) -> None:
        to = _email_for(order.user_id)
        if not to:
            return
        send_html_mail(
            to,
            f"Order #{order.number} confirmed",
            "notifications/order_placed.html",
            {"order": order},
        )

    def order_status_changed(self, order, previous) -> None:
        to = _email_for(order.user_id)
        if not to:
            return
        send_html_mail(
            to,
            f"Order #{order.number} is now {order.status.value}",
            "notifications/order_status_changed.html",
            {"order": order, "previous": previous},
        )
