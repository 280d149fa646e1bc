from django.conf import settings
from django.db import models


class StockNotification(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        SENT = "sent"
        CANCELLED = "cancelled"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.CASCADE, related_name="stock_alerts"
    )
    product = models.ForeignKey("catalog.Product", on_delete=models.CASCADE, related_name="stock_alerts")
    email = models.EmailField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "stock_notifications"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["product", "email"], name="stock_alert_product_email_unique"),
        ]
        indexes = [models.Index(fields=["product", "status"], name="stock_alert_product_status_idx")]
