from django.conf import settings
from django.db import models
from django.db.models import Q


class DiscountType(models.TextChoices):
    FIXED = "Fixed"
    PERCENTAGE = "Percentage"


class Coupon(models.Model):
    code = models.CharField(max_length=40, unique=True)
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2)
    expiry_date = models.DateTimeField()
    # Single use per user; filled when an order redeems the coupon
    used_by = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name="used_coupons")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "coupons"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(condition=Q(value__gte=0), name="coupon_value_non_negative"),
        ]

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.code


class Discount(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "Active"
        INACTIVE = "Inactive"
        EXPIRED = "Expired"

    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2)
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    is_active = models.BooleanField(default=True)
    applicable_products = models.ManyToManyField("catalog.Product", blank=True, related_name="discounts")
    applicable_categories = models.ManyToManyField("catalog.Category", blank=True, related_name="discounts")
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "discounts"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "is_active"], name="discount_status_active_idx"),
            models.Index(fields=["start_date", "end_date"], name="discount_window_idx"),
        ]

    def __str__(self):
        return self.name


class ShippingConfig(models.Model):
    shipping_charge = models.DecimalField(max_digits=12, decimal_places=2)
    free_shipping_threshold = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "shipping_config"
        ordering = ["-updated_at"]
