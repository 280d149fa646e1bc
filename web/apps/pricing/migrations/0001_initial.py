from django.conf import settings
from django.db import migrations, models

DISCOUNT_TYPES = [("Fixed", "Fixed"), ("Percentage", "Percentage")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Coupon",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=40, unique=True)),
                ("discount_type", models.CharField(choices=DISCOUNT_TYPES, max_length=16)),
                ("value", models.DecimalField(decimal_places=2, max_digits=12)),
                ("expiry_date", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "used_by",
                    models.ManyToManyField(blank=True, related_name="used_coupons", to=settings.AUTH_USER_MODEL),
                ),
            ],
            options={
                "db_table": "coupons",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(value__gte=0), name="coupon_value_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Discount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120)),
                ("description", models.TextField(blank=True, default="")),
                ("discount_type", models.CharField(choices=DISCOUNT_TYPES, max_length=16)),
                ("value", models.DecimalField(decimal_places=2, max_digits=12)),
                ("min_order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("max_discount_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("start_date", models.DateTimeField()),
                ("end_date", models.DateTimeField()),
                (
                    "status",
                    models.CharField(
                        choices=[("Active", "Active"), ("Inactive", "Inactive"), ("Expired", "Expired")],
                        default="Active",
                        max_length=16,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("usage_limit", models.PositiveIntegerField(blank=True, null=True)),
                ("used_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "applicable_categories",
                    models.ManyToManyField(blank=True, related_name="discounts", to="catalog.category"),
                ),
                (
                    "applicable_products",
                    models.ManyToManyField(blank=True, related_name="discounts", to="catalog.product"),
                ),
            ],
            options={
                "db_table": "discounts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "is_active"], name="discount_status_active_idx"),
                    models.Index(fields=["start_date", "end_date"], name="discount_window_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ShippingConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("shipping_charge", models.DecimalField(decimal_places=2, max_digits=12)),
                ("free_shipping_threshold", models.DecimalField(decimal_places=2, max_digits=12)),
                ("is_active", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"db_table": "shipping_config", "ordering": ["-updated_at"]},
        ),
    ]
