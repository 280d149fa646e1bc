from django.db import models
from django.db.models import F, Q


class Category(models.Model):
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    # Subcategories point at their parent; top-level categories have none
    parent = models.ForeignKey(
        "self", null=True, blank=True, on_delete=models.SET_NULL, related_name="children"
    )
    is_active = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)

    class Meta:
        db_table = "categories"
        ordering = ["sort_order", "name"]

    def __str__(self):
        return self.name


class Product(models.Model):
    class Availability(models.TextChoices):
        IN_STOCK = "IN_STOCK"
        MADE_TO_ORDER = "MADE_TO_ORDER"

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    sku = models.CharField(max_length=64, unique=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="products")
    subcategory = models.ForeignKey(
        Category, null=True, blank=True, on_delete=models.SET_NULL, related_name="sub_products"
    )
    availability = models.CharField(max_length=16, choices=Availability.choices)

    # Only written through apps.catalog.ledger.InventoryLedger
    quantity = models.PositiveIntegerField(default=0)
    reserved = models.PositiveIntegerField(default=0)

    is_featured = models.BooleanField(default=False)
    tags = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(condition=Q(price__gte=0), name="product_price_non_negative"),
            models.CheckConstraint(condition=Q(reserved__lte=F("quantity")), name="product_reserved_lte_quantity"),
        ]

    def __str__(self):
        return f"{self.sku} {self.title}"

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved
