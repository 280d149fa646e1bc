"""HTTP views for products and categories.

Stock counters are never written here directly: creation sets the
initial quantity and every later change goes through ``InventoryLedger``.
Product updates refuse stock fields outright.
"""

import logging

from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.common.exceptions import Conflict, InvalidRequest, NotFound
from apps.notifications.models import StockNotification
from apps.notifications.service import send_stock_alerts
from apps.pricing.repository import best_prices

from .ledger import InventoryLedger
from .models import Category, Product
from .schemas import CategoryCreateDTO, CategoryOut, ProductCreateDTO, ProductOut, ProductUpdateDTO, RestockDTO

logger = logging.getLogger(__name__)

STOCK_FIELDS = ("quantity", "reserved", "availableQuantity")


def _priced(products) -> list[dict]:
    prices = best_prices(products, timezone.now())
    return [ProductOut.build(p, prices[p.id]).to_json() for p in products]


def _get_product(pk: int) -> Product:
    product = Product.objects.filter(pk=pk).first()
    if product is None:
        raise NotFound(f"Product not found with ID: {pk}")
    return product


class ProductCollectionView(APIView):
    """Paginated product list (public) and product creation (admin)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAdminUser()]

    def get(self, request):
        try:
            page = int(request.GET.get("page", 1))
            page_size = min(int(request.GET.get("page_size", 20)), 100)
        except ValueError:
            raise InvalidRequest("page and page_size must be integers")
        p = Paginator(Product.objects.order_by("-created_at", "-id"), max(page_size, 1))
        page_obj = p.get_page(page)
        products = list(page_obj.object_list)
        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": _priced(products),
            }
        )

    def post(self, request):
        dto = ProductCreateDTO.model_validate(request.data)
        if not Category.objects.filter(pk=dto.category_id).exists():
            raise NotFound(f"Category not found with ID: {dto.category_id}")
        if dto.subcategory_id and not Category.objects.filter(pk=dto.subcategory_id).exists():
            raise NotFound(f"Category not found with ID: {dto.subcategory_id}")
        try:
            with transaction.atomic():
                product = Product.objects.create(
                    title=dto.title,
                    description=dto.description,
                    sku=dto.sku,
                    price=dto.price,
                    category_id=dto.category_id,
                    subcategory_id=dto.subcategory_id,
                    availability=dto.availability,
                    quantity=dto.quantity if dto.availability == Product.Availability.IN_STOCK else 0,
                    is_featured=dto.is_featured,
                    tags=dto.tags,
                )
        except IntegrityError:
            raise Conflict(f"A product with SKU {dto.sku} already exists", code="DUPLICATE_SKU")
        logger.info("product created", extra={"product_id": product.id, "sku": product.sku})
        return Response(_priced([product])[0], status=status.HTTP_201_CREATED)


class ProductDetailView(APIView):
    """Public product read; admin update and delete."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAdminUser()]

    def get(self, request, pk: int):
        return Response(_priced([_get_product(pk)])[0])

    def put(self, request, pk: int):
        if any(field in request.data for field in STOCK_FIELDS):
            raise InvalidRequest("Stock is changed through the restock endpoint", code="STOCK_READ_ONLY")
        dto = ProductUpdateDTO.model_validate(request.data)
        changes = dto.model_dump(exclude_unset=True)
        # subcategory may be cleared with null; other fields ignore nulls
        changes = {k: v for k, v in changes.items() if v is not None or k == "subcategory_id"}
        for key in ("category_id", "subcategory_id"):
            if changes.get(key) and not Category.objects.filter(pk=changes[key]).exists():
                raise NotFound(f"Category not found with ID: {changes[key]}")

        try:
            with transaction.atomic():
                product = Product.objects.select_for_update().filter(pk=pk).first()
                if product is None:
                    raise NotFound(f"Product not found with ID: {pk}")
                if "availability" in changes and changes["availability"] != product.availability and product.reserved:
                    raise Conflict(
                        "Availability cannot change while units are reserved", code="STOCK_RESERVED"
                    )
                for name, value in changes.items():
                    setattr(product, name, value)
                product.save(update_fields=[*changes, "updated_at"])
        except IntegrityError:
            raise Conflict(f"A product with SKU {changes.get('sku')} already exists", code="DUPLICATE_SKU")
        logger.info("product updated", extra={"product_id": pk, "fields": sorted(changes)})
        return Response(_priced([product])[0])

    patch = put

    def delete(self, request, pk: int):
        product = _get_product(pk)
        if product.order_lines.exists():
            raise Conflict("Product is referenced by orders", code="PRODUCT_IN_USE")
        product.delete()
        logger.info("product deleted", extra={"product_id": pk})
        return Response({"message": "Product removed"})


def _get_category(pk: int) -> Category:
    category = Category.objects.filter(pk=pk).first()
    if category is None:
        raise NotFound(f"Category not found with ID: {pk}")
    return category


class CategoryCollectionView(APIView):
    """Active categories (public, ``?parentOnly=true`` for top level only)
    and category creation (admin)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAdminUser()]

    def get(self, request):
        qs = Category.objects.filter(is_active=True)
        if request.GET.get("parentOnly") == "true":
            qs = qs.filter(parent__isnull=True)
        return Response([CategoryOut.from_model(c).to_json() for c in qs])

    def post(self, request):
        dto = CategoryCreateDTO.model_validate(request.data)
        if dto.parent_id is not None:
            _get_category(dto.parent_id)
        category = Category.objects.create(
            name=dto.name,
            description=dto.description,
            parent_id=dto.parent_id,
            is_active=dto.is_active,
            sort_order=dto.sort_order,
        )
        logger.info("category created", extra={"category_id": category.id, "parent_id": category.parent_id})
        return Response(CategoryOut.from_model(category).to_json(), status=status.HTTP_201_CREATED)


class CategoryDetailView(APIView):
    permission_classes = [IsAdminUser]

    def delete(self, request, pk: int):
        category = _get_category(pk)
        if Product.objects.filter(Q(category=category) | Q(subcategory=category)).exists():
            raise InvalidRequest("Cannot delete category. It is in use by products.", code="CATEGORY_IN_USE")
        category.delete()
        logger.info("category deleted", extra={"category_id": pk})
        return Response({"message": "Category removed"})


class SubcategoryListView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def get(self, request, pk: int):
        parent = _get_category(pk)
        children = parent.children.filter(is_active=True)
        return Response([CategoryOut.from_model(c).to_json() for c in children])


class RestockView(APIView):
    """Admin restock; pending back-in-stock subscribers are emailed once
    the new units are available."""

    permission_classes = [IsAdminUser]

    def post(self, request, pk: int):
        dto = RestockDTO.model_validate(request.data)
        InventoryLedger().restock(pk, dto.quantity)
        product = _get_product(pk)

        alerts = None
        has_pending = StockNotification.objects.filter(
            product=product, status=StockNotification.Status.PENDING
        ).exists()
        if has_pending and product.available_quantity > 0:
            report = send_stock_alerts(product.id, product=product)
            alerts = {"total": report.total, "successful": report.successful, "failed": report.failed}

        body = _priced([product])[0]
        body["stockAlerts"] = alerts
        return Response(body)
