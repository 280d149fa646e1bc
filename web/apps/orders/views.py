"""HTTP views for the orders app.

Views are kept small: they validate requests (via Pydantic), map them to
domain values, delegate to ``OrderService`` and return the resulting
order. Failures are raised as exceptions and rendered by
``gateway.exceptions.api_exception_handler``.

Idempotency: when an ``Idempotency-Key`` header is sent to the create
endpoint, the first request is processed and its response (success or
business error) stored. Retries with the same key and payload get the
stored response with ``Idempotent-Replay: true``; reusing the key with a
different payload returns HTTP 409, as does a retry that arrives while the
first request is still running.
"""

from django.conf import settings
from django.core.paginator import Paginator
from rest_framework import status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.common.exceptions import Conflict, DomainError, InvalidRequest
from gateway.exceptions import error_body

from .idempotency import discard, finalize, get_or_create_idempotent, in_progress, scoped_key
from .models import OrderModel
from .providers import get_order_service
from .repository import OrderRepository, to_domain
from .schemas import CreateOrderDTO, FulfillPaymentDTO, OrderReadDTO, UpdateStatusDTO

ALLOWED_SCREENSHOT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}


def _is_admin(request) -> bool:
    return bool(request.user and request.user.is_staff)


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module, used by smoke tests."""

    permission_classes = []

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List orders (admin) or create one (any authenticated user)."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get_permissions(self):
        if self.request.method == "GET":
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get(self, request):
        qs = OrderModel.objects.prefetch_related("lines").order_by("-internal_id")
        wanted = request.GET.get("status")
        if wanted:
            qs = qs.filter(status=wanted)
        try:
            page = int(request.GET.get("page", 1))
            page_size = min(int(request.GET.get("page_size", 20)), 100)
        except ValueError:
            raise InvalidRequest("page and page_size must be integers")
        p = Paginator(qs, max(page_size, 1))
        page_obj = p.get_page(page)

        results = [OrderReadDTO.from_domain(to_domain(o)).to_json() for o in page_obj.object_list]
        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": results,
            },
            status=200,
        )

    def post(self, request):
        """Create a new order.

        Returns:
            Response: One of the following.
            - 201 with the order when it is created.
            - The stored response with ``Idempotent-Replay: true`` when the
              same idempotency key and payload are retried.
            - 409 ``IDEMPOTENCY_IN_PROGRESS`` while the first request with the
              key is still running.
            - 409 ``IDEMPOTENCY_CONFLICT`` when a key is reused with another
              payload.
            - 400 for validation, stock and coupon errors; 404 for unknown
              products or coupons.
        """
        dto = CreateOrderDTO.model_validate(request.data)

        rec = None
        idem_key = request.headers.get("Idempotency-Key")
        if idem_key:
            existing, rec = get_or_create_idempotent(scoped_key(request.user.id, idem_key), request.data)
            if existing:
                if in_progress(rec):
                    raise Conflict("A request with this idempotency key is still being processed",
                                   code="IDEMPOTENCY_IN_PROGRESS")
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        service = get_order_service()
        try:
            order = service.create_order(
                user_id=request.user.id,
                items=[i.to_domain() for i in dto.order_items],
                shipping_address=dto.shipping_address.to_domain(),
                coupon_code=dto.coupon_code,
                manual_payment=dto.payment_method == "manual",
            )
        except DomainError as e:
            if rec:
                finalize(rec, e.status_code, error_body(e))
            raise
        except Exception:
            if rec:
                discard(rec)
            raise

        body = OrderReadDTO.from_domain(order).to_json()
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class MyOrdersView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request):
        orders = OrderRepository().list_for_user(request.user.id)
        return Response([OrderReadDTO.from_domain(o).to_json() for o in orders])


class RetrieveOrderView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        order = get_order_service().get_order(oid, user_id=request.user.id, is_admin=_is_admin(request))
        return Response(OrderReadDTO.from_domain(order).to_json())


class OrderStatusView(APIView):
    """Admin-only status change driven by the transition table."""

    permission_classes = [IsAdminUser]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def put(self, request, oid):
        dto = UpdateStatusDTO.model_validate(request.data)
        order = get_order_service().change_status(oid, dto.status)
        return Response(OrderReadDTO.from_domain(order).to_json())


class UploadScreenshotView(APIView):
    """Manual payment: the owner uploads a proof screenshot."""

    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def post(self, request, oid):
        upload = request.FILES.get("screenshot")
        if upload is None:
            raise InvalidRequest("No screenshot uploaded", code="NO_FILE")
        content_type = (upload.content_type or "").lower()
        if content_type not in ALLOWED_SCREENSHOT_TYPES:
            raise InvalidRequest(
                "Only JPEG, PNG, GIF and WebP images are allowed", code="UNSUPPORTED_FILE_TYPE"
            )
        if upload.size > settings.UPLOAD_MAX_BYTES:
            raise InvalidRequest("Screenshot exceeds the maximum size", code="FILE_TOO_LARGE")

        order = get_order_service().submit_payment_proof(
            oid,
            user_id=request.user.id,
            content=upload.read(),
            content_type=content_type,
            filename=upload.name,
        )
        body = OrderReadDTO.from_domain(order).to_json()
        body["screenshotUrl"] = order.manual_payment.screenshot_url
        return Response(body)


class FulfillPaymentView(APIView):
    """Confirm a completed online payment and dispatch the order."""

    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def post(self, request, oid):
        dto = FulfillPaymentDTO.model_validate(request.data)
        order = get_order_service().fulfill_payment(
            oid,
            payment_id=dto.payment_id,
            payment_status=dto.payment_status,
            user_id=request.user.id,
            is_admin=_is_admin(request),
        )
        return Response(OrderReadDTO.from_domain(order).to_json())
