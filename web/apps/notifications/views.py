"""HTTP views for back-in-stock alerts."""

from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.exceptions import InvalidRequest

from . import service
from .models import StockNotification
from .schemas import StockAlertOut, SubscribeDTO


class StockAlertsView(APIView):
    """GET the caller's pending alerts; POST to subscribe."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        qs = StockNotification.objects.filter(
            user=request.user, status=StockNotification.Status.PENDING
        ).select_related("product")
        return Response([StockAlertOut.from_model(n).to_json() for n in qs])

    def post(self, request):
        dto = SubscribeDTO.model_validate(request.data)
        email = dto.email or request.user.email
        if not email:
            raise InvalidRequest("An email address is required")
        note, created = service.subscribe(dto.product_id, email, user=request.user)
        if created:
            return Response(
                {"message": "Notification created successfully", "notification": StockAlertOut.from_model(note).to_json()},
                status=status.HTTP_201_CREATED,
            )
        return Response(
            {"message": "Notification reactivated successfully", "notification": StockAlertOut.from_model(note).to_json()}
        )


class StockAlertDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def delete(self, request, alert_id: int):
        service.cancel(alert_id, request.user)
        return Response({"message": "Notification cancelled successfully"})


class SendStockAlertsView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, product_id: int):
        report = service.send_stock_alerts(product_id)
        if report.total == 0:
            return Response({"message": "No pending notifications found for this product", "total": 0})
        return Response(
            {
                "message": "Stock notifications sent",
                "total": report.total,
                "successful": report.successful,
                "failed": report.failed,
                "results": report.results,
            }
        )


class AdminStockAlertsView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        qs = StockNotification.objects.select_related("product").order_by("-created_at")
        wanted = request.GET.get("status")
        if wanted:
            qs = qs.filter(status=wanted)
        return Response([StockAlertOut.from_model(n).to_json() for n in qs])
