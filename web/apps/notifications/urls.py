from django.urls import path

from .views import AdminStockAlertsView, SendStockAlertsView, StockAlertDetailView, StockAlertsView

app_name = "notifications"

urlpatterns = [
    path("stock-alerts/", StockAlertsView.as_view(), name="stock-alerts"),
    path("stock-alerts/<int:alert_id>/", StockAlertDetailView.as_view(), name="stock-alert-detail"),
    path("stock-alerts/send/<int:product_id>/", SendStockAlertsView.as_view(), name="stock-alerts-send"),
    path("admin/stock-alerts/", AdminStockAlertsView.as_view(), name="admin-stock-alerts"),
]
