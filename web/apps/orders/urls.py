from django.urls import path

from .views import (
    FulfillPaymentView,
    MyOrdersView,
    OrdersCollectionView,
    OrdersPingView,
    OrderStatusView,
    RetrieveOrderView,
    UploadScreenshotView,
)

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("mine/", MyOrdersView.as_view(), name="orders-mine"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/status/", OrderStatusView.as_view(), name="orders-status"),
    path("<uuid:oid>/upload-screenshot/", UploadScreenshotView.as_view(), name="orders-upload-screenshot"),
    path("<uuid:oid>/fulfill-payment/", FulfillPaymentView.as_view(), name="orders-fulfill-payment"),
]
