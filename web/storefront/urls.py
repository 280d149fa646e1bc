from django.urls import include, path

from apps.pricing.urls import coupon_urlpatterns, discount_urlpatterns, shipping_urlpatterns

urlpatterns = [
    path("api/", include("apps.monitoring.urls")),
    path("api/orders/", include("apps.orders.urls")),
    path("api/products/", include("apps.catalog.urls")),
    path("api/coupons/", include((coupon_urlpatterns, "coupons"))),
    path("api/shipping/", include((shipping_urlpatterns, "shipping"))),
    path("api/discounts/", include((discount_urlpatterns, "discounts"))),
    path("api/notifications/", include("apps.notifications.urls")),
]
