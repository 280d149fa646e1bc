from django.urls import path

from .views import (
    ActiveDiscountsView,
    CouponAdminView,
    CouponApplyView,
    CouponDetailView,
    CouponValidateView,
    DiscountAdminView,
    DiscountCalculateView,
    DiscountDetailView,
    ShippingCalculateView,
    ShippingConfigView,
)

coupon_urlpatterns = [
    path("", CouponAdminView.as_view(), name="coupons-admin"),
    path("validate/", CouponValidateView.as_view(), name="coupons-validate"),
    path("apply/", CouponApplyView.as_view(), name="coupons-apply"),
    path("<int:pk>/", CouponDetailView.as_view(), name="coupons-detail"),
]

shipping_urlpatterns = [
    path("", ShippingConfigView.as_view(), name="shipping-config"),
    path("calculate/", ShippingCalculateView.as_view(), name="shipping-calculate"),
]

discount_urlpatterns = [
    path("", DiscountAdminView.as_view(), name="discounts-admin"),
    path("active/", ActiveDiscountsView.as_view(), name="discounts-active"),
    path("calculate/", DiscountCalculateView.as_view(), name="discounts-calculate"),
    path("<int:pk>/", DiscountDetailView.as_view(), name="discounts-detail"),
]
