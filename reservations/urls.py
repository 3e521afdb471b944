from django.urls import path
from rest_framework.routers import DefaultRouter
from reservations.views import (
    BookingViewSet,
    CouponViewSet,
    CreateOrderView,
    RefundView,
    RoomTypeViewSet,
    RoomViewSet,
    VerifyPaymentView,
)

router = DefaultRouter()
router.register(r'room-types', RoomTypeViewSet)
router.register(r'rooms', RoomViewSet)
router.register(r'coupons', CouponViewSet)
router.register(r'bookings', BookingViewSet)

urlpatterns = [
    path('payments/create-order', CreateOrderView.as_view(), name='payment-create-order'),
    path('payments/verify', VerifyPaymentView.as_view(), name='payment-verify'),
    path('payments/refund', RefundView.as_view(), name='payment-refund'),
] + router.urls
