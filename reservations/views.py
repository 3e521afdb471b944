from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from . import allocation, payments
from .availability import check_availability, filter_rooms, find_compatible_rooms
from .exceptions import ConcurrentModification
from .models import Booking, Coupon, Room, RoomType
from .serializers import (
    AllocateSerializer,
    AvailabilitySerializer,
    BookingSerializer,
    BookingStatusSerializer,
    CouponSerializer,
    CreateOrderSerializer,
    PaymentSerializer,
    PricingBreakdownSerializer,
    QuoteSerializer,
    RefundSerializer,
    RoomSerializer,
    RoomStatusSerializer,
    RoomTypeSerializer,
    UpgradeOptionSerializer,
    UpgradeRequestSerializer,
    VerifyPaymentSerializer,
)
from .state import set_room_status, transition
from .upgrades import apply_upgrade, list_upgrades


def welcome(request):
    return JsonResponse({"message": "Welcome to the Property Management System"})


def health_check(request):
    return JsonResponse({"status": "ok"})


class RoomTypeViewSet(viewsets.ModelViewSet):
    queryset = RoomType.objects.all()
    serializer_class = RoomTypeSerializer


class CouponViewSet(viewsets.ModelViewSet):
    queryset = Coupon.objects.all()
    serializer_class = CouponSerializer


class RoomViewSet(viewsets.ModelViewSet):
    queryset = Room.objects.select_related('room_type')
    serializer_class = RoomSerializer

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action != 'list':
            return qs
        params = self.request.query_params
        return filter_rooms(
            qs,
            search=params.get('search'),
            floor=params.get('floor'),
            room_type=params.get('room_type'),
            status=params.get('status'),
            ordering=params.get('ordering'),
        )

    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        """Housekeeping status change (cleaning, maintenance, back to available)"""
        room = self.get_object()
        serializer = RoomStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        room = set_room_status(
            room,
            serializer.validated_data['status'],
            expected_version=serializer.validated_data.get('version'),
        )
        return Response(RoomSerializer(room).data)


class BookingViewSet(viewsets.ModelViewSet):
    queryset = Booking.objects.select_related('guest', 'room_type', 'room')
    serializer_class = BookingSerializer
    # Bookings are cancelled, never deleted.
    http_method_names = ['get', 'post', 'put', 'patch', 'head', 'options']

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action != 'list':
            return qs
        params = self.request.query_params
        if params.get('status'):
            qs = qs.filter(status=params['status'])
        if params.get('allocated') in ('true', 'false'):
            qs = qs.filter(room__isnull=params['allocated'] == 'false')
        return qs

    @action(detail=False, methods=['get'])
    def by_email(self, request):
        """Get bookings by guest email"""
        email = request.query_params.get('email')
        if not email:
            return Response({'error': 'Email parameter is required'},
                            status=status.HTTP_400_BAD_REQUEST)

        bookings = self.get_queryset().filter(guest__email=email).order_by('-created_at')
        serializer = self.get_serializer(bookings, many=True)
        return Response(serializer.data)

    @action(detail=False, methods=['post'])
    def quote(self, request):
        """Price a stay without booking it"""
        serializer = QuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(PricingBreakdownSerializer(serializer.breakdown()).data)

    def update(self, request, pk=None, **kwargs):
        """Status, payment status and special requests; everything else has its own action"""
        booking = self.get_object()
        serializer = BookingStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        version = data.get('version')
        if 'status' in data or 'payment_status' in data:
            booking = transition(
                booking,
                status=data.get('status'),
                payment_status=data.get('payment_status'),
                expected_version=version,
            )
        elif version is not None and version != booking.version:
            raise ConcurrentModification(f"Booking {booking.pk} is at version {booking.version}, not {version}")

        if 'special_requests' in data:
            Booking.objects.filter(pk=booking.pk).update(
                special_requests=data['special_requests'],
                updated_at=timezone.now(),
            )
            booking.refresh_from_db()

        return Response(self.get_serializer(booking).data)

    def partial_update(self, request, pk=None, **kwargs):
        """Handle partial updates (PATCH requests)"""
        return self.update(request, pk, **kwargs)

    def _availability_response(self, serializer):
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = check_availability(
            data['room_type'], data['check_in'], data['check_out'],
            adults=data['adults'], children=data['children'], rooms=data['rooms'],
            exclude=serializer.context.get('booking'),
        )
        return Response({
            'available': result.available,
            'free_rooms': result.free_rooms,
            'alternatives': RoomTypeSerializer(result.alternatives, many=True).data,
        })

    @action(detail=False, methods=['post'], url_path='availability')
    def check_stay_availability(self, request):
        """Availability for a prospective stay"""
        return self._availability_response(AvailabilitySerializer(data=request.data))

    @action(detail=True, methods=['post'])
    def availability(self, request, pk=None):
        """Availability for an existing booking, optionally with changed dates or room type"""
        booking = self.get_object()
        serializer = AvailabilitySerializer(data=request.data, context={'booking': booking})
        return self._availability_response(serializer)

    @action(detail=True, methods=['get'])
    def compatible_rooms(self, request, pk=None):
        booking = self.get_object()
        rooms = Room.objects.select_related('room_type').order_by('number')
        return Response(RoomSerializer(find_compatible_rooms(rooms, booking), many=True).data)

    @action(detail=True, methods=['post'])
    def allocate(self, request, pk=None):
        """Bind a confirmed booking to a physical room"""
        booking = self.get_object()
        serializer = AllocateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        room = get_object_or_404(Room, pk=serializer.validated_data['room_id'])
        result = allocation.allocate(booking, room)
        return Response({
            'booking': self.get_serializer(result.booking).data,
            'room': RoomSerializer(result.room).data,
        })

    @action(detail=True, methods=['get'])
    def upgrades(self, request, pk=None):
        booking = self.get_object()
        if booking.room_type is None:
            return Response([])
        return Response(UpgradeOptionSerializer(list_upgrades(booking), many=True).data)

    @action(detail=True, methods=['post'])
    def upgrade(self, request, pk=None):
        """Move the booking to a higher room type"""
        booking = self.get_object()
        serializer = UpgradeRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        target = get_object_or_404(RoomType, pk=data['room_type_id'])
        booking = apply_upgrade(
            booking,
            target,
            override_price=data.get('override_price'),
            reason=data.get('reason', ''),
            expected_version=data.get('version'),
        )
        return Response(self.get_serializer(booking).data)


class CreateOrderView(APIView):
    """POST /api/payments/create-order"""

    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = get_object_or_404(Booking, pk=serializer.validated_data['booking_id'])
        payment = payments.create_order(booking)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class VerifyPaymentView(APIView):
    """POST /api/payments/verify"""

    def post(self, request):
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = payments.verify_payment(**serializer.validated_data)
        booking = Booking.objects.get(pk=payment.booking_id)
        return Response({
            'payment_status': payment.status,
            'booking_id': booking.pk,
            'booking_status': booking.status,
            'amount': str(payment.amount),
        })


class RefundView(APIView):
    """POST /api/payments/refund"""

    def post(self, request):
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = get_object_or_404(Booking, pk=serializer.validated_data['booking_id'])
        payment = payments.refund(booking, serializer.validated_data.get('amount'))
        return Response(PaymentSerializer(payment).data)
