import logging

from rest_framework import serializers
from django.db import transaction

from .availability import check_availability
from .models import Booking, Coupon, Guest, Payment, Room, RoomType
from .pricing import ADD_ONS, MEAL_PLANS, compute_price, nights_between, resolve_coupon

logger = logging.getLogger(__name__)

EXTRA_ADD_ONS = [key for key, addon in ADD_ONS.items() if not addon.meal_plan]
MONEY = dict(max_digits=12, decimal_places=2)


class GuestInput(serializers.Serializer):
    full_name = serializers.CharField()
    email = serializers.EmailField()
    phone = serializers.CharField(allow_blank=True, required=False)


class RoomTypeSerializer(serializers.ModelSerializer):
    tier = serializers.IntegerField(required=False, min_value=1)

    class Meta:
        model = RoomType
        fields = '__all__'


class RoomSerializer(serializers.ModelSerializer):

    class Meta:
        model = Room
        fields = '__all__'
        read_only_fields = ['status', 'current_booking', 'last_cleaned', 'version']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['room_type_name'] = instance.room_type.name
        data['max_occupancy'] = instance.room_type.max_occupancy
        return data


class RoomStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Room.Status.choices)
    version = serializers.IntegerField(required=False, min_value=0)


class CouponSerializer(serializers.ModelSerializer):

    class Meta:
        model = Coupon
        fields = '__all__'

    def validate(self, data):
        valid_from = data.get('valid_from', getattr(self.instance, 'valid_from', None))
        valid_until = data.get('valid_until', getattr(self.instance, 'valid_until', None))
        if valid_from and valid_until and valid_until < valid_from:
            raise serializers.ValidationError("valid_until must not be before valid_from")
        return data


class PricingBreakdownSerializer(serializers.Serializer):
    nights = serializers.IntegerField()
    room_charges = serializers.DecimalField(**MONEY)
    extra_services = serializers.DecimalField(**MONEY)
    subtotal = serializers.DecimalField(**MONEY)
    taxes = serializers.DecimalField(**MONEY)
    discount = serializers.DecimalField(**MONEY)
    total = serializers.DecimalField(**MONEY)
    currency = serializers.CharField()
    coupon_code = serializers.CharField()


def validate_stay(data):
    """Shared checks for anything that prices a stay; fills in room_type, nights, add-ons and coupon."""
    try:
        data['room_type'] = RoomType.objects.get(pk=data.pop('room_type_id'))
    except RoomType.DoesNotExist:
        raise serializers.ValidationError({'room_type_id': "Unknown room type"})

    data['nights'] = nights_between(data['check_in'], data['check_out'])

    add_ons = list(data.get('add_ons', []))
    meal_plan = data.pop('meal_plan', 'none')
    if meal_plan != 'none':
        add_ons.append(meal_plan)
    data['add_ons'] = add_ons

    data['coupon'] = resolve_coupon(data.get('coupon_code', ''), on=data['check_in'])
    return data


class StayInput(serializers.Serializer):
    room_type_id = serializers.IntegerField()
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    rooms = serializers.IntegerField(min_value=1, default=1)
    add_ons = serializers.ListField(child=serializers.ChoiceField(choices=EXTRA_ADD_ONS), required=False)
    meal_plan = serializers.ChoiceField(choices=['none'] + MEAL_PLANS, default='none')
    coupon_code = serializers.CharField(allow_blank=True, required=False)


class QuoteSerializer(StayInput):

    def validate(self, data):
        return validate_stay(data)

    def breakdown(self):
        data = self.validated_data
        return compute_price(
            data['room_type'], data['nights'], data['add_ons'],
            coupon=data['coupon'], room_count=data['rooms'],
        )


class BookingSerializer(serializers.ModelSerializer):
    guest = GuestInput()
    room_type_id = serializers.IntegerField(write_only=True)
    room_type = RoomTypeSerializer(read_only=True)
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    add_ons = serializers.ListField(child=serializers.ChoiceField(choices=EXTRA_ADD_ONS + MEAL_PLANS), required=False)
    meal_plan = serializers.ChoiceField(choices=['none'] + MEAL_PLANS, default='none', write_only=True)
    coupon_code = serializers.CharField(allow_blank=True, required=False)
    room_preferences = serializers.ListField(child=serializers.CharField(), required=False)
    client_token = serializers.CharField(write_only=True, required=False, max_length=64)

    class Meta:
        model = Booking
        exclude = ['room']
        read_only_fields = [
            'total_amount', 'currency', 'status', 'payment_status', 'version', 'created_at', 'updated_at',
        ]

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['nights'] = instance.nights
        data['room_id'] = instance.room_id
        data['room_number'] = instance.room.number if instance.room_id else None
        pricing = getattr(instance, 'pricing', None)
        if pricing is not None:
            data['pricing'] = PricingBreakdownSerializer(pricing).data
        return data

    def validate(self, data):
        if self.instance:
            raise serializers.ValidationError("Bookings are changed through status, allocation and upgrade actions")

        # Idempotent resubmission: the stored booking is returned as-is by create().
        token = data.get('client_token')
        if token and Booking.objects.filter(client_token=token).exists():
            return data

        data.setdefault('rooms', 1)
        data = validate_stay(data)
        room_type = data['room_type']
        guests = data.get('adults', 1) + data.get('children', 0)
        if guests > room_type.max_occupancy * data['rooms']:
            raise serializers.ValidationError(
                f"{room_type.name} sleeps {room_type.max_occupancy} per room; {guests} guests need more rooms"
            )
        result = check_availability(
            room_type, data['check_in'], data['check_out'],
            adults=data.get('adults', 1), children=data.get('children', 0), rooms=data['rooms'],
        )
        if not result.available:
            raise serializers.ValidationError("Room type is not available for the selected dates")
        return data

    def create(self, validated):
        token = validated.get('client_token')
        if token:
            existing = Booking.objects.filter(client_token=token).first()
            if existing:
                return existing

        with transaction.atomic():
            # Lock the room type so concurrent creations see each other's demand
            room_type = RoomType.objects.select_for_update().get(pk=validated['room_type'].pk)
            result = check_availability(
                room_type, validated['check_in'], validated['check_out'],
                adults=validated.get('adults', 1), children=validated.get('children', 0),
                rooms=validated['rooms'],
            )
            if not result.available:
                raise serializers.ValidationError("Room type is not available for the selected dates")

            guest_data = validated['guest']
            guest, _ = Guest.objects.get_or_create(
                email=guest_data['email'],
                defaults=dict(
                    full_name=guest_data['full_name'],
                    phone=guest_data.get('phone', ''),
                ),
            )

            pricing = compute_price(
                room_type, validated['nights'], validated['add_ons'],
                coupon=validated['coupon'], room_count=validated['rooms'],
            )

            booking = Booking.objects.create(
                guest=guest,
                room_type=room_type,
                check_in=validated['check_in'],
                check_out=validated['check_out'],
                adults=validated.get('adults', 1),
                children=validated.get('children', 0),
                rooms=validated['rooms'],
                add_ons=validated['add_ons'],
                coupon_code=pricing.coupon_code,
                total_amount=pricing.total,
                currency=pricing.currency,
                room_preferences=validated.get('room_preferences', []),
                special_requests=validated.get('special_requests', ''),
                client_token=token or None,
            )

        booking.pricing = pricing
        logger.info("Created booking %s for %s, total %s %s", booking.pk, guest.email, pricing.total, pricing.currency)
        return booking


class BookingStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.Status.choices, required=False)
    payment_status = serializers.ChoiceField(choices=Booking.PaymentStatus.choices, required=False)
    special_requests = serializers.CharField(allow_blank=True, required=False)
    version = serializers.IntegerField(required=False, min_value=0)

    def validate(self, data):
        if not any(k in data for k in ('status', 'payment_status', 'special_requests')):
            raise serializers.ValidationError("Nothing to update: send status, payment_status or special_requests")
        return data


class AvailabilitySerializer(serializers.Serializer):
    room_type_id = serializers.IntegerField(required=False)
    check_in = serializers.DateField(required=False)
    check_out = serializers.DateField(required=False)
    adults = serializers.IntegerField(min_value=1, required=False)
    children = serializers.IntegerField(min_value=0, required=False)
    rooms = serializers.IntegerField(min_value=1, required=False)

    def validate(self, data):
        # A booking in context supplies anything the request leaves out.
        booking = self.context.get('booking')
        if booking is not None:
            data.setdefault('room_type_id', booking.room_type_id)
            data.setdefault('check_in', booking.check_in)
            data.setdefault('check_out', booking.check_out)
            data.setdefault('adults', booking.adults)
            data.setdefault('children', booking.children)
            data.setdefault('rooms', booking.rooms)
        for name in ('room_type_id', 'check_in', 'check_out'):
            if data.get(name) is None:
                raise serializers.ValidationError({name: "This field is required."})
        nights_between(data['check_in'], data['check_out'])
        try:
            data['room_type'] = RoomType.objects.get(pk=data['room_type_id'])
        except RoomType.DoesNotExist:
            raise serializers.ValidationError({'room_type_id': "Unknown room type"})
        data.setdefault('adults', 1)
        data.setdefault('children', 0)
        data.setdefault('rooms', 1)
        return data


class AllocateSerializer(serializers.Serializer):
    room_id = serializers.IntegerField()


class UpgradeRequestSerializer(serializers.Serializer):
    room_type_id = serializers.IntegerField()
    override_price = serializers.DecimalField(required=False, allow_null=True, min_value=0, **MONEY)
    reason = serializers.CharField(allow_blank=True, required=False, default='')
    version = serializers.IntegerField(required=False, min_value=0)


class UpgradeOptionSerializer(serializers.Serializer):
    from_room_type = RoomTypeSerializer()
    to_room_type = RoomTypeSerializer()
    upgrade_fee = serializers.DecimalField(**MONEY)
    upgrade_percentage = serializers.DecimalField(max_digits=8, decimal_places=2)
    benefits = serializers.ListField(child=serializers.CharField())


class PaymentSerializer(serializers.ModelSerializer):

    class Meta:
        model = Payment
        fields = '__all__'


class CreateOrderSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField()


class VerifyPaymentSerializer(serializers.Serializer):
    order_id = serializers.CharField()
    payment_id = serializers.CharField()
    signature = serializers.CharField()


class RefundSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField()
    amount = serializers.DecimalField(required=False, allow_null=True, **MONEY)
