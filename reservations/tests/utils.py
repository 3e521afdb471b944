from datetime import date, timedelta
from decimal import Decimal

from reservations.models import Booking, Guest, Room, RoomType


def make_room_type(name="Standard Room", category=RoomType.Category.STANDARD, base_price="2000", **extra):
    extra.setdefault('max_occupancy', 2)
    return RoomType.objects.create(name=name, category=category, base_price=Decimal(base_price), **extra)


def make_room(number, room_type, **extra):
    return Room.objects.create(number=number, room_type=room_type, **extra)


def make_booking(room_type, status=Booking.Status.PENDING, nights=3, email="guest@example.com", **extra):
    guest, _ = Guest.objects.get_or_create(email=email, defaults={'full_name': 'Test Guest'})
    check_in = extra.pop('check_in', date.today() + timedelta(days=7))
    extra.setdefault('total_amount', Decimal('7080.00'))
    extra.setdefault('adults', 2)
    return Booking.objects.create(
        guest=guest,
        room_type=room_type,
        check_in=check_in,
        check_out=check_in + timedelta(days=nights),
        status=status,
        **extra
    )
