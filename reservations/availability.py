import math
from dataclasses import dataclass, field

from django.db.models import Q, Sum

from .models import Booking, Room, RoomType

ACTIVE_STATUSES = [Booking.Status.PENDING, Booking.Status.CONFIRMED]
UNSELLABLE_STATUSES = [Room.Status.MAINTENANCE, Room.Status.OUT_OF_ORDER]

ROOM_ORDERINGS = {
    'number': ('number',),
    'floor': ('floor', 'number'),
    'price': ('room_type__base_price', 'number'),
    'capacity': ('room_type__max_occupancy', 'number'),
}


def is_compatible(room, booking):
    """True when ``room`` can take ``booking`` right now."""
    if room.status != Room.Status.AVAILABLE:
        return False
    if booking.room_type_id is not None and room.room_type_id != booking.room_type_id:
        return False
    if room.room_type.max_occupancy < booking.guests_per_room:
        return False
    preferences = booking.room_preferences or []
    if preferences:
        offered = set(room.features or []) | set(room.amenities or [])
        if not offered.intersection(preferences):
            return False
    return True


def find_compatible_rooms(rooms, booking):
    """Rooms that fit the booking, in the order they were given."""
    return [room for room in rooms if is_compatible(room, booking)]


@dataclass
class AvailabilityResult:
    available: bool
    free_rooms: int
    alternatives: list = field(default_factory=list)


def _free_rooms(room_type, check_in, check_out, exclude=None):
    capacity = room_type.rooms.exclude(status__in=UNSELLABLE_STATUSES).count()
    overlapping = Booking.objects.filter(
        room_type=room_type,
        status__in=ACTIVE_STATUSES,
        check_in__lt=check_out,
        check_out__gt=check_in,
    )
    if exclude is not None:
        overlapping = overlapping.exclude(pk=exclude.pk)
    demand = overlapping.aggregate(total=Sum('rooms'))['total'] or 0
    return max(capacity - demand, 0)


def check_availability(room_type, check_in, check_out, adults=1, children=0, rooms=1, exclude=None):
    """
    Can ``rooms`` rooms of ``room_type`` be sold for [check_in, check_out)?

    Supply is every room of the type that is not in maintenance or out of
    order; demand is every pending or confirmed booking of the type whose
    stay overlaps the window. When the answer is no, other room types that
    fit the party and still have space are suggested, closest tier first.
    """
    per_room = math.ceil((adults + children) / rooms)
    free = _free_rooms(room_type, check_in, check_out, exclude=exclude)
    available = free >= rooms and room_type.max_occupancy >= per_room

    alternatives = []
    if not available:
        candidates = RoomType.objects.exclude(pk=room_type.pk).filter(max_occupancy__gte=per_room)
        for candidate in sorted(candidates, key=lambda rt: (abs(rt.tier - room_type.tier), rt.tier)):
            if _free_rooms(candidate, check_in, check_out, exclude=exclude) >= rooms:
                alternatives.append(candidate)

    return AvailabilityResult(available=available, free_rooms=free, alternatives=alternatives)


def filter_rooms(queryset, search=None, floor=None, room_type=None, status=None, ordering=None):
    """Front-desk room list filters."""
    if search:
        queryset = queryset.filter(Q(number__icontains=search) | Q(room_type__name__icontains=search))
    if floor not in (None, ''):
        queryset = queryset.filter(floor=floor)
    if room_type:
        queryset = queryset.filter(room_type_id=room_type)
    if status:
        queryset = queryset.filter(status=status)
    return queryset.order_by(*ROOM_ORDERINGS.get(ordering or 'number', ROOM_ORDERINGS['number']))
