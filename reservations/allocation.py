"""
Binding confirmed bookings to physical rooms.

A room and its booking are always updated together inside one transaction.
Both writes are conditional UPDATEs, so whichever request commits first wins
and the loser sees zero rows changed and rolls back.
"""
import logging
from dataclasses import dataclass

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .availability import is_compatible
from .exceptions import BookingNotAllocatable, RoomNotCompatible
from .models import Booking, Room

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    booking: Booking
    room: Room


def allocate(booking, room):
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        room = Room.objects.select_for_update().select_related('room_type').get(pk=room.pk)

        if booking.status != Booking.Status.CONFIRMED:
            raise BookingNotAllocatable(f"Booking {booking.pk} is {booking.status}, only confirmed bookings can be allocated")
        if booking.room_id is not None:
            raise BookingNotAllocatable(f"Booking {booking.pk} is already allocated to room {booking.room.number}")
        if not is_compatible(room, booking):
            raise RoomNotCompatible(f"Room {room.number} is not compatible with booking {booking.pk}")

        claimed = Room.objects.filter(
            pk=room.pk,
            version=room.version,
            status=Room.Status.AVAILABLE,
            current_booking__isnull=True,
        ).update(
            status=Room.Status.OCCUPIED,
            current_booking=booking,
            version=F('version') + 1,
        )
        if not claimed:
            raise RoomNotCompatible(f"Room {room.number} was taken by another allocation")

        bound = Booking.objects.filter(
            pk=booking.pk,
            version=booking.version,
            status=Booking.Status.CONFIRMED,
            room__isnull=True,
        ).update(
            room=room,
            version=F('version') + 1,
            updated_at=timezone.now(),
        )
        if not bound:
            # Raising here rolls back the room claim above.
            raise BookingNotAllocatable(f"Booking {booking.pk} changed while allocating")

    booking.refresh_from_db()
    room.refresh_from_db()
    logger.info("Allocated room %s to booking %s", room.number, booking.pk)
    return AllocationResult(booking=booking, room=room)


def release_room(booking, status=Room.Status.AVAILABLE):
    """
    Detach ``booking`` from its room and put the room in ``status``.

    Must be called inside the caller's transaction. The booking instance is
    updated in memory; saving it is left to the caller.
    """
    if booking.room_id is None:
        return None
    room = Room.objects.select_for_update().get(pk=booking.room_id)
    if room.current_booking_id == booking.pk:
        room.current_booking = None
        room.status = status
        room.version += 1
        room.save(update_fields=['current_booking', 'status', 'version'])
        logger.info("Released room %s from booking %s (now %s)", room.number, booking.pk, status)
    booking.room = None
    return room
