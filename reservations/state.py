"""
Booking and room status rules.

Every status write in the app goes through here (or through allocation),
so the transition tables below are the whole truth about what may happen
to a booking.
"""
import logging

from django.db import transaction
from django.utils import timezone

from .allocation import release_room
from .exceptions import ConcurrentModification, InvalidTransition
from .models import Booking, Room

logger = logging.getLogger(__name__)

BookingStatus = Booking.Status
PaymentStatus = Booking.PaymentStatus

BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

TERMINAL_STATUSES = {BookingStatus.COMPLETED, BookingStatus.CANCELLED}


def can_transition(current, target):
    return target in BOOKING_TRANSITIONS.get(current, set())


def validate_transition(current, target):
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


def validate_payment_transition(current, target):
    if target not in PAYMENT_TRANSITIONS.get(current, set()):
        raise InvalidTransition(current, target, field="payment status")


def transition(booking, status=None, payment_status=None, expected_version=None):
    """
    Move a booking to a new status and/or payment status.

    Both changes are validated before anything is written. Cancelling frees
    the bound room; completing (checkout) hands the room to housekeeping.
    """
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        if expected_version is not None and expected_version != booking.version:
            raise ConcurrentModification(
                f"Booking {booking.pk} is at version {booking.version}, not {expected_version}"
            )

        if status is not None:
            validate_transition(booking.status, status)
        if payment_status is not None:
            validate_payment_transition(booking.payment_status, payment_status)

        if status == BookingStatus.CANCELLED:
            release_room(booking, Room.Status.AVAILABLE)
        elif status == BookingStatus.COMPLETED:
            release_room(booking, Room.Status.CLEANING)

        previous = (booking.status, booking.payment_status)
        if status is not None:
            booking.status = status
        if payment_status is not None:
            booking.payment_status = payment_status
        booking.version += 1
        booking.save()

    logger.info(
        "Booking %s moved %s/%s -> %s/%s",
        booking.pk, previous[0], previous[1], booking.status, booking.payment_status,
    )
    return booking


def set_room_status(room, status, expected_version=None):
    """Housekeeping status change for a room that is not holding a guest."""
    with transaction.atomic():
        room = Room.objects.select_for_update().get(pk=room.pk)
        if expected_version is not None and expected_version != room.version:
            raise ConcurrentModification(f"Room {room.number} is at version {room.version}, not {expected_version}")
        if status == Room.Status.OCCUPIED:
            raise InvalidTransition(room.status, status, field="room status")
        if room.status == Room.Status.OCCUPIED:
            # Only checkout or cancellation can free an occupied room.
            raise InvalidTransition(room.status, status, field="room status")

        room.status = status
        if status == Room.Status.AVAILABLE:
            room.last_cleaned = timezone.now()
        room.version += 1
        room.save(update_fields=['status', 'last_cleaned', 'version'])

    logger.info("Room %s set to %s", room.number, status)
    return room
