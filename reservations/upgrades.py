import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import transaction
from rest_framework.exceptions import ValidationError

from .allocation import release_room
from .exceptions import ConcurrentModification, InvalidTransition
from .models import Booking, BookingUpgrade, Room, RoomType
from .pricing import money
from .state import TERMINAL_STATUSES

logger = logging.getLogger(__name__)


@dataclass
class UpgradeOption:
    from_room_type: object
    to_room_type: object
    upgrade_fee: Decimal
    upgrade_percentage: Decimal
    benefits: list = field(default_factory=list)


def _benefits(current, target):
    benefits = []
    if target.size > current.size:
        benefits.append(f"Larger room ({target.size} sqft)")
    benefits.extend(a for a in target.amenities if a not in current.amenities)
    benefits.extend(f for f in target.features if f not in current.features)
    return benefits


def build_option(booking, target):
    current = booking.room_type
    diff = Decimal(target.base_price) - Decimal(current.base_price)
    if current.base_price:
        percentage = (diff / Decimal(current.base_price) * 100).quantize(Decimal("0.01"))
    else:
        percentage = Decimal("0.00")
    return UpgradeOption(
        from_room_type=current,
        to_room_type=target,
        upgrade_fee=money(diff * booking.nights * booking.rooms),
        upgrade_percentage=percentage,
        benefits=_benefits(current, target),
    )


def list_upgrades(booking, room_types=None):
    """Every strictly higher tier, closest first."""
    if room_types is None:
        room_types = RoomType.objects.all()
    current_tier = booking.room_type.tier
    targets = sorted((rt for rt in room_types if rt.tier > current_tier), key=lambda rt: rt.tier)
    return [build_option(booking, target) for target in targets]


def apply_upgrade(booking, target, override_price=None, reason="", expected_version=None):
    """
    Move a booking to a higher room type and charge the difference.

    A room already bound under the old type is released; the booking has
    to be allocated again to a room of the new type.
    """
    with transaction.atomic():
        booking = Booking.objects.select_for_update().select_related('room_type').get(pk=booking.pk)
        if expected_version is not None and expected_version != booking.version:
            raise ConcurrentModification(
                f"Booking {booking.pk} is at version {booking.version}, not {expected_version}"
            )
        if booking.status in TERMINAL_STATUSES:
            raise InvalidTransition(booking.status, "upgraded")
        if booking.room_type is None:
            raise ValidationError("Booking has no room type to upgrade from")
        if target.tier <= booking.room_type.tier:
            raise ValidationError({'room_type_id': f"{target.name} is not an upgrade from {booking.room_type.name}"})

        option = build_option(booking, target)
        fee = money(override_price) if override_price is not None else option.upgrade_fee
        if fee < 0:
            raise ValidationError({'override_price': "Upgrade price cannot be negative"})

        released = release_room(booking, Room.Status.AVAILABLE)

        BookingUpgrade.objects.create(
            booking=booking,
            from_room_type=booking.room_type,
            to_room_type=target,
            fee=fee,
            reason=reason,
        )
        booking.room_type = target
        booking.total_amount = booking.total_amount + fee
        booking.version += 1
        booking.save()

    logger.info(
        "Upgraded booking %s to %s for %s%s",
        booking.pk, target.name, fee,
        f", released room {released.number}" if released else "",
    )
    return booking
