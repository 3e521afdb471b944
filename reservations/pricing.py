"""
Pricing for bookings.

This is the one place a booking total is computed. The creation form,
quote endpoint and upgrade flow all call into here rather than doing
their own arithmetic.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.utils import timezone
from rest_framework.exceptions import ValidationError

from .conf import default_currency, tax_rate
from .models import Coupon

CENT = Decimal("0.01")
ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class AddOn:
    key: str
    label: str
    rate: Decimal
    per_night: bool = False
    meal_plan: bool = False


ADD_ONS = {
    addon.key: addon
    for addon in (
        AddOn("extra_bed", "Extra bed", Decimal("500"), per_night=True),
        AddOn("early_check_in", "Early check-in", Decimal("1000")),
        AddOn("late_check_out", "Late check-out", Decimal("1000")),
        AddOn("airport_transfer", "Airport transfer", Decimal("2000")),
        AddOn("breakfast", "Breakfast", Decimal("500"), per_night=True, meal_plan=True),
        AddOn("half_board", "Half board", Decimal("1200"), per_night=True, meal_plan=True),
        AddOn("full_board", "Full board", Decimal("2000"), per_night=True, meal_plan=True),
    )
}

MEAL_PLANS = [key for key, addon in ADD_ONS.items() if addon.meal_plan]


@dataclass(frozen=True)
class PricingBreakdown:
    nights: int
    room_charges: Decimal
    extra_services: Decimal
    subtotal: Decimal
    taxes: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    coupon_code: str = ""


def money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def nights_between(check_in, check_out):
    """Whole nights in a stay; partial days round up."""
    if isinstance(check_in, datetime) != isinstance(check_out, datetime):
        raise ValidationError("check_in and check_out must both be dates or both be datetimes")
    if isinstance(check_in, date) and not isinstance(check_in, datetime):
        nights = (check_out - check_in).days
    else:
        nights = math.ceil((check_out - check_in) / ONE_DAY)
    if nights <= 0:
        raise ValidationError("check_out must be after check_in")
    return nights


def resolve_add_ons(keys):
    add_ons = []
    for key in keys:
        if key not in ADD_ONS:
            raise ValidationError(f"Unknown add-on: {key}")
        addon = ADD_ONS[key]
        if addon not in add_ons:
            add_ons.append(addon)
    if sum(1 for addon in add_ons if addon.meal_plan) > 1:
        raise ValidationError("Only one meal plan can be selected")
    return add_ons


def resolve_coupon(code, on=None):
    """Look a coupon code up in the coupon store. Blank codes mean no coupon."""
    code = (code or "").strip().upper()
    if not code:
        return None
    on = on or timezone.localdate()
    coupon = Coupon.objects.filter(code=code).first()
    if coupon is None or not coupon.is_valid_on(on):
        raise ValidationError({'coupon_code': f"Coupon {code} is not valid"})
    return coupon


def compute_price(room_type, nights, add_ons=(), coupon=None, room_count=1):
    """
    Price a stay.

    ``add_ons`` may hold add-on keys or AddOn instances. ``coupon`` is an
    already-resolved Coupon (or anything with ``code`` and
    ``discount_rate``). Every component is rounded to the currency's minor
    unit before the total is formed, so the parts always add up.
    """
    if not isinstance(nights, int) or isinstance(nights, bool) or nights <= 0:
        raise ValidationError("nights must be a positive integer")
    if not isinstance(room_count, int) or room_count < 1:
        raise ValidationError("room count must be at least 1")

    selected = resolve_add_ons(a.key if isinstance(a, AddOn) else a for a in add_ons)

    room_charges = money(Decimal(room_type.base_price) * nights * room_count)
    extra_services = money(sum(
        (addon.rate * (nights if addon.per_night else 1) for addon in selected),
        Decimal("0"),
    ))
    subtotal = room_charges + extra_services
    taxes = money(subtotal * tax_rate())
    discount = money(subtotal * Decimal(coupon.discount_rate)) if coupon else money(0)
    total = subtotal + taxes - discount

    return PricingBreakdown(
        nights=nights,
        room_charges=room_charges,
        extra_services=extra_services,
        subtotal=subtotal,
        taxes=taxes,
        discount=discount,
        total=total,
        currency=default_currency(),
        coupon_code=coupon.code if coupon else "",
    )
