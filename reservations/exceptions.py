"""
Booking engine errors.

Each domain error is a DRF APIException, so services can raise them from
anywhere inside a request and the view layer renders them without extra
plumbing. Input problems use rest_framework's ValidationError directly.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ReservationError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The booking could not be updated."
    default_code = "reservation_error"


class InvalidTransition(ReservationError):
    default_detail = "That status change is not allowed."
    default_code = "invalid_transition"

    def __init__(self, current, target, field="status"):
        self.current = current
        self.target = target
        super().__init__(f"Invalid {field} transition: {current} -> {target}")


class RoomNotCompatible(ReservationError):
    default_detail = "Room is no longer available for this booking, pick another."
    default_code = "room_not_compatible"


class BookingNotAllocatable(ReservationError):
    default_detail = "Booking cannot be allocated a room."
    default_code = "booking_not_allocatable"


class ConcurrentModification(ReservationError):
    default_detail = "The record was changed by someone else, reload and try again."
    default_code = "concurrent_modification"


class PaymentGatewayError(ReservationError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Payment gateway did not return a usable response."
    default_code = "payment_gateway_error"


def api_exception_handler(exc, context):
    """Render booking engine errors as {"error", "code"}; defer the rest to DRF."""
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, ReservationError):
        if isinstance(exc, PaymentGatewayError):
            logger.error("Payment gateway failure: %s", exc.detail)
        else:
            logger.warning("Rejected %s: %s", exc.default_code, exc.detail)
        response.data = {'error': str(exc.detail), 'code': exc.default_code}
    return response
