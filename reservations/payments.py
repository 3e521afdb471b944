"""
Payment flows: order creation, verification and refunds.

The gateway itself is pluggable (``PMS['PAYMENT_GATEWAY']``). Calls to it
run with a hard timeout and outside any database transaction; the booking
is only touched once the gateway has given a definite answer.
"""
import hashlib
import hmac
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as GatewayTimeout
from decimal import Decimal

from django.db import transaction
from django.utils.module_loading import import_string
from rest_framework.exceptions import ValidationError

from .conf import pms_setting
from .exceptions import InvalidTransition, PaymentGatewayError
from .models import Booking, Payment
from .pricing import money
from .state import TERMINAL_STATUSES, transition

logger = logging.getLogger(__name__)

PaymentStatus = Booking.PaymentStatus

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="payment-gateway")


class HmacGateway:
    """
    Self-contained gateway: issues order and refund ids locally and checks
    payment signatures as HMAC-SHA256 over ``"{order_id}|{payment_id}"``.
    """

    def __init__(self, secret):
        self.secret = secret.encode('utf-8')

    def create_order(self, amount, currency, receipt):
        return {
            'id': f"order_{uuid.uuid4().hex[:16]}",
            'amount': str(amount),
            'currency': currency,
            'receipt': receipt,
        }

    def sign(self, order_id, payment_id):
        message = f"{order_id}|{payment_id}".encode('utf-8')
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()

    def verify_payment(self, order_id, payment_id, signature):
        return hmac.compare_digest(self.sign(order_id, payment_id), signature or '')

    def refund(self, payment_id, amount):
        return {
            'id': f"rfnd_{uuid.uuid4().hex[:16]}",
            'payment_id': payment_id,
            'amount': str(amount),
            'status': 'processed',
        }


def get_gateway():
    gateway_class = import_string(pms_setting('PAYMENT_GATEWAY'))
    return gateway_class(secret=pms_setting('PAYMENT_GATEWAY_SECRET'))


def _call_gateway(operation, *args):
    future = _executor.submit(operation, *args)
    try:
        return future.result(timeout=pms_setting('PAYMENT_GATEWAY_TIMEOUT'))
    except GatewayTimeout:
        future.cancel()
        raise PaymentGatewayError("Payment gateway timed out")
    except PaymentGatewayError:
        raise
    except Exception as exc:
        logger.exception("Payment gateway call %s failed", getattr(operation, '__name__', operation))
        raise PaymentGatewayError(f"Payment gateway error: {exc}") from exc


def _open_order(booking):
    payment = booking.payments.filter(status=PaymentStatus.PENDING).order_by('-created_at').first()
    if payment is not None and payment.amount != booking.total_amount:
        raise ValidationError({
            'booking_id': f"Order {payment.order_id} is still open for {payment.amount}; settle it before charging again",
        })
    return payment


def create_order(booking):
    """
    Open a gateway order for the booking total.

    A booking has at most one open order; asking again returns it.
    """
    if booking.status in TERMINAL_STATUSES:
        raise InvalidTransition(booking.status, "payment")
    if booking.payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
        raise InvalidTransition(booking.payment_status, PaymentStatus.PENDING, field="payment status")

    payment = _open_order(booking)
    if payment is not None:
        return payment

    order = _call_gateway(
        get_gateway().create_order, booking.total_amount, booking.currency, f"booking-{booking.pk}",
    )
    if not order or not order.get('id'):
        raise PaymentGatewayError("Payment gateway returned no order id")

    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        if booking.payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise InvalidTransition(booking.payment_status, PaymentStatus.PENDING, field="payment status")
        payment = _open_order(booking)
        if payment is not None:
            # Lost the race to a concurrent request; its order stands.
            return payment
        if booking.payment_status == PaymentStatus.FAILED:
            # Retrying after a failure starts a fresh attempt.
            booking = transition(booking, payment_status=PaymentStatus.PENDING)
        payment = Payment.objects.create(
            booking=booking,
            amount=booking.total_amount,
            currency=booking.currency,
            order_id=order['id'],
        )

    logger.info("Created payment order %s for booking %s (%s)", payment.order_id, booking.pk, payment.amount)
    return payment


def verify_payment(order_id, payment_id, signature):
    """
    Settle a payment attempt from the gateway callback.

    A good signature marks the payment paid and confirms a pending booking.
    A bad one marks it failed and leaves the booking pending.
    """
    payment = Payment.objects.select_related('booking').filter(order_id=order_id).first()
    if payment is None:
        raise ValidationError({'order_id': f"Unknown payment order {order_id}"})
    if payment.status == PaymentStatus.PAID and payment.provider_ref == payment_id:
        return payment

    verified = _call_gateway(get_gateway().verify_payment, order_id, payment_id, signature)
    if not isinstance(verified, bool):
        raise PaymentGatewayError("Payment gateway gave an ambiguous verification result")

    with transaction.atomic():
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.status != PaymentStatus.PENDING:
            raise InvalidTransition(payment.status, PaymentStatus.PAID if verified else PaymentStatus.FAILED,
                                    field="payment status")
        booking = payment.booking
        if verified:
            payment.status = PaymentStatus.PAID
            payment.provider_ref = payment_id
            status = Booking.Status.CONFIRMED if booking.status == Booking.Status.PENDING else None
            transition(booking, status=status, payment_status=PaymentStatus.PAID)
        else:
            payment.status = PaymentStatus.FAILED
            transition(booking, payment_status=PaymentStatus.FAILED)
        payment.save()

    if verified:
        logger.info("Payment %s verified for booking %s", payment_id, booking.pk)
    else:
        logger.warning("Payment %s failed verification for booking %s", payment_id, booking.pk)
    return payment


def refund(booking, amount=None):
    """Refund all or part of the booking's settled payment."""
    payment = booking.payments.filter(
        status__in=[PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED],
    ).order_by('-created_at').first()
    if payment is None:
        raise InvalidTransition(booking.payment_status, PaymentStatus.REFUNDED, field="payment status")

    amount = payment.refundable_amount if amount is None else money(Decimal(amount))
    if amount <= 0:
        raise ValidationError({'amount': "Refund amount must be positive"})
    if amount > payment.refundable_amount:
        raise ValidationError({'amount': f"Refund amount exceeds the refundable {payment.refundable_amount}"})

    result = _call_gateway(get_gateway().refund, payment.provider_ref, amount)
    if not result or result.get('status') != 'processed':
        raise PaymentGatewayError("Payment gateway did not process the refund")

    with transaction.atomic():
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        payment.refunded_amount += amount
        if payment.refundable_amount == 0:
            payment.status = PaymentStatus.REFUNDED
        else:
            payment.status = PaymentStatus.PARTIALLY_REFUNDED
        payment.save()
        booking.refresh_from_db()
        if booking.payment_status != payment.status:
            booking = transition(booking, payment_status=payment.status)

    logger.info("Refunded %s on payment %s (booking %s)", amount, payment.provider_ref, booking.pk)
    return payment
