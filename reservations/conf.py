from decimal import Decimal

from django.conf import settings

DEFAULTS = {
    'CURRENCY': 'INR',
    'TAX_RATE': '0.18',
    'PAYMENT_GATEWAY': 'reservations.payments.HmacGateway',
    'PAYMENT_GATEWAY_SECRET': '',
    'PAYMENT_GATEWAY_TIMEOUT': 10,
}


def pms_setting(name):
    """Read a booking engine setting, falling back to the built-in default."""
    return getattr(settings, 'PMS', {}).get(name, DEFAULTS[name])


def tax_rate():
    return Decimal(str(pms_setting('TAX_RATE')))


def default_currency():
    return pms_setting('CURRENCY')
