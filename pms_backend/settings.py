"""
Django settings for the property management backend.

Secrets and deployment switches come from the environment; everything
booking-specific lives in the PMS dict at the bottom.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'pms-dev-key-replace-before-deployment')

DEBUG = os.environ.get('DJANGO_DEBUG', 'true').lower() in ('1', 'true', 'yes')

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', '').split(',') if h]

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'reservations',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# ── URL & WSGI ────────────────────────────────────────────────
ROOT_URLCONF = 'pms_backend.urls'
WSGI_APPLICATION = 'pms_backend.wsgi.application'

# ── Database ──────────────────────────────────────────────────
# SQLite for development. Production DB configured separately.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('PMS_DB_PATH', BASE_DIR / 'db.sqlite3'),
    }
}

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ── REST framework ────────────────────────────────────────────
REST_FRAMEWORK = {
    'EXCEPTION_HANDLER': 'reservations.exceptions.api_exception_handler',
}

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'reservations': {
            'handlers': ['console'],
            'level': os.environ.get('PMS_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

# ── Booking engine ────────────────────────────────────────────
PMS = {
    'CURRENCY': 'INR',
    'TAX_RATE': '0.18',
    'PAYMENT_GATEWAY': 'reservations.payments.HmacGateway',
    'PAYMENT_GATEWAY_SECRET': os.environ.get('PMS_PAYMENT_SECRET', 'pms-dev-payment-secret'),
    'PAYMENT_GATEWAY_TIMEOUT': 10,
}
