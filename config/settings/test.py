"""
Test settings: in-memory SQLite, no back-off, dummy provider credentials
"""

from .base import *

DEBUG = False
ALLOWED_HOSTS = ['testserver', 'localhost']

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

APP_URL = 'https://qtours.test'

DIBSY = {
    **DIBSY,
    'SECRET_KEY': 'sk_test_dibsy',
    'BASE_URL': 'https://api.dibsy.test/v2',
    'RETURN_URL': f"{APP_URL}/payment/success",
    'WEBHOOK_URL': f"{APP_URL}/api/payments/webhook/",
}

RESEND = {
    **RESEND,
    'API_KEY': 're_test_key',
    'BASE_URL': 'https://api.resend.test',
}

QUERY_POLICY = {
    'TIMEOUT': 5.0,
    'RETRIES': 2,
    'BACKOFF_BASE': 0,
    'BACKOFF_MAX': 0,
}

DEMO_MODE = False
