"""
Django base settings for the QTours booking dashboard.
"""

import os
from pathlib import Path
import dj_database_url
from decouple import config
from dotenv import load_dotenv

# ----------------------------------------
# 🔧 Project Structure
# ----------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(BASE_DIR / '.env')

# ----------------------------------------
# 🔐 Security
# ----------------------------------------
SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-*dummy-key-for-dev*')
DEBUG = os.environ.get('DJANGO_DEBUG', 'False') == 'True'

ALLOWED_HOSTS = config('DJANGO_ALLOWED_HOSTS', default='127.0.0.1,localhost').split(',')

# ----------------------------------------
# 📦 Installed Applications
# ----------------------------------------
INSTALLED_APPS = [
    'whitenoise.runserver_nostatic',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third-party apps
    'rest_framework',
    'django_filters',

    # Local apps
    'bookings',
]

# ----------------------------------------
# ⚙️ Middleware
# ----------------------------------------
MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

# ----------------------------------------
# 🔗 URL Configuration
# ----------------------------------------
ROOT_URLCONF = 'config.urls'

# ----------------------------------------
# 🧠 Templates
# ----------------------------------------
TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# ----------------------------------------
# 🔌 WSGI Application
# ----------------------------------------
WSGI_APPLICATION = 'config.wsgi.application'

# ----------------------------------------
# 🗄️ Database (PostgreSQL via DATABASE_URL, SQLite locally)
# ----------------------------------------
DATABASES = {
    'default': dj_database_url.config(
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
        conn_health_checks=True,
    )
}

# ----------------------------------------
# 🌍 Localization
# ----------------------------------------
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Asia/Qatar'
USE_I18N = True
USE_TZ = True

# ----------------------------------------
# 📂 Static Files
# ----------------------------------------
STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# ----------------------------------------
# 🆔 Default Auto Field
# ----------------------------------------
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ----------------------------------------
# 🌐 Public URL
# ----------------------------------------
APP_URL = config('APP_URL', default='http://localhost:8000').rstrip('/')

# ----------------------------------------
# 💳 Dibsy Payment Gateway
# ----------------------------------------
DIBSY = {
    'SECRET_KEY': os.environ.get('DIBSY_SECRET_KEY', ''),
    'BASE_URL': config('DIBSY_BASE_URL', default='https://api.dibsy.one/v2'),
    'EUR_TO_QAR_RATE': config('DIBSY_EUR_TO_QAR_RATE', default='4.20'),
    'RETURN_URL': f"{APP_URL}/payment/success",
    'WEBHOOK_URL': f"{APP_URL}/api/payments/webhook/",
    'TIMEOUT': config('DIBSY_TIMEOUT', default=30, cast=int),
}

# ----------------------------------------
# ✉️ Resend Transactional Email
# ----------------------------------------
RESEND = {
    'API_KEY': os.environ.get('RESEND_API_KEY', ''),
    'BASE_URL': config('RESEND_BASE_URL', default='https://api.resend.com'),
    'DEFAULT_FROM': config('RESEND_FROM_EMAIL', default='noreply@qtours.dakaeitechnologies.com'),
    'TIMEOUT': config('RESEND_TIMEOUT', default=30, cast=int),
}

# ----------------------------------------
# 🗃️ Data access policy
# ----------------------------------------
QUERY_POLICY = {
    'TIMEOUT': config('QUERY_TIMEOUT', default=15.0, cast=float),
    'RETRIES': config('QUERY_RETRIES', default=2, cast=int),
    'BACKOFF_BASE': config('QUERY_BACKOFF_BASE', default=1.0, cast=float),
    'BACKOFF_MAX': config('QUERY_BACKOFF_MAX', default=10.0, cast=float),
}

# Sample rows are only ever served when this is switched on explicitly
DEMO_MODE = config('DEMO_MODE', default=False, cast=bool)

# Outbox delivery attempts before a dispatch is left as failed
EMAIL_DISPATCH_MAX_ATTEMPTS = config('EMAIL_DISPATCH_MAX_ATTEMPTS', default=5, cast=int)

# ----------------------------------------
# 🧩 REST Framework
# ----------------------------------------
REST_FRAMEWORK = {
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20
}

# ----------------------------------------
# 🪵 Logging
# ----------------------------------------
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '[{levelname}] {asctime} {module} - {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose'
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'bookings': {
            'handlers': ['console'],
            'level': config('BOOKINGS_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
    },
}
