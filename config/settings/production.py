"""
Production specific settings for the QTours booking dashboard
"""

from .base import *
import dj_database_url
import os

# ----------------------------------------
# 🔐 Security Settings
# ----------------------------------------
DEBUG = False
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', 'qtours.tours,www.qtours.tours').split(',')
CSRF_COOKIE_SECURE = True
SESSION_COOKIE_SECURE = True
SECURE_SSL_REDIRECT = True
CSRF_TRUSTED_ORIGINS = [f"https://{host}" for host in ALLOWED_HOSTS]

# ----------------------------------------
# 🗄️ PostgreSQL Database
# ----------------------------------------
DATABASES = {
    'default': dj_database_url.config(
        conn_max_age=600,
        conn_health_checks=True,
        ssl_require=True
    )
}

# ----------------------------------------
# 📂 Static Files
# ----------------------------------------
STATIC_ROOT = os.path.join(BASE_DIR, 'staticfiles')
STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage'},
}

# Sample data is never served in production
DEMO_MODE = False
