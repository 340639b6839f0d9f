"""
Central server settings, configured from the environment.

    gunicorn perfumery.wsgi --env DJANGO_SETTINGS_MODULE=perfumery.settings.cloud

DATABASE_PATH          SQLite file (default BASE_DIR/db_cloud.sqlite3)
INVENTORY_LOG_LEVEL    level for the inventory logger (default INFO)
SECURE_SSL_REDIRECT    "true" to force HTTPS and secure cookies
"""

from .base import *

DEPLOYMENT_MODE = 'cloud'

DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
ALLOWED_HOSTS = [h.strip() for h in os.getenv('ALLOWED_HOSTS', '*').split(',') if h.strip()]

SECURE_SSL_REDIRECT = os.getenv('SECURE_SSL_REDIRECT', 'False').lower() == 'true'
SESSION_COOKIE_SECURE = CSRF_COOKIE_SECURE = SECURE_SSL_REDIRECT

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.getenv('DATABASE_PATH', str(BASE_DIR / 'db_cloud.sqlite3')),
        'OPTIONS': {'timeout': 30},
    }
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'ledger': {
            'format': '{asctime} {levelname:<7} {name} | {message}',
            'style': '{',
        },
    },
    'handlers': {
        'stdout': {
            'class': 'logging.StreamHandler',
            'formatter': 'ledger',
        },
    },
    'root': {'handlers': ['stdout'], 'level': 'WARNING'},
    'loggers': {
        'inventory': {
            'handlers': ['stdout'],
            'level': os.getenv('INVENTORY_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
