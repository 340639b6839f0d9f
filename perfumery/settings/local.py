"""
Workstation settings: SQLite next to the project, DEBUG logging for the
inventory app written to logs/inventory.log.

    python manage.py runserver --settings=perfumery.settings.local
"""

from .base import *

DEPLOYMENT_MODE = 'local'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
        # Batch commits hold the write lock briefly; let readers wait for it
        'OPTIONS': {'timeout': 20},
    }
}

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

LOG_DIR = BASE_DIR / 'logs'
LOG_DIR.mkdir(exist_ok=True)

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
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'ledger',
        },
        'inventory_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': LOG_DIR / 'inventory.log',
            'maxBytes': 5 * 1024 * 1024,
            'backupCount': 3,
            'formatter': 'ledger',
        },
    },
    'loggers': {
        'inventory': {
            'handlers': ['console', 'inventory_file'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
        },
    },
}
