"""
Test settings for the SuperEcom back-office.

Used by pytest-django and by `manage.py test --settings=config.settings.test`.
"""

from .base import *


class DisableMigrations:
    """Build test tables straight from the models."""

    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None


DEBUG = False

ALLOWED_HOSTS = ['*']

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': True,
        'CONN_MAX_AGE': 0,
        'OPTIONS': {},
    }
}

MIGRATION_MODULES = DisableMigrations()

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'superecom_test_local_cache',
        'TIMEOUT': 300,
        'KEY_PREFIX': 'superecom_test',
    }
}

# Make password hashing fast for tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length-for-hs256'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False

# No throttling noise in tests
REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    'DEFAULT_THROTTLE_CLASSES': [],
}

LOGGING['handlers'].pop('file')
LOGGING['loggers']['django']['handlers'] = ['console']
LOGGING['loggers']['apps']['handlers'] = ['console']
LOGGING['loggers']['apps']['level'] = 'WARNING'
