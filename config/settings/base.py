"""
Base settings for the SuperEcom back-office.
Contains configuration shared across all environments.
"""

from pathlib import Path
import sys
import environ
from .security import *
from .performance import *

# Initialize environment variables
env = environ.Env(
    DEBUG=(bool, False)
)

# BASE_DIR is two levels up since settings is in config/settings/
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Read .env file if it exists
environ.Env.read_env(BASE_DIR / '.env')

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env('SECRET_KEY', default='django-insecure-temporary-key-change-in-production')

VERSION = '1.0.0'

# Application definition - Order matters for proper initialization
INSTALLED_APPS = [
    # Django core apps
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third-party apps
    'rest_framework',
    'django_filters',
    'corsheaders',
    'simple_history',  # History tracking
    'auditlog',        # Audit logging
    'drf_spectacular', # API documentation

    # Our apps - Order matters: dependencies first
    'apps.tenants',
    'apps.accounts.apps.AccountsConfig',
    'apps.core',
    'apps.billing',
    'apps.inventory',
    'apps.channels',
    'apps.orders',
    'apps.shipments',
    'apps.ndr',
    'apps.webhooks',
    'apps.chat',
    'apps.super_admin',
    'apps.api',
    'apps.monitoring',
]

MIDDLEWARE = SECURITY_MIDDLEWARE

ROOT_URLCONF = 'config.urls'

TEST_RUNNER = 'config.test_runner.ProjectDiscoverRunner'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
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

WSGI_APPLICATION = 'config.wsgi.application'

# Database - PostgreSQL configuration
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': env('DB_NAME', default='superecom'),
        'USER': env('DB_USER', default='postgres'),
        'PASSWORD': env('DB_PASSWORD', default=''),
        'HOST': env('DB_HOST', default='localhost'),
        'PORT': env('DB_PORT', default='5432'),
        'ATOMIC_REQUESTS': True,  # Wrap each request in a transaction
        'CONN_MAX_AGE': 600,  # Connection pooling (10 minutes)
    }
}

# Redis configuration. Without REDIS_URL the cache falls back to local memory.
REDIS_URL = env('REDIS_URL', default='')

if REDIS_URL:
    CACHES = redis_caches(REDIS_URL)
else:
    CACHES = LOCAL_MEMORY_CACHES

USE_SQLITE_FOR_TESTS = env.bool('USE_SQLITE_FOR_TESTS', default=True)

if USE_SQLITE_FOR_TESTS and 'test' in sys.argv:
    DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': True,
        'CONN_MAX_AGE': 0,
        'OPTIONS': {},
    }
    CACHES = LOCAL_MEMORY_CACHES

# Custom User Model
AUTH_USER_MODEL = 'accounts.User'

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Asia/Kolkata'
USE_I18N = True
USE_TZ = True

# Static files (admin and API docs only)
STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Celery configuration
CELERY_BROKER_URL = env('CELERY_BROKER_URL', default=REDIS_URL or 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = env('CELERY_RESULT_BACKEND', default=REDIS_URL or 'redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes
CELERY_TASK_ALWAYS_EAGER = env.bool('CELERY_TASK_ALWAYS_EAGER', default=False)
CELERY_TASK_ROUTES = CELERY_PERFORMANCE['TASK_ROUTES']

CELERY_BEAT_SCHEDULE = {
    'retry-webhook-deliveries-1min': {
        'task': 'apps.webhooks.tasks.retry_pending_deliveries',
        'schedule': 60,
    },
    'flag-overdue-ndr-follow-ups-15min': {
        'task': 'apps.ndr.tasks.flag_overdue_follow_ups',
        'schedule': 60 * 15,
    },
    'send-low-stock-alerts-hourly': {
        'task': 'apps.inventory.tasks.send_low_stock_alerts',
        'schedule': 60 * 60,
    },
    'purge-expired-refresh-tokens-daily': {
        'task': 'apps.accounts.tasks.purge_expired_refresh_tokens',
        'schedule': 60 * 60 * 24,
    },
    'expire-lapsed-subscriptions-hourly': {
        'task': 'apps.billing.tasks.expire_lapsed_subscriptions',
        'schedule': 60 * 60,
    },
    'archive-stale-chat-conversations-daily': {
        'task': 'apps.chat.tasks.archive_stale_conversations',
        'schedule': 60 * 60 * 24,
    },
}

# Django REST Framework
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'apps.accounts.authentication.JWTAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'apps.core.renderers.EnvelopeJSONRenderer',
    ],
    'DEFAULT_PAGINATION_CLASS': 'apps.core.pagination.TenantAwarePagination',
    'PAGE_SIZE': 25,
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
        'rest_framework.filters.SearchFilter',
        'rest_framework.filters.OrderingFilter',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'apps.core.error_handlers.api_exception_handler',
    'DEFAULT_THROTTLE_CLASSES': [
        'rest_framework.throttling.AnonRateThrottle',
        'rest_framework.throttling.UserRateThrottle'
    ],
    'DEFAULT_THROTTLE_RATES': {
        'anon': '100/hour',
        'user': '5000/hour'
    }
}

# API Documentation
SPECTACULAR_SETTINGS = {
    'TITLE': 'SuperEcom Back-Office API',
    'DESCRIPTION': 'Multi-tenant order, inventory, shipment and NDR management API',
    'VERSION': VERSION,
    'SERVE_INCLUDE_SCHEMA': False,
    'COMPONENT_SPLIT_REQUEST': True,
}

# Django Simple History Configuration
SIMPLE_HISTORY_REVERT_DISABLED = False
SIMPLE_HISTORY_HISTORY_ID_USE_UUID = True

# JWT authentication
JWT_SECRET_KEY = env('JWT_SECRET_KEY', default=SECRET_KEY)
JWT_ALGORITHM = 'HS256'
JWT_ISSUER = env('JWT_ISSUER', default='superecom')
JWT_AUDIENCE = env('JWT_AUDIENCE', default='superecom-api')
JWT_ACCESS_TOKEN_LIFETIME_MINUTES = env.int('JWT_ACCESS_TOKEN_LIFETIME_MINUTES', default=60)
JWT_REFRESH_TOKEN_LIFETIME_DAYS = env.int('JWT_REFRESH_TOKEN_LIFETIME_DAYS', default=7)
PASSWORD_RESET_TOKEN_LIFETIME_MINUTES = 60
PASSWORD_RESET_TIMEOUT = PASSWORD_RESET_TOKEN_LIFETIME_MINUTES * 60

# Multi-tenancy
# 'shared' keeps every tenant in the public schema, 'schema' switches the
# PostgreSQL search_path to the tenant's own schema for each request.
TENANT_SCHEMA_MODE = env('TENANT_SCHEMA_MODE', default='shared')
TENANT_BASE_DOMAIN = env('TENANT_BASE_DOMAIN', default='')
TENANT_TRIAL_DAYS = 14
BILLING_TRIAL_PLAN_CODE = env('BILLING_TRIAL_PLAN_CODE', default='professional')

# Request pipeline
PIPELINE_SLOW_HANDLER_MS = env.int('PIPELINE_SLOW_HANDLER_MS', default=500)

# Cache lifetimes (seconds)
FEATURE_CACHE_TIMEOUT = 60 * 30
PERMISSION_CACHE_TIMEOUT = 60 * 15

# Outbound webhooks
WEBHOOK_RESPONSE_BODY_LIMIT = 1000
WEBHOOK_USER_AGENT = f'SuperEcom-Webhooks/{VERSION}'

# Courier and marketplace integrations
COURIER_API_BASE_URLS = {
    'Shiprocket': env('SHIPROCKET_BASE_URL', default='https://apiv2.shiprocket.in/v1/external'),
    'Delhivery': env('DELHIVERY_BASE_URL', default='https://track.delhivery.com'),
    'BlueDart': env('BLUEDART_BASE_URL', default='https://apigateway.bluedart.com/in/transportation'),
    'DTDC': env('DTDC_BASE_URL', default='https://blktracksvc.dtdc.com'),
}
INTEGRATION_HTTP_TIMEOUT = env.float('INTEGRATION_HTTP_TIMEOUT', default=30.0)
SHOPIFY_API_VERSION = '2024-01'

# Logging Configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
        'json': {
            '()': 'pythonjsonlogger.jsonlogger.JsonFormatter',
            'format': '%(asctime)s %(name)s %(levelname)s %(message)s'
        },
    },
    'filters': {
        'require_debug_false': {
            '()': 'django.utils.log.RequireDebugFalse',
        },
        'require_debug_true': {
            '()': 'django.utils.log.RequireDebugTrue',
        },
    },
    'handlers': {
        'console': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
        'file': {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': env('LOG_FILE', default=str(BASE_DIR / 'app.log')),
            'maxBytes': 1024 * 1024 * 15,  # 15MB
            'backupCount': 10,
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# Assistant chat
CHAT_ARCHIVE_AFTER_DAYS = env.int('CHAT_ARCHIVE_AFTER_DAYS', default=30)
CHAT_CONVERSATION_LIST_LIMIT = env.int('CHAT_CONVERSATION_LIST_LIMIT', default=50)
