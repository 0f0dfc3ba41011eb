"""
Performance settings for the SuperEcom back-office.
Cache layouts, database pooling and Celery routing.
"""

# Database Performance
DATABASE_PERFORMANCE = {
    'CONN_MAX_AGE': 600,  # 10 minutes connection pooling
    'ATOMIC_REQUESTS': True,
    'CONN_HEALTH_CHECKS': True,
}


def redis_caches(url):
    """Cache configuration backed by Redis through django-redis."""
    return {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': url,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
                'CONNECTION_POOL_KWARGS': {
                    'max_connections': 50,
                    'retry_on_timeout': True,
                },
                'COMPRESSOR': 'django_redis.compressors.zlib.ZlibCompressor',
                'SERIALIZER': 'django_redis.serializers.json.JSONSerializer',
            },
            'KEY_PREFIX': 'superecom',
            'TIMEOUT': 300,  # 5 minutes default
            'VERSION': 1,
        },
    }


# In-memory fallback used when no Redis is configured
LOCAL_MEMORY_CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'superecom_local_cache',
        'TIMEOUT': 300,
        'KEY_PREFIX': 'superecom',
    },
}

# Celery Performance
CELERY_PERFORMANCE = {
    'BROKER_CONNECTION_RETRY_ON_STARTUP': True,
    'TASK_ACKS_LATE': True,
    'WORKER_PREFETCH_MULTIPLIER': 1,
    'TASK_ROUTES': {
        'apps.webhooks.tasks.deliver_webhook': {'queue': 'webhooks'},
        'apps.webhooks.tasks.retry_pending_deliveries': {'queue': 'webhooks'},
        'apps.ndr.tasks.flag_overdue_follow_ups': {'queue': 'maintenance'},
        'apps.inventory.tasks.send_low_stock_alerts': {'queue': 'maintenance'},
        'apps.accounts.tasks.purge_expired_refresh_tokens': {'queue': 'maintenance'},
        'apps.billing.tasks.expire_lapsed_subscriptions': {'queue': 'maintenance'},
        'apps.chat.tasks.archive_stale_conversations': {'queue': 'maintenance'},
    },
    'WORKER_CONCURRENCY': 4,
    'TASK_TIME_LIMIT': 1800,  # 30 minutes
    'TASK_SOFT_TIME_LIMIT': 1500,  # 25 minutes
}
