"""
Health monitoring and system diagnostics for SuperEcom.

``/health/`` runs the database, cache, system and application checks;
``/health/ready/`` and ``/health/live/`` are the orchestrator health checks.
"""

import logging
import time

import psutil
from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone
from django.views import View

logger = logging.getLogger(__name__)

RESOURCE_WARNING_PERCENT = 90


def check_database():
    started = time.time()
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError as e:
        logger.error("Database health check failed: %s", e)
        return {'status': 'unhealthy', 'error': str(e)}
    return {'status': 'healthy', 'response_time_ms': round((time.time() - started) * 1000, 2)}


def check_cache():
    started = time.time()
    try:
        cache.set('health_check', 'ok', 10)
        ok = cache.get('health_check') == 'ok'
    except Exception as e:  # cache backends raise their own client errors
        logger.error("Cache health check failed: %s", e)
        return {'status': 'unhealthy', 'error': str(e)}
    if not ok:
        return {'status': 'unhealthy', 'error': 'Cache round trip failed'}
    return {'status': 'healthy', 'response_time_ms': round((time.time() - started) * 1000, 2)}


def check_system():
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage('/')
    disk_percent = round((disk.used / disk.total) * 100, 2)
    cpu_percent = psutil.cpu_percent(interval=None)
    result = {
        'status': 'healthy',
        'memory_usage_percent': memory.percent,
        'disk_usage_percent': disk_percent,
        'cpu_usage_percent': cpu_percent,
        'load_average': psutil.getloadavg()[0] if hasattr(psutil, 'getloadavg') else None,
    }
    if max(memory.percent, disk_percent, cpu_percent) > RESOURCE_WARNING_PERCENT:
        result['status'] = 'warning'
    return result


def check_application():
    from apps.billing.models import Subscription
    from apps.tenants.models import Tenant
    from apps.webhooks.models import WebhookDelivery

    return {
        'status': 'healthy',
        'active_tenants': Tenant.objects.filter(status=Tenant.STATUS_ACTIVE, deleted_at__isnull=True).count(),
        'active_subscriptions': Subscription.objects.filter(status=Subscription.STATUS_ACTIVE).count(),
        'pending_webhook_deliveries': WebhookDelivery.objects.filter(
            status__in=(WebhookDelivery.STATUS_PENDING, WebhookDelivery.STATUS_RETRYING)).count(),
    }


class HealthCheckView(View):
    """
    Comprehensive health check endpoint for monitoring system status.
    """

    def get(self, request):
        start_time = time.time()
        checks = {
            'database': check_database(),
            'cache': check_cache(),
            'system': check_system(),
        }
        if checks['database']['status'] == 'healthy':
            checks['application'] = check_application()

        healthy = all(check['status'] != 'unhealthy' for check in checks.values())
        health_data = {
            'status': 'healthy' if healthy else 'unhealthy',
            'timestamp': timezone.now().isoformat(),
            'version': getattr(settings, 'VERSION', '1.0.0'),
            'checks': checks,
            'response_time_ms': round((time.time() - start_time) * 1000, 2),
        }
        return JsonResponse(health_data, status=200 if healthy else 503)


class ReadinessView(View):
    """
    Readiness check: the database and cache must both answer.
    """

    def get(self, request):
        database = check_database()
        cache_check = check_cache()
        ready = database['status'] == 'healthy' and cache_check['status'] == 'healthy'
        payload = {
            'status': 'ready' if ready else 'not_ready',
            'timestamp': timezone.now().isoformat(),
        }
        if not ready:
            payload['checks'] = {'database': database, 'cache': cache_check}
        return JsonResponse(payload, status=200 if ready else 503)


class LivenessView(View):

    def get(self, request):
        return JsonResponse({
            'status': 'alive',
            'timestamp': timezone.now().isoformat()
        })
