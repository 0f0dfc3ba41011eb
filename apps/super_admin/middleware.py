from django.utils.deprecation import MiddlewareMixin

from apps.core.responses import error_response

from .models import PlatformConfig

MAINTENANCE_MESSAGE = "The platform is currently under maintenance. Please try again later."


class MaintenanceModeMiddleware(MiddlewareMixin):
    """
    While platform maintenance is on, answer tenant API requests with a 503
    JSON envelope. Health checks, docs, the Django admin and the platform
    admin API stay reachable so operators can switch it off again.
    """

    ALLOW_PATH_PREFIXES = (
        '/static/',
        '/health',
        '/admin',
        '/api/docs',
        '/api/schema',
        '/api/redoc',
        '/api/v1/platform/',
        '/__debug__/',
    )

    def process_request(self, request):
        path = request.path or ''
        if any(path.startswith(prefix) for prefix in self.ALLOW_PATH_PREFIXES):
            return None
        if not PlatformConfig.get_solo().maintenance_mode:
            return None
        return error_response(MAINTENANCE_MESSAGE, status=503)
