"""
Envelope helpers shared by the renderer, the exception handler and the
middleware that answers outside DRF.
"""

from django.http import JsonResponse

ENVELOPE_KEYS = frozenset(('success', 'data', 'message', 'errors'))


def envelope(*, success, data=None, message=None, errors=None):
    return {
        'success': success,
        'data': data,
        'message': message,
        'errors': errors,
    }


def error_response(message, *, status=400, errors=None):
    """JSON error envelope for code paths outside DRF (middleware, URL handlers)."""
    return JsonResponse(envelope(success=False, message=message, errors=errors), status=status)
