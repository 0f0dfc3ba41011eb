"""
Global error handling for the SuperEcom API.

Every failure leaves the API in the same envelope::

    {"success": false, "data": null, "message": "...", "errors": [...]}

Mapping: validation 400, not found 404, unauthenticated 401, forbidden 403,
feature disabled 402, tenant not found 400, anything else 500 (logged
with its stack trace).
"""

import logging

from django.core.exceptions import (
    NON_FIELD_ERRORS,
    ObjectDoesNotExist,
    PermissionDenied as DjangoPermissionDenied,
    ValidationError as DjangoValidationError,
)
from django.http import Http404
from django.views.decorators.cache import never_cache
from django.views.decorators.csrf import requires_csrf_token
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import set_rollback

from .exceptions import DomainError
from .responses import envelope, error_response

logger = logging.getLogger(__name__)

VALIDATION_MESSAGE = 'Validation failed'
UNEXPECTED_MESSAGE = 'An unexpected error occurred'
UNAUTHENTICATED_MESSAGE = 'Authentication required'

_NON_FIELD_KEYS = {NON_FIELD_ERRORS, 'non_field_errors', 'detail'}


def flatten_errors(detail, field=None):
    """Turn nested field -> message structures into flat 'field: message' strings."""
    if isinstance(detail, dict):
        messages = []
        for key, value in detail.items():
            nested_field = None if key in _NON_FIELD_KEYS else (f'{field}.{key}' if field else str(key))
            messages.extend(flatten_errors(value, nested_field))
        return messages
    if isinstance(detail, (list, tuple)):
        messages = []
        for item in detail:
            messages.extend(flatten_errors(item, field))
        return messages
    text = str(detail)
    return [f'{field}: {text}' if field else text]


def _django_validation_errors(exc: DjangoValidationError):
    if hasattr(exc, 'error_dict'):
        return flatten_errors(exc.message_dict)
    return flatten_errors(exc.messages)


def _classify(exc):
    """Return (status, message, errors) for a known exception, or None."""
    if isinstance(exc, DjangoValidationError):
        return status.HTTP_400_BAD_REQUEST, VALIDATION_MESSAGE, _django_validation_errors(exc)

    if isinstance(exc, drf_exceptions.ValidationError):
        return status.HTTP_400_BAD_REQUEST, VALIDATION_MESSAGE, flatten_errors(exc.detail)

    if isinstance(exc, DomainError):
        return exc.status_code, exc.message, getattr(exc, 'errors', None) or None

    if isinstance(exc, (Http404, ObjectDoesNotExist, drf_exceptions.NotFound)):
        return status.HTTP_404_NOT_FOUND, 'Resource not found', None

    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        message = str(exc.detail) if isinstance(exc, drf_exceptions.AuthenticationFailed) else UNAUTHENTICATED_MESSAGE
        return status.HTTP_401_UNAUTHORIZED, message, None

    if isinstance(exc, (DjangoPermissionDenied, drf_exceptions.PermissionDenied)):
        message = getattr(exc, 'detail', None) or str(exc) or 'You do not have permission to perform this action.'
        return status.HTTP_403_FORBIDDEN, str(message), None

    if isinstance(exc, drf_exceptions.APIException):
        return exc.status_code, str(exc.detail), None

    return None


def api_exception_handler(exc, context):
    """DRF ``EXCEPTION_HANDLER``: map any exception to the error envelope."""
    set_rollback()
    request = context.get('request')
    view = context.get('view')
    path = getattr(request, 'path', '')
    view_name = view.__class__.__name__ if view is not None else 'unknown'

    classified = _classify(exc)
    if classified is None:
        logger.error("Unhandled exception in %s for %s: %s", view_name, path, exc, exc_info=exc)
        return Response(
            envelope(success=False, message=UNEXPECTED_MESSAGE),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    status_code, message, errors = classified
    logger.warning("%s in %s for %s: %s", exc.__class__.__name__, view_name, path, message)

    response = Response(envelope(success=False, message=message, errors=errors), status=status_code)
    if isinstance(exc, drf_exceptions.APIException):
        auth_header = getattr(exc, 'auth_header', None)
        if auth_header:
            response['WWW-Authenticate'] = auth_header
        wait = getattr(exc, 'wait', None)
        if wait is not None:
            response['Retry-After'] = str(int(wait))
    return response


@never_cache
def handler404(request, exception=None):
    logger.warning(f"404 error for path: {request.path} from IP: {request.META.get('REMOTE_ADDR')}")
    return error_response('Resource not found', status=404)


@never_cache
def handler500(request):
    logger.error(f"500 error for path: {request.path} from IP: {request.META.get('REMOTE_ADDR')}")
    return error_response(UNEXPECTED_MESSAGE, status=500)


@never_cache
def handler403(request, exception=None):
    logger.warning(f"403 error for path: {request.path} from IP: {request.META.get('REMOTE_ADDR')}")
    return error_response('You do not have permission to access this resource.', status=403)


@never_cache
@requires_csrf_token
def csrf_failure(request, reason=""):
    logger.warning(f"CSRF failure for path: {request.path} - Reason: {reason}")
    return error_response('CSRF verification failed.', status=403)
