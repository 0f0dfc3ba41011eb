"""
Domain exceptions raised by services and the handler pipeline.

Business-rule violations keep using ``django.core.exceptions.ValidationError``;
the classes here cover the other failure categories. Each one maps to a
single HTTP status in `apps.core.error_handlers`.
"""


class DomainError(Exception):
    """Base class for domain failures that carry a user-facing message."""

    status_code = 400
    default_message = 'Request could not be processed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(DomainError):
    status_code = 404
    default_message = 'Resource not found'

    def __init__(self, message=None, *, resource=None, key=None):
        if message is None and resource is not None:
            message = f'{resource} ({key}) was not found.' if key is not None else f'{resource} was not found.'
        super().__init__(message)


class UnauthorizedError(DomainError):
    status_code = 401
    default_message = 'Authentication required'


class ForbiddenError(DomainError):
    status_code = 403
    default_message = 'You do not have permission to perform this action.'


class FeatureDisabledError(DomainError):
    status_code = 402
    default_message = 'This feature is not available on your current plan.'

    def __init__(self, feature=None, message=None):
        self.feature = feature
        if message is None and feature:
            message = f"Feature '{feature}' is not enabled for your plan."
        super().__init__(message)


class TenantNotFoundError(DomainError):
    status_code = 400
    default_message = 'Tenant not found'


class ConflictError(DomainError):
    status_code = 409
    default_message = 'The resource was modified or already exists.'


class IntegrationError(DomainError):
    """A courier or marketplace API refused or failed the request."""

    status_code = 502
    default_message = 'The external service could not complete the request.'

    def __init__(self, message=None, errors=None):
        self.errors = list(errors or [])
        super().__init__(message)
