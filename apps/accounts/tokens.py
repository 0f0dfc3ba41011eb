"""
JWT access tokens and opaque refresh tokens.

Access tokens are HS256 JWTs signed with ``JWT_SECRET_KEY``. Refresh tokens
are random URL-safe strings; only their digest is persisted.
"""

import secrets
import uuid
from datetime import timedelta

import jwt
from django.conf import settings
from django.utils import timezone

TOKEN_TYPE_PLATFORM_ADMIN = 'platform_admin'


class TokenError(Exception):
    """Raised when a token cannot be decoded or validated."""


def access_token_lifetime() -> timedelta:
    return timedelta(minutes=settings.JWT_ACCESS_TOKEN_LIFETIME_MINUTES)


def refresh_token_lifetime() -> timedelta:
    return timedelta(days=settings.JWT_REFRESH_TOKEN_LIFETIME_DAYS)


def _encode(claims: dict):
    now = timezone.now()
    expires_at = now + access_token_lifetime()
    payload = {
        **claims,
        'jti': uuid.uuid4().hex,
        'iss': settings.JWT_ISSUER,
        'aud': settings.JWT_AUDIENCE,
        'iat': int(now.timestamp()),
        'nbf': int(now.timestamp()),
        'exp': int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return token, expires_at


def issue_access_token(user):
    """Return ``(token, expires_at)`` for a tenant user."""
    tenant = user.tenant
    return _encode({
        'sub': str(user.pk),
        'email': user.email,
        'name': user.full_name,
        'tenant_id': str(tenant.pk),
        'tenant_slug': tenant.slug,
        'roles': user.get_role_names(),
        'permissions': sorted(user.get_permission_codes()),
    })


def issue_platform_access_token(admin):
    roles = ['PlatformAdmin']
    if admin.is_super_admin:
        roles.append('SuperAdmin')
    return _encode({
        'sub': str(admin.pk),
        'email': admin.email,
        'name': admin.full_name,
        'type': TOKEN_TYPE_PLATFORM_ADMIN,
        'roles': roles,
    })


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(64)


def decode_access_token(token: str) -> dict:
    """Validate signature, issuer, audience and expiry; return the claims."""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options={'require': ['exp', 'sub', 'iat']},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError('Token has expired') from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError('Invalid token') from exc


def is_platform_token(claims: dict) -> bool:
    return claims.get('type') == TOKEN_TYPE_PLATFORM_ADMIN
