"""
DRF authentication backed by bearer JWTs.
"""

import logging

from django.contrib.auth import get_user_model
from rest_framework import authentication, exceptions

from .tokens import TokenError, decode_access_token, is_platform_token

logger = logging.getLogger(__name__)

User = get_user_model()


class BaseBearerAuthentication(authentication.BaseAuthentication):
    keyword = 'Bearer'

    def get_raw_token(self, request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed('Invalid authorization header.')
        try:
            return header[1].decode()
        except UnicodeError as exc:
            raise exceptions.AuthenticationFailed('Invalid authorization header.') from exc

    def decode(self, raw_token):
        try:
            return decode_access_token(raw_token)
        except TokenError as exc:
            raise exceptions.AuthenticationFailed(str(exc)) from exc

    def authenticate_header(self, request):
        return self.keyword


class JWTAuthentication(BaseBearerAuthentication):
    """Authenticates tenant users. Platform-admin tokens are rejected."""

    def authenticate(self, request):
        raw_token = self.get_raw_token(request)
        if raw_token is None:
            return None

        claims = self.decode(raw_token)
        if is_platform_token(claims):
            return None

        user = (User.objects.select_related('tenant')
                .filter(pk=claims.get('sub'), is_active=True, tenant__isnull=False)
                .first())
        if user is None:
            raise exceptions.AuthenticationFailed('User not found or inactive.')
        if str(user.tenant_id) != str(claims.get('tenant_id')):
            raise exceptions.AuthenticationFailed('Token tenant mismatch.')
        return user, claims


class PlatformAdminJWTAuthentication(BaseBearerAuthentication):
    """Authenticates platform administrators from ``type=platform_admin`` tokens."""

    def authenticate(self, request):
        raw_token = self.get_raw_token(request)
        if raw_token is None:
            return None

        claims = self.decode(raw_token)
        if not is_platform_token(claims):
            return None

        from apps.super_admin.models import PlatformAdmin

        admin = PlatformAdmin.objects.filter(pk=claims.get('sub'), is_active=True).first()
        if admin is None:
            raise exceptions.AuthenticationFailed('Platform administrator not found or inactive.')
        return admin, claims
