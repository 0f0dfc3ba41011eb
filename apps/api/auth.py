"""
Tenant user authentication endpoints: login, token refresh, registration,
logout, password reset and the current-user profile.
"""

from django.db import transaction
from django.utils.decorators import method_decorator
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.permissions import IsTenantMember
from apps.accounts.services import auth_service
from apps.core.http import client_ip

from .base import validated
from .serializers import (
    ChangePasswordInputSerializer,
    CurrentUserSerializer,
    ForgotPasswordInputSerializer,
    LoginInputSerializer,
    RefreshInputSerializer,
    RegisterInputSerializer,
    ResetPasswordInputSerializer,
    UserSerializer,
)

FORGOT_PASSWORD_MESSAGE = "If the account exists, password reset instructions have been sent."


def token_payload(result):
    return {
        'access_token': result['access_token'],
        'refresh_token': result['refresh_token'],
        'token_type': 'Bearer',
        'expires_at': result['expires_at'],
        'user': UserSerializer(result['user']).data,
    }


class PublicAuthView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    tenant_required = False


# Lockout counters must survive the failed attempt, so the request transaction is skipped
@method_decorator(transaction.non_atomic_requests, name='dispatch')
class LoginView(PublicAuthView):

    def post(self, request):
        data = validated(LoginInputSerializer, request.data)
        tenant_slug = data.get('tenant_slug') or getattr(getattr(request, 'tenant', None), 'slug', None)
        result = auth_service.login(
            tenant_slug=tenant_slug,
            email=data['email'],
            password=data['password'],
            ip_address=client_ip(request),
        )
        return Response(token_payload(result))


@method_decorator(transaction.non_atomic_requests, name='dispatch')
class RefreshTokenView(PublicAuthView):

    def post(self, request):
        data = validated(RefreshInputSerializer, request.data)
        result = auth_service.refresh(token=data['refresh_token'], ip_address=client_ip(request))
        return Response(token_payload(result))


class RegisterView(PublicAuthView):

    def post(self, request):
        data = validated(RegisterInputSerializer, request.data)
        result = auth_service.register(
            company_name=data['company_name'],
            slug=data.get('slug') or None,
            email=data['email'],
            password=data['password'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            phone=data['phone'],
            ip_address=client_ip(request),
        )
        payload = token_payload(result)
        payload['tenant'] = {'id': str(result['tenant'].pk), 'slug': result['tenant'].slug,
                             'name': result['tenant'].name}
        return Response(payload, status=status.HTTP_201_CREATED)


class ForgotPasswordView(PublicAuthView):

    def post(self, request):
        data = validated(ForgotPasswordInputSerializer, request.data)
        auth_service.forgot_password(tenant_slug=data['tenant_slug'], email=data['email'])
        return Response({'success': True, 'data': None, 'message': FORGOT_PASSWORD_MESSAGE, 'errors': None})


class ResetPasswordView(PublicAuthView):

    def post(self, request):
        data = validated(ResetPasswordInputSerializer, request.data)
        auth_service.reset_password(uid=data['uid'], token=data['token'], new_password=data['new_password'],
                                    ip_address=client_ip(request))
        return Response({'success': True, 'data': None, 'message': "Password has been reset.", 'errors': None})


class LogoutView(APIView):
    permission_classes = [IsTenantMember]

    def post(self, request):
        data = validated(RefreshInputSerializer, request.data)
        revoked = auth_service.revoke(token=data['refresh_token'], ip_address=client_ip(request),
                                      actor=request.user)
        return Response({'revoked': revoked})


class MeView(APIView):
    permission_classes = [IsTenantMember]

    def get(self, request):
        return Response(CurrentUserSerializer(request.user).data)


class ChangePasswordView(APIView):
    permission_classes = [IsTenantMember]

    def post(self, request):
        data = validated(ChangePasswordInputSerializer, request.data)
        auth_service.change_password(actor=request.user, current_password=data['current_password'],
                                     new_password=data['new_password'], ip_address=client_ip(request))
        return Response({'success': True, 'data': None, 'message': "Password changed.", 'errors': None})
