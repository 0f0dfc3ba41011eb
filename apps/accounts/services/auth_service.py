"""
Tenant user authentication: login, refresh-token rotation, logout,
registration and password management.

Failed-login counters and token revocations must survive the error that
follows them, so the views calling `login` and `refresh` opt out of
ATOMIC_REQUESTS and these functions commit their own row-locked updates
before raising.
"""

import logging

from django.contrib.auth.password_validation import validate_password
from django.contrib.auth.tokens import default_token_generator
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_decode, urlsafe_base64_encode

from apps.core.exceptions import UnauthorizedError
from apps.core.pipeline import handler
from apps.tenants.services import create_tenant, get_tenant_by_slug

from ..models import RefreshToken, User
from ..tokens import generate_refresh_token, issue_access_token, refresh_token_lifetime

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_LOCKED = "Account is locked. Please try again later."
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


def issue_token_pair(user, ip_address=None):
    """Create an access token and a persisted refresh token for `user`."""
    access_token, expires_at = issue_access_token(user)
    raw_refresh = generate_refresh_token()
    RefreshToken.objects.create(
        user=user,
        tenant_id=user.tenant_id,
        token_hash=RefreshToken.hash_token(raw_refresh),
        expires_at=timezone.now() + refresh_token_lifetime(),
        created_by_ip=ip_address,
    )
    return {
        'access_token': access_token,
        'refresh_token': raw_refresh,
        'expires_at': expires_at,
        'user': user,
    }


@handler('Login', tenant_required=False, atomic=False)
def login(*, tenant_slug, email, password, ip_address=None, actor=None):
    tenant = get_tenant_by_slug(tenant_slug)
    if tenant is None or not tenant.is_active:
        logger.warning("Login attempt for unknown or inactive tenant %s", tenant_slug)
        raise UnauthorizedError(INVALID_CREDENTIALS)

    email = (email or "").strip().lower()
    failure = None
    with transaction.atomic():
        user = (User.objects.select_for_update()
                .filter(tenant=tenant, email=email, is_active=True)
                .first())
        if user is None:
            failure = INVALID_CREDENTIALS
        elif user.is_locked_out:
            failure = ACCOUNT_LOCKED
        elif not user.check_password(password):
            user.record_failed_login()
            failure = INVALID_CREDENTIALS
        else:
            user.record_login()

    if failure:
        logger.warning("Failed login for %s on tenant %s from %s: %s", email, tenant.slug, ip_address, failure)
        raise UnauthorizedError(failure)

    with transaction.atomic():
        result = issue_token_pair(user, ip_address)
    logger.info("User %s logged in to tenant %s", user.email, tenant.slug)
    return result


@handler('RefreshToken', tenant_required=False, atomic=False)
def refresh(*, token, ip_address=None, actor=None):
    token_hash = RefreshToken.hash_token(token or "")
    failure = None
    with transaction.atomic():
        stored = (RefreshToken.objects.select_for_update()
                  .select_related('user', 'user__tenant')
                  .filter(token_hash=token_hash)
                  .first())
        if stored is None or not stored.is_active:
            failure = INVALID_REFRESH_TOKEN
        elif not stored.user.is_active or not stored.user.tenant.is_active:
            stored.revoke(ip=ip_address, reason="User inactive")
            failure = "User account is inactive"
        else:
            result = issue_token_pair(stored.user, ip_address)
            stored.revoke(
                ip=ip_address,
                reason="Replaced by new token",
                replaced_by_hash=RefreshToken.hash_token(result['refresh_token']),
            )

    if failure:
        logger.warning("Refresh token rejected from %s: %s", ip_address, failure)
        raise UnauthorizedError(failure)
    return result


@handler('RevokeToken', tenant_required=False)
def revoke(*, token, ip_address=None, reason="Logout", actor=None):
    stored = (RefreshToken.objects.select_for_update()
              .filter(token_hash=RefreshToken.hash_token(token or ""))
              .first())
    if stored is None or not stored.is_active:
        return False
    if actor is not None and getattr(actor, 'pk', None) and stored.user_id != actor.pk:
        raise UnauthorizedError(INVALID_REFRESH_TOKEN)
    stored.revoke(ip=ip_address, reason=reason)
    return True


def revoke_all_for_user(user, *, ip_address=None, reason="Revoked"):
    count = 0
    for token in RefreshToken.objects.select_for_update().active().filter(user=user):
        token.revoke(ip=ip_address, reason=reason)
        count += 1
    return count


@handler('Register', tenant_required=False)
def register(*, company_name, slug, email, password, first_name="", last_name="", phone="",
             ip_address=None, actor=None):
    """Sign up a new merchant: tenant, trial subscription and owner, then log in."""
    validate_password(password)
    tenant, owner = create_tenant(
        name=company_name,
        slug=slug,
        company_name=company_name,
        contact_email=email,
        contact_phone=phone,
        owner_email=email,
        owner_password=password,
        owner_first_name=first_name,
        owner_last_name=last_name,
    )
    if phone:
        owner.phone = phone.strip()
        owner.save(update_fields=['phone', 'updated_at'])
    owner.record_login()
    return {'tenant': tenant, **issue_token_pair(owner, ip_address)}


@handler('ForgotPassword', tenant_required=False)
def forgot_password(*, tenant_slug, email, actor=None):
    """Issue a password reset token. Never reveals whether the account exists."""
    tenant = get_tenant_by_slug(tenant_slug)
    user = None
    if tenant is not None:
        user = User.objects.filter(tenant=tenant, email=(email or "").strip().lower(), is_active=True).first()
    if user is None:
        logger.info("Password reset requested for unknown account %s on %s", email, tenant_slug)
        return None

    uid = urlsafe_base64_encode(force_bytes(user.pk))
    token = default_token_generator.make_token(user)
    # Delivery channel is not wired up yet; the token is only logged
    logger.info("Password reset token for %s on %s: uid=%s token=%s", user.email, tenant.slug, uid, token)
    return {'uid': uid, 'token': token}


@handler('ResetPassword', tenant_required=False)
def reset_password(*, uid, token, new_password, ip_address=None, actor=None):
    try:
        user = User.objects.get(pk=force_str(urlsafe_base64_decode(uid)), is_active=True)
    except (User.DoesNotExist, ValueError, TypeError, OverflowError):
        raise ValidationError({'token': 'Invalid or expired reset token.'})
    if not default_token_generator.check_token(user, token):
        raise ValidationError({'token': 'Invalid or expired reset token.'})
    validate_password(new_password, user)
    user.set_password(new_password)
    user.failed_login_attempts = 0
    user.lockout_ends_at = None
    user.save(update_fields=['password', 'failed_login_attempts', 'lockout_ends_at', 'updated_at'])
    revoke_all_for_user(user, ip_address=ip_address, reason="Password reset")
    return user


@handler('ChangePassword')
def change_password(*, actor, current_password, new_password, ip_address=None):
    if not actor.check_password(current_password):
        raise ValidationError({'current_password': 'Current password is incorrect.'})
    validate_password(new_password, actor)
    actor.set_password(new_password)
    actor.save(update_fields=['password', 'updated_at'])
    revoked = revoke_all_for_user(actor, ip_address=ip_address, reason="Password changed")
    logger.info("User %s changed password; revoked %d refresh tokens", actor.email, revoked)
    return actor
