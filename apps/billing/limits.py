from django.core.exceptions import ValidationError
from django.utils import timezone


def _plan_for(tenant):
    from .models import Subscription

    subscription = Subscription.objects.select_related('plan').filter(tenant_id=tenant.pk).first()
    return subscription.plan if subscription else None


def _check(limit, current, field, label):
    # 0 means unlimited
    if limit and current >= limit:
        raise ValidationError({field: f"Your plan allows at most {limit} {label}."})


def check_user_limit(tenant):
    from apps.accounts.models import User

    plan = _plan_for(tenant)
    if plan is None:
        return
    current = User.objects.filter(tenant=tenant, is_active=True).count()
    _check(plan.max_users, current, 'users', 'active users')


def check_channel_limit(tenant):
    from apps.channels.models import SalesChannel

    plan = _plan_for(tenant)
    if plan is None:
        return
    current = SalesChannel.objects.for_tenant(tenant).filter(is_active=True).count()
    _check(plan.max_channels, current, 'channels', 'sales channels')


def check_monthly_order_limit(tenant):
    from apps.orders.models import Order

    plan = _plan_for(tenant)
    if plan is None:
        return
    month_start = timezone.now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    current = Order.objects.for_tenant(tenant).filter(created_at__gte=month_start).count()
    _check(plan.max_orders_per_month, current, 'orders', 'orders per month')
