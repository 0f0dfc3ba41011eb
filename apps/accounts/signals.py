from django.db.models.signals import m2m_changed
from django.dispatch import receiver

from .models import Role, User


@receiver(m2m_changed, sender=User.roles.through)
def on_user_roles_changed(sender, instance, action, reverse, pk_set, **kwargs):
    if action not in ('post_add', 'post_remove', 'post_clear'):
        return
    if reverse:
        # instance is a Role; pk_set holds user ids (empty on clear)
        users = instance.users.all() if not pk_set else User.objects.filter(pk__in=pk_set)
        for user in users:
            user.invalidate_permission_cache()
    else:
        instance.invalidate_permission_cache()


@receiver(m2m_changed, sender=Role.permissions.through)
def on_role_permissions_changed(sender, instance, action, reverse, **kwargs):
    if action not in ('post_add', 'post_remove', 'post_clear'):
        return
    roles = [instance] if not reverse else list(instance.roles.all())
    for role in roles:
        for user in role.users.all():
            user.invalidate_permission_cache()
