from django.contrib.auth import get_user_model


def history_user(instance=None, request=None, **kwargs):
    """`HistoricalRecords(get_user=...)` hook that only records tenant users."""
    user = getattr(request, 'user', None) if request is not None else None
    if user is not None and isinstance(user, get_user_model()):
        return user
    return None
