import secrets

from django.utils import timezone


def generate_number(prefix: str) -> str:
    """Human-readable document number, e.g. ``ORD-20250101093000-4F2A9C``."""
    stamp = timezone.now().strftime('%Y%m%d%H%M%S')
    return f"{prefix}-{stamp}-{secrets.token_hex(3).upper()}"
