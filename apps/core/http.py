def client_ip(request):
    """Best-effort client address, honouring the first X-Forwarded-For hop."""
    if not request:
        return None
    xff = request.META.get('HTTP_X_FORWARDED_FOR')
    if xff:
        return xff.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR') or None
