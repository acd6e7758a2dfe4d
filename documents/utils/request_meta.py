import ipaddress


def clean_ip(value):
    """Return ``value`` as a normalised IP string, or ``None`` if it is not one."""
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(str(value).strip()))
    except ValueError:
        return None


def client_ip(request):
    meta = request.META
    forwarded = meta.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        ip = clean_ip(forwarded.split(",")[0])
        if ip:
            return ip
    ip = clean_ip(meta.get("HTTP_X_REAL_IP"))
    if ip:
        return ip
    return clean_ip(meta.get("REMOTE_ADDR"))


def client_user_agent(request):
    return request.META.get("HTTP_USER_AGENT", "")[:512]
