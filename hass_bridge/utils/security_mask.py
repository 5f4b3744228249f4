def mask_sensitive_id(value: str | None) -> str:
    """Mask flow ids, codes and tokens for logging, keeping the first 8 characters."""
    if not value:
        return "***EMPTY***"
    if len(value) <= 12:
        return "***MASKED***"
    return f"{value[:8]}..."


def anonymize_ip(ip_address: str | None) -> str:
    """Replace the host part of a client address with 'x'."""
    if not ip_address:
        return "unknown"
    if "." in ip_address:
        parts = ip_address.split(".")
        if len(parts) == 4:
            return ".".join(parts[:3] + ["x"])
    elif ":" in ip_address:
        parts = ip_address.split(":")
        parts[-1] = "x"
        return ":".join(parts)
    return ip_address
