from slowapi import Limiter
from slowapi.util import get_remote_address

from bookscan.core.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def lookup_rate_limit() -> str:
    """Limit for routes that fan out to the external lookup services."""
    settings = get_settings()
    return f"{settings.rate_limit_requests}/{settings.rate_limit_window_seconds} seconds"
