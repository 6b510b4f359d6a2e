"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from starlette.requests import Request

from linktrack.core.config import get_settings
from linktrack.core.request_info import get_client_ip

settings = get_settings()


def rate_limit_key(request: Request) -> str:
    """Key requests by the originating client IP."""
    return get_client_ip(request)


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.rate_limit_default],
    storage_uri=settings.redis_url or "memory://",
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)

# Rate limit constants for different endpoint types
# These can be used as decorators: @limiter.limit(RATE_LIMIT_REDIRECT)

# Redirect endpoint is the hot path
RATE_LIMIT_REDIRECT = settings.rate_limit_redirect

# Link creation - prevent spam/abuse
RATE_LIMIT_CREATE_LINK = settings.rate_limit_create_link

# General API endpoints
RATE_LIMIT_API = settings.rate_limit_api
