"""Helpers for pulling client metadata out of a request."""

from starlette.requests import Request

from linktrack.models.click import UNKNOWN_IP


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request.

    Handles X-Forwarded-For header for requests behind proxies/load balancers.
    """
    # X-Forwarded-For can contain multiple IPs: client, proxy1, proxy2
    # The first one is the original client
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    # Common in nginx setups
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_IP


def get_referrer(request: Request) -> str:
    """Referer header (either spelling), empty if absent."""
    return request.headers.get("Referer") or request.headers.get("Referrer") or ""


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "")
