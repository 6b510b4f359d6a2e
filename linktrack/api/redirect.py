"""Redirect endpoint for short links."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse, Response

from linktrack.core.deps import GeoIPDep, StoreDep
from linktrack.core.errors import LinkTrackError, NotFound
from linktrack.core.observability import (
    record_click_failure,
    record_click_recorded,
    record_redirect,
    report_exception,
)
from linktrack.core.rate_limit import RATE_LIMIT_REDIRECT, limiter
from linktrack.core.redis import CachedLink, cache_link, get_cached_link, invalidate_link_cache
from linktrack.core.request_info import get_client_ip, get_referrer, get_user_agent
from linktrack.services.geoip import GeoIPService, GeoLocation
from linktrack.storage import LinkStore

logger = structlog.get_logger()

router = APIRouter(tags=["redirect"])


async def resolve_short_code(store: LinkStore, short_code: str) -> CachedLink | None:
    """Find the link behind a short code, cache first."""
    cached = await get_cached_link(short_code)
    if cached is not None:
        return cached

    link = await store.get_link_by_code(short_code)
    if link is None:
        return None

    resolved = CachedLink(link_id=link.id, destination_url=link.destination_url)
    await cache_link(short_code, resolved)
    return resolved


async def record_click_safely(
    store: LinkStore,
    geoip: GeoIPService,
    link_id: UUID,
    short_code: str,
    request: Request,
) -> None:
    """Record a click for a redirect without ever failing it.

    Failures are logged, counted and sent to Sentry. The one exception is
    NotFound: the link is gone, so it propagates and the redirect turns into
    a 404.
    """
    ip_address = get_client_ip(request)
    try:
        location = await geoip.lookup(ip_address)
    except Exception as e:
        # Location is optional; keep the click without it
        logger.warning("GeoIP lookup failed", short_code=short_code, error=str(e))
        location = GeoLocation()

    try:
        await store.record_click(
            link_id,
            ip_address=ip_address,
            user_agent=get_user_agent(request),
            referrer=get_referrer(request),
            country=location.country,
            city=location.city,
        )
    except NotFound:
        raise
    except LinkTrackError as e:
        logger.error(
            "Failed to record click",
            short_code=short_code,
            link_id=str(link_id),
            error=str(e),
            exc_info=True,
        )
        record_click_failure("storage")
        report_exception(e, short_code=short_code, link_id=str(link_id))
        return
    except Exception as e:
        # The redirect must go through whatever happens here
        logger.exception(
            "Unexpected error while recording click",
            short_code=short_code,
            link_id=str(link_id),
        )
        record_click_failure("unexpected")
        report_exception(e, short_code=short_code, link_id=str(link_id))
        return

    record_click_recorded()
    logger.debug("Click recorded", short_code=short_code, link_id=str(link_id))


@router.get("/r/{short_code}")
@limiter.limit(RATE_LIMIT_REDIRECT)
async def redirect_to_destination(
    request: Request,
    short_code: str,
    store: StoreDep,
    geoip: GeoIPDep,
) -> Response:
    """Redirect a short code to its destination URL.

    Flow:
    1. Look up the link (Redis cache, then the store)
    2. Unknown code: plain-text 404, nothing recorded
    3. Record the click (geolocation is best effort); a link deleted
       behind a stale cache entry drops the entry and answers 404
    4. Redirect with 302
    """
    resolved = await resolve_short_code(store, short_code)
    if resolved is None:
        logger.info("Redirect failed - link not found", short_code=short_code)
        record_redirect(status.HTTP_404_NOT_FOUND)
        return PlainTextResponse("Link not found", status_code=status.HTTP_404_NOT_FOUND)

    try:
        await record_click_safely(store, geoip, resolved.link_id, short_code, request)
    except NotFound:
        # Resolved through a cache entry that outlived the link
        await invalidate_link_cache(short_code)
        logger.info(
            "Redirect failed - link deleted",
            short_code=short_code,
            link_id=str(resolved.link_id),
        )
        record_redirect(status.HTTP_404_NOT_FOUND)
        return PlainTextResponse("Link not found", status_code=status.HTTP_404_NOT_FOUND)

    logger.info("Redirect", short_code=short_code, link_id=str(resolved.link_id))
    record_redirect(status.HTTP_302_FOUND)
    return RedirectResponse(url=resolved.destination_url, status_code=status.HTTP_302_FOUND)
