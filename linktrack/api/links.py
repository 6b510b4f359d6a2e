"""Link CRUD endpoints."""

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from linktrack.aggregators import summarize
from linktrack.core.config import get_settings
from linktrack.core.deps import StoreDep
from linktrack.core.errors import CodeConflict, NotFound, ValidationError
from linktrack.core.observability import record_link_operation
from linktrack.core.rate_limit import RATE_LIMIT_API, RATE_LIMIT_CREATE_LINK, limiter
from linktrack.core.redis import invalidate_link_cache
from linktrack.schemas import (
    AnalyticsSummary,
    LinkAnalyticsResponse,
    LinkCreate,
    LinkCreatedResponse,
    LinkResponse,
    MessageResponse,
)

settings = get_settings()
logger = structlog.get_logger()

router = APIRouter(prefix="/links", tags=["links"])


def build_trackable_url(request: Request, short_code: str) -> str:
    """Full redirect URL for a short code."""
    base_url = settings.public_base_url or str(request.base_url)
    return f"{base_url.rstrip('/')}/r/{short_code}"


@router.post("", response_model=LinkCreatedResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_CREATE_LINK)
async def create_link(
    request: Request,
    link_data: LinkCreate,
    store: StoreDep,
) -> LinkCreatedResponse:
    """Create a new trackable link.

    If `customCode` is provided, it will be used as the short code.
    Otherwise, a random 6-character code will be generated.
    """
    try:
        link = await store.create_link(
            destination_url=link_data.destination_url,
            title=link_data.title,
            custom_code=link_data.custom_code,
            source=link_data.source,
        )
    except (ValidationError, CodeConflict) as e:
        logger.info("Link rejected", reason=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    logger.info(
        "Link created",
        link_id=str(link.id),
        short_code=link.short_code,
        custom=link_data.custom_code is not None,
    )
    record_link_operation("create")
    return LinkCreatedResponse(
        id=link.id,
        short_code=link.short_code,
        trackable_url=build_trackable_url(request, link.short_code),
        destination_url=link.destination_url,
        title=link.title,
        source=link.source,
    )


@router.get("", response_model=list[LinkResponse])
@limiter.limit(RATE_LIMIT_API)
async def list_links(
    request: Request,
    store: StoreDep,
) -> list[LinkResponse]:
    """List all links, newest first."""
    links = await store.list_links()
    return [LinkResponse.model_validate(link) for link in links]


@router.delete("/{link_id}", response_model=MessageResponse)
@limiter.limit(RATE_LIMIT_API)
async def delete_link(
    request: Request,
    link_id: str,
    store: StoreDep,
) -> MessageResponse:
    """Delete a link and all of its clicks.

    Deleting a link that does not exist is not an error.
    """
    link = await store.delete_link(link_id)
    if link is not None:
        # Stop redirecting from the cache right away
        await invalidate_link_cache(link.short_code)
        logger.info("Link deleted", link_id=link_id, short_code=link.short_code)
        record_link_operation("delete")
    else:
        logger.info("Link already absent", link_id=link_id)

    return MessageResponse(message="Link deleted successfully")


@router.get("/{link_id}/analytics", response_model=LinkAnalyticsResponse)
@limiter.limit(RATE_LIMIT_API)
async def get_link_analytics(
    request: Request,
    link_id: str,
    store: StoreDep,
) -> LinkAnalyticsResponse:
    """Get click analytics for a specific link."""
    try:
        link, analytics = await summarize(store, link_id)
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Link not found",
        )

    return LinkAnalyticsResponse(
        link=LinkResponse.model_validate(link),
        analytics=AnalyticsSummary.model_validate(analytics),
    )
