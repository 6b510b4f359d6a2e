"""API router - aggregates all endpoints."""

from fastapi import APIRouter

from linktrack.api.links import router as links_router
from linktrack.api.redirect import router as redirect_router
from linktrack.core.config import get_settings
from linktrack.core.deps import StoreDep
from linktrack.schemas import HealthResponse

settings = get_settings()

router = APIRouter()

# Include sub-routers
router.include_router(links_router)
router.include_router(redirect_router)


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(store: StoreDep) -> HealthResponse:
    """Health check endpoint with store size."""
    stats = await store.stats()
    return HealthResponse(
        status="ok",
        message="Link Tracker API is running",
        environment=settings.environment,
        **stats,
    )
