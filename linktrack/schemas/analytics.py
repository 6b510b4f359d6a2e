"""Pydantic schemas for analytics API responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from linktrack.schemas.link import CamelModel, LinkResponse


class ClickResponse(CamelModel):
    """A single recorded click."""

    id: UUID
    link_id: UUID
    ip_address: str
    user_agent: str
    referrer: str
    country: str | None = Field(default=None, description="ISO 3166-1 alpha-2 country code")
    city: str | None = None
    clicked_at: datetime


class AnalyticsSummary(CamelModel):
    """Summary statistics for a link."""

    total_clicks: int = Field(description="Total number of clicks")
    unique_visitors: int = Field(description="Distinct known client IPs")
    referrers: dict[str, int] = Field(
        description="Top referrer hostnames with click counts, highest first"
    )
    countries: dict[str, int] = Field(
        description="Top countries with click counts, highest first"
    )
    recent_clicks: list[ClickResponse] = Field(description="Latest clicks, newest first")


class LinkAnalyticsResponse(CamelModel):
    """A link together with its analytics."""

    link: LinkResponse
    analytics: AnalyticsSummary


class HealthResponse(BaseModel):
    """Service liveness and store size."""

    status: str
    message: str
    environment: str
    links_count: int
    clicks_count: int
