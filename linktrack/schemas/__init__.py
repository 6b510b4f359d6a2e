"""Pydantic schemas."""

from linktrack.schemas.analytics import (
    AnalyticsSummary,
    ClickResponse,
    HealthResponse,
    LinkAnalyticsResponse,
)
from linktrack.schemas.link import (
    LinkCreate,
    LinkCreatedResponse,
    LinkResponse,
    MessageResponse,
)

__all__ = [
    "AnalyticsSummary",
    "ClickResponse",
    "HealthResponse",
    "LinkAnalyticsResponse",
    "LinkCreate",
    "LinkCreatedResponse",
    "LinkResponse",
    "MessageResponse",
]
