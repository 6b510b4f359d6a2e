"""Click aggregation logic for analytics."""

from linktrack.aggregators.link_analytics import (
    LinkAnalytics,
    summarize,
    summarize_clicks,
)

__all__ = [
    "LinkAnalytics",
    "summarize",
    "summarize_clicks",
]
