"""Per-link click aggregation."""

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from urllib.parse import urlparse
from uuid import UUID

import structlog

from linktrack.core.errors import NotFound
from linktrack.models.click import Click
from linktrack.models.link import Link
from linktrack.storage.base import ClickBreakdown, LinkStore, breakdown_clicks

logger = structlog.get_logger()

TOP_N = 10
RECENT_CLICKS_LIMIT = 20


@dataclass
class LinkAnalytics:
    """Summary statistics derived from a link's click history."""

    total_clicks: int = 0
    unique_visitors: int = 0
    referrers: dict[str, int] = field(default_factory=dict)
    countries: dict[str, int] = field(default_factory=dict)
    recent_clicks: list[Click] = field(default_factory=list)


def referrer_host(referrer: str | None) -> str | None:
    """Hostname of a referrer URL, or None if there is none to parse."""
    if not referrer:
        return None
    try:
        return urlparse(referrer).hostname
    except ValueError:
        return None


def rank_counts(counts: Iterable[tuple[str, int]], limit: int = TOP_N) -> dict[str, int]:
    """Merge (key, count) pairs, highest total first, ties in first-seen order.

    Counter keeps first-insertion order and sorted() is stable, so the
    result depends only on the order of ``counts``.
    """
    totals: Counter[str] = Counter()
    for key, count in counts:
        totals[key] += count
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return dict(ranked[:limit])


def summarize_breakdown(breakdown: ClickBreakdown, top_n: int = TOP_N) -> LinkAnalytics:
    """Rank a store's raw counts; referrers are grouped by hostname."""
    hosts = ((referrer_host(referrer), count) for referrer, count in breakdown.referrer_counts)

    return LinkAnalytics(
        total_clicks=breakdown.total_clicks,
        unique_visitors=breakdown.unique_visitors,
        referrers=rank_counts(((host, count) for host, count in hosts if host), top_n),
        countries=rank_counts(breakdown.country_counts, top_n),
        recent_clicks=breakdown.recent_clicks,
    )


def summarize_clicks(
    clicks: Sequence[Click],
    top_n: int = TOP_N,
    recent_limit: int = RECENT_CLICKS_LIMIT,
) -> LinkAnalytics:
    """Aggregate clicks given in recording order (oldest first)."""
    return summarize_breakdown(breakdown_clicks(clicks, recent_limit), top_n)


async def summarize(store: LinkStore, link_id: UUID | str) -> tuple[Link, LinkAnalytics]:
    """Load a link and summarize its clicks.

    Raises NotFound if the link does not exist.
    """
    link = await store.get_link_by_id(link_id)
    if link is None:
        raise NotFound(f"Link {link_id} not found")

    breakdown = await store.click_breakdown(link.id, RECENT_CLICKS_LIMIT)
    analytics = summarize_breakdown(breakdown)

    logger.debug(
        "Analytics computed",
        link_id=str(link.id),
        total_clicks=analytics.total_clicks,
    )
    return link, analytics
