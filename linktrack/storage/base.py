"""Storage interface shared by all link store backends.

Business logic talks to a ``LinkStore``; which backend sits behind it
(in-memory for tests and demos, SQL for deployments) is decided once, when
the application is built.
"""

from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from linktrack.core.errors import CodeConflict, ValidationError
from linktrack.models.click import UNKNOWN_IP, Click
from linktrack.models.link import DEFAULT_TITLE, Link
from linktrack.services.codes import generate_short_code, validate_custom_code

DEFAULT_MAX_CODE_ATTEMPTS = 3


@dataclass
class ClickBreakdown:
    """Unranked counts over one link's clicks.

    ``referrer_counts`` and ``country_counts`` hold (value, count) pairs in
    first-seen order. ``recent_clicks`` is newest first.
    """

    total_clicks: int = 0
    unique_visitors: int = 0
    referrer_counts: list[tuple[str, int]] = field(default_factory=list)
    country_counts: list[tuple[str, int]] = field(default_factory=list)
    recent_clicks: list[Click] = field(default_factory=list)


class LinkStore(ABC):
    """Abstract base class for link/click storage backends.

    Implementations own both collections. Every mutation of the click
    counter happens together with the click insert, so ``click_count``
    always equals the number of stored clicks.
    """

    def __init__(self, max_code_attempts: int = DEFAULT_MAX_CODE_ATTEMPTS):
        self._max_code_attempts = max(1, max_code_attempts)
        self._last_timestamp: datetime | None = None

    # Links

    @abstractmethod
    async def create_link(
        self,
        destination_url: str,
        title: str | None = None,
        custom_code: str | None = None,
        source: str | None = None,
    ) -> Link:
        """Create a link.

        Raises ValidationError for a blank destination URL or a malformed
        custom code, CodeConflict if the code is taken.
        """

    @abstractmethod
    async def get_link_by_code(self, short_code: str) -> Link | None:
        """Get a link by its short code."""

    @abstractmethod
    async def get_link_by_id(self, link_id: UUID | str) -> Link | None:
        """Get a link by its ID. Malformed IDs are not found."""

    @abstractmethod
    async def list_links(self) -> list[Link]:
        """All links, newest first."""

    @abstractmethod
    async def delete_link(self, link_id: UUID | str) -> Link | None:
        """Delete a link together with its clicks.

        Returns the removed link, or None if there was nothing to delete.
        """

    # Clicks

    @abstractmethod
    async def record_click(
        self,
        link_id: UUID | str,
        ip_address: str,
        user_agent: str,
        referrer: str,
        country: str | None = None,
        city: str | None = None,
    ) -> Click:
        """Store a click and bump the link's counter in one step.

        Raises NotFound if the link does not exist.
        """

    @abstractmethod
    async def list_clicks(self, link_id: UUID | str) -> list[Click]:
        """Clicks for a link in the order they were recorded."""

    async def click_breakdown(self, link_id: UUID | str, recent_limit: int) -> ClickBreakdown:
        """Count a link's clicks by referrer and country.

        The default walks the full history; backends that can count in the
        database override it.
        """
        return breakdown_clicks(await self.list_clicks(link_id), recent_limit)

    @abstractmethod
    async def stats(self) -> dict[str, int]:
        """Store size for the health endpoint."""

    async def close(self) -> None:
        """Release backend resources."""

    # Helpers for implementations

    def _now(self) -> datetime:
        """Current UTC time, strictly increasing across calls on this store."""
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _code_candidates(self, custom_code: str | None) -> Iterable[str]:
        """Short codes to try inserting, in order."""
        if custom_code is not None:
            return [custom_code]
        return (generate_short_code() for _ in range(self._max_code_attempts))

    def _new_link(
        self,
        destination_url: str,
        title: str | None,
        source: str | None,
        short_code: str,
    ) -> Link:
        return Link(
            id=uuid4(),
            short_code=short_code,
            destination_url=destination_url,
            title=title,
            source=source,
            created_at=self._now(),
            click_count=0,
        )

    def _new_click(
        self,
        link_id: UUID,
        ip_address: str,
        user_agent: str,
        referrer: str,
        country: str | None,
        city: str | None,
    ) -> Click:
        return Click(
            id=uuid4(),
            link_id=link_id,
            ip_address=ip_address or UNKNOWN_IP,
            user_agent=user_agent or "",
            referrer=referrer or "",
            country=country or None,
            city=city or None,
            clicked_at=self._now(),
        )


def normalize_link_input(
    destination_url: str | None,
    title: str | None,
    custom_code: str | None,
    source: str | None,
) -> tuple[str, str, str | None, str | None]:
    """Validate and clean the fields of a new link.

    Returns (destination_url, title, custom_code, source).
    """
    destination_url = (destination_url or "").strip()
    if not destination_url:
        raise ValidationError("Destination URL is required")

    title = (title or "").strip() or DEFAULT_TITLE
    source = (source or "").strip() or None
    if custom_code is not None:
        custom_code = validate_custom_code(custom_code)
    return destination_url, title, custom_code, source


def parse_link_id(link_id: UUID | str) -> UUID | None:
    """Coerce a link ID to a UUID, or None if it cannot be one."""
    if isinstance(link_id, UUID):
        return link_id
    try:
        return UUID(str(link_id))
    except ValueError:
        return None


def code_taken(short_code: str) -> CodeConflict:
    return CodeConflict(f"Short code '{short_code}' already exists")


def codes_exhausted(attempts: int) -> CodeConflict:
    return CodeConflict(f"Unable to generate a unique short code after {attempts} attempts")


def breakdown_clicks(clicks: Sequence[Click], recent_limit: int) -> ClickBreakdown:
    """Build a ClickBreakdown from clicks in recording order."""
    unique_ips = {
        click.ip_address
        for click in clicks
        if click.ip_address and click.ip_address != UNKNOWN_IP
    }
    referrers = Counter(click.referrer for click in clicks if click.referrer)
    countries = Counter(click.country for click in clicks if click.country)

    return ClickBreakdown(
        total_clicks=len(clicks),
        unique_visitors=len(unique_ips),
        referrer_counts=list(referrers.items()),
        country_counts=list(countries.items()),
        recent_clicks=list(reversed(clicks[-recent_limit:])) if recent_limit > 0 else [],
    )
