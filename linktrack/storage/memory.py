"""In-memory link store."""

import asyncio
from uuid import UUID

import structlog

from linktrack.core.errors import NotFound
from linktrack.models.click import Click
from linktrack.models.link import Link
from linktrack.storage.base import (
    DEFAULT_MAX_CODE_ATTEMPTS,
    LinkStore,
    code_taken,
    codes_exhausted,
    normalize_link_input,
    parse_link_id,
)

logger = structlog.get_logger()


class MemoryLinkStore(LinkStore):
    """Link store keeping everything in process memory.

    All mutations go through a single ``asyncio.Lock``, and none of them
    awaits while holding partially applied state, so readers never see a
    link without its counter update or a deleted link's clicks.
    """

    def __init__(self, max_code_attempts: int = DEFAULT_MAX_CODE_ATTEMPTS):
        super().__init__(max_code_attempts)
        self._links: dict[UUID, Link] = {}
        self._ids_by_code: dict[str, UUID] = {}
        self._clicks: dict[UUID, list[Click]] = {}
        self._lock = asyncio.Lock()

    async def create_link(
        self,
        destination_url: str,
        title: str | None = None,
        custom_code: str | None = None,
        source: str | None = None,
    ) -> Link:
        destination_url, title, custom_code, source = normalize_link_input(
            destination_url, title, custom_code, source
        )
        async with self._lock:
            for short_code in self._code_candidates(custom_code):
                if short_code in self._ids_by_code:
                    if custom_code is not None:
                        raise code_taken(short_code)
                    logger.info("Short code collision, retrying", short_code=short_code)
                    continue

                link = self._new_link(destination_url, title, source, short_code)
                self._links[link.id] = link
                self._ids_by_code[short_code] = link.id
                self._clicks[link.id] = []
                return link

        raise codes_exhausted(self._max_code_attempts)

    async def get_link_by_code(self, short_code: str) -> Link | None:
        link_id = self._ids_by_code.get(short_code)
        if link_id is None:
            return None
        return self._links.get(link_id)

    async def get_link_by_id(self, link_id: UUID | str) -> Link | None:
        link_uuid = parse_link_id(link_id)
        if link_uuid is None:
            return None
        return self._links.get(link_uuid)

    async def list_links(self) -> list[Link]:
        # sorted() is stable, so equal timestamps keep insertion order
        return sorted(self._links.values(), key=lambda link: link.created_at, reverse=True)

    async def delete_link(self, link_id: UUID | str) -> Link | None:
        link_uuid = parse_link_id(link_id)
        if link_uuid is None:
            return None

        async with self._lock:
            link = self._links.pop(link_uuid, None)
            if link is None:
                return None
            self._ids_by_code.pop(link.short_code, None)
            self._clicks.pop(link_uuid, None)
            return link

    async def record_click(
        self,
        link_id: UUID | str,
        ip_address: str,
        user_agent: str,
        referrer: str,
        country: str | None = None,
        city: str | None = None,
    ) -> Click:
        link_uuid = parse_link_id(link_id)

        async with self._lock:
            link = self._links.get(link_uuid) if link_uuid else None
            if link is None:
                raise NotFound(f"Link {link_id} not found")

            click = self._new_click(link.id, ip_address, user_agent, referrer, country, city)
            self._clicks[link.id].append(click)
            link.click_count += 1
            return click

    async def list_clicks(self, link_id: UUID | str) -> list[Click]:
        link_uuid = parse_link_id(link_id)
        if link_uuid is None:
            return []
        return list(self._clicks.get(link_uuid, []))

    async def stats(self) -> dict[str, int]:
        return {
            "links_count": len(self._links),
            "clicks_count": sum(len(clicks) for clicks in self._clicks.values()),
        }
