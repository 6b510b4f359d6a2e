"""SQL link store backed by SQLAlchemy async sessions."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linktrack.core.errors import NotFound, StorageError
from linktrack.models.click import UNKNOWN_IP, Click
from linktrack.models.link import Link
from linktrack.storage.base import (
    DEFAULT_MAX_CODE_ATTEMPTS,
    ClickBreakdown,
    LinkStore,
    code_taken,
    codes_exhausted,
    normalize_link_input,
    parse_link_id,
)

logger = structlog.get_logger()


class SqlLinkStore(LinkStore):
    """Link store persisting to a relational database.

    Each operation runs in its own session and transaction. The unique
    constraint on ``links.short_code`` is the only arbiter of code
    uniqueness, and the click counter is bumped with a single UPDATE in the
    same transaction as the click insert.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_code_attempts: int = DEFAULT_MAX_CODE_ATTEMPTS,
    ):
        super().__init__(max_code_attempts)
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session, turning database failures into StorageError."""
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Database operation failed", operation=operation, error=str(e))
                raise StorageError(f"Failed to {operation}") from e

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

        for short_code in self._code_candidates(custom_code):
            link = self._new_link(destination_url, title, source, short_code)
            async with self._session("create link") as session:
                session.add(link)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if custom_code is not None:
                        raise code_taken(short_code)
                    logger.info("Short code collision, retrying", short_code=short_code)
                    continue
            return link

        raise codes_exhausted(self._max_code_attempts)

    async def get_link_by_code(self, short_code: str) -> Link | None:
        async with self._session("get link") as session:
            result = await session.execute(select(Link).where(Link.short_code == short_code))
            return result.scalar_one_or_none()

    async def get_link_by_id(self, link_id: UUID | str) -> Link | None:
        link_uuid = parse_link_id(link_id)
        if link_uuid is None:
            return None
        async with self._session("get link") as session:
            return await session.get(Link, link_uuid)

    async def list_links(self) -> list[Link]:
        async with self._session("list links") as session:
            # Timestamps only increase within one process; id breaks any tie
            # left by several writers sharing the database.
            result = await session.execute(
                select(Link).order_by(Link.created_at.desc(), Link.id.desc())
            )
            return list(result.scalars().all())

    async def delete_link(self, link_id: UUID | str) -> Link | None:
        link_uuid = parse_link_id(link_id)
        if link_uuid is None:
            return None

        async with self._session("delete link") as session:
            link = await session.get(Link, link_uuid)
            if link is None:
                return None
            # Clicks first, in the same transaction, so no orphans are
            # visible even where the FK cascade is not enforced (SQLite).
            await session.execute(delete(Click).where(Click.link_id == link_uuid))
            await session.execute(delete(Link).where(Link.id == link_uuid))
            await session.commit()
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
        if link_uuid is None:
            raise NotFound(f"Link {link_id} not found")

        async with self._session("record click") as session:
            result = await session.execute(
                update(Link)
                .where(Link.id == link_uuid)
                .values(click_count=Link.click_count + 1)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise NotFound(f"Link {link_id} not found")

            click = self._new_click(link_uuid, ip_address, user_agent, referrer, country, city)
            session.add(click)
            await session.commit()
            return click

    async def list_clicks(self, link_id: UUID | str) -> list[Click]:
        link_uuid = parse_link_id(link_id)
        if link_uuid is None:
            return []
        async with self._session("list clicks") as session:
            result = await session.execute(
                select(Click)
                .where(Click.link_id == link_uuid)
                .order_by(Click.clicked_at.asc(), Click.id.asc())
            )
            return list(result.scalars().all())

    async def click_breakdown(self, link_id: UUID | str, recent_limit: int) -> ClickBreakdown:
        """Count in the database; only the recent clicks are loaded as rows."""
        link_uuid = parse_link_id(link_id)
        if link_uuid is None:
            return ClickBreakdown()

        of_link = Click.link_id == link_uuid
        first_seen = func.min(Click.clicked_at)
        async with self._session("summarize clicks") as session:
            total_clicks = await session.scalar(
                select(func.count()).select_from(Click).where(of_link)
            )
            unique_visitors = await session.scalar(
                select(func.count(func.distinct(Click.ip_address)))
                .where(of_link)
                .where(Click.ip_address.not_in(["", UNKNOWN_IP]))
            )
            referrers = (await session.execute(
                select(Click.referrer, func.count())
                .where(of_link, Click.referrer != "")
                .group_by(Click.referrer)
                .order_by(first_seen)
            )).all()
            countries = (await session.execute(
                select(Click.country, func.count())
                .where(of_link, Click.country.is_not(None), Click.country != "")
                .group_by(Click.country)
                .order_by(first_seen)
            )).all()
            recent_clicks = []
            if recent_limit > 0:
                result = await session.execute(
                    select(Click)
                    .where(of_link)
                    .order_by(Click.clicked_at.desc(), Click.id.desc())
                    .limit(recent_limit)
                )
                recent_clicks = list(result.scalars().all())

        return ClickBreakdown(
            total_clicks=total_clicks or 0,
            unique_visitors=unique_visitors or 0,
            referrer_counts=[(referrer, count) for referrer, count in referrers],
            country_counts=[(country, count) for country, count in countries],
            recent_clicks=recent_clicks,
        )

    async def stats(self) -> dict[str, int]:
        async with self._session("count rows") as session:
            links_count = await session.scalar(select(func.count()).select_from(Link))
            clicks_count = await session.scalar(select(func.count()).select_from(Click))
        return {
            "links_count": links_count or 0,
            "clicks_count": clicks_count or 0,
        }
