"""Optional Redis cache in front of short-code lookups.

Only the redirect path reads it. With no ``REDIS_URL`` configured every
call is a no-op. Redis failures are logged and count as misses, so the
link store stays the source of truth.
"""

import json
from dataclasses import dataclass
from uuid import UUID

import redis.asyncio as redis
import structlog

from linktrack.core.config import get_settings
from linktrack.core.observability import record_cache_lookup

settings = get_settings()
logger = structlog.get_logger()

KEY_PREFIX = "linktrack:code:"

_client: redis.Redis | None = None


@dataclass(frozen=True)
class CachedLink:
    """What a redirect needs to know about a link."""

    link_id: UUID
    destination_url: str

    def dumps(self) -> str:
        return json.dumps({
            "link_id": str(self.link_id),
            "destination_url": self.destination_url,
        })

    @classmethod
    def loads(cls, raw: str) -> "CachedLink":
        data = json.loads(raw)
        return cls(link_id=UUID(data["link_id"]), destination_url=data["destination_url"])


def get_redis() -> redis.Redis | None:
    """Shared client, created on first use. None when caching is off."""
    global _client
    if not settings.redis_url:
        return None
    if _client is None:
        _client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Redis client initialized")
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis connection closed")


def _key(short_code: str) -> str:
    return f"{KEY_PREFIX}{short_code}"


async def get_cached_link(short_code: str) -> CachedLink | None:
    client = get_redis()
    if client is None:
        return None

    try:
        raw = await client.get(_key(short_code))
    except redis.RedisError as e:
        logger.warning("Link cache read failed", short_code=short_code, error=str(e))
        record_cache_lookup("error")
        return None

    if raw is None:
        record_cache_lookup("miss")
        return None

    try:
        cached = CachedLink.loads(raw)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("Dropping unreadable cache entry", short_code=short_code, error=str(e))
        record_cache_lookup("error")
        await invalidate_link_cache(short_code)
        return None

    record_cache_lookup("hit")
    return cached


async def cache_link(short_code: str, cached: CachedLink, ttl: int | None = None) -> None:
    client = get_redis()
    if client is None:
        return

    try:
        await client.set(_key(short_code), cached.dumps(), ex=ttl or settings.link_cache_ttl)
    except redis.RedisError as e:
        logger.warning("Link cache write failed", short_code=short_code, error=str(e))


async def invalidate_link_cache(short_code: str) -> None:
    """Forget a short code, e.g. after its link was deleted."""
    client = get_redis()
    if client is None:
        return

    try:
        await client.delete(_key(short_code))
    except redis.RedisError as e:
        logger.warning("Link cache delete failed", short_code=short_code, error=str(e))
