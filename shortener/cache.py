"""Cache-aside plumbing for resolved short links.

The cache is a hint, never a source of truth: a missing, stale or unreadable
entry is a miss, and a Redis outage degrades the service to store-only
lookups instead of failing requests.

Key Schema
==========
::
    url:{short_code}                 -> CachedLinkPayload JSON, TTL bounded
    ratelimit:{identity}:{minute}    -> integer counter (see rate_limiter)

Classes:
    LinkCache:  Read, populate and invalidate cached links.
"""

import logging

import redis.asyncio as redis
from prometheus_client import Counter
from pydantic import ValidationError

from shortener.models import ShortLink
from shortener.schemas import CachedLinkPayload

__all__ = ["LinkCache", "cache_key", "rate_limit_key"]

CACHE_ERRORS_TOTAL = Counter(
    "shortener_cache_errors_total",
    "Redis errors absorbed by the link cache",
    ["operation"],
)


def cache_key(short_code: str) -> str:
    return f"url:{short_code}"


def rate_limit_key(identity: str, window_index: int) -> str:
    return f"ratelimit:{identity}:{window_index}"


class LinkCache:
    def __init__(self, client: redis.Redis, default_ttl: int, logger: logging.Logger | logging.LoggerAdapter):
        self._client = client
        self._default_ttl = default_ttl
        self._logger = logger

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    async def get(self, short_code: str) -> ShortLink | None:
        try:
            cached = await self._client.get(cache_key(short_code))
        except (redis.RedisError, OSError) as exc:
            CACHE_ERRORS_TOTAL.labels(operation="get").inc()
            self._logger.warning(f"Cache read failed for {short_code}, treating as miss: {exc}")
            return None

        if cached is None:
            return None

        try:
            return CachedLinkPayload.model_validate_json(cached).to_model()
        except ValidationError as exc:
            CACHE_ERRORS_TOTAL.labels(operation="decode").inc()
            self._logger.error(f"Cache deserialization error for {short_code}: {exc}")
            return None

    async def set(self, link: ShortLink) -> bool:
        """Store ``link`` until the earlier of the default TTL and its expiry.

        Raises Redis errors; callers run this as fire-and-forget work.
        """
        ttl = link.ttl_seconds(self._default_ttl)
        if ttl <= 0:
            return False
        payload = CachedLinkPayload.model_validate(link)
        await self._client.set(cache_key(link.short_code), payload.model_dump_json(), ex=ttl)
        return True

    async def invalidate(self, short_code: str) -> None:
        try:
            await self._client.delete(cache_key(short_code))
        except (redis.RedisError, OSError) as exc:
            CACHE_ERRORS_TOTAL.labels(operation="delete").inc()
            self._logger.warning(f"Cache invalidation failed for {short_code}: {exc}")
