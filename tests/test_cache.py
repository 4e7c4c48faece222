"""LinkCache tests: key schema, TTL bounds and error tolerance."""

import datetime
import uuid
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from shortener.cache import LinkCache, cache_key
from shortener.models import ShortLink, utcnow
from shortener.schemas import CachedLinkPayload


def make_link(expires_in: int | None = None) -> ShortLink:
    now = utcnow()
    return ShortLink(
        id=uuid.uuid4(),
        short_code="abc12345",
        original_url="https://example.com/a/very/long/path",
        clicks=3,
        expires_at=now + datetime.timedelta(seconds=expires_in) if expires_in is not None else None,
        created_at=now,
    )


@pytest.fixture
def link_cache(mock_redis: AsyncMock, mock_logger) -> LinkCache:
    return LinkCache(mock_redis, 3600, mock_logger)


def test_key_schema() -> None:
    assert cache_key("abc") == "url:abc"


@pytest.mark.asyncio
async def test_set_uses_default_ttl(link_cache: LinkCache, mock_redis: AsyncMock) -> None:
    assert await link_cache.set(make_link())

    key, payload = mock_redis.set.await_args.args
    assert key == "url:abc12345"
    assert mock_redis.set.await_args.kwargs["ex"] == 3600
    assert CachedLinkPayload.model_validate_json(payload).original_url == "https://example.com/a/very/long/path"


@pytest.mark.asyncio
async def test_set_ttl_bounded_by_expiry(link_cache: LinkCache, mock_redis: AsyncMock) -> None:
    await link_cache.set(make_link(expires_in=120))
    assert 118 <= mock_redis.set.await_args.kwargs["ex"] <= 120


@pytest.mark.asyncio
async def test_set_skips_expired_links(link_cache: LinkCache, mock_redis: AsyncMock) -> None:
    assert not await link_cache.set(make_link(expires_in=-10))
    mock_redis.set.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_decodes_payload(link_cache: LinkCache, mock_redis: AsyncMock) -> None:
    link = make_link(expires_in=600)
    mock_redis.get = AsyncMock(return_value=CachedLinkPayload.model_validate(link).model_dump_json())

    cached = await link_cache.get("abc12345")

    assert cached.short_code == link.short_code
    assert cached.clicks == 3
    assert cached.expires_at == link.expires_at
    mock_redis.get.assert_awaited_once_with("url:abc12345")


@pytest.mark.asyncio
async def test_get_miss(link_cache: LinkCache) -> None:
    assert await link_cache.get("abc12345") is None


@pytest.mark.asyncio
async def test_get_error_is_a_miss(link_cache: LinkCache, mock_redis: AsyncMock, mock_logger) -> None:
    mock_redis.get = AsyncMock(side_effect=redis.ConnectionError("connection refused"))

    assert await link_cache.get("abc12345") is None
    mock_logger.warning.assert_called_once()


@pytest.mark.asyncio
async def test_get_corrupt_payload_is_a_miss(link_cache: LinkCache, mock_redis: AsyncMock) -> None:
    mock_redis.get = AsyncMock(return_value="{not json")
    assert await link_cache.get("abc12345") is None


@pytest.mark.asyncio
async def test_invalidate_swallows_errors(link_cache: LinkCache, mock_redis: AsyncMock) -> None:
    mock_redis.delete = AsyncMock(side_effect=redis.TimeoutError("slow"))
    await link_cache.invalidate("abc12345")
    mock_redis.delete.assert_awaited_once_with("url:abc12345")
