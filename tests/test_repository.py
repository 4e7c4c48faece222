"""Repository queries against a real SQL engine (in-memory SQLite)."""

import datetime
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shortener.database import Base
from shortener.exceptions import CodeTakenError
from shortener.models import APIKey, ShortLink, utcnow
from shortener.repository import APIKeyRepository, URLRepository


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def url_repo(session_factory) -> URLRepository:
    return URLRepository(session_factory)


@pytest.fixture
def key_repo(session_factory) -> APIKeyRepository:
    return APIKeyRepository(session_factory)


def make_link(code: str, expires_at: datetime.datetime | None = None) -> ShortLink:
    return ShortLink(
        id=uuid.uuid4(),
        short_code=code,
        original_url=f"https://example.com/{code}",
        clicks=0,
        expires_at=expires_at,
    )


def make_key(key_hash: str, is_active: bool = True) -> APIKey:
    return APIKey(id=uuid.uuid4(), key_hash=key_hash, name="client", rate_limit=60, is_active=is_active)


# ============================================================================
# LINKS
# ============================================================================


@pytest.mark.asyncio
async def test_create_and_fetch(url_repo: URLRepository) -> None:
    await url_repo.create(make_link("abc12345"))

    stored = await url_repo.get_by_short_code("abc12345")
    assert stored is not None
    assert stored.original_url == "https://example.com/abc12345"
    assert stored.clicks == 0
    assert await url_repo.exists("abc12345")
    assert not await url_repo.exists("missing1")
    assert await url_repo.get_by_short_code("missing1") is None


@pytest.mark.asyncio
async def test_duplicate_code_raises_code_taken(url_repo: URLRepository) -> None:
    await url_repo.create(make_link("taken"))

    with pytest.raises(CodeTakenError):
        await url_repo.create(make_link("taken"))

    assert (await url_repo.get_by_short_code("taken")) is not None


@pytest.mark.asyncio
async def test_increment_clicks(url_repo: URLRepository) -> None:
    await url_repo.create(make_link("clicky"))

    assert await url_repo.increment_clicks("clicky")
    assert await url_repo.increment_clicks("clicky")
    assert not await url_repo.increment_clicks("missing1")

    stored = await url_repo.get_by_short_code("clicky")
    assert stored.clicks == 2


@pytest.mark.asyncio
async def test_delete(url_repo: URLRepository) -> None:
    await url_repo.create(make_link("gone"))

    assert await url_repo.delete("gone")
    assert not await url_repo.delete("gone")
    assert await url_repo.get_by_short_code("gone") is None


@pytest.mark.asyncio
async def test_delete_expired_only_removes_lapsed_links(url_repo: URLRepository) -> None:
    now = utcnow()
    await url_repo.create(make_link("lapsed", expires_at=now - datetime.timedelta(hours=1)))
    await url_repo.create(make_link("future", expires_at=now + datetime.timedelta(hours=1)))
    await url_repo.create(make_link("forever"))

    assert await url_repo.delete_expired() == 1

    assert await url_repo.get_by_short_code("lapsed") is None
    assert await url_repo.exists("future")
    assert await url_repo.exists("forever")


# ============================================================================
# API KEYS
# ============================================================================


@pytest.mark.asyncio
async def test_only_active_keys_are_returned(key_repo: APIKeyRepository) -> None:
    active = await key_repo.create(make_key("a" * 64))
    await key_repo.create(make_key("b" * 64, is_active=False))

    found = await key_repo.get_active_by_hash("a" * 64)
    assert found is not None
    assert found.id == active.id
    assert await key_repo.get_active_by_hash("b" * 64) is None
    assert await key_repo.get_active_by_hash("c" * 64) is None


@pytest.mark.asyncio
async def test_deactivate(key_repo: APIKeyRepository) -> None:
    key = await key_repo.create(make_key("d" * 64))

    assert await key_repo.deactivate(key.id)
    assert not await key_repo.deactivate(key.id)
    assert not await key_repo.deactivate(uuid.uuid4())
    assert await key_repo.get_active_by_hash("d" * 64) is None


@pytest.mark.asyncio
async def test_update_last_used(key_repo: APIKeyRepository) -> None:
    key = await key_repo.create(make_key("e" * 64))
    assert key.last_used_at is None

    await key_repo.update_last_used(key.id)

    found = await key_repo.get_active_by_hash("e" * 64)
    assert found.last_used_at is not None
