"""Shared pytest fixtures for unit and API tests.

API tests run the real application against in-memory repositories and an
in-process fakeredis server, injected through the service manager.
"""

import datetime
import uuid
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shortener.auth import generate_api_key, hash_api_key
from shortener.config import Settings, get_settings
from shortener.database import get_db
from shortener.dependencies import ServiceManager
from shortener.exceptions import CodeTakenError
from shortener.main import app
from shortener.models import APIKey, ShortLink, utcnow


class InMemoryURLRepository:
    """Dict-backed stand-in for ``URLRepository`` with the same contract."""

    def __init__(self):
        self.links: dict[str, ShortLink] = {}

    async def create(self, link: ShortLink) -> ShortLink:
        if link.short_code in self.links:
            raise CodeTakenError(details=f"Short code '{link.short_code}' is already in use")
        if link.id is None:
            link.id = uuid.uuid4()
        if link.created_at is None:
            link.created_at = utcnow()
        if link.clicks is None:
            link.clicks = 0
        self.links[link.short_code] = link
        return link

    async def get_by_short_code(self, short_code: str) -> ShortLink | None:
        return self.links.get(short_code)

    async def exists(self, short_code: str) -> bool:
        return short_code in self.links

    async def increment_clicks(self, short_code: str) -> bool:
        link = self.links.get(short_code)
        if link is None:
            return False
        link.clicks += 1
        return True

    async def delete(self, short_code: str) -> bool:
        return self.links.pop(short_code, None) is not None

    async def delete_expired(self, now: datetime.datetime | None = None) -> int:
        expired = [code for code, link in self.links.items() if link.is_expired(now)]
        for code in expired:
            del self.links[code]
        return len(expired)


class InMemoryAPIKeyRepository:
    """Dict-backed stand-in for ``APIKeyRepository``."""

    def __init__(self):
        self.keys: dict[uuid.UUID, APIKey] = {}

    async def get_active_by_hash(self, key_hash: str) -> APIKey | None:
        for key in self.keys.values():
            if key.key_hash == key_hash and key.is_active:
                return key
        return None

    async def create(self, key: APIKey) -> APIKey:
        if key.id is None:
            key.id = uuid.uuid4()
        if key.created_at is None:
            key.created_at = utcnow()
        self.keys[key.id] = key
        return key

    async def update_last_used(self, key_id: uuid.UUID) -> None:
        if key_id in self.keys:
            self.keys[key_id].last_used_at = utcnow()

    async def deactivate(self, key_id: uuid.UUID) -> bool:
        key = self.keys.get(key_id)
        if key is None or not key.is_active:
            return False
        key.is_active = False
        return True


# ============================================================================
# UNIT FIXTURES
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def mock_logger() -> MagicMock:
    logger = MagicMock()
    logger.info = MagicMock()
    logger.debug = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    return logger


@pytest.fixture
def mock_redis() -> AsyncMock:
    client = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.incr = AsyncMock(return_value=1)
    client.expire = AsyncMock(return_value=True)
    return client


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest_asyncio.fixture(scope="function")
async def redis_client() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def url_repository() -> InMemoryURLRepository:
    return InMemoryURLRepository()


@pytest.fixture
def api_key_repository() -> InMemoryAPIKeyRepository:
    return InMemoryAPIKeyRepository()


@pytest_asyncio.fixture(scope="function")
async def manager(
    redis_client: fakeredis.FakeAsyncRedis,
    url_repository: InMemoryURLRepository,
    api_key_repository: InMemoryAPIKeyRepository,
) -> AsyncGenerator[ServiceManager, None]:
    service_manager = ServiceManager()
    await service_manager.cleanup()
    await service_manager.initialize(
        cache=redis_client,
        url_repository=url_repository,
        api_key_repository=api_key_repository,
    )
    yield service_manager
    await service_manager.cleanup()


@pytest_asyncio.fixture(scope="function")
async def api_key(api_key_repository: InMemoryAPIKeyRepository) -> str:
    """Raw secret of an active key with a generous budget."""
    raw_key = generate_api_key()
    await api_key_repository.create(
        APIKey(
            id=uuid.uuid4(),
            key_hash=hash_api_key(raw_key),
            name="test-client",
            rate_limit=1000,
            is_active=True,
        )
    )
    return raw_key


@pytest.fixture
def auth_headers(api_key: str) -> dict[str, str]:
    return {"X-API-Key": api_key}


@pytest_asyncio.fixture(scope="function")
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    db_session = AsyncMock()
    db_session.execute = AsyncMock(return_value=None)

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
