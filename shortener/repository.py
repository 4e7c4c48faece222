"""Durable store access for short links and API keys.

Repositories hold the session factory rather than a session: each call opens
its own short-lived session. That lets the same repository serve the request
path and fire-and-forget work that keeps running after the request ended.

Key Behaviours
===============
- ``URLRepository.create`` turns a unique-constraint violation into
  ``CodeTakenError``; the constraint, not the earlier availability check,
  decides races between concurrent issuers.
- Click increments are a single ``UPDATE ... SET clicks = clicks + 1``.
- Lookups on API keys only consider active keys.

Classes:
    URLRepository:  CRUD and maintenance queries on ``urls``.
    APIKeyRepository:  Lookups and updates on ``api_keys``.
"""

import datetime
import uuid

from sqlalchemy import delete, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortener.exceptions import CodeTakenError
from shortener.models import APIKey, ShortLink, utcnow

__all__ = ["APIKeyRepository", "URLRepository"]


class URLRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, link: ShortLink) -> ShortLink:
        if link.id is None:
            link.id = uuid.uuid4()
        if link.created_at is None:
            link.created_at = utcnow()
        async with self._session_factory() as session:
            session.add(link)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise CodeTakenError(details=f"Short code '{link.short_code}' is already in use") from exc
        return link

    async def get_by_short_code(self, short_code: str) -> ShortLink | None:
        async with self._session_factory() as session:
            result = await session.execute(select(ShortLink).where(ShortLink.short_code == short_code))
            return result.scalar_one_or_none()

    async def exists(self, short_code: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(select(exists().where(ShortLink.short_code == short_code)))
            return bool(result.scalar())

    async def increment_clicks(self, short_code: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(ShortLink)
                .where(ShortLink.short_code == short_code)
                .values(clicks=ShortLink.clicks + 1)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete(self, short_code: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(ShortLink).where(ShortLink.short_code == short_code))
            await session.commit()
            return result.rowcount > 0

    async def delete_expired(self, now: datetime.datetime | None = None) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ShortLink).where(
                    ShortLink.expires_at.is_not(None),
                    ShortLink.expires_at < (now or utcnow()),
                )
            )
            await session.commit()
            return result.rowcount


class APIKeyRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_active_by_hash(self, key_hash: str) -> APIKey | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(APIKey).where(APIKey.key_hash == key_hash, APIKey.is_active.is_(True))
            )
            return result.scalar_one_or_none()

    async def create(self, key: APIKey) -> APIKey:
        if key.id is None:
            key.id = uuid.uuid4()
        if key.created_at is None:
            key.created_at = utcnow()
        async with self._session_factory() as session:
            session.add(key)
            await session.commit()
        return key

    async def update_last_used(self, key_id: uuid.UUID) -> None:
        async with self._session_factory() as session:
            await session.execute(update(APIKey).where(APIKey.id == key_id).values(last_used_at=utcnow()))
            await session.commit()

    async def deactivate(self, key_id: uuid.UUID) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(APIKey).where(APIKey.id == key_id, APIKey.is_active.is_(True)).values(is_active=False)
            )
            await session.commit()
            return result.rowcount > 0
