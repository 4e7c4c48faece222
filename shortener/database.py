"""Database configuration and session management for the short-link service.

This module provides the SQLAlchemy async engine, the session factory shared
by the repositories, and database lifecycle operations against PostgreSQL.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐      ┌──────────────────┐
    │  Request /  │      │ Background task  │
    │  health     │      │ (click, sweep)   │
    └──────┬──────┘      └────────┬─────────┘
           ▼                      ▼
    ┌─────────────┐      ┌──────────────────┐
    │ get_db()    │      │ Repository opens │
    │ dependency  │      │ its own session  │
    └──────┬──────┘      └────────┬─────────┘
           └──────────┬───────────┘
                      ▼
             ┌─────────────────┐
             │ async_session() │
             │ (pooled engine) │
             └─────────────────┘

How to Use
===========
**Step 1 — Initialize on startup**::
    await init_db()  # Creates tables

**Step 2 — Use in FastAPI endpoints**::
    @router.get("/ready")
    async def ready(db: AsyncSession = Depends(get_db)):
        await db.execute(text("SELECT 1"))

**Step 3 — Cleanup on shutdown**::
    await close_db()

Key Behaviours
===============
- Sessions never outlive the unit of work that opened them; background
  tasks therefore never borrow a request's session.
- Connection pooling makes the engine safe for concurrent use.
- Tables are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    get_db():  FastAPI dependency for database sessions.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortener.config import get_settings

__all__ = ["Base", "async_session", "engine", "get_db", "init_db", "close_db"]

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=(settings.APP_ENV == "development"),
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    # Imported for its side effect of registering the tables on Base.metadata.
    import shortener.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
