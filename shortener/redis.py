"""Redis client management for the short-link service.

A single process-wide ``redis.asyncio`` client backs both the link cache and
the rate-limit counters. The client's connection pool makes it safe for
concurrent use, so no in-process locking is layered on top.

Flow Diagram — Redis Client
===========================
::
    ┌─────────────┐
    │ get_redis() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check global│
    │ client var  │
    └──────┬──────┘
    EXISTS?│
    ┌──────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Redis   │  │ existing│
│ client  │  │ client  │
└─────────┘  └─────────┘

Key Behaviours
===============
- The client is created lazily on first access and reused afterwards.
- UTF-8 encoding with decode_responses for string operations.
- Connection is closed on application shutdown.

Functions:
    get_redis():  Return the shared client.
    close_redis():  Cleanup function for shutdown.
"""

import redis.asyncio as redis

from shortener.config import get_settings

__all__ = ["close_redis", "get_redis"]

settings = get_settings()

redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=3,
        )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
