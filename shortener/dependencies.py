"""Dependency injection with a singleton service manager.

Shared, concurrency-safe resources (Redis client, repositories over the
pooled engine, background dispatcher, rate limiter) are built once by the
``ServiceManager``. Each request only gets a lightweight ``RequestContext``
carrying tracking data and a context-aware logger.

Request Pipeline
================
::
    redirect:   enforce_rate_limit (address) ─▶ ShortLinkService.resolve
    mutations:  require_api_key ─▶ enforce_rate_limit (key) ─▶ ShortLinkService.*

Redirects are public and never look at API keys. ``require_api_key``
authenticates first and charges exactly one budget: the key's own when the
key is valid, the caller's address when it is missing or rejected.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request, Response

from shortener.auth import APIKeyService, extract_api_key
from shortener.background import BackgroundDispatcher, ExpiredLinkSweeper
from shortener.cache import LinkCache
from shortener.config import Settings, get_settings
from shortener.database import async_session
from shortener.exceptions import RateLimitedError, UnauthorizedError
from shortener.models import APIKey
from shortener.rate_limiter import RateLimiter, RateLimitResult, client_identity
from shortener.redis import close_redis, get_redis
from shortener.repository import APIKeyRepository, URLRepository
from shortener.url_service import ShortLinkService

__all__ = [
    "RequestContext",
    "ServiceManager",
    "enforce_rate_limit",
    "get_api_key_service",
    "get_request_context",
    "get_service_manager",
    "get_url_service",
    "optional_api_key",
    "require_api_key",
]


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton holder for process-wide resources."""

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(
        self,
        cache: redis.Redis | None = None,
        url_repository: URLRepository | None = None,
        api_key_repository: APIKeyRepository | None = None,
    ) -> None:
        """Initialize shared resources once at startup.

        The optional arguments replace the default Redis client and
        PostgreSQL repositories, e.g. for tests or the provisioning CLI.
        """
        if self._initialized:
            return
        self.settings = get_settings()
        self.logger = self._setup_logger(self.settings)
        self.cache = cache if cache is not None else await get_redis()
        self.url_repository = url_repository or URLRepository(async_session)
        self.api_key_repository = api_key_repository or APIKeyRepository(async_session)
        self.dispatcher = BackgroundDispatcher(self.logger, self.settings.BACKGROUND_TASK_TIMEOUT_SECONDS)
        self.link_cache = LinkCache(self.cache, self.settings.CACHE_TTL_SECONDS, self.logger)
        self.rate_limiter = RateLimiter(self.cache, self.logger, self.settings.RATE_LIMIT_WINDOW_SECONDS)
        self.sweeper = ExpiredLinkSweeper(
            self.url_repository.delete_expired,
            self.settings.CLEANUP_INTERVAL_SECONDS,
            self.logger,
            self.settings.CLEANUP_TIMEOUT_SECONDS,
        )
        self._owns_cache = cache is None
        self._initialized = True

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _setup_logger(self, settings: Settings) -> logging.Logger:
        logger = logging.getLogger("shortener")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(settings.LOG_LEVEL)
        return logger

    async def cleanup(self) -> None:
        """Stop background work and release shared resources at shutdown."""
        if not self._initialized:
            return
        await self.sweeper.stop()
        await self.dispatcher.drain(timeout=self.settings.CLICK_TASK_TIMEOUT_SECONDS)
        if self._owns_cache:
            await close_redis()
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data on top of the shared service manager.

    Attributes:
        service_manager: Singleton service manager with shared resources
        request_id: Unique identifier for this request
        user_agent: Client user agent string
        client_ip: Client address used for anonymous rate limiting
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=time.time)
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def url_repository(self) -> URLRepository:
        return self.service_manager.url_repository

    @property
    def api_key_repository(self) -> APIKeyRepository:
        return self.service_manager.api_key_repository

    @property
    def link_cache(self) -> LinkCache:
        return self.service_manager.link_cache

    @property
    def dispatcher(self) -> BackgroundDispatcher:
        return self.service_manager.dispatcher

    @property
    def rate_limiter(self) -> RateLimiter:
        return self.service_manager.rate_limiter

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with request context attached to every record."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        user_agent=request.headers.get("user-agent"),
        client_ip=client_identity(request, manager.settings.TRUST_FORWARDED_FOR),
    )


def get_url_service(ctx: RequestContext = Depends(get_request_context)) -> ShortLinkService:
    return ShortLinkService.from_context(ctx)


def get_api_key_service(ctx: RequestContext = Depends(get_request_context)) -> APIKeyService:
    return APIKeyService.from_context(ctx)


def _apply_rate_limit(result: RateLimitResult, response: Response) -> None:
    headers = result.headers()
    if not result.allowed:
        raise RateLimitedError(retry_after=result.retry_after, headers=headers)
    response.headers.update(headers)


async def enforce_rate_limit(
    request: Request,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
) -> RateLimitResult:
    """Meter the caller: per API key when one is attached, else per address."""
    api_key: APIKey | None = getattr(request.state, "api_key", None)
    if api_key is not None:
        identity, budget = str(api_key.id), api_key.rate_limit
    else:
        identity, budget = ctx.client_ip or "unknown", ctx.settings.RATE_LIMIT_RPM

    result = await ctx.rate_limiter.check(identity, budget)
    if not result.allowed:
        ctx.logger.warning(f"Rate limit exceeded for {identity} ({result.count}/{budget})")
    _apply_rate_limit(result, response)
    return result


async def _authenticate(request: Request, service: APIKeyService) -> APIKey:
    key = await service.authenticate(extract_api_key(request))
    request.state.api_key = key
    return key


async def require_api_key(
    request: Request,
    response: Response,
    service: APIKeyService = Depends(get_api_key_service),
    ctx: RequestContext = Depends(get_request_context),
) -> APIKey:
    """Reject the request unless it carries an active API key.

    Each request is metered exactly once: against the key's own budget when
    the key is valid, against the caller's address when it is not.
    """
    try:
        key = await _authenticate(request, service)
    except UnauthorizedError:
        await enforce_rate_limit(request, response, ctx)
        raise
    await enforce_rate_limit(request, response, ctx)
    return key


async def optional_api_key(
    request: Request,
    service: APIKeyService = Depends(get_api_key_service),
) -> APIKey | None:
    """Attach the caller's key when a valid one is presented, else pass through."""
    try:
        return await _authenticate(request, service)
    except UnauthorizedError:
        return None
