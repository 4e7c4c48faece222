"""Short link service layer - issuance and resolution.

Architecture Overview
=====================
::
    ┌──────────────────────────────────────────────────────────────┐
    │                      ShortLinkService                        │
    │  ┌────────────────┐  ┌────────────────┐  ┌────────────────┐  │
    │  │ issue()        │  │ resolve()      │  │ stats/delete   │  │
    │  │ • validate URL │  │ • cache-aside  │  │ • store reads  │  │
    │  │ • alias/random │  │ • expiry check │  │ • invalidate   │  │
    │  │ • persist      │  │ • click count  │  │                │  │
    │  └────────────────┘  └────────────────┘  └────────────────┘  │
    └──────────────────────────────────────────────────────────────┘
            │                     │                     │
            ▼                     ▼                     ▼
    ┌────────────────┐   ┌────────────────┐   ┌─────────────────────┐
    │  URLRepository │   │   LinkCache    │   │ BackgroundDispatcher│
    │  (PostgreSQL)  │   │    (Redis)     │   │ (detached tasks)    │
    └────────────────┘   └────────────────┘   └─────────────────────┘

Resolution Flow
---------------
::
    ┌─────────────┐
    │ GET /:code  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Redis GET   │  error ─▶ treated as miss
    └──────┬──────┘
    HIT?   │
    ┌──────┴─────┐
    │ NO         │ YES
    ▼            │
┌──────────┐     │
│ Postgres │     │
│ SELECT   │──▶ 404 when absent
└────┬─────┘     │
     ▼           │
┌──────────┐     │
│ schedule │     │
│ cache set│     │
└────┬─────┘     │
     └─────┬─────┘
           ▼
    ┌─────────────┐
    │ expired? ───┼──▶ 410
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ schedule    │
    │ clicks + 1  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ 302 target  │
    └─────────────┘

Key Behaviours
==============
- The availability check before insert is an optimization; the unique
  constraint on ``short_code`` settles races (``CodeTakenError``).
- Cache fills, click increments and last-used updates are advisory and run
  on the dispatcher; their failures never reach the caller.
- Expiry is checked after lookup, so a cached copy of a lapsed link is never
  served.
"""

import datetime
import time
import uuid

from prometheus_client import Counter, Histogram

from shortener.background import BackgroundDispatcher
from shortener.cache import LinkCache
from shortener.codegen import generate_short_code, is_valid_url, normalize_alias
from shortener.config import Settings
from shortener.enums import CacheStatus, RequestStatus
from shortener.exceptions import (
    CodeTakenError,
    ExpiredError,
    GenerationExhaustedError,
    InvalidURLError,
    NotFoundError,
    ShortenerError,
)
from shortener.models import APIKey, ShortLink, utcnow
from shortener.repository import URLRepository
from shortener.schemas import ShortenRequest, ShortenResponse, URLStats

__all__ = ["ShortLinkService"]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_ISSUE_REQUESTS_TOTAL = Counter(
    "shortener_issue_requests_total",
    "Short link issuance requests",
    ["status"],
)
LINK_RESOLVE_REQUESTS_TOTAL = Counter(
    "shortener_resolve_requests_total",
    "Short link resolutions",
    ["status", "cache_hit"],
)
LINK_ISSUE_DURATION = Histogram(
    "shortener_issue_duration_seconds",
    "Time taken to issue short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
LINK_RESOLVE_DURATION = Histogram(
    "shortener_resolve_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
CODE_COLLISIONS_TOTAL = Counter(
    "shortener_code_collisions_total",
    "Generated short codes that were already taken",
)


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class ShortLinkService:
    """Issues, resolves, reports on and deletes short links.

    Example:
        >>> service = ShortLinkService.from_context(ctx)
        >>> created = await service.issue(ShortenRequest(url="https://example.com/a/long/path"))
        >>> await service.resolve(created.short_code)
        'https://example.com/a/long/path'
    """

    def __init__(
        self,
        repository: URLRepository,
        cache: LinkCache,
        dispatcher: BackgroundDispatcher,
        settings: Settings,
        logger,
    ):
        self._repo = repository
        self._cache = cache
        self._dispatcher = dispatcher
        self._settings = settings
        self._logger = logger

    @classmethod
    def from_context(cls, ctx) -> "ShortLinkService":
        """Build the service from a request context or the service manager."""
        return cls(ctx.url_repository, ctx.link_cache, ctx.dispatcher, ctx.settings, ctx.logger)

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def issue(self, request: ShortenRequest, api_key: APIKey | None = None) -> ShortenResponse:
        """Create a short link for ``request.url``.

        Raises:
            InvalidURLError: URL is not http(s) or its length is out of bounds.
            InvalidCodeError: custom alias is not 3-16 alphanumeric characters.
            CodeTakenError: alias already in use, or lost an insert race.
            GenerationExhaustedError: every random candidate collided.
        """
        start_time = time.perf_counter()
        try:
            if not is_valid_url(request.url):
                raise InvalidURLError()

            if request.custom_alias:
                short_code = normalize_alias(request.custom_alias, self._settings.MAX_CUSTOM_ALIAS_LENGTH)
                if await self._repo.exists(short_code):
                    raise CodeTakenError(details=f"Custom alias '{short_code}' is already taken")
            else:
                short_code = await self._generate_unique_code()

            now = utcnow()
            expires_at = None
            if request.expires_in is not None and request.expires_in > 0:
                expires_at = now + datetime.timedelta(seconds=request.expires_in)

            link = ShortLink(
                id=uuid.uuid4(),
                short_code=short_code,
                original_url=request.url,
                clicks=0,
                api_key_id=api_key.id if api_key is not None else None,
                expires_at=expires_at,
                created_at=now,
            )
            await self._repo.create(link)
            self._schedule_cache_fill(link)

        except ShortenerError as exc:
            LINK_ISSUE_REQUESTS_TOTAL.labels(status=self._status_for(exc)).inc()
            self._logger.warning(f"Short link issuance rejected: {exc.message}")
            raise
        except Exception as exc:
            LINK_ISSUE_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Short link issuance error: {exc}")
            raise
        finally:
            LINK_ISSUE_DURATION.observe(time.perf_counter() - start_time)

        LINK_ISSUE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Issued short code {short_code}")
        return ShortenResponse(
            short_code=short_code,
            short_url=f"{self._settings.BASE_URL}/{short_code}",
            expires_at=expires_at,
        )

    async def resolve(self, short_code: str) -> str:
        """Return the destination URL for ``short_code``.

        Raises:
            NotFoundError: no link has this code.
            ExpiredError: the link exists but has lapsed.
        """
        start_time = time.perf_counter()
        cache_status = CacheStatus.HIT

        link = await self._cache.get(short_code)
        if link is None:
            cache_status = CacheStatus.MISS
            link = await self._repo.get_by_short_code(short_code)
            if link is None:
                LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=cache_status).inc()
                raise NotFoundError()
            self._schedule_cache_fill(link)

        if link.is_expired():
            LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.EXPIRED, cache_hit=cache_status).inc()
            raise ExpiredError()

        self._dispatcher.submit(
            "click_increment",
            lambda: self._repo.increment_clicks(short_code),
            timeout=self._settings.CLICK_TASK_TIMEOUT_SECONDS,
        )

        LINK_RESOLVE_DURATION.observe(time.perf_counter() - start_time)
        LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=cache_status).inc()
        self._logger.debug(f"Resolved {short_code} (cache_hit={cache_status})")
        return link.original_url

    async def stats(self, short_code: str) -> URLStats:
        """Click statistics, always read from the store.

        Expired links that the sweep has not removed yet still report stats.
        """
        link = await self._repo.get_by_short_code(short_code)
        if link is None:
            raise NotFoundError()
        return URLStats.model_validate(link)

    async def delete(self, short_code: str) -> None:
        if not await self._repo.delete(short_code):
            raise NotFoundError()
        await self._cache.invalidate(short_code)
        self._logger.info(f"Deleted short code {short_code}")

    async def purge_expired(self) -> int:
        return await self._repo.delete_expired()

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _generate_unique_code(self) -> str:
        retries = self._settings.CODE_GENERATION_RETRIES
        for _ in range(retries):
            code = generate_short_code(self._settings.SHORT_CODE_LENGTH)
            if not await self._repo.exists(code):
                return code
            CODE_COLLISIONS_TOTAL.inc()
            self._logger.warning("Generated short code collided, retrying")
        raise GenerationExhaustedError(details=f"No free code after {retries} attempts")

    def _schedule_cache_fill(self, link: ShortLink) -> None:
        self._dispatcher.submit(
            "cache_fill",
            lambda: self._cache.set(link),
            timeout=self._settings.BACKGROUND_TASK_TIMEOUT_SECONDS,
        )

    @staticmethod
    def _status_for(exc: ShortenerError) -> RequestStatus:
        if isinstance(exc, CodeTakenError):
            return RequestStatus.CONFLICT
        if exc.status_code == 400:
            return RequestStatus.VALIDATION_ERROR
        return RequestStatus.ERROR
