"""FastAPI route definitions for the short-link REST API.

API Endpoint Overview
=====================
::
    GET    /health              ─ HealthResponse (200 / 503)
    GET    /ready               ─ empty (200 / 503)
    GET    /live                ─ empty (200)

    POST   /api/shorten         ─ ShortenRequest ─▶ ShortenResponse (201)
    GET    /api/stats/:code     ─ URLStats (200)
    DELETE /api/:code           ─ empty (204)

    GET    /:code               ─ 302 Redirect

Request Flow Diagram
====================
::
    ┌─────────────┐     ┌──────────────┐     ┌──────────────┐
    │ /api/*      │────▶│ require key  │────▶│ rate limit   │──┐
    └─────────────┘     └──────────────┘     │ (key budget) │  │
                                             └──────────────┘  │
    ┌─────────────┐                          ┌──────────────┐  │
    │ /:code      │─────────────────────────▶│ rate limit   │──┤
    └─────────────┘                          │ (by address) │  │
                                             └──────────────┘  │
                                                               ▼
                                                   ┌──────────────────┐
                                                   │ ShortLinkService │
                                                   └──────────────────┘

Key Behaviours
===============
- Domain errors propagate as ``ShortenerError`` and are rendered by the
  handlers registered in ``shortener.main``.
- Redirects use 302 so browsers do not cache them and every visit is counted.
- The catch-all ``/{short_code}`` route is registered last.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import RedirectResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from shortener.database import get_db
from shortener.dependencies import (
    RequestContext,
    ServiceManager,
    enforce_rate_limit,
    get_request_context,
    get_service_manager,
    get_url_service,
    require_api_key,
)
from shortener.enums import HealthStatus
from shortener.models import APIKey
from shortener.rate_limiter import RateLimitResult
from shortener.schemas import ErrorResponse, HealthResponse, ShortenRequest, ShortenResponse, URLStats
from shortener.url_service import ShortLinkService

__all__ = ["router"]

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}


async def _check_dependencies(manager: ServiceManager, db: AsyncSession, ctx: RequestContext) -> dict[str, str]:
    services = {"database": HealthStatus.HEALTHY.value, "redis": HealthStatus.HEALTHY.value}

    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        services["database"] = HealthStatus.UNHEALTHY.value

    try:
        await manager.cache.ping()
    except Exception as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        services["redis"] = HealthStatus.UNHEALTHY.value

    return services


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
    tags=["health"],
)
async def health_check(
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    services = await _check_dependencies(manager, db, ctx)
    status = (
        HealthStatus.HEALTHY
        if all(HealthStatus.from_str(s) is HealthStatus.HEALTHY for s in services.values())
        else HealthStatus.UNHEALTHY
    )
    if status is HealthStatus.UNHEALTHY:
        response.status_code = 503

    ctx.logger.info(f"Health check completed: {status.value}")
    return HealthResponse(status=status, version=ctx.settings.APP_VERSION, services=services)


@router.get("/ready", tags=["health"])
async def readiness(
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
    db: AsyncSession = Depends(get_db),
) -> Response:
    services = await _check_dependencies(manager, db, ctx)
    ready = all(s == HealthStatus.HEALTHY for s in services.values())
    return Response(status_code=200 if ready else 503)


@router.get("/live", tags=["health"])
async def liveness() -> Response:
    return Response(status_code=200)


@router.post(
    "/api/shorten",
    response_model=ShortenResponse,
    response_model_exclude_none=True,
    status_code=201,
    responses={**_ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["urls"],
)
async def shorten_url(
    payload: ShortenRequest,
    api_key: APIKey = Depends(require_api_key),
    ctx: RequestContext = Depends(get_request_context),
    service: ShortLinkService = Depends(get_url_service),
) -> ShortenResponse:
    ctx.add_tag("url_creation")
    ctx.logger.info(
        "URL shortening requested",
        extra={"operation": "create_short_url", "custom_alias": payload.custom_alias},
    )

    created = await service.issue(payload, api_key=api_key)

    ctx.logger.info(
        f"URL shortened successfully: {created.short_code}",
        extra={
            "operation": "create_short_url",
            "short_code": created.short_code,
            "duration_ms": ctx.get_duration(),
        },
    )
    return created


@router.get(
    "/api/stats/{short_code}",
    response_model=URLStats,
    responses=_ERROR_RESPONSES,
    tags=["urls"],
)
async def get_stats(
    short_code: str,
    _: APIKey = Depends(require_api_key),
    ctx: RequestContext = Depends(get_request_context),
    service: ShortLinkService = Depends(get_url_service),
) -> URLStats:
    ctx.logger.info(f"Stats requested for short code: {short_code}")
    return await service.stats(short_code)


@router.delete(
    "/api/{short_code}",
    status_code=204,
    responses=_ERROR_RESPONSES,
    tags=["urls"],
)
async def delete_url(
    short_code: str,
    _: APIKey = Depends(require_api_key),
    ctx: RequestContext = Depends(get_request_context),
    service: ShortLinkService = Depends(get_url_service),
) -> None:
    ctx.add_tag("url_deletion")
    await service.delete(short_code)


@router.get(
    "/{short_code}",
    responses={**_ERROR_RESPONSES, 410: {"model": ErrorResponse}},
    tags=["redirect"],
)
async def redirect_to_url(
    short_code: str,
    limit: RateLimitResult = Depends(enforce_rate_limit),
    ctx: RequestContext = Depends(get_request_context),
    service: ShortLinkService = Depends(get_url_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")

    original_url = await service.resolve(short_code)

    ctx.logger.info(
        f"Redirect successful: {short_code}",
        extra={
            "operation": "redirect",
            "short_code": short_code,
            "duration_ms": ctx.get_duration(),
        },
    )
    return RedirectResponse(url=original_url, status_code=302, headers=limit.headers())
