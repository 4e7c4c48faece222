"""FastAPI application entry point for the short-link service.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │  uvicorn     │
    │  startup     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ init_db()    │
    │ manager init │
    │ sweep start  │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    │ requests     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ sweep stop   │
    │ drain tasks  │
    │ close redis  │
    │ close_db()   │
    └──────────────┘

How to Use
===========
**Run with uvicorn**::
    uvicorn shortener.main:app --host 0.0.0.0 --port 8080

**Create a key, then shorten**::
    python -m shortener.provision create --name my-client
    curl -X POST http://localhost:8080/api/shorten \
         -H "X-API-Key: sk_live_..." \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com/a/very/long/path"}'

Key Behaviours
===============
- Every ``ShortenerError`` is rendered as an ``ErrorResponse`` with the
  error's status code; rate limit rejections also carry their headers.
- Unexpected exceptions are logged and reported as a bare 500; details never
  reach the caller.
- Request body validation failures map to 400 ``INVALID_INPUT``.
- Prometheus metrics are exposed at ``/metrics``.
"""

__all__ = ["app"]

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortener.auth import API_KEY_HEADER
from shortener.config import get_settings
from shortener.database import close_db, init_db
from shortener.dependencies import _service_manager
from shortener.enums import ErrorCode
from shortener.exceptions import RateLimitedError, ShortenerError
from shortener.routes import router
from shortener.schemas import ErrorResponse

settings = get_settings()
logger = logging.getLogger("shortener")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cache-Control": "no-store",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()
    _service_manager.sweeper.start()
    yield
    # Shutdown
    await _service_manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Short links with cache-aside resolution, API keys and per-caller rate limits",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", API_KEY_HEADER],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


def _error_response(status_code: int, body: ErrorResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers={**SECURITY_HEADERS, **(headers or {})},
    )


@app.exception_handler(ShortenerError)
async def shortener_error_handler(request: Request, exc: ShortenerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
        details = None
    else:
        details = exc.details
    headers = exc.headers if isinstance(exc, RateLimitedError) else None
    return _error_response(
        exc.status_code,
        ErrorResponse(error=exc.message, code=exc.error_code, details=details),
        headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    details = f"{location}: {first.get('msg')}" if location else first.get("msg")
    return _error_response(
        400,
        ErrorResponse(error="Invalid request", code=ErrorCode.INVALID_INPUT, details=details),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error_response(
        500,
        ErrorResponse(error="Internal server error", code=ErrorCode.INTERNAL_ERROR),
    )


Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
    excluded_handlers=["/metrics"],
).instrument(app).expose(app)

app.include_router(router)
