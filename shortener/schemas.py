"""Pydantic schemas for request/response validation in the short-link service.

Schema Hierarchy
=================
::
    ShortenRequest (Input)
    ├─ url: str
    ├─ custom_alias: str | None
    └─ expires_in: int | None (seconds)

    ShortenResponse (Output)
    ├─ short_code: str
    ├─ short_url: str (computed)
    └─ expires_at: datetime | None

    URLStats (Output)
    ├─ short_code, original_url, clicks
    ├─ created_at: datetime
    └─ expires_at: datetime | None

    CachedLinkPayload (Redis value)
    └─ snapshot of a ShortLink row

Key Behaviours
===============
- URL and alias rules are enforced by the code generator, not here, so that
  they surface as domain errors (400) rather than schema errors.
- All datetime fields are timezone-aware.
- Optional fields are omitted from responses when unset.

Classes:
    ShortenRequest:  Input schema for shorten requests.
    ShortenResponse:  Output schema for created links.
    URLStats:  Output schema for link statistics.
    CachedLinkPayload:  Cache entry for a resolved link.
    HealthResponse:  Output schema for health checks.
    ErrorResponse:  Uniform error body.
"""

import datetime
import uuid

from pydantic import BaseModel, Field

from shortener.enums import ErrorCode, HealthStatus
from shortener.models import ShortLink

__all__ = [
    "ShortenRequest",
    "ShortenResponse",
    "URLStats",
    "HealthResponse",
    "ErrorResponse",
    "CachedLinkPayload",
]


class ShortenRequest(BaseModel):
    url: str
    custom_alias: str | None = None
    expires_in: int | None = Field(None, description="Lifetime in seconds; omit, 0 or negative for links that never expire")


class ShortenResponse(BaseModel):
    short_code: str
    short_url: str
    expires_at: datetime.datetime | None = None


class URLStats(BaseModel):
    short_code: str
    original_url: str
    clicks: int
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: HealthStatus
    version: str
    services: dict[str, str]


class ErrorResponse(BaseModel):
    error: str
    code: ErrorCode
    details: str | None = None


class CachedLinkPayload(BaseModel):
    """Redis cache payload for a short link; never authoritative."""

    id: uuid.UUID
    short_code: str
    original_url: str
    clicks: int
    api_key_id: uuid.UUID | None = None
    expires_at: datetime.datetime | None = None
    created_at: datetime.datetime

    model_config = {"from_attributes": True}

    def to_model(self) -> ShortLink:
        return ShortLink(
            id=self.id,
            short_code=self.short_code,
            original_url=self.original_url,
            clicks=self.clicks,
            api_key_id=self.api_key_id,
            expires_at=self.expires_at,
            created_at=self.created_at,
        )
