"""SQLAlchemy ORM models for the short-link service.

Data Model Layout
=================
::
    urls table
    ├─ id (UUID PRIMARY KEY)
    ├─ short_code (VARCHAR(16) UNIQUE, INDEXED)
    ├─ original_url (TEXT NOT NULL)
    ├─ clicks (INTEGER DEFAULT 0)
    ├─ api_key_id (UUID NULL, INDEXED)
    ├─ expires_at (TIMESTAMPTZ NULL, INDEXED)
    └─ created_at (TIMESTAMPTZ, DEFAULT NOW())

    api_keys table
    ├─ id (UUID PRIMARY KEY)
    ├─ key_hash (VARCHAR(64) UNIQUE)   -- SHA-256 hex, never the secret
    ├─ name (VARCHAR(100))
    ├─ rate_limit (INTEGER DEFAULT 60) -- requests per minute
    ├─ is_active (BOOLEAN DEFAULT TRUE)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ last_used_at (TIMESTAMPTZ NULL)

Key Behaviours
===============
- short_code is the uniqueness authority for concurrent issuers.
- An expired link is logically dead even before the sweep removes it.
- API keys are deactivated rather than deleted, keeping their history.

Classes:
    ShortLink:  A short code mapped to a destination URL.
    APIKey:  A hashed API secret with its per-key budget.
"""

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from shortener.database import Base

__all__ = ["APIKey", "ShortLink", "utcnow"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _as_aware(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value


class ShortLink(Base):
    __tablename__ = "urls"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    short_code: Mapped[str] = mapped_column(String(16), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    api_key_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True, nullable=True)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), index=True, nullable=True
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) > _as_aware(self.expires_at)

    def ttl_seconds(self, default_ttl: int, now: datetime.datetime | None = None) -> int:
        """Cache lifetime: the default TTL, cut short by the link's own expiry."""
        if self.expires_at is None:
            return default_ttl
        remaining = (_as_aware(self.expires_at) - (now or utcnow())).total_seconds()
        return min(default_ttl, int(remaining))

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, short_code='{self.short_code}', clicks={self.clicks})>"


class APIKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    key_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rate_limit: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    last_used_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        # key_hash stays out of reprs and logs.
        return f"<APIKey(id={self.id}, name='{self.name}', rate_limit={self.rate_limit})>"
