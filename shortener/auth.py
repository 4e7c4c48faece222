"""API key authentication.

Flow
====
::
    raw secret (X-API-Key or Authorization: Bearer)
        │
        ▼
    SHA-256 hex digest ──▶ api_keys WHERE key_hash = ? AND is_active
        │                        │
        │ no row                 │ row
        ▼                        ▼
    UnauthorizedError       APIKey (+ detached last_used_at update)

Key Behaviours
===============
- Only hashes are stored. Keys are high-entropy random strings, so a plain
  SHA-256 is sufficient and the lookup compares digests, never secrets.
- The raw secret is returned once by ``provision`` and is never logged.
- The ``api_key`` query parameter is deliberately not read: query strings
  end up in access logs and browser history.

Functions:
    hash_api_key():  One-way digest used as the lookup key.
    generate_api_key():  New ``sk_live_`` secret.
    extract_api_key():  Pull the secret out of request headers.

Classes:
    APIKeyService:  Authenticate, provision and revoke keys.
"""

import hashlib
import secrets
import uuid

from starlette.requests import Request

from shortener.background import BackgroundDispatcher
from shortener.exceptions import UnauthorizedError
from shortener.models import APIKey
from shortener.repository import APIKeyRepository

__all__ = ["APIKeyService", "extract_api_key", "generate_api_key", "hash_api_key"]

API_KEY_HEADER = "X-API-Key"
API_KEY_PREFIX = "sk_live_"


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_hex(16)


def extract_api_key(request: Request) -> str | None:
    key = request.headers.get(API_KEY_HEADER)
    if key:
        return key.strip()

    auth = request.headers.get("authorization", "")
    if auth.startswith("Bearer "):
        token = auth[len("Bearer "):].strip()
        if token:
            return token

    return None


class APIKeyService:
    def __init__(self, repository: APIKeyRepository, dispatcher: BackgroundDispatcher, logger, settings):
        self._repo = repository
        self._dispatcher = dispatcher
        self._logger = logger
        self._settings = settings

    @classmethod
    def from_context(cls, ctx) -> "APIKeyService":
        return cls(ctx.api_key_repository, ctx.dispatcher, ctx.logger, ctx.settings)

    async def authenticate(self, raw_key: str | None) -> APIKey:
        if not raw_key:
            raise UnauthorizedError(details="API key is required")

        key = await self._repo.get_active_by_hash(hash_api_key(raw_key))
        if key is None:
            self._logger.warning("Rejected request with an unknown or inactive API key")
            raise UnauthorizedError(details="API key is invalid")

        key_id = key.id
        self._dispatcher.submit(
            "api_key_last_used",
            lambda: self._repo.update_last_used(key_id),
            timeout=self._settings.BACKGROUND_TASK_TIMEOUT_SECONDS,
        )
        self._logger.debug(f"Authenticated API key {key.id} ({key.name})")
        return key

    async def provision(self, name: str, rate_limit: int | None = None) -> tuple[str, APIKey]:
        """Create a key; the returned raw secret is not recoverable later."""
        raw_key = generate_api_key()
        key = APIKey(
            id=uuid.uuid4(),
            key_hash=hash_api_key(raw_key),
            name=name,
            rate_limit=rate_limit or self._settings.DEFAULT_API_KEY_RPM,
            is_active=True,
        )
        await self._repo.create(key)
        self._logger.info(f"Provisioned API key {key.id} ({name}) at {key.rate_limit} rpm")
        return raw_key, key

    async def revoke(self, key_id: uuid.UUID) -> bool:
        revoked = await self._repo.deactivate(key_id)
        if revoked:
            self._logger.info(f"Revoked API key {key_id}")
        return revoked
