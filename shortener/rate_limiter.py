"""Per-identity request budgets backed by Redis counters.

ALGORITHM: fixed window counter
    Windows are aligned to the epoch (for the default 60s window, one per
    Unix minute). Each request INCRs ``ratelimit:{identity}:{window}``; the
    first request of a window sets the key's expiry, later ones leave it
    alone so the key still dies under sustained load.

    A fixed window admits up to twice the budget around a window boundary
    (a burst at the end of one minute plus a burst at the start of the
    next). Deployments that need a strict bound should swap ``check`` for a
    sliding log or a weighted two-window estimate; the result type and the
    callers do not change.

FAILURE POLICY: fail open
    If Redis cannot be reached the request is allowed. A cache incident must
    not take the redirect path down with it.

Classes:
    RateLimitResult:  Outcome of one check plus the response headers.
    RateLimiter:  The Redis-backed counter.

Functions:
    client_identity():  Address-based identity for unauthenticated callers.
"""

import logging
import math
import time
from dataclasses import dataclass

import redis.asyncio as redis
from prometheus_client import Counter
from starlette.requests import Request

from shortener.cache import rate_limit_key

__all__ = ["RateLimitResult", "RateLimiter", "client_identity"]

RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "shortener_rate_limit_decisions_total",
    "Rate limiter decisions",
    ["decision"],
)


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """The outcome of a rate limit check.

    allowed:      True if the request may proceed.
    limit:        The budget for the window.
    remaining:    max(0, limit - count).
    count:        Requests seen in the window, this one included.
    reset_at:     Epoch seconds at which the window ends.
    retry_after:  Whole seconds until reset (at least 1).
    degraded:     True when Redis failed and the check failed open.
    """

    allowed: bool
    limit: int
    remaining: int
    count: int
    reset_at: int
    retry_after: int
    degraded: bool = False

    def headers(self) -> dict[str, str]:
        if self.degraded:
            return {}
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    def __init__(
        self,
        client: redis.Redis,
        logger: logging.Logger | logging.LoggerAdapter,
        window_seconds: int = 60,
    ):
        self._client = client
        self._logger = logger
        self._window = window_seconds

    @property
    def window_seconds(self) -> int:
        return self._window

    async def check(self, identity: str, budget: int, now: float | None = None) -> RateLimitResult:
        now = time.time() if now is None else now
        window_index = int(now // self._window)
        reset_at = (window_index + 1) * self._window
        retry_after = max(1, math.ceil(reset_at - now))
        key = rate_limit_key(identity, window_index)

        try:
            count = await self._client.incr(key)
        except (redis.RedisError, OSError) as exc:
            RATE_LIMIT_DECISIONS_TOTAL.labels(decision="fail_open").inc()
            self._logger.warning(f"Rate limiter unavailable, allowing request: {exc}")
            return RateLimitResult(
                allowed=True,
                limit=budget,
                remaining=budget,
                count=0,
                reset_at=reset_at,
                retry_after=retry_after,
                degraded=True,
            )

        if count == 1:
            try:
                await self._client.expire(key, self._window)
            except (redis.RedisError, OSError) as exc:
                self._logger.warning(f"Failed to set expiry on {key}: {exc}")

        allowed = count <= budget
        RATE_LIMIT_DECISIONS_TOTAL.labels(decision="allowed" if allowed else "rejected").inc()
        return RateLimitResult(
            allowed=allowed,
            limit=budget,
            remaining=max(0, budget - count),
            count=count,
            reset_at=reset_at,
            retry_after=retry_after,
        )


def client_identity(request: Request, trust_forwarded: bool = True) -> str:
    """Caller address, preferring proxy headers when the proxy is trusted.

    ``X-Forwarded-For`` is only meaningful behind a proxy that overwrites it;
    exposed directly, clients can pick their own identity.
    """
    if trust_forwarded:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return "unknown"
