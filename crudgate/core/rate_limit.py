"""Rate limiting handler for the request pipeline.

This module wires the rate limiting adapter into the pipeline.

Design goals:
- Minimal coupling: the handler depends on the abstract limiter only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind the
  adapter interface.
- Per-client accounting: the key is the client's network address.
"""

from __future__ import annotations

import hashlib
import logging
import math
from typing import Iterable

from crudgate.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from crudgate.core.errors import AdmissionRejectedError
from crudgate.core.pipeline import CallNext, MiddlewareContext

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = "Too many requests"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _ceil_seconds(ms: int | None) -> int:
    return int(math.ceil((ms or 0) / 1000))


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build Retry-After and X-RateLimit-* headers for a rejected request."""
    return {
        "Retry-After": str(_ceil_seconds(result.retry_after_ms)),
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(_ceil_seconds(result.reset_after_ms)),
    }


class RateLimitHandler:
    """Pipeline handler rejecting clients over their sliding-window allowance.

    Rejected requests end the chain with 429 and are not counted against the
    client.
    """

    def __init__(
        self,
        limiter: AbstractRateLimiter,
        *,
        enabled: bool = True,
        include_headers: bool = True,
        exempt_paths: Iterable[str] = (),
        log: logging.Logger | None = None,
    ) -> None:
        self._limiter = limiter
        self._enabled = enabled
        self._include_headers = include_headers
        self._exempt_paths = frozenset(exempt_paths)
        self._log = log or logger

    async def __call__(self, ctx: MiddlewareContext, call_next: CallNext) -> None:
        if not self._enabled or ctx.request.path in self._exempt_paths:
            await call_next()
            return

        key_hash = _hash_limiter_key(ctx.client_key)
        result = self._limiter.consume(ctx.client_key)
        if result.allowed:
            self._log.debug(
                "rate_limit.admitted",
                extra={"key_hash": key_hash, "limit": result.limit, "remaining": result.remaining},
            )
            await call_next()
            return

        rejection = AdmissionRejectedError(
            code="rate_limited",
            message=TOO_MANY_REQUESTS,
            details={"limit": result.limit, "retry_after_ms": result.retry_after_ms},
        )
        self._log.warning(
            "rate_limit.rejected",
            extra={"key_hash": key_hash, "request_path": ctx.request.path, **rejection.details},
        )
        headers = rate_limit_headers(result) if self._include_headers else None
        ctx.respond(rejection.status, {"error": rejection.message}, headers=headers)
