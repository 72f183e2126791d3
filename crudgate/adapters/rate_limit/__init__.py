"""Rate limiting adapters.

This package provides a small abstraction layer so the service can start
with an in-memory sliding-log limiter and later migrate to Redis or another
shared store without changing the HTTP layer.
"""

from crudgate.adapters.rate_limit.base import (
    AbstractRateLimiter,
    AbstractRateLimitStore,
    Decision,
    RateLimitResult,
    monotonic_ms,
)
from crudgate.adapters.rate_limit.in_memory import InMemoryRateLimitStore, SlidingLogRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "AbstractRateLimitStore",
    "Decision",
    "InMemoryRateLimitStore",
    "RateLimitResult",
    "SlidingLogRateLimiter",
    "monotonic_ms",
]
