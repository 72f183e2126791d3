"""Rate limiter interfaces.

The HTTP layer depends on these abstractions (not the concrete
implementation) so the storage backend can be swapped later (e.g., Redis)
with minimal changes.
"""

from __future__ import annotations

import enum
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import ContextManager


def monotonic_ms() -> int:
    """Default clock: monotonic milliseconds from an arbitrary fixed epoch."""
    return time.monotonic_ns() // 1_000_000


class Decision(enum.Enum):
    """Outcome of an admission check."""

    ADMIT = "admit"
    REJECT = "reject"


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit consume operation.

    Attributes:
        decision: Whether the request was admitted.
        limit: Max admitted requests per window.
        remaining: Slots left in the current window (0 when rejected).
        reset_after_ms: Time until the oldest logged request leaves the window.
        retry_after_ms: Suggested wait before retrying, set only on rejection.
    """

    decision: Decision
    limit: int
    remaining: int
    reset_after_ms: int
    retry_after_ms: int | None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ADMIT


class AbstractRateLimitStore(ABC):
    """Per-key ordered logs of admitted request timestamps."""

    @abstractmethod
    def get_log(self, key: str) -> deque[int]:
        """Return the log for ``key``, creating an empty one on first access."""
        raise NotImplementedError

    @abstractmethod
    def record(self, key: str, timestamp: int) -> None:
        """Append ``timestamp`` to the log for ``key``."""
        raise NotImplementedError

    @abstractmethod
    def prune(self, key: str, window_start: int) -> int:
        """Drop entries strictly older than ``window_start``.

        Returns:
            Number of entries removed.
        """
        raise NotImplementedError

    @abstractmethod
    def clear(self, key: str) -> None:
        """Drop every entry logged for ``key``."""
        raise NotImplementedError

    @abstractmethod
    def lock(self, key: str) -> ContextManager[object]:
        """Return the exclusion lock guarding mutations of ``key``."""
        raise NotImplementedError

    @abstractmethod
    def evict_idle(self, idle_before: int) -> int:
        """Forget keys whose newest entry is older than ``idle_before``.

        Returns:
            Number of keys evicted.
        """
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check_and_record(
        self, key: str, now: int, capacity: int, window_ms: int
    ) -> Decision:
        """Admit or reject a request for ``key`` at time ``now``.

        Args:
            key: Client key (e.g., network address).
            now: Current timestamp in milliseconds.
            capacity: Max admitted requests within any trailing window.
            window_ms: Window length in milliseconds.

        Returns:
            Decision.ADMIT if the request was admitted and recorded.
        """
        raise NotImplementedError

    @abstractmethod
    def consume(self, key: str) -> RateLimitResult:
        """Run an admission check using the limiter's own clock and limits."""
        raise NotImplementedError
