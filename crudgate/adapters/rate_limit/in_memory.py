"""In-memory sliding-log rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: per-key state is guarded by sharded locks, so checks for
  different keys only contend when their keys land on the same shard.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

from crudgate.adapters.rate_limit.base import (
    AbstractRateLimiter,
    AbstractRateLimitStore,
    Decision,
    RateLimitResult,
    monotonic_ms,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCK_SHARDS = 64


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Dictionary of per-key deques with sharded locks.

    The store does not lock inside ``get_log``/``record``/``prune``; callers
    hold ``lock(key)`` around any read-modify-write sequence.
    """

    def __init__(self, *, shards: int = DEFAULT_LOCK_SHARDS) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._logs: dict[str, deque[int]] = {}
        self._locks = tuple(threading.Lock() for _ in range(shards))

    def __len__(self) -> int:
        return len(self._logs)

    def __contains__(self, key: object) -> bool:
        return key in self._logs

    def lock(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def get_log(self, key: str) -> deque[int]:
        log = self._logs.get(key)
        if log is None:
            log = self._logs.setdefault(key, deque())
        return log

    def record(self, key: str, timestamp: int) -> None:
        self.get_log(key).append(timestamp)

    def prune(self, key: str, window_start: int) -> int:
        log = self.get_log(key)
        removed = 0
        # Entries are appended in timestamp order, so stale ones sit at the left.
        while log and log[0] < window_start:
            log.popleft()
            removed += 1
        return removed

    def clear(self, key: str) -> None:
        self.get_log(key).clear()

    def evict_idle(self, idle_before: int) -> int:
        evicted = 0
        # Snapshot: other shards may insert keys while we sweep.
        for key in list(self._logs):
            with self.lock(key):
                log = self._logs.get(key)
                if log is None:
                    continue
                if not log or log[-1] < idle_before:
                    del self._logs[key]
                    evicted += 1
        return evicted


class SlidingLogRateLimiter(AbstractRateLimiter):
    """Admit at most ``capacity`` requests per key within any trailing window.

    Each key keeps the timestamps of its admitted requests. A check prunes
    the entries that fell out of the window and admits only while fewer than
    ``capacity`` remain. Rejected requests are never recorded, so repeated
    rejections do not push a client's recovery further out.

    Memory is O(capacity) per active key. Keys whose whole log went stale are
    evicted by ``sweep``, which ``consume`` runs at most once per
    ``sweep_interval_ms``.

    Degenerate limits are deliberate configurations rather than errors:
    ``capacity <= 0`` rejects everything, and otherwise ``window_ms <= 0``
    admits everything.
    """

    def __init__(
        self,
        *,
        capacity: int = 100,
        window_ms: int = 60000,
        clock: Callable[[], int] = monotonic_ms,
        store: AbstractRateLimitStore | None = None,
        sweep_interval_ms: int = 60000,
        lock_shards: int = DEFAULT_LOCK_SHARDS,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize the limiter.

        Args:
            capacity: Maximum admitted requests per window.
            window_ms: Window length in milliseconds.
            clock: Time source returning integer milliseconds.
            store: Backing store; a private in-memory store by default.
            sweep_interval_ms: Minimum gap between idle-key sweeps run from
                ``consume`` (0 disables automatic sweeps).
            lock_shards: Lock shard count for the default store.
            log: Logger for sweep diagnostics.

        Raises:
            ValueError: If sweep_interval_ms is negative.
        """
        if sweep_interval_ms < 0:
            raise ValueError("sweep_interval_ms must be >= 0")

        self._capacity = capacity
        self._window_ms = window_ms
        self._clock = clock
        self._store = store if store is not None else InMemoryRateLimitStore(shards=lock_shards)
        self._sweep_interval_ms = sweep_interval_ms
        self._last_sweep_at: int | None = None
        self._log = log or logger

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def tracked_keys(self) -> int:
        return len(self._store)

    def _admit(
        self, key: str, now: int, capacity: int, window_ms: int
    ) -> tuple[Decision, int, int | None]:
        """Run one admission check under the key's lock.

        Returns:
            (decision, log length after the check, oldest logged timestamp).
        """
        with self._store.lock(key):
            if window_ms <= 0:
                # Every prior entry is already stale.
                self._store.clear(key)
            else:
                self._store.prune(key, now - window_ms)
            log = self._store.get_log(key)

            if capacity <= 0:
                return Decision.REJECT, len(log), log[0] if log else None
            if window_ms <= 0:
                return Decision.ADMIT, 0, None
            if len(log) < capacity:
                self._store.record(key, now)
                return Decision.ADMIT, len(log), log[0]
            return Decision.REJECT, len(log), log[0] if log else None

    def check_and_record(
        self, key: str, now: int, capacity: int, window_ms: int
    ) -> Decision:
        decision, _, _ = self._admit(key, now, capacity, window_ms)
        return decision

    def consume(self, key: str) -> RateLimitResult:
        """Check and record a request for ``key`` at the current clock time.

        Args:
            key: Unique identifier for rate limiting (e.g., client address).

        Returns:
            RateLimitResult with the decision and window metadata.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        self._maybe_sweep(now)

        decision, used, oldest = self._admit(key, now, self._capacity, self._window_ms)
        limit = max(0, self._capacity)
        reset_after = 0 if oldest is None else max(0, oldest + self._window_ms + 1 - now)

        if decision is Decision.ADMIT:
            return RateLimitResult(
                decision=decision,
                limit=limit,
                remaining=max(0, limit - used),
                reset_after_ms=reset_after,
                retry_after_ms=None,
            )

        return RateLimitResult(
            decision=decision,
            limit=limit,
            remaining=0,
            reset_after_ms=reset_after,
            retry_after_ms=reset_after if oldest is not None else None,
        )

    def sweep(self, now: int, window_ms: int | None = None) -> int:
        """Evict keys whose entire log is older than the window ending at ``now``.

        Such logs would be pruned to empty on their next check anyway, so
        eviction never changes a decision made with the same window.

        Returns:
            Number of keys evicted.
        """
        window = self._window_ms if window_ms is None else window_ms
        evicted = self._store.evict_idle(now - max(0, window))
        if evicted:
            self._log.debug(
                "rate_limit.sweep",
                extra={"evicted": evicted, "tracked_keys": len(self._store)},
            )
        return evicted

    def _maybe_sweep(self, now: int) -> None:
        if not self._sweep_interval_ms:
            return
        if self._last_sweep_at is None:
            self._last_sweep_at = now
            return
        if now - self._last_sweep_at >= self._sweep_interval_ms:
            self._last_sweep_at = now
            self.sweep(now)
