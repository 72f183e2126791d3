"""Post-completion hooks run by the pipeline after a response is final."""

from __future__ import annotations

import logging

from crudgate.core.pipeline import MiddlewareContext

logger = logging.getLogger(__name__)


class RequestLogHook:
    """Log one line per completed request.

    Slow requests and error statuses are logged as warnings, the rest as info.

    Attributes:
        slow_threshold_ms: Duration above which a request counts as slow.
    """

    def __init__(self, *, slow_threshold_ms: float = 1000, log: logging.Logger | None = None) -> None:
        self.slow_threshold_ms = slow_threshold_ms
        self._log = log or logger

    def __call__(self, ctx: MiddlewareContext) -> None:
        status = ctx.response.status if ctx.response is not None else 500
        duration_ms = ctx.duration_ms or 0.0
        slow = duration_ms > self.slow_threshold_ms

        extra = {
            "request_method": ctx.request.method,
            "request_path": ctx.request.path,
            "status_code": status,
            "duration_ms": round(duration_ms, 2),
            "short_circuited": ctx.short_circuited,
            "slow": slow,
        }
        if slow or status >= 400:
            self._log.warning("request.completed", extra=extra)
        else:
            self._log.info("request.completed", extra=extra)
