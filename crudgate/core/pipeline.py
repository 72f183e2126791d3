"""Ordered request handler chain with a single error stage.

A pipeline runs a fixed sequence of handlers in front of a business
endpoint. Every handler receives the per-request ``MiddlewareContext`` and
a ``call_next`` coroutine function, and does exactly one of:

- awaits ``call_next()`` to pass control down the chain,
- calls ``ctx.respond(...)`` and returns, ending the chain early,
- raises, which hands the fault to the error stage regardless of position.

After the response is final, completion hooks run in registration order.
Hooks observe the finished context; they cannot change the response.

Usage:
    pipeline = MiddlewarePipeline(
        [cors, auth, rate_limit],
        endpoint=handle_request,
        error_stage=ErrorStage(verbose=False),
    )
    response = await pipeline.run(PipelineRequest("GET", "/api/posts"))
"""

from __future__ import annotations

import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Sequence

from crudgate.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


class RequestState(enum.Enum):
    """Lifecycle of one pipeline run."""

    ENTRY = "entry"
    RUNNING = "running"
    RESPONDED = "responded"
    FAULTED = "faulted"
    COMPLETE = "complete"


@dataclass
class PipelineRequest:
    """Framework-independent view of an inbound request.

    Header lookup through ``header()`` is case-insensitive.
    """

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    client_address: str | None = None
    body: Any = None
    query: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self._lower_headers = {key.lower(): value for key, value in self.headers.items()}

    def header(self, name: str, default: str | None = None) -> str | None:
        return self._lower_headers.get(name.lower(), default)


@dataclass
class PipelineResponse:
    """Final response of a pipeline run.

    Attributes:
        status: HTTP status code.
        body: JSON-serializable body, or None for an empty body.
        headers: Response headers.
        raw: Framework response produced by a bridged endpoint, if any.
    """

    status: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    raw: Any = None


@dataclass
class MiddlewareContext:
    """Mutable state threaded through one pipeline run."""

    request: PipelineRequest
    request_id: str
    client_key: str
    principal: Any = None
    response_headers: dict[str, str] = field(default_factory=dict)
    response: PipelineResponse | None = None
    short_circuited: bool = False
    state: RequestState = RequestState.ENTRY
    fault: Exception | None = None
    started_at: float = field(default_factory=time.perf_counter)
    duration_ms: float | None = None

    def respond(
        self,
        status: int,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> PipelineResponse:
        """Produce the final response from inside a handler.

        Raises:
            RuntimeError: If a response was already produced.
        """
        if self.response is not None:
            raise RuntimeError("response already produced for this request")
        self.response = PipelineResponse(status=status, body=body, headers=dict(headers or {}))
        self.short_circuited = True
        return self.response


CallNext = Callable[[], Awaitable[None]]
Handler = Callable[[MiddlewareContext, CallNext], Awaitable[None]]
Endpoint = Callable[[MiddlewareContext], Awaitable[Any]]
ErrorStageFn = Callable[[MiddlewareContext, Exception], PipelineResponse]
CompletionHook = Callable[[MiddlewareContext], None]


def resolve_client_key(request: PipelineRequest) -> str:
    """Return the rate limiting key for a request: its network address."""
    return request.client_address or UNKNOWN_CLIENT


def _fallback_error_stage(ctx: MiddlewareContext, exc: Exception) -> PipelineResponse:
    return PipelineResponse(
        status=500,
        body={"error": {"message": "Internal server error", "status": 500}},
    )


class MiddlewarePipeline:
    """Run a fixed handler chain, the endpoint, the error stage and hooks."""

    def __init__(
        self,
        handlers: Sequence[Handler],
        *,
        endpoint: Endpoint | None = None,
        error_stage: ErrorStageFn | None = None,
        hooks: Sequence[CompletionHook] = (),
        identity: Callable[[PipelineRequest], str] = resolve_client_key,
        request_id_header: str = "X-Request-ID",
        log: logging.Logger | None = None,
    ) -> None:
        self._handlers: tuple[Handler, ...] = tuple(handlers)
        self._endpoint = endpoint
        self._error_stage = error_stage or _fallback_error_stage
        self._hooks: tuple[CompletionHook, ...] = tuple(hooks)
        self._identity = identity
        self._request_id_header = request_id_header
        self._log = log or logger

    @property
    def handlers(self) -> tuple[Handler, ...]:
        return self._handlers

    def create_context(self, request: PipelineRequest) -> MiddlewareContext:
        request_id = request.header(self._request_id_header) or str(uuid.uuid4())
        return MiddlewareContext(
            request=request,
            request_id=request_id,
            client_key=self._identity(request),
        )

    async def run(
        self,
        request: PipelineRequest,
        endpoint: Endpoint | None = None,
    ) -> PipelineResponse:
        """Process one request through the chain.

        Args:
            request: Inbound request.
            endpoint: Business handler for this run; defaults to the one
                given at construction.

        Returns:
            The finalized response. Faults never escape: they are turned into
            responses by the error stage.
        """
        target = endpoint or self._endpoint
        if target is None:
            raise ValueError("pipeline has no endpoint")

        ctx = self.create_context(request)
        set_request_id(ctx.request_id)
        try:
            ctx.state = RequestState.RUNNING
            try:
                await self._dispatch(ctx, 0, target)
                if ctx.response is None:
                    raise RuntimeError("handler chain finished without a response")
                ctx.state = RequestState.RESPONDED
            except Exception as exc:
                ctx.fault = exc
                ctx.state = RequestState.FAULTED
                ctx.response = self._handle_fault(ctx, exc)

            response = self._finalize(ctx)
            ctx.state = RequestState.COMPLETE
            self._run_hooks(ctx)
            return response
        finally:
            clear_request_id()

    async def _dispatch(self, ctx: MiddlewareContext, index: int, endpoint: Endpoint) -> None:
        if index == len(self._handlers):
            result = await endpoint(ctx)
            if ctx.response is not None:
                return
            ctx.response = result if isinstance(result, PipelineResponse) else PipelineResponse(200, result)
            return

        handler = self._handlers[index]
        called = False

        async def call_next() -> None:
            nonlocal called
            if called:
                raise RuntimeError("call_next() awaited more than once")
            called = True
            if ctx.response is not None:
                raise RuntimeError("call_next() awaited after a response was produced")
            await self._dispatch(ctx, index + 1, endpoint)

        await handler(ctx, call_next)

    def _handle_fault(self, ctx: MiddlewareContext, exc: Exception) -> PipelineResponse:
        try:
            return self._error_stage(ctx, exc)
        except Exception:
            self._log.exception(
                "pipeline.error_stage_failed",
                extra={"error_type": type(exc).__name__, "request_path": ctx.request.path},
            )
            return _fallback_error_stage(ctx, exc)

    def _finalize(self, ctx: MiddlewareContext) -> PipelineResponse:
        response = ctx.response
        assert response is not None
        for name, value in ctx.response_headers.items():
            response.headers.setdefault(name, value)

        ctx.duration_ms = (time.perf_counter() - ctx.started_at) * 1000
        response.headers[self._request_id_header] = ctx.request_id
        response.headers.setdefault("X-Request-Duration-ms", f"{ctx.duration_ms:.2f}")
        return response

    def _run_hooks(self, ctx: MiddlewareContext) -> None:
        for hook in self._hooks:
            try:
                hook(ctx)
            except Exception:
                self._log.exception(
                    "pipeline.hook_failed",
                    extra={"hook": getattr(hook, "__name__", type(hook).__name__)},
                )
