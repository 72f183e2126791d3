"""HTTP middleware bridging FastAPI requests into the pipeline.

The middleware:
- Converts the incoming Starlette request into a ``PipelineRequest``
- Runs the pipeline with the FastAPI router as the business endpoint
- Exposes the authenticated principal to routes via ``request.state``
- Converts the pipeline's final response back into a Starlette response

Usage:
    app.middleware("http")(build_pipeline_middleware(pipeline))

The request body is not read here; routes validate their own bodies with
``validated_body``.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from crudgate.core.pipeline import (
    MiddlewareContext,
    MiddlewarePipeline,
    PipelineRequest,
    PipelineResponse,
)

CallNextHTTP = Callable[[Request], Awaitable[Response]]


def to_pipeline_request(request: Request) -> PipelineRequest:
    return PipelineRequest(
        method=request.method,
        path=request.url.path,
        headers=dict(request.headers),
        client_address=request.client.host if request.client else None,
        query=dict(request.query_params),
    )


def to_http_response(response: PipelineResponse) -> Response:
    """Convert a pipeline response to a Starlette response.

    A response produced by the router is reused as-is with the pipeline's
    headers merged in.
    """
    if response.raw is not None:
        raw: Response = response.raw
        for name, value in response.headers.items():
            raw.headers[name] = value
        return raw

    if response.body is None:
        return Response(status_code=response.status, headers=response.headers)
    return JSONResponse(status_code=response.status, content=response.body, headers=response.headers)


def build_pipeline_middleware(
    pipeline: MiddlewarePipeline,
) -> Callable[[Request, CallNextHTTP], Awaitable[Response]]:
    """Create an ``http`` middleware function running ``pipeline``.

    Args:
        pipeline: Pipeline whose chain fronts every route.

    Returns:
        Coroutine function suitable for ``app.middleware("http")``.
    """

    async def pipeline_middleware(request: Request, call_next: CallNextHTTP) -> Response:
        async def forward_to_router(ctx: MiddlewareContext) -> PipelineResponse:
            request.state.principal = ctx.principal
            request.state.request_id = ctx.request_id
            response = await call_next(request)
            return PipelineResponse(status=response.status_code, raw=response)

        result = await pipeline.run(to_pipeline_request(request), endpoint=forward_to_router)
        return to_http_response(result)

    return pipeline_middleware
