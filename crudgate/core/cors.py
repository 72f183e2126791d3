"""Permissive CORS handler."""

from __future__ import annotations

from crudgate.core.pipeline import CallNext, MiddlewareContext

DEFAULT_ALLOW_ORIGIN = "*"
DEFAULT_ALLOW_METHODS = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
DEFAULT_ALLOW_HEADERS = "Origin, X-Requested-With, Content-Type, Accept, Authorization"


class CorsHandler:
    """Attach cross-origin headers and answer preflight requests.

    ``OPTIONS`` requests get an empty 200 and stop here. Every other request
    continues, and the headers are merged into whatever response it ends with.
    """

    def __init__(
        self,
        *,
        allow_origin: str = DEFAULT_ALLOW_ORIGIN,
        allow_methods: str = DEFAULT_ALLOW_METHODS,
        allow_headers: str = DEFAULT_ALLOW_HEADERS,
    ) -> None:
        self.headers = {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": allow_methods,
            "Access-Control-Allow-Headers": allow_headers,
        }

    async def __call__(self, ctx: MiddlewareContext, call_next: CallNext) -> None:
        ctx.response_headers.update(self.headers)
        if ctx.request.method == "OPTIONS":
            ctx.respond(200)
            return
        await call_next()
