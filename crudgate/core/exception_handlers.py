"""Centralized fault handling for the pipeline and the FastAPI app.

Every fault ends up in one of two places that share the same response
format:

- ``ErrorStage``: the pipeline's single error-handling stage.
- FastAPI exception handlers registered by ``setup_exception_handlers``
  for errors raised inside routes.

Design:
- Status comes from the fault (``status``/``status_code``) or defaults to 500
- Body is ``{"error": {"message": ..., "status": ...}}``
- ValidationAppError carrying a field map renders ``{"errors": {...}}``
- Stack traces and details only appear with verbose diagnostics enabled
"""

from __future__ import annotations

import logging
import traceback
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crudgate.core.errors import AppError, ValidationAppError, status_for
from crudgate.core.logging import get_request_id
from crudgate.core.pipeline import MiddlewareContext, PipelineResponse

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Internal server error"


def build_error_body(exc: BaseException, status: int, *, verbose: bool = False) -> dict[str, Any]:
    """Render a fault as a JSON-serializable response body.

    Args:
        exc: The fault.
        status: Resolved HTTP status.
        verbose: Include stack trace and structured details.

    Returns:
        Response body dict.
    """
    if isinstance(exc, ValidationAppError) and exc.details and "errors" in exc.details:
        return {"errors": dict(exc.details["errors"])}

    error: dict[str, Any] = {
        "message": str(exc) or DEFAULT_ERROR_MESSAGE,
        "status": status,
    }
    if verbose:
        error["stack"] = "".join(traceback.format_exception(exc))
        details = getattr(exc, "details", None)
        if details:
            error["details"] = details
    return {"error": error}


class ErrorStage:
    """Map any fault raised in the pipeline to a response.

    Attributes:
        verbose: Whether to expose stack traces and details to clients.
    """

    def __init__(self, *, verbose: bool = False, log: logging.Logger | None = None) -> None:
        self.verbose = verbose
        self._log = log or logger

    def __call__(self, ctx: MiddlewareContext, exc: Exception) -> PipelineResponse:
        status = status_for(exc)
        extra = {
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "status_code": status,
            "request_method": ctx.request.method,
            "request_path": ctx.request.path,
            "request_id": ctx.request_id,
        }
        if status >= 500:
            self._log.error("request.failed", extra=extra, exc_info=exc)
        else:
            self._log.warning("request.failed", extra=extra)

        return PipelineResponse(
            status=status,
            body=build_error_body(exc, status, verbose=self.verbose),
        )


def _validation_errors(exc: RequestValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        errors[".".join(loc) or "body"] = item.get("msg", "invalid value")
    return errors


def setup_exception_handlers(app: FastAPI, *, verbose: bool = False) -> None:
    """Register all exception handlers with the FastAPI app.

    Order matters: specific handlers registered before the general fallback.

    Args:
        app: FastAPI application instance.
        verbose: Include stack traces and details in error bodies.
    """

    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        status = status_for(exc)
        logger.warning(
            "app_error_handled",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "status_code": status,
                "has_details": bool(exc.details),
                "request_id": get_request_id(),
            },
        )
        return JSONResponse(status_code=status, content=build_error_body(exc, status, verbose=verbose))

    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        content = {"error": {"message": str(exc.detail), "status": exc.status_code}}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = _validation_errors(exc)
        logger.info(
            "request_validation_failed",
            extra={"fields": sorted(errors), "request_id": get_request_id()},
        )
        return JSONResponse(status_code=400, content={"errors": errors})

    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        status = status_for(exc)
        logger.error(
            "unhandled_exception",
            extra={
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
                "request_path": request.url.path,
                "request_method": request.method,
                "request_id": get_request_id(),
            },
        )
        return JSONResponse(status_code=status, content=build_error_body(exc, status, verbose=verbose))

    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(Exception)(general_exception_handler)
