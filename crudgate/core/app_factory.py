from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (limiter, pipeline, handlers, routers) so every
collaborator is built once from settings and passed in explicitly.
"""

import logging
from typing import Callable

from fastapi import FastAPI

from crudgate.adapters.rate_limit import SlidingLogRateLimiter, monotonic_ms
from crudgate.api.routes import health_router, posts_router
from crudgate.core.auth import (
    ApiKeyCredentialVerifier,
    AuthHandler,
    CredentialVerifier,
    PassthroughCredentialVerifier,
    parse_api_keys,
)
from crudgate.core.config import Settings, settings as default_settings
from crudgate.core.cors import CorsHandler
from crudgate.core.exception_handlers import ErrorStage, setup_exception_handlers
from crudgate.core.hooks import RequestLogHook
from crudgate.core.logging import configure_logging
from crudgate.core.middleware import build_pipeline_middleware
from crudgate.core.pipeline import MiddlewarePipeline
from crudgate.core.rate_limit import RateLimitHandler
from crudgate.services.post_service import PostService


def _parse_paths(value: str) -> set[str]:
    return {path.strip() for path in value.split(",") if path.strip()}


def build_verifier(cfg: Settings) -> CredentialVerifier:
    """Use the configured key list when present, else accept any token."""
    keys = parse_api_keys(cfg.app.api_keys)
    if keys:
        return ApiKeyCredentialVerifier(keys, log=logging.getLogger("crudgate.auth"))
    return PassthroughCredentialVerifier()


def build_pipeline(
    cfg: Settings,
    limiter: SlidingLogRateLimiter,
    verifier: CredentialVerifier,
) -> MiddlewarePipeline:
    """Assemble the handler chain: CORS, auth, rate limit."""
    public_paths = _parse_paths(cfg.app.public_paths)
    return MiddlewarePipeline(
        [
            CorsHandler(
                allow_origin=cfg.cors.allow_origin,
                allow_methods=cfg.cors.allow_methods,
                allow_headers=cfg.cors.allow_headers,
            ),
            AuthHandler(
                verifier,
                required=cfg.app.auth_required,
                exempt_paths=public_paths,
                log=logging.getLogger("crudgate.auth"),
            ),
            RateLimitHandler(
                limiter,
                enabled=cfg.app.rate_limit_enabled,
                include_headers=cfg.app.rate_limit_include_headers,
                exempt_paths=public_paths,
                log=logging.getLogger("crudgate.rate_limit"),
            ),
        ],
        error_stage=ErrorStage(verbose=cfg.app.debug, log=logging.getLogger("crudgate.errors")),
        hooks=[
            RequestLogHook(
                slow_threshold_ms=cfg.app.slow_request_ms,
                log=logging.getLogger("crudgate.access"),
            )
        ],
        request_id_header=cfg.log.request_id_header,
        log=logging.getLogger("crudgate.pipeline"),
    )


def create_app(
    app_settings: Settings | None = None,
    *,
    clock: Callable[[], int] = monotonic_ms,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; the environment-loaded ones by default.
        clock: Millisecond clock for the rate limiter.

    Returns:
        Configured FastAPI app with pipeline middleware, handlers and routers.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    limiter = SlidingLogRateLimiter(
        capacity=cfg.app.rate_limit_capacity,
        window_ms=cfg.app.rate_limit_window_ms,
        clock=clock,
        sweep_interval_ms=cfg.app.rate_limit_sweep_interval_ms,
        lock_shards=cfg.app.rate_limit_lock_shards,
        log=logging.getLogger("crudgate.rate_limit"),
    )
    pipeline = build_pipeline(cfg, limiter, build_verifier(cfg))

    app = FastAPI(
        title="crudgate",
        description=(
            "Posts CRUD API fronted by a middleware pipeline: CORS, bearer "
            "authorization and per-client sliding-window rate limiting."
        ),
        version="0.1.0",
    )
    app.state.settings = cfg
    app.state.rate_limiter = limiter
    app.state.pipeline = pipeline
    app.state.post_service = PostService(log=logging.getLogger("crudgate.posts"))

    # Middleware
    app.middleware("http")(build_pipeline_middleware(pipeline))

    # Exception handlers
    setup_exception_handlers(app, verbose=cfg.app.debug)

    # Routers
    app.include_router(posts_router, prefix="/api")
    app.include_router(health_router)

    return app
