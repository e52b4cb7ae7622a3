"""
main.py

FastAPI application factory for the pipeline demo API (AWS Lambda compatible).

Non-developer summary (what this file does):
--------------------------------------------
- Sets up JSON logging (with requestId) and builds the FastAPI app.
- Builds the shared services once (origin allow-list, security policy,
  rate limiter, Redis-backed response cache, compressor, HTTP client).
- Adds middlewares (outermost first):
    1) RequestId (adds/echoes X-Request-ID)
    2) Compression (Starlette GZip, honours x-no-compression)
    3) Request pipeline, which runs for every request in this order:
         origin check -> security headers -> rate limit -> cache lookup
         -> route handler -> cache store -> flush headers
- Mounts routes:
    - Health: /healthz, /readyz
    - API routes under the API base path (e.g., /api): /users, /demo, /test/*
    - /large at root
- Installs uniform error handlers so errors look like:
    { "error": { "code", "message", "requestId", "details?" } }
- Exposes the AWS Lambda handler (via Mangum).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from mangum import Mangum

from .core.config import Settings, get_settings
from .core.logging import configure_logging
from .core.errors import (
    http_exception_handler,
    app_error_handler,
    validation_exception_handler,
    unhandled_exception_handler,
    AppError,
)
from .middleware.compression import ResponseCompressionMiddleware
from .middleware.pipeline import PipelineMiddleware, RequestPipeline
from .middleware.request_id import RequestIdMiddleware
from .routers import health as health_router
from .routers.routes_mount import register_routes
from .services.container import build_services
from .services.rate_limiter import RateLimiter
from .services.response_cache import KeyValueStore


def create_app(
    settings: Optional[Settings] = None,
    *,
    cache_store: Optional[KeyValueStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    pipeline: Optional[RequestPipeline] = None,
) -> FastAPI:
    """
    Build and configure the FastAPI application.

    Every argument is optional; tests pass isolated instances (fake cache
    store, fixed-clock limiter, mocked HTTP transport) instead of patching.
    """
    s = settings or get_settings()

    # 1) Logging (structured JSON with requestId, service, stage)
    configure_logging(s.LOG_LEVEL, s)

    # 2) Shared services, created once and closed on shutdown
    services = build_services(s, cache_store=cache_store, rate_limiter=rate_limiter, http_client=http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            await services.aclose()

    # 3) App instance
    app = FastAPI(
        title="Pipeline Demo API",
        version="1.0.0",
        description="A simple REST API demonstrating a composed request pipeline",
        openapi_url="/api-docs.json",
        docs_url="/api-docs" if not s.is_production else None,  # hide Swagger in prod
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.services = services

    # 4) Middlewares (the last one added is the outermost)
    app.add_middleware(PipelineMiddleware, pipeline=pipeline)  # origin/headers/limit/cache/flush
    app.add_middleware(ResponseCompressionMiddleware, compressor=services.compressor)  # gzip (Starlette GZip)
    app.add_middleware(RequestIdMiddleware)                    # adds/echoes X-Request-ID

    # 5) Routers
    # Health endpoints at root for infra checks (/healthz, /readyz)
    app.include_router(health_router.router, prefix="")
    register_routes(app, s)

    # Minimal root route for quick diagnostics
    @app.get("/")
    async def root():
        return JSONResponse({"service": s.APP_NAME, "stage": s.APP_STAGE})

    # 6) Error handlers (uniform envelope everywhere)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    return app


# App instance for local uvicorn runs, e.g.:
# uvicorn apps.backend.app.main:app --reload --port 3001
app = create_app()

# AWS Lambda handler via Mangum (lifespan disabled to speed cold starts)
handler = Mangum(app, lifespan="off")
