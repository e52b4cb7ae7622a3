"""
middleware/stages.py

The individual pipeline stages and their default order.

Pre stages (may short-circuit):
    origin_stage -> security_headers_stage -> rate_limit_stage -> cache_lookup_stage
Post stages (always run, in order):
    cache_store_stage -> flush_headers_stage
Gzip is applied to the finished response by middleware/compression.py.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from starlette.responses import PlainTextResponse, Response

from ..core.errors import OriginNotAllowed, RateLimitExceeded, get_request_id, error_envelope
from ..security.cookie_service import apply_session_cookie
from ..security.header_policy import REMOVED_HEADERS, compose_security_headers
from ..security.origin_policy import is_preflight
from ..services.rate_limiter import client_identity
from ..services.response_cache import request_fingerprint
from .pipeline import PipelineContext, RequestPipeline

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"


def _under(path: str, prefix: str) -> bool:
    return not prefix or path == prefix or path.startswith(prefix + "/")


# ---------------- Pre stages ----------------

async def origin_stage(ctx: PipelineContext) -> Optional[Response]:
    """
    Reject unknown origins before any other work; stage echo headers for
    allowed ones and answer CORS preflights directly.
    """
    request = ctx.request
    origin = request.headers.get("origin")
    try:
        decision = ctx.services.origin_validator.check(origin)
    except OriginNotAllowed as exc:
        logger.warning("origin_rejected", extra={"origin": exc.origin, "path": request.url.path})
        return error_envelope(
            code=exc.code,
            message=exc.message,
            status=exc.status,
            request_id=get_request_id(request),
        )

    ctx.stage(decision.headers)
    if decision.origin and is_preflight(request.method, request.headers.get("access-control-request-method")):
        return Response(status_code=204)
    return None


async def security_headers_stage(ctx: PipelineContext) -> Optional[Response]:
    request = ctx.request
    composed = compose_security_headers(
        request.url.path,
        request.headers.get("host"),
        ctx.services.security_policy,
    )
    ctx.stage(composed.headers)
    ctx.cookie = composed.cookie
    return None


async def rate_limit_stage(ctx: PipelineContext) -> Optional[Response]:
    """
    Count the request against its client's window (API routes only). Quota
    headers go on every API response; over-quota requests get a 429.
    """
    request = ctx.request
    s = ctx.services.settings
    if not _under(request.url.path, s.API_BASE_PATH):
        return None

    ctx.client_id = client_identity(request, s.TRUST_FORWARDED_FOR)
    decision = await ctx.services.rate_limiter.admit(ctx.client_id)
    ctx.stage(decision.headers())
    if decision.allowed:
        return None

    exc = RateLimitExceeded(s.RATE_LIMIT_MESSAGE, retry_after=decision.retry_after)
    logger.warning("rate_limited", extra={"clientId": ctx.client_id, "path": request.url.path, "status": exc.status})
    return PlainTextResponse(
        exc.message,
        status_code=exc.status,
        headers={"Retry-After": str(exc.retry_after)},
    )


async def cache_lookup_stage(ctx: PipelineContext) -> Optional[Response]:
    """Serve a stored body for cache-enabled GET routes without running the handler."""
    request = ctx.request
    if request.method != "GET" or not ctx.services.is_cacheable_path(request.url.path):
        return None

    ctx.fingerprint = request_fingerprint(request.url.path, request.url.query)
    body = await ctx.services.response_cache.lookup(ctx.fingerprint)
    if body is None:
        return None

    ctx.cache_hit = True
    return Response(content=body, media_type=JSON_MEDIA_TYPE, headers={"X-Cache": "HIT"})


# ---------------- Post stages ----------------

async def cache_store_stage(ctx: PipelineContext, response: Response) -> Response:
    """
    Store fresh handler output for cache-enabled routes. Only successful JSON
    bodies are stored. The write is shielded so a client disconnect does not
    cancel it.
    """
    if not ctx.fingerprint or ctx.cache_hit or not ctx.handler_ran:
        return response

    if not ctx.services.response_cache.enabled:
        return response

    response.headers["X-Cache"] = "MISS"
    content_type = response.headers.get("content-type", "")
    if response.status_code != 200 or not content_type.startswith(JSON_MEDIA_TYPE):
        return response

    body = response.body.decode(response.charset or "utf-8")
    await asyncio.shield(ctx.services.response_cache.store(ctx.fingerprint, body))
    return response


async def flush_headers_stage(ctx: PipelineContext, response: Response) -> Response:
    """Write staged headers and the session cookie; strip framework banners."""
    for name in REMOVED_HEADERS:
        if name in response.headers:
            del response.headers[name]

    for name, value in ctx.staged_headers:
        if name.lower() == "vary":
            _append_vary(response, value)
        else:
            response.headers[name] = value

    if ctx.cookie is not None:
        apply_session_cookie(response, ctx.cookie)
    return response


def _append_vary(response: Response, value: str) -> None:
    current = response.headers.get("vary")
    if not current:
        response.headers["Vary"] = value
        return
    existing = {v.strip().lower() for v in current.split(",")}
    if value.lower() not in existing:
        response.headers["Vary"] = f"{current}, {value}"


# ---------------- Default order ----------------

PRE_STAGES = (origin_stage, security_headers_stage, rate_limit_stage, cache_lookup_stage)
POST_STAGES = (cache_store_stage, flush_headers_stage)


def default_pipeline() -> RequestPipeline:
    return RequestPipeline(PRE_STAGES, POST_STAGES)
