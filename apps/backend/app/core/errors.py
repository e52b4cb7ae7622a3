"""
core/errors.py

Uniform error envelope, the pipeline's error taxonomy, and exception handlers.

Non-developer summary:
----------------------
No matter where an error happens, the client sees the same structure:
{ error: { code, message, details?, requestId } }. Internal details
(stack traces, upstream responses) are logged, never returned.

The one deliberate exception is the rate-limit rejection, which keeps its
historical plain-text advisory body (see RateLimitExceeded).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def get_request_id(request: Request) -> Optional[str]:
    # Prefer the value set by our RequestIdMiddleware, fallback to header.
    rid = getattr(request.state, "request_id", None)
    return rid or request.headers.get("X-Request-ID")


def error_envelope(
    *,
    code: str,
    message: str,
    status: int,
    request_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """
    Build a JSON error response with the uniform envelope.
    """
    body = {
        "error": {
            "code": code,
            "message": message,
            "requestId": request_id,
        }
    }
    if details:
        body["error"]["details"] = details
    return JSONResponse(status_code=status, content=body)


# ---------- AppError (preferred for domain-specific errors) ----------

class AppError(Exception):
    """
    Raise this from your code for well-defined errors, e.g.:

        raise AppError("NOT_FOUND", "No such thing.", status=404, details={...})
    """
    def __init__(self, code: str, message: str, *, status: int = 400, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}


class OriginNotAllowed(AppError):
    """
    The request declared an Origin that is not on the allow-list.

    Surfaced as a 500 (the historical behaviour of the CORS layer) rather
    than a silent success without CORS headers.
    """
    def __init__(self, origin: str):
        super().__init__("ORIGIN_NOT_ALLOWED", "Not allowed by CORS", status=500)
        self.origin = origin


class RateLimitExceeded(AppError):
    """
    The client used up its quota for the current window. Terminal; the
    server never queues or retries on the client's behalf.
    """
    def __init__(self, message: str, *, retry_after: int):
        super().__init__("RATE_LIMITED", message, status=429)
        self.retry_after = retry_after


class CacheUnavailable(AppError):
    """
    The cache backing store could not be reached. Never shown to clients:
    the cache layer logs it and carries on as a miss.
    """
    def __init__(self, operation: str, key: str):
        super().__init__("CACHE_UNAVAILABLE", f"Cache {operation} failed.", status=503, details={"key": key})
        self.operation = operation
        self.key = key


class UpstreamFetchFailed(AppError):
    """
    A handler's external HTTP dependency failed. The client gets a generic
    500; the cause is logged by the handler that raised it.
    """
    def __init__(self, url: str, message: str = "Error fetching third-party content"):
        super().__init__("UPSTREAM_FETCH_FAILED", message, status=500)
        self.url = url


# ---------- Exception handlers plugged in main.py ----------

async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Convert Starlette/FastAPI HTTPException into our envelope.
    """
    code_map = {
        400: "BAD_REQUEST",
        403: "PERMISSION_DENIED",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        422: "VALIDATION_ERROR",
        429: "RATE_LIMITED",
        500: "INTERNAL_ERROR",
    }
    code = code_map.get(exc.status_code, "ERROR")
    msg = exc.detail if isinstance(exc.detail, str) else "Request failed."
    return error_envelope(
        code=code,
        message=msg,
        status=exc.status_code,
        request_id=get_request_id(request),
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Convert our AppError into the envelope as-is.
    """
    return error_envelope(
        code=exc.code,
        message=exc.message,
        status=exc.status,
        request_id=get_request_id(request),
        details=exc.details,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Convert FastAPI validation errors (pydantic) into a 422 envelope with field errors.
    """
    details = {"fields": exc.errors()}
    return error_envelope(
        code="VALIDATION_ERROR",
        message="Request validation failed.",
        status=422,
        request_id=get_request_id(request),
        details=details,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for anything else. We do not leak internal errors to clients.
    """
    logger.exception("unhandled_exception", extra={"path": request.url.path})
    return error_envelope(
        code="INTERNAL_ERROR",
        message="Unexpected error occurred.",
        status=500,
        request_id=get_request_id(request),
    )
