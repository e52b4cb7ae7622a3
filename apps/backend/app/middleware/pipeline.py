"""
middleware/pipeline.py

The request pipeline: an explicit, ordered list of stages every request
passes through, plus the Starlette middleware that runs it.

Non-developer summary:
----------------------
Each request walks the same checklist in the same order:
    origin check -> security headers -> rate limit -> cache lookup
    -> route handler -> cache store -> send (gzip applied on the way out)
Any check may answer early (e.g. 429 Too Many Requests); the remaining
checks before the handler are skipped, but the headers collected so far
are still sent with that answer.

How it fits together:
  - A *pre stage* looks at the request and returns None (carry on) or a
    Response (short-circuit; the route handler does not run).
  - A *post stage* receives the response and returns it, possibly changed.
  - Headers are *staged* on the context and only written by the final
    flush stage, so every response, early or not, gets them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..core.errors import unhandled_exception_handler
from ..security.header_policy import CookieAssignment
from ..services.container import AppServices


@dataclass
class PipelineContext:
    """Per-request state shared by the stages. Never outlives the request."""

    request: Request
    services: AppServices
    staged_headers: List[Tuple[str, str]] = field(default_factory=list)
    cookie: Optional[CookieAssignment] = None
    client_id: Optional[str] = None
    fingerprint: Optional[str] = None  # set only for cache-eligible requests
    cache_hit: bool = False
    handler_ran: bool = False

    def stage(self, headers) -> None:
        """Queue headers for the flush stage; later values win over earlier ones."""
        items = headers.items() if hasattr(headers, "items") else headers
        self.staged_headers.extend(items)


PreStage = Callable[[PipelineContext], Awaitable[Optional[Response]]]
PostStage = Callable[[PipelineContext, Response], Awaitable[Response]]
Terminal = Callable[[Request], Awaitable[Response]]


class RequestPipeline:
    """
    Runs pre stages in order until one short-circuits (or the terminal
    handler runs), then runs every post stage over the resulting response.
    """

    def __init__(self, pre_stages: Sequence[PreStage], post_stages: Sequence[PostStage]):
        self.pre_stages: Tuple[PreStage, ...] = tuple(pre_stages)
        self.post_stages: Tuple[PostStage, ...] = tuple(post_stages)

    async def run(self, ctx: PipelineContext, terminal: Terminal) -> Response:
        response: Optional[Response] = None
        for stage in self.pre_stages:
            response = await stage(ctx)
            if response is not None:
                break

        if response is None:
            response = await terminal(ctx.request)
            ctx.handler_ran = True

        for post in self.post_stages:
            response = await post(ctx, response)
        return response


async def buffer_response(response: Response) -> Response:
    """
    Drain a streamed response into a plain Response so post stages can read
    and rewrite its body. Status and headers (including repeated ones such
    as Set-Cookie) are preserved.
    """
    if hasattr(response, "body"):
        return response

    chunks = []
    async for chunk in response.body_iterator:
        chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode(response.charset))
    body = b"".join(chunks)

    buffered = Response(content=body, status_code=response.status_code)
    buffered.raw_headers = [(k, v) for k, v in response.raw_headers if k.lower() != b"content-length"]
    buffered.raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))
    return buffered


class PipelineMiddleware(BaseHTTPMiddleware):
    """
    Adapts a RequestPipeline to Starlette. The services it uses are read from
    app.state.services (built once by create_app).
    """

    def __init__(self, app: ASGIApp, pipeline: Optional[RequestPipeline] = None) -> None:
        super().__init__(app)
        if pipeline is None:
            from .stages import default_pipeline
            pipeline = default_pipeline()
        self.pipeline = pipeline

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ctx = PipelineContext(request=request, services=request.app.state.services)

        async def terminal(req: Request) -> Response:
            try:
                response = await call_next(req)
            except Exception as exc:
                # Not an AppError or HTTPException: answer 500 here so the
                # post stages still add security headers and the cookie.
                return await unhandled_exception_handler(req, exc)
            return await buffer_response(response)

        return await self.pipeline.run(ctx, terminal)
