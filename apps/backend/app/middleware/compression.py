"""
middleware/compression.py

Gzip for large response bodies, via Starlette's GZipMiddleware.

Sits between RequestId and the request pipeline, so it sees the final
response (staged headers and cookie already written). Starlette handles the
size threshold, Content-Length, Vary: Accept-Encoding, and bodies that are
already encoded. This wrapper only adds the request-side rules that
GZipMiddleware does not know about: the x-no-compression opt-out and
explicit refusals such as "gzip;q=0".
"""

from __future__ import annotations

from starlette.datastructures import Headers
from starlette.middleware.gzip import GZipMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from ..services.compression import CompressionDecision, ResponseCompressor


class ResponseCompressionMiddleware:
    def __init__(self, app: ASGIApp, compressor: ResponseCompressor) -> None:
        self.app = app
        self.compressor = compressor
        self.gzip = GZipMiddleware(app, minimum_size=compressor.threshold, compresslevel=compressor.level)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            decision = self.compressor.decide(Headers(scope=scope))
            if decision is CompressionDecision.COMPRESS:
                await self.gzip(scope, receive, send)
                return
        await self.app(scope, receive, send)
