"""
infra/http_client.py

Shared outbound HTTP client used by handlers that relay external content.

One AsyncClient per process keeps connections pooled; it is built by
create_app() and closed by the application lifespan.
"""

from __future__ import annotations

import httpx


def create_http_client(timeout_sec: float = 10.0) -> httpx.AsyncClient:
    """Create an AsyncClient with a single overall timeout and redirect following."""
    timeout = httpx.Timeout(timeout_sec, connect=min(timeout_sec, 5.0))
    limits = httpx.Limits(max_connections=50, max_keepalive_connections=10)
    return httpx.AsyncClient(timeout=timeout, limits=limits, follow_redirects=True)


async def close_http_client(client: httpx.AsyncClient) -> None:
    await client.aclose()
