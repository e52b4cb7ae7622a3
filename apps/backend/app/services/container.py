"""
services/container.py

Process-wide services shared by every request task.

Built once by create_app() from Settings, stored on app.state.services and
closed by the application lifespan. Tests pass their own instances (fake
stores, fixed clocks) instead of patching module globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import httpx
from starlette.requests import Request

from ..core.config import Settings
from ..infra.http_client import close_http_client, create_http_client
from ..infra.redis import close_redis, create_redis
from ..security.header_policy import SecurityPolicy
from ..security.origin_policy import OriginValidator
from .compression import ResponseCompressor
from .rate_limiter import FixedWindowRateLimiter, RateLimiter, RedisRateLimiter
from .response_cache import KeyValueStore, ResponseCache


@dataclass
class AppServices:
    settings: Settings
    origin_validator: OriginValidator
    security_policy: SecurityPolicy
    rate_limiter: RateLimiter
    response_cache: ResponseCache
    compressor: ResponseCompressor
    http_client: httpx.AsyncClient
    redis: Optional[object] = None
    cache_routes: List[str] = field(default_factory=list)

    def is_cacheable_path(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self.cache_routes)

    async def aclose(self) -> None:
        await close_http_client(self.http_client)
        await close_redis(self.redis)


def build_services(
    s: Settings,
    *,
    cache_store: Optional[KeyValueStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AppServices:
    """
    Wire every pipeline component from settings. Explicit arguments win over
    what the settings would build.
    """
    redis_client = create_redis(s.REDIS_URL)
    store = cache_store if cache_store is not None else redis_client

    if rate_limiter is None:
        limit, window = s.rate_limit
        if s.RATE_LIMIT_BACKEND == "redis" and redis_client is not None:
            rate_limiter = RedisRateLimiter(redis_client, max_requests=limit, window_seconds=window)
        else:
            rate_limiter = FixedWindowRateLimiter(max_requests=limit, window_seconds=window)

    return AppServices(
        settings=s,
        origin_validator=OriginValidator(s.allowed_origin_list),
        security_policy=SecurityPolicy.from_settings(s),
        rate_limiter=rate_limiter,
        response_cache=ResponseCache(store, ttl_seconds=s.CACHE_TTL_SEC, key_prefix=s.CACHE_KEY_PREFIX),
        compressor=ResponseCompressor(
            level=s.COMPRESSION_LEVEL,
            threshold=s.COMPRESSION_THRESHOLD,
            opt_out_header=s.NO_COMPRESSION_HEADER,
        ),
        http_client=http_client or create_http_client(s.UPSTREAM_TIMEOUT_SEC),
        redis=redis_client,
        cache_routes=s.cache_route_list,
    )


def get_services(request: Request) -> AppServices:
    """FastAPI dependency: the services built for this app."""
    return request.app.state.services
