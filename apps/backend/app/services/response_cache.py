"""
services/response_cache.py

Cache-aside storage for serialized response bodies.

- lookup(fingerprint) -> body | None
- store(fingerprint, body, ttl)

Non-developer summary:
----------------------
Slow endpoints remember their answer in Redis for CACHE_TTL_SEC seconds
(100 by default). If Redis is slow, down, or not configured, requests still
work; they just recompute the answer. The cache never decides correctness.

Concurrency: two simultaneous misses for the same request may both compute
and store; the last write wins. We accept that duplicate work instead of
making requests wait on each other.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol
from urllib.parse import parse_qsl, urlencode

from ..core.errors import CacheUnavailable

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 100


class KeyValueStore(Protocol):
    """The subset of the redis.asyncio.Redis API the cache relies on."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> object: ...


def request_fingerprint(path: str, query: str = "") -> str:
    """
    Canonical cache key for a request: the path plus its query string with
    parameters sorted, so `?b=2&a=1` and `?a=1&b=2` share an entry.
    """
    if not query:
        return path
    params = sorted(parse_qsl(query, keep_blank_values=True))
    return f"{path}?{urlencode(params)}" if params else path


class ResponseCache:
    """
    Thin cache-aside wrapper around a key-value store.

    `store` may be None (no REDIS_URL configured); the cache is then
    disabled and every lookup is a miss.
    """

    def __init__(self, store: Optional[KeyValueStore], ttl_seconds: int = DEFAULT_CACHE_TTL, key_prefix: str = "cache:"):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.backend = store
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def _key(self, fingerprint: str) -> str:
        return f"{self.key_prefix}{fingerprint}"

    async def _get(self, key: str) -> Optional[str]:
        try:
            raw = await self.backend.get(key)
        except Exception as exc:
            raise CacheUnavailable("get", key) from exc
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    async def _set(self, key: str, body: str, ttl: int) -> None:
        try:
            await self.backend.set(key, body, ex=int(ttl))
        except Exception as exc:
            raise CacheUnavailable("set", key) from exc

    async def lookup(self, fingerprint: str) -> Optional[str]:
        """
        Return the cached body for `fingerprint`, or None on miss.
        Store failures degrade to a miss.
        """
        if not self.enabled:
            return None
        key = self._key(fingerprint)
        try:
            body = await self._get(key)
        except CacheUnavailable as exc:
            logger.warning("cache_lookup_failed", extra={"fingerprint": fingerprint, "key": exc.key}, exc_info=exc.__cause__)
            return None
        logger.debug("cache_hit" if body is not None else "cache_miss", extra={"fingerprint": fingerprint})
        return body

    async def store(self, fingerprint: str, body: str, ttl: Optional[int] = None) -> bool:
        """
        Save `body` under `fingerprint` for `ttl` seconds (default: the
        cache's TTL). Returns False when the write could not be made.
        """
        if not self.enabled:
            return False
        key = self._key(fingerprint)
        try:
            await self._set(key, body, ttl or self.ttl_seconds)
        except CacheUnavailable as exc:
            logger.warning("cache_store_failed", extra={"fingerprint": fingerprint, "key": exc.key}, exc_info=exc.__cause__)
            return False
        return True
