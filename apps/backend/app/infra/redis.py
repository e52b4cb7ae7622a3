"""
infra/redis.py

Optional Redis client provider for the response cache and the shared
rate-limit counters.

Non-developer summary:
----------------------
Redis holds cached responses so slow endpoints answer instantly the second
time. If it's not configured, the app still works; every cache lookup is
simply a miss.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


def create_redis(url: Optional[str]) -> Optional[redis.Redis]:
    """
    Build a Redis client for `url`, or return None when no URL is configured
    so callers can degrade gracefully.

    The client connects lazily on first command, so building it never fails
    because the server is down.
    """
    if not url:
        return None
    return redis.from_url(str(url), decode_responses=True)


async def close_redis(client: Optional[redis.Redis]) -> None:
    """
    Close a client built by create_redis (no-op for None).
    """
    if client is None:
        return
    try:
        await client.aclose()
    except redis.RedisError:
        logger.warning("redis_close_failed")
