"""
services/rate_limiter.py

Fixed-window request limiting per client identity.

- In-memory limiter (default): one counter + window start per client,
  guarded by an asyncio.Lock so concurrent requests cannot over-admit.
- Redis limiter (optional): INCR/EXPIRE counters shared by all processes;
  favors availability when Redis is down.

Non-developer summary:
----------------------
Each client (by network address) may make RATE_LIMIT requests per window,
15 per minute by default. Request number 16 inside the same minute is
refused with 429 until the window is over. Nothing is queued or retried.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from starlette.requests import Request

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 15
DEFAULT_WINDOW_SECONDS = 60

# Prune idle windows once this many clients are tracked.
PRUNE_THRESHOLD = 10_000


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds when the current window ends
    retry_after: int = 0  # whole seconds until reset_at, as seen by the limiter

    def headers(self) -> Dict[str, str]:
        """Quota headers sent on both admitted and rejected responses."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


@dataclass
class RateWindow:
    count: int
    window_start: float


def _seconds_until(deadline: float, now: float) -> int:
    return max(0, math.ceil(deadline - now))


class RateLimiter(Protocol):
    limit: int
    window_seconds: int

    async def admit(self, identity: str, now: Optional[float] = None) -> RateDecision: ...


class FixedWindowRateLimiter:
    """
    Fixed window counter kept in process memory.

    On each call:
      1) No window, or `now - window_start >= window` -> reset (count=0, start=now).
      2) count < limit -> count += 1, ALLOW.
      3) otherwise -> REJECT.

    One limiter instance is created at startup and shared by reference across
    request tasks; tests build their own isolated instances.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 0:
            raise ValueError("max_requests must be >= 0")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.limit = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    async def admit(self, identity: str, now: Optional[float] = None) -> RateDecision:
        now = self._clock() if now is None else now
        async with self._loop_lock():
            window = self._windows.get(identity)
            if window is None or now - window.window_start >= self.window_seconds:
                window = RateWindow(count=0, window_start=now)
                self._windows[identity] = window

            reset_at = window.window_start + self.window_seconds
            if window.count < self.limit:
                window.count += 1
                allowed = True
            else:
                allowed = False

            if len(self._windows) > PRUNE_THRESHOLD:
                self._prune(now)

            return RateDecision(
                allowed=allowed,
                limit=self.limit,
                remaining=max(0, self.limit - window.count),
                reset_at=reset_at,
                retry_after=_seconds_until(reset_at, now),
            )

    def _loop_lock(self) -> asyncio.Lock:
        # Built lazily: the app (and this limiter) is created at import time,
        # before the server starts its event loop.
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def reset(self, identity: Optional[str] = None) -> None:
        """Forget one client's window (or all of them)."""
        if identity is None:
            self._windows.clear()
        else:
            self._windows.pop(identity, None)

    def _prune(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.window_start >= self.window_seconds]
        for k in expired:
            del self._windows[k]
        if expired:
            logger.debug("rate_limit_pruned count=%d", len(expired))


class RedisRateLimiter:
    """
    Same fixed-window rule backed by Redis so several processes share counts.

    The window starts with a client's first request (INCR creates the key,
    EXPIRE sets its lifetime). INCR is atomic, so concurrent requests are
    serialized by Redis itself. On Redis errors we admit and log a warning.
    """

    def __init__(
        self,
        redis_client,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        key_prefix: str = "rl:",
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis_client
        self.limit = max_requests
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self._clock = clock

    async def admit(self, identity: str, now: Optional[float] = None) -> RateDecision:
        now = self._clock() if now is None else now
        key = f"{self.key_prefix}{identity}"
        try:
            count = int(await self.redis.incr(key))
            if count == 1:
                await self.redis.expire(key, self.window_seconds)
            ttl_ms = await self.redis.pttl(key)
            if ttl_ms is None or int(ttl_ms) < 0:
                # Key lost its expiry (e.g. crash between INCR and EXPIRE); restore it.
                await self.redis.expire(key, self.window_seconds)
                ttl_ms = self.window_seconds * 1000
        except Exception:
            # On Redis error, skip limiting (favor availability)
            logger.warning("rate_limit_store_unavailable", extra={"clientId": identity})
            return RateDecision(allowed=True, limit=self.limit, remaining=self.limit, reset_at=now + self.window_seconds)

        return RateDecision(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=now + int(ttl_ms) / 1000.0,
            retry_after=math.ceil(int(ttl_ms) / 1000.0),
        )


def client_identity(request: Request, trust_forwarded_for: bool = False) -> str:
    """
    Derive the rate-limit partition key from the request's network origin.

    X-Forwarded-For is only honoured when the app runs behind a trusted
    proxy; otherwise any client could pick its own identity.
    """
    if trust_forwarded_for:
        xff = request.headers.get("x-forwarded-for")
        if xff:
            first = xff.split(",")[0].strip()
            if first:
                return first
    return request.client.host if request.client else "unknown"
