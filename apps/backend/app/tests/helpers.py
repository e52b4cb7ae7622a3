import time
from typing import Dict, Optional, Tuple

import httpx

from apps.backend.app.core.config import Settings


class ManualClock:
    """A clock that only moves when the test says so."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """
    In-memory stand-in for the Redis GET / SET EX commands the cache uses.
    `fail = True` makes every call raise like an unreachable server.
    """

    def __init__(self, clock=time.time):
        self.clock = clock
        self.data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.fail = False
        self.set_calls = []

    async def get(self, key: str) -> Optional[str]:
        if self.fail:
            raise ConnectionError("redis unreachable")
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self.clock() >= expires_at:
            del self.data[key]
            return None
        return value

    async def set(self, key: str, value: str, ex: Optional[int] = None):
        if self.fail:
            raise ConnectionError("redis unreachable")
        self.set_calls.append((key, value, ex))
        self.data[key] = (value, self.clock() + ex if ex else None)
        return True


def make_settings(**overrides) -> Settings:
    base = dict(
        APP_STAGE="test",
        LOG_LEVEL="ERROR",
        API_BASE_PATH="/api",
        ALLOWED_ORIGINS="http://localhost:3000,http://localhost:2999",
        REDIS_URL=None,
        DEMO_DELAY_SEC=0,
        THIRD_PARTY_URL="https://upstream.test/page",
        TRUSTED_SOURCES="",
    )
    base.update(overrides)
    return Settings(**base)


def upstream_client(body: str = "<html>upstream</html>", status: int = 200, fail: bool = False) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if fail:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status, text=body, headers={"Content-Type": "text/html"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


