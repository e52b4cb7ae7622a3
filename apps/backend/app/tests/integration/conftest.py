import pytest
from fastapi.testclient import TestClient

from apps.backend.app.main import create_app
from apps.backend.app.routers import demo as demo_mod
from apps.backend.app.services.rate_limiter import FixedWindowRateLimiter
from apps.backend.app.tests.helpers import upstream_client


@pytest.fixture
def limiter(clock):
    return FixedWindowRateLimiter(max_requests=15, window_seconds=60, clock=clock)


@pytest.fixture
def upstream():
    return upstream_client()


@pytest.fixture
def app(settings, store, limiter, upstream):
    """
    Full app with a fake cache store, a limiter on the test clock and a
    mocked upstream. Nothing leaves the process.
    """
    return create_app(settings, cache_store=store, rate_limiter=limiter, http_client=upstream)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def demo_calls(monkeypatch):
    """Count how often the slow demo loader actually runs."""
    calls = []
    original = demo_mod.load_demo_data

    async def counting_loader(delay):
        calls.append(delay)
        return await original(0)

    monkeypatch.setattr(demo_mod, "load_demo_data", counting_loader)
    return calls
