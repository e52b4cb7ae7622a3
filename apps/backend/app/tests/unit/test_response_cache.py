import pytest

from apps.backend.app.services.response_cache import ResponseCache, request_fingerprint


def test_fingerprint_includes_canonical_query():
    assert request_fingerprint("/api/demo") == "/api/demo"
    assert request_fingerprint("/api/demo", "b=2&a=1") == "/api/demo?a=1&b=2"
    assert request_fingerprint("/api/demo", "a=1&b=2") == request_fingerprint("/api/demo", "b=2&a=1")
    assert request_fingerprint("/api/demo", "flag=") == "/api/demo?flag="


@pytest.mark.asyncio
async def test_store_then_lookup_within_ttl(store, clock):
    cache = ResponseCache(store, ttl_seconds=100)
    assert await cache.lookup("/api/demo") is None

    assert await cache.store("/api/demo", '{"message":"x"}') is True
    assert store.set_calls == [("cache:/api/demo", '{"message":"x"}', 100)]

    clock.advance(99)
    assert await cache.lookup("/api/demo") == '{"message":"x"}'


@pytest.mark.asyncio
async def test_entry_is_absent_once_expired(store, clock):
    cache = ResponseCache(store, ttl_seconds=100)
    await cache.store("/api/demo", "body")
    clock.advance(100)
    assert await cache.lookup("/api/demo") is None


@pytest.mark.asyncio
async def test_last_store_wins(store):
    cache = ResponseCache(store)
    await cache.store("k", "first")
    await cache.store("k", "second")
    assert await cache.lookup("k") == "second"


@pytest.mark.asyncio
async def test_explicit_ttl_overrides_default(store):
    cache = ResponseCache(store, ttl_seconds=100)
    await cache.store("k", "v", ttl=5)
    assert store.set_calls[-1][2] == 5


@pytest.mark.asyncio
async def test_unreachable_store_degrades_to_miss(store):
    cache = ResponseCache(store)
    store.fail = True
    assert await cache.lookup("k") is None
    assert await cache.store("k", "v") is False


@pytest.mark.asyncio
async def test_disabled_cache_always_misses():
    cache = ResponseCache(None)
    assert not cache.enabled
    assert await cache.store("k", "v") is False
    assert await cache.lookup("k") is None


@pytest.mark.asyncio
async def test_bytes_values_are_decoded(store):
    store.data["cache:k"] = (b'{"a":1}', None)
    assert await ResponseCache(store).lookup("k") == '{"a":1}'


def test_ttl_must_be_positive(store):
    with pytest.raises(ValueError):
        ResponseCache(store, ttl_seconds=0)
