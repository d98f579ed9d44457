import pytest

from conftest import DummyBackend
from loadroute.errors import InsufficientLocationError, UpstreamUnavailableError
from loadroute.services.routing.cache import RouteCache
from loadroute.services.routing.models import (
    ResolveOptions,
    RouteLocation,
    RouteResolution,
    location_fingerprint,
)
from loadroute.services.routing.resolver import RouteResolver

DALLAS = RouteLocation(city="Dallas", state="TX")
MEMPHIS = RouteLocation(city="Memphis", state="TN")
ATLANTA = RouteLocation(city="Atlanta", state="GA")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_resolve_skips_incomplete_locations():
    backend = DummyBackend(distances={("Dallas", "Atlanta"): 780.0})
    resolver = RouteResolver(backend)

    result = await resolver.resolve([DALLAS, RouteLocation(city="Memphis", state=None), ATLANTA])

    assert backend.calls == [("Dallas", "Atlanta")]
    assert result.distance_miles == 780.0
    assert result.succeeded
    assert not result.cached


@pytest.mark.asyncio
async def test_resolve_needs_two_complete_locations():
    backend = DummyBackend()
    resolver = RouteResolver(backend)

    with pytest.raises(InsufficientLocationError) as exc_info:
        await resolver.resolve([DALLAS, RouteLocation(city=None, state="GA")])

    assert exc_info.value.reason == "insufficient_locations"
    assert backend.calls == []


@pytest.mark.asyncio
async def test_second_resolve_is_served_from_cache():
    backend = DummyBackend()
    resolver = RouteResolver(backend, RouteCache(ttl_seconds=60))

    first = await resolver.resolve([DALLAS, MEMPHIS, ATLANTA])
    second = await resolver.resolve([DALLAS, MEMPHIS, ATLANTA])

    assert len(backend.calls) == 1
    assert second.cached
    assert second.distance_miles == first.distance_miles
    assert second.fingerprint == first.fingerprint


@pytest.mark.asyncio
async def test_force_refresh_bypasses_cache():
    backend = DummyBackend()
    resolver = RouteResolver(backend, RouteCache(ttl_seconds=60))

    await resolver.resolve([DALLAS, ATLANTA])
    refreshed = await resolver.resolve([DALLAS, ATLANTA], ResolveOptions(force_refresh=True))

    assert len(backend.calls) == 2
    assert not refreshed.cached


@pytest.mark.asyncio
async def test_order_matters_for_cache_key():
    backend = DummyBackend()
    resolver = RouteResolver(backend, RouteCache(ttl_seconds=60))

    await resolver.resolve([DALLAS, MEMPHIS, ATLANTA])
    await resolver.resolve([MEMPHIS, DALLAS, ATLANTA])

    assert len(backend.calls) == 2


@pytest.mark.asyncio
async def test_upstream_failure_propagates_and_is_not_cached():
    backend = DummyBackend()
    backend.fail_with = UpstreamUnavailableError("service down")
    cache = RouteCache(ttl_seconds=60)
    resolver = RouteResolver(backend, cache)

    with pytest.raises(UpstreamUnavailableError):
        await resolver.resolve([DALLAS, ATLANTA])

    assert len(cache) == 0


def test_cache_entries_expire():
    clock = FakeClock()
    cache = RouteCache(ttl_seconds=10, clock=clock)
    key = location_fingerprint([DALLAS, ATLANTA])
    cache.put(key, RouteResolution(distance_miles=780.0, duration_hours=11.0))

    clock.now = 5
    assert cache.get(key) is not None
    clock.now = 11
    assert cache.get(key) is None
    assert len(cache) == 0


def test_cache_evicts_oldest_entry():
    cache = RouteCache(ttl_seconds=60, max_entries=2)
    for key in ("a", "b", "c"):
        cache.put(key, RouteResolution(distance_miles=1.0, duration_hours=0.1))

    assert cache.get("a") is None
    assert cache.get("c") is not None


def test_cache_ignores_failures_and_can_be_invalidated():
    cache = RouteCache(ttl_seconds=60)
    cache.put("bad", RouteResolution.failure("nope", "upstream_unavailable"))
    cache.put("good", RouteResolution(distance_miles=1.0, duration_hours=0.1))

    assert cache.get("bad") is None
    cache.invalidate("good")
    assert len(cache) == 0
