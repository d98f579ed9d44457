from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import pytest

from loadroute.errors import UpstreamUnavailableError
from loadroute.models.domain import Address, Load, Stop, StopRole
from loadroute.services.recalc.registry import CoordinatorRegistry
from loadroute.services.routing.cache import RouteCache
from loadroute.services.routing.models import RouteLocation, RouteMeasurement
from loadroute.services.routing.resolver import RouteResolver


class DummyBackend:
    """Routing backend that answers from a table keyed by the city sequence."""

    def __init__(self, distances: Optional[dict] = None, default: float = 800.0):
        self.distances = distances or {}
        self.default = default
        self.calls: list[tuple[str, ...]] = []
        self.fail_with: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.options: list = []

    async def measure(self, locations: Sequence[RouteLocation], options=None) -> RouteMeasurement:
        cities = tuple(loc.city for loc in locations)
        self.calls.append(cities)
        self.options.append(options)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        distance = self.distances.get(cities, self.default)
        return RouteMeasurement(distance_miles=distance, duration_hours=round(distance / 50.0, 2), geometry=None)


class FakeResources:
    """Records calls made against the TMS resource layer."""

    def __init__(self, load_payload: Optional[dict] = None, stops_payload: Optional[list] = None):
        self.load_payload = load_payload
        self.stops_payload = stops_payload or []
        self.calls: list[tuple] = []
        self._next_stop_id = 500
        self.write_gate: Optional[asyncio.Event] = None
        self.route_payload = {"success": True, "distanceMiles": 812, "durationHours": 12.0}

    async def _wait(self) -> None:
        if self.write_gate is not None:
            await self.write_gate.wait()

    async def get_load(self, load_id: str) -> dict:
        self.calls.append(("get_load", load_id))
        return {"success": True, "data": self.load_payload}

    async def get_stops(self, load_id: str) -> list:
        self.calls.append(("get_stops", load_id))
        return {"success": True, "data": self.stops_payload}

    async def create_load(self, payload: dict) -> dict:
        self.calls.append(("create_load", payload))
        self.stops_payload = []
        for number, stop in enumerate(payload.get("stops", []), start=1):
            self._next_stop_id += 1
            self.stops_payload.append({**stop, "id": self._next_stop_id, "stop_number": number})
        return {"success": True, "data": {"id": "L-9001", **payload}}

    async def update_load(self, load_id: str, fields: dict) -> dict:
        await self._wait()
        self.calls.append(("update_load", load_id, fields))
        return {"success": True, "data": {"id": load_id}}

    async def create_stop(self, load_id: str, payload: dict) -> dict:
        await self._wait()
        self._next_stop_id += 1
        self.calls.append(("create_stop", load_id, payload))
        return {"success": True, "data": {"id": self._next_stop_id, **payload}}

    async def update_stop(self, load_id: str, stop_id: str, payload: dict) -> dict:
        await self._wait()
        self.calls.append(("update_stop", load_id, stop_id, payload))
        return {"success": True, "data": {"id": stop_id, **payload}}

    async def delete_stop(self, load_id: str, stop_id: str) -> None:
        await self._wait()
        self.calls.append(("delete_stop", load_id, stop_id))

    async def reorder_stops(self, load_id: str, stop_order: list[str]) -> dict:
        await self._wait()
        self.calls.append(("reorder_stops", load_id, list(stop_order)))
        return {"success": True}

    async def calculate_miles(self, origin: dict, destination: dict, stops: list[dict]) -> dict:
        self.calls.append(("calculate_miles", origin, destination, stops))
        return {"success": True, "distanceMiles": 780, "durationHours": 11.5}

    async def get_load_route(self, load_id: str, refresh: bool = False) -> dict:
        self.calls.append(("get_load_route", load_id, refresh))
        return self.route_payload

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


def make_load(load_id: str = "L-100", **overrides) -> Load:
    values = dict(
        load_id=load_id,
        shipper_name="Dallas Produce",
        shipper_address=Address(city="Dallas", state="TX"),
        consignee_name="Atlanta Foods",
        consignee_address=Address(city="Atlanta", state="GA"),
        revenue=2000.0,
        driver_pay=1200.0,
    )
    values.update(overrides)
    return Load(**values)


def make_stop(stop_id: str, city: str, state: str, sequence: int = 0) -> Stop:
    return Stop(
        stop_id=stop_id,
        role=StopRole.INTERMEDIATE,
        address=Address(city=city, state=state),
        sequence=sequence,
    )


@pytest.fixture
def backend() -> DummyBackend:
    return DummyBackend(
        distances={
            ("Dallas", "Atlanta"): 780.0,
            ("Dallas", "Memphis", "Atlanta"): 925.0,
            ("Dallas", "Memphis", "Nashville", "Atlanta"): 1010.0,
            ("Dallas", "Nashville", "Memphis", "Atlanta"): 1190.0,
        }
    )


@pytest.fixture
def resolver(backend: DummyBackend) -> RouteResolver:
    return RouteResolver(backend, RouteCache(ttl_seconds=3600))


@pytest.fixture
def registry(resolver: RouteResolver) -> CoordinatorRegistry:
    return CoordinatorRegistry(resolver, debounce_seconds=0.01, resolve_timeout_seconds=1.0)
