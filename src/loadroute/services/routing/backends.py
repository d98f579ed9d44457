"""Routing backends: the external services that measure a route."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

import httpx

from ...errors import (
    InsufficientLocationError,
    ResolutionError,
    RouteEngineError,
    UpstreamUnavailableError,
    ValidationError,
)
from ...models.domain import is_temporary_id
from .geocoder import NominatimGeocoder
from .models import ResolveOptions, RouteLocation, RouteMeasurement
from .osrm_client import OSRMClient, decode_polyline

logger = logging.getLogger(__name__)

METERS_PER_MILE = 1609.344


class RoutingBackend(Protocol):
    async def measure(
        self,
        locations: Sequence[RouteLocation],
        options: Optional[ResolveOptions] = None,
    ) -> RouteMeasurement:
        """Measure the route through ``locations`` in order.

        Raises InsufficientLocationError when the locations cannot be routed and
        UpstreamUnavailableError when the service fails.
        """
        ...


class MilesCalculator(Protocol):
    async def calculate_miles(self, origin: dict, destination: dict, stops: list[dict]) -> dict: ...
    async def get_load_route(self, load_id: str, refresh: bool = False) -> dict: ...


class OSRMRoutingBackend:
    """Geocode each location, then ask OSRM for the road route through them."""

    def __init__(self, geocoder: NominatimGeocoder, client: OSRMClient) -> None:
        self.geocoder = geocoder
        self.client = client

    async def measure(
        self,
        locations: Sequence[RouteLocation],
        options: Optional[ResolveOptions] = None,
    ) -> RouteMeasurement:
        coordinates = []
        for location in locations:
            coords = await self.geocoder.geocode(location)
            if coords is None:
                logger.warning(f"Skipping unmatched location '{location.query()}'")
                continue
            coordinates.append(coords)
        if len(coordinates) < 2:
            raise InsufficientLocationError("Could not place at least two stops on the map.")

        try:
            data = await self.client.route(coordinates)
        except (httpx.HTTPError, ConnectionError, ValueError) as exc:
            raise UpstreamUnavailableError(f"Routing service unavailable: {exc}") from exc

        route = data["routes"][0]
        geometry = route.get("geometry")
        return RouteMeasurement(
            distance_miles=round(route["distance"] / METERS_PER_MILE, 1),
            duration_hours=round(route["duration"] / 3600.0, 2),
            geometry=decode_polyline(geometry) if isinstance(geometry, str) else geometry,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.geocoder.aclose()


class TmsRoutingBackend:
    """Delegate mileage to the resource layer.

    Saved loads use the load route endpoint, which keeps its own server side
    cache; ``force_refresh`` is passed through as ``refresh``. Drafted loads
    go through calculate-miles with the locations themselves.
    """

    def __init__(self, resources: MilesCalculator) -> None:
        self.resources = resources

    async def measure(
        self,
        locations: Sequence[RouteLocation],
        options: Optional[ResolveOptions] = None,
    ) -> RouteMeasurement:
        options = options or ResolveOptions()
        try:
            if options.load_id and not is_temporary_id(options.load_id):
                result = await self.resources.get_load_route(options.load_id, refresh=options.force_refresh)
            else:
                origin, *middle, destination = [loc.as_payload() for loc in locations]
                result = await self.resources.calculate_miles(origin, destination, middle)
        except ResolutionError:
            raise
        except ValidationError as exc:
            raise InsufficientLocationError(f"Route locations were rejected: {exc}") from exc
        except RouteEngineError as exc:
            raise UpstreamUnavailableError(f"Unable to calculate miles: {exc}") from exc
        return _measurement_from_result(result)


def _measurement_from_result(result: dict | None) -> RouteMeasurement:
    """Read ``{success, distanceMiles, durationHours, route, error}``."""
    result = result or {}
    if not result.get("success") or result.get("distanceMiles") is None:
        raise UpstreamUnavailableError(result.get("error") or "Unable to calculate miles")
    return RouteMeasurement(
        distance_miles=float(result["distanceMiles"]),
        duration_hours=float(result.get("durationHours") or 0.0),
        geometry=result.get("route"),
    )
