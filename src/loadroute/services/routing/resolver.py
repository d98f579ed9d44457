"""Route resolution: locations in, distance/duration/geometry out."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ...errors import InsufficientLocationError, UpstreamUnavailableError
from .backends import RoutingBackend
from .cache import RouteCache
from .models import ResolveOptions, RouteLocation, RouteResolution, location_fingerprint

logger = logging.getLogger(__name__)


class RouteResolver:
    """Resolves an ordered location list through a routing backend.

    Locations without both city and state are skipped. With the default
    options a cached resolution for the same locations is returned when one is
    available; ``force_refresh`` always goes to the backend.
    """

    def __init__(self, backend: RoutingBackend, cache: Optional[RouteCache] = None) -> None:
        self.backend = backend
        self.cache = cache

    async def resolve(
        self,
        locations: Sequence[RouteLocation],
        options: ResolveOptions = ResolveOptions(),
    ) -> RouteResolution:
        usable = tuple(loc for loc in locations if loc.is_complete)
        if len(usable) < 2:
            raise InsufficientLocationError(
                "Add a city and state for the pickup and delivery to calculate the route."
            )

        key = location_fingerprint(usable)
        if self.cache is not None and not options.force_refresh:
            hit = self.cache.get(key)
            if hit is not None:
                logger.debug(f"Route cache hit for {key} ({len(usable)} locations)")
                return RouteResolution(
                    distance_miles=hit.distance_miles,
                    duration_hours=hit.duration_hours,
                    geometry=hit.geometry,
                    locations=usable,
                    cached=True,
                )

        try:
            measurement = await self.backend.measure(usable, options)
        except UpstreamUnavailableError as exc:
            logger.warning(f"Route resolution failed for {len(usable)} locations: {exc}")
            raise

        resolution = RouteResolution(
            distance_miles=measurement.distance_miles,
            duration_hours=measurement.duration_hours,
            geometry=measurement.geometry,
            locations=usable,
        )
        if self.cache is not None:
            self.cache.put(key, resolution)
        logger.info(
            f"Resolved route through {len(usable)} locations: "
            f"{resolution.distance_miles} mi, {resolution.duration_hours} h"
        )
        return resolution
