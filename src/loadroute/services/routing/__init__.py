"""Route resolution helpers."""

from .cache import RouteCache
from .models import ResolveOptions, RouteLocation, RouteMeasurement, RouteResolution, location_fingerprint
from .resolver import RouteResolver

__all__ = [
    "RouteCache",
    "RouteResolver",
    "ResolveOptions",
    "RouteLocation",
    "RouteMeasurement",
    "RouteResolution",
    "location_fingerprint",
]
