"""Routing domain models."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from ...models.domain import Address


@dataclass(slots=True, frozen=True)
class RouteLocation:
    city: Optional[str]
    state: Optional[str]
    address: Optional[str] = None
    zip: Optional[str] = None

    @classmethod
    def from_address(cls, address: Address) -> "RouteLocation":
        return cls(city=address.city, state=address.state, address=address.line, zip=address.zip)

    @property
    def is_complete(self) -> bool:
        return bool(self.city and self.state)

    def query(self) -> str:
        """Single-line form used for geocoding."""
        parts = [self.address, self.city]
        tail = " ".join(p for p in (self.state, self.zip) if p)
        if tail:
            parts.append(tail)
        return ", ".join(p for p in parts if p)

    def as_payload(self) -> dict:
        payload: dict[str, Any] = {"city": self.city, "state": self.state}
        if self.address:
            payload["address"] = self.address
        if self.zip:
            payload["zip"] = self.zip
        return payload


@dataclass(slots=True, frozen=True)
class ResolveOptions:
    """force_refresh skips the route cache and always asks the routing service.

    load_id names a saved load so a backend can use the stored route for it.
    """

    force_refresh: bool = False
    load_id: Optional[str] = None


@dataclass(slots=True, frozen=True)
class RouteMeasurement:
    """Raw answer from a routing backend."""

    distance_miles: float
    duration_hours: float
    geometry: Any = None


@dataclass(slots=True, frozen=True)
class RouteResolution:
    distance_miles: Optional[float]
    duration_hours: Optional[float]
    geometry: Any = None
    locations: tuple[RouteLocation, ...] = ()
    cached: bool = False
    succeeded: bool = True
    error: Optional[str] = None
    reason: Optional[str] = None
    resolved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def failure(cls, error: str, reason: str, locations: Sequence[RouteLocation] = ()) -> "RouteResolution":
        return cls(
            distance_miles=None,
            duration_hours=None,
            locations=tuple(locations),
            succeeded=False,
            error=error,
            reason=reason,
        )

    @property
    def fingerprint(self) -> str:
        return location_fingerprint(self.locations)


def _normalize(value: Optional[str]) -> str:
    return " ".join((value or "").lower().split())


def location_fingerprint(locations: Sequence[RouteLocation]) -> str:
    """Stable hash of an ordered location list, used as cache and staleness key."""
    normalized = "|".join(
        ";".join(_normalize(part) for part in (loc.address, loc.city, loc.state, loc.zip))
        for loc in locations
    )
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]
