"""Nominatim geocoder used by the OSRM routing backend."""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from typing import Optional

import httpx

from ...config import settings
from ...errors import UpstreamUnavailableError
from .models import RouteLocation

logger = logging.getLogger(__name__)


def _query_hash(query: str) -> str:
    """Normalize and hash a query for the cache key."""
    normalized = " ".join(query.strip().lower().split())
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


def _candidates(location: RouteLocation) -> list[str]:
    """Full address first, then progressively simpler forms down to 'City, ST'."""
    candidates = [location.query()]
    state_zip = " ".join(p for p in (location.state, location.zip) if p)
    city_state_zip = ", ".join(p for p in (location.city, state_zip) if p)
    city_state = ", ".join(p for p in (location.city, location.state) if p)
    for candidate in (city_state_zip, city_state):
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        country_codes: tuple[str, ...] | None = None,
        timeout: float = 10.0,
        max_entries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.geocoder_base_url).rstrip("/")
        self.user_agent = user_agent or settings.geocoder_user_agent
        self.country_codes = country_codes if country_codes is not None else settings.geocoder_country_codes
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.max_entries = max_entries if max_entries is not None else settings.geocoder_cache_max_entries
        self._cache: OrderedDict[str, tuple[float, float]] = OrderedDict()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def geocode(self, location: RouteLocation) -> Optional[tuple[float, float]]:
        """Return (lat, lon) for the location, or None when nothing matches."""
        for query in _candidates(location):
            key = _query_hash(query)
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]

            params = {"q": query, "format": "json", "limit": 1}
            if self.country_codes:
                params["countrycodes"] = ",".join(self.country_codes)
            try:
                response = await self._client.get(
                    f"{self.base_url}/search",
                    params=params,
                    headers={"User-Agent": self.user_agent},
                )
                response.raise_for_status()
                hits = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning(f"Geocoding '{query}' failed: {exc}")
                raise UpstreamUnavailableError(f"Geocoding service unavailable: {exc}") from exc

            if hits:
                coords = (float(hits[0]["lat"]), float(hits[0]["lon"]))
                self._remember(key, coords)
                return coords
            logger.debug(f"No geocoding match for '{query}'")
        return None

    def _remember(self, key: str, coords: tuple[float, float]) -> None:
        self._cache[key] = coords
        self._cache.move_to_end(key)
        while len(self._cache) > self.max_entries:
            self._cache.popitem(last=False)

    def __len__(self) -> int:
        return len(self._cache)
