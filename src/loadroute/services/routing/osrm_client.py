"""Async HTTP client for the OSRM route service."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

import httpx

from ...config import settings

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.osrm_base_url
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.base_url = self.base_url.rstrip("/")
        self.profile = profile or settings.osrm_profile
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def route(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        """Get the driving route through ``coordinates`` in the given order.

        Args:
            coordinates: Sequence of (lat, lon) tuples for the route waypoints

        Returns:
            The OSRM response; ``routes[0]`` carries ``distance`` (meters),
            ``duration`` (seconds) and an encoded polyline ``geometry``.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        # OSRM route endpoint expects coordinates as "lon,lat;lon,lat;..."
        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"

        attempt = 0
        while True:
            try:
                response = await self._client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
                if data.get("code") != "Ok" or not data.get("routes"):
                    error_msg = data.get("message", "Unknown OSRM route error")
                    raise ValueError(f"OSRM route request failed: {error_msg}")
                return data
            except httpx.HTTPStatusError:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                await asyncio.sleep(self.backoff_seconds * attempt)
            except httpx.TimeoutException as e:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(f"OSRM route request timed out after {self.max_retries} attempts: {e}")
                    raise
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(f"OSRM route timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                await asyncio.sleep(wait_time)
            except (httpx.NetworkError, OSError) as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise ConnectionError(f"Failed to connect to OSRM service at {self.base_url}: {e}") from e
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                await asyncio.sleep(wait_time)
            except ValueError:
                # A "NoRoute" answer will not change on retry.
                raise


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    OSRM uses Google's polyline encoding format for route geometry.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        values = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                b = ord(polyline[index]) - 63
                index += 1
                result |= (b & 0x1f) << shift
                shift += 5
                if b < 0x20:
                    break
            values.append(~(result >> 1) if (result & 1) else (result >> 1))
        lat += values[0]
        lon += values[1]
        coordinates.append((lat / 1e5, lon / 1e5))

    return coordinates


async def check_health(base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None) -> bool:
    """Check OSRM service health by routing between two fixed points.

    Public OSRM endpoints may not have a /health endpoint, so connectivity is
    tested with a minimal route request (Chicago to Milwaukee).
    """
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    test_coords = "-87.6298,41.8781;-87.9065,43.0389"
    url = f"{base.rstrip('/')}/route/v1/{settings.osrm_profile}/{test_coords}"
    try:
        async with httpx.AsyncClient(timeout=5.0, transport=transport) as client:
            response = await client.get(url, params={"overview": "false"})
            response.raise_for_status()
            data = response.json()
        return data.get("code") == "Ok"
    except (httpx.HTTPError, ValueError):
        return False
