"""Async client for the TMS resource layer (loads, stops, facilities, miles)."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..config import settings
from ..errors import InvalidOperationError, NotFoundError, UpstreamUnavailableError, ValidationError

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body.get("detail") or body)
    return str(body)


class TmsResourceClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.tms_api_base_url
        if not self.base_url:
            raise ValueError("TMS API base URL is not configured.")
        token = token or settings.tms_api_token
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url.rstrip("/"),
            headers=headers,
            timeout=timeout if timeout is not None else settings.tms_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, json: Any = None, params: Optional[dict] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as exc:
            logger.warning(f"{method} {path} timed out: {exc}")
            raise UpstreamUnavailableError(f"TMS API timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {path} failed: {exc}")
            raise UpstreamUnavailableError(f"TMS API unreachable: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(_error_detail(response))
        if response.status_code in (400, 422):
            raise ValidationError(_error_detail(response))
        if response.status_code == 409:
            raise InvalidOperationError(_error_detail(response))
        if response.is_error:
            logger.warning(f"{method} {path} returned {response.status_code}")
            raise UpstreamUnavailableError(f"TMS API error {response.status_code}: {_error_detail(response)}")
        if not response.content:
            return None
        return response.json()

    # Loads

    async def get_load(self, load_id: str) -> dict:
        return await self._request("GET", f"/v1/loads/{load_id}")

    async def create_load(self, payload: dict) -> dict:
        return await self._request("POST", "/v1/loads", json=payload)

    async def update_load(self, load_id: str, fields: dict) -> dict:
        logger.info(f"Updating load {load_id}: {sorted(fields)}")
        return await self._request("PATCH", f"/v1/loads/{load_id}", json=fields)

    # Stops

    async def get_stops(self, load_id: str) -> list[dict]:
        return await self._request("GET", f"/v1/loads/{load_id}/stops")

    async def create_stop(self, load_id: str, payload: dict) -> dict:
        return await self._request("POST", f"/v1/loads/{load_id}/stops", json=payload)

    async def update_stop(self, load_id: str, stop_id: str, payload: dict) -> dict:
        return await self._request("PATCH", f"/v1/loads/{load_id}/stops/{stop_id}", json=payload)

    async def delete_stop(self, load_id: str, stop_id: str) -> None:
        await self._request("DELETE", f"/v1/loads/{load_id}/stops/{stop_id}")

    async def reorder_stops(self, load_id: str, stop_order: list[str]) -> Any:
        return await self._request("PUT", f"/v1/loads/{load_id}/stops/reorder", json={"stop_order": stop_order})

    # Map and facilities

    async def calculate_miles(self, origin: dict, destination: dict, stops: list[dict]) -> dict:
        """Returns ``{success, distanceMiles, durationHours, error}``."""
        return await self._request(
            "POST",
            "/v1/map/calculate-miles",
            json={"origin": origin, "destination": destination, "stops": stops},
        )

    async def get_load_route(self, load_id: str, refresh: bool = False) -> dict:
        """Stored route for a saved load; ``refresh`` makes the server recalculate it."""
        params = {"refresh": "true"} if refresh else None
        return await self._request("GET", f"/v1/map/load/{load_id}/route", params=params)

    async def list_facilities(self, active_only: bool = True) -> list[dict]:
        params = {"is_active": "true"} if active_only else None
        return await self._request("GET", "/v1/facilities", params=params)
