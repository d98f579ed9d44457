"""Facility lookup shared by every surface of one hosting context."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from ..errors import NotFoundError
from ..models.domain import Facility
from .mappers import facility_from_payload, unwrap

logger = logging.getLogger(__name__)


class FacilitySource(Protocol):
    async def list_facilities(self, active_only: bool = True) -> list[dict]: ...


class FacilityDirectory:
    """In-memory facility cache, passed explicitly to whoever needs it."""

    def __init__(self, facilities: Iterable[Facility] = ()) -> None:
        self._facilities: dict[str, Facility] = {f.facility_id: f for f in facilities}

    async def refresh(self, source: FacilitySource) -> int:
        payload = await source.list_facilities(active_only=True)
        facilities = [facility_from_payload(item) for item in unwrap(payload) or []]
        self._facilities = {f.facility_id: f for f in facilities}
        logger.info(f"Loaded {len(facilities)} facilities")
        return len(facilities)

    def add(self, facility: Facility) -> None:
        """Register a facility created elsewhere (quick-add) without a refetch."""
        self._facilities[facility.facility_id] = facility

    def get(self, facility_id: str) -> Facility:
        facility = self._facilities.get(facility_id)
        if facility is None:
            raise NotFoundError(f"Facility '{facility_id}' not found.")
        return facility

    def all(self) -> list[Facility]:
        return sorted(self._facilities.values(), key=lambda f: f.name.lower())

    def __contains__(self, facility_id: object) -> bool:
        return facility_id in self._facilities

    def __len__(self) -> int:
        return len(self._facilities)
