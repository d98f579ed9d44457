"""One coordinator per load, shared by every surface editing that load."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ...errors import NotFoundError, ValidationError
from ...models.domain import Load, Stop
from ...persistence.facilities import FacilityDirectory
from ..routing.resolver import RouteResolver
from .coordinator import RecalculationCoordinator

logger = logging.getLogger(__name__)


class CoordinatorRegistry:
    """Hosting context for coordinators.

    Owns the shared facility directory so views receive it from here instead
    of importing a module level cache.
    """

    def __init__(
        self,
        resolver: RouteResolver,
        *,
        facilities: FacilityDirectory | None = None,
        debounce_seconds: float | None = None,
        resolve_timeout_seconds: float | None = None,
    ) -> None:
        self.resolver = resolver
        self.facilities = facilities if facilities is not None else FacilityDirectory()
        self.debounce_seconds = debounce_seconds
        self.resolve_timeout_seconds = resolve_timeout_seconds
        self._coordinators: dict[str, RecalculationCoordinator] = {}

    def open(self, load: Load, intermediate_stops: Iterable[Stop] = ()) -> RecalculationCoordinator:
        """Return the coordinator for ``load``, creating it on first use.

        A second surface opening the same load gets the existing instance; the
        data passed in is ignored in that case.
        """
        existing = self._coordinators.get(load.load_id)
        if existing is not None:
            return existing
        coordinator = RecalculationCoordinator(
            load,
            intermediate_stops,
            resolver=self.resolver,
            debounce_seconds=self.debounce_seconds,
            resolve_timeout_seconds=self.resolve_timeout_seconds,
        )
        self._coordinators[load.load_id] = coordinator
        logger.info(f"Opened route coordinator for load {load.load_id}")
        return coordinator

    def find(self, load_id: str) -> Optional[RecalculationCoordinator]:
        return self._coordinators.get(load_id)

    def get(self, load_id: str) -> RecalculationCoordinator:
        coordinator = self._coordinators.get(load_id)
        if coordinator is None:
            raise NotFoundError(f"No route session is open for load '{load_id}'.")
        return coordinator

    def rekey(self, old_load_id: str, new_load_id: str) -> RecalculationCoordinator:
        """Move a coordinator to a new key, e.g. once a drafted load is saved."""
        if new_load_id in self._coordinators:
            raise ValidationError(f"A route session for load '{new_load_id}' is already open.")
        coordinator = self.get(old_load_id)
        del self._coordinators[old_load_id]
        coordinator.rekey(new_load_id)
        self._coordinators[new_load_id] = coordinator
        return coordinator

    async def close(self, load_id: str) -> None:
        coordinator = self._coordinators.pop(load_id, None)
        if coordinator is not None:
            await coordinator.close()

    async def aclose(self) -> None:
        for load_id in list(self._coordinators):
            await self.close(load_id)

    def __contains__(self, load_id: object) -> bool:
        return load_id in self._coordinators

    def __len__(self) -> int:
        return len(self._coordinators)
