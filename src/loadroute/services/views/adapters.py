"""The three editing surfaces for a load's route: wizard, detail page, slide-over.

All of them expose ``mutate_stop``, ``mutate_location`` and ``override_miles``
and render ``stop_sequence`` and ``financial_snapshot``. None of them resolves
routes itself; they go through the registry's coordinator for the load, so two
surfaces open on the same load always agree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional, Protocol, Union

from ...errors import InvalidOperationError, ValidationError
from ...models.domain import UNSET, Address, Load, Stop, StopRole, new_temporary_id
from ...persistence import mappers
from ..financials import deriver
from ..financials.deriver import FinancialSnapshot
from ..recalc.coordinator import CoordinatorState, RecalculationCoordinator, RouteView
from ..recalc.registry import CoordinatorRegistry
from ..routing.models import RouteLocation
from ..stops import sequence

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AddStop:
    address: Address = field(default_factory=Address)
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    scheduled_date: Optional[date] = None


@dataclass(slots=True, frozen=True)
class RemoveStop:
    stop_id: str


@dataclass(slots=True, frozen=True)
class ReorderStops:
    order: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class UpdateStop:
    """Fields left as UNSET are not changed; None clears a facility link or date."""

    stop_id: str
    address: Address = UNSET
    facility_id: Optional[str] = UNSET
    facility_name: Optional[str] = UNSET
    scheduled_date: Optional[date] = UNSET


StopMutation = Union[AddStop, RemoveStop, ReorderStops, UpdateStop]


@dataclass(slots=True, frozen=True)
class LocationEdit:
    """A pickup or delivery edit. Fields left as UNSET are not changed."""

    role: StopRole
    address: Address = UNSET
    name: Optional[str] = UNSET
    facility_id: Optional[str] = UNSET
    scheduled_date: Optional[date] = UNSET


@dataclass(slots=True, frozen=True)
class RouteLoaded:
    """Notification from the map renderer after it drew a route."""

    success: bool
    distance_miles: Optional[float] = None
    duration_hours: Optional[float] = None
    geometry: Any = None
    locations: Optional[tuple[RouteLocation, ...]] = None
    error: Optional[str] = None


class LoadResources(Protocol):
    async def create_load(self, payload: dict) -> dict: ...
    async def get_stops(self, load_id: str) -> Any: ...
    async def update_load(self, load_id: str, fields: dict) -> dict: ...
    async def create_stop(self, load_id: str, payload: dict) -> dict: ...
    async def update_stop(self, load_id: str, stop_id: str, payload: dict) -> dict: ...
    async def delete_stop(self, load_id: str, stop_id: str) -> None: ...
    async def reorder_stops(self, load_id: str, stop_order: list[str]) -> Any: ...


def _set_fields(**values: Any) -> dict:
    return {name: value for name, value in values.items() if value is not UNSET}


def _given(value: Any) -> bool:
    return value is not UNSET and value is not None


class ViewAdapter:
    surface = "view"

    def __init__(self, registry: CoordinatorRegistry, load_id: str) -> None:
        self.registry = registry
        self.load_id = load_id
        # Fail fast if the load has not been opened.
        registry.get(load_id)

    @property
    def coordinator(self) -> RecalculationCoordinator:
        return self.registry.get(self.load_id)

    @property
    def stop_sequence(self) -> list[Stop]:
        return self.coordinator.stops

    @property
    def financial_snapshot(self) -> FinancialSnapshot:
        return self.coordinator.financials

    @property
    def state(self) -> CoordinatorState:
        return self.coordinator.state

    @property
    def refreshing(self) -> bool:
        return self.coordinator.view().refreshing

    def subscribe(self, listener: Callable[[RouteView], None]) -> Callable[[], None]:
        return self.coordinator.subscribe(listener)

    # ── Operations ─────────────────────────────────────────

    async def mutate_stop(self, mutation: StopMutation) -> list[Stop]:
        """Validate, persist and apply one stop edit.

        The coordinator lock is held throughout, so an edit from another
        surface cannot land between the check and the apply.
        """
        coordinator = self.coordinator
        async with coordinator.lock:
            return await self._mutate_stop(coordinator, mutation)

    async def _mutate_stop(self, coordinator: RecalculationCoordinator, mutation: StopMutation) -> list[Stop]:
        if isinstance(mutation, AddStop):
            stop = self._stop_from_draft(mutation)
            sequence.insert_intermediate(coordinator.stops, stop)
            stop = await self._persist_new_stop(stop)
            return coordinator.insert_stop(stop)
        if isinstance(mutation, RemoveStop):
            sequence.remove_intermediate(coordinator.stops, mutation.stop_id)
            await self._persist_removal(mutation.stop_id)
            return coordinator.remove_stop(mutation.stop_id)
        if isinstance(mutation, ReorderStops):
            sequence.reorder(coordinator.stops, mutation.order)
            await self._persist_order(list(mutation.order))
            return coordinator.reorder_stops(mutation.order)
        if isinstance(mutation, UpdateStop):
            changes = self._stop_changes(mutation)
            sequence.update_intermediate(coordinator.stops, mutation.stop_id, **changes)
            await self._persist_stop_changes(mutation.stop_id, changes)
            return coordinator.update_stop(mutation.stop_id, **changes)
        raise ValidationError(f"Unsupported stop mutation: {type(mutation).__name__}")

    async def mutate_location(self, edit: LocationEdit) -> list[Stop]:
        role = StopRole(edit.role)
        if role is StopRole.INTERMEDIATE:
            raise InvalidOperationError("Intermediate stops are edited with mutate_stop.")
        changes = _set_fields(
            address=edit.address,
            name=edit.name,
            facility_id=edit.facility_id,
            scheduled_date=edit.scheduled_date,
        )
        if changes.get("address", UNSET) is None:
            changes["address"] = Address()
        if _given(edit.facility_id):
            facility = self.registry.facilities.get(edit.facility_id)
            if not _given(edit.name):
                changes["name"] = facility.name
            if not _given(edit.address) or not edit.address.has_city_and_state:
                changes["address"] = facility.address
        coordinator = self.coordinator
        async with coordinator.lock:
            sequence.relocate_endpoint(coordinator.load, role, **changes)
            await self._persist_location(role, changes)
            return coordinator.relocate(role, **changes)

    async def override_miles(self, miles: float) -> FinancialSnapshot:
        coordinator = self.coordinator
        async with coordinator.lock:
            snapshot = deriver.override_miles(coordinator.financials, miles)
            await self._persist_financials({"miles": snapshot.miles, "miles_source": snapshot.miles_source.value})
            return coordinator.override_miles(miles)

    async def reset_to_calculated(self) -> FinancialSnapshot:
        coordinator = self.coordinator
        async with coordinator.lock:
            snapshot = deriver.reset_to_calculated(coordinator.financials)
            await self._persist_financials({"miles_source": snapshot.miles_source.value})
            return coordinator.reset_to_calculated()

    async def update_financials(self, *, revenue: float | None = None, driver_pay: float | None = None) -> FinancialSnapshot:
        fields = {name: value for name, value in (("revenue", revenue), ("driver_pay", driver_pay)) if value is not None}
        coordinator = self.coordinator
        async with coordinator.lock:
            if fields:
                await self._persist_financials(fields)
            return coordinator.update_financials(revenue=revenue, driver_pay=driver_pay)

    def refresh_route(self) -> None:
        self.coordinator.refresh_route()

    # ── Helpers and persistence hooks ──────────────────────

    def _stop_from_draft(self, draft: AddStop) -> Stop:
        address = draft.address
        name = draft.facility_name
        if draft.facility_id is not None:
            facility = self.registry.facilities.get(draft.facility_id)
            if not address.has_city_and_state:
                address = facility.address
            name = name or facility.name
        if not address.city and not name:
            raise ValidationError("A stop needs at least a city or a facility.")
        return Stop(
            stop_id=new_temporary_id(),
            role=StopRole.INTERMEDIATE,
            address=address,
            facility_id=draft.facility_id,
            facility_name=name,
            scheduled_date=draft.scheduled_date,
        )

    def _stop_changes(self, mutation: UpdateStop) -> dict:
        changes = _set_fields(
            address=mutation.address,
            facility_id=mutation.facility_id,
            facility_name=mutation.facility_name,
            scheduled_date=mutation.scheduled_date,
        )
        if changes.get("address", UNSET) is None:
            changes["address"] = Address()
        if _given(mutation.facility_id):
            facility = self.registry.facilities.get(mutation.facility_id)
            if not _given(mutation.facility_name):
                changes["facility_name"] = facility.name
            if not _given(mutation.address) or not mutation.address.has_city_and_state:
                changes["address"] = facility.address
        return changes

    async def _persist_new_stop(self, stop: Stop) -> Stop:
        return stop

    async def _persist_removal(self, stop_id: str) -> None:
        return None

    async def _persist_order(self, order: list[str]) -> None:
        return None

    async def _persist_stop_changes(self, stop_id: str, changes: dict) -> None:
        return None

    async def _persist_location(self, role: StopRole, changes: dict) -> None:
        return None

    async def _persist_financials(self, fields: dict) -> None:
        return None


class WizardAdapter(ViewAdapter):
    """Load creation: everything stays local until ``save``."""

    surface = "wizard"

    @classmethod
    def start(cls, registry: CoordinatorRegistry, load: Load | None = None) -> "WizardAdapter":
        load = load or Load(load_id=new_temporary_id())
        registry.open(load)
        return cls(registry, load.load_id)

    async def save(self, resources: LoadResources) -> Load:
        """Create the load with its stops, then re-key the session to the new id.

        The drafted stops carry temporary ids; once saved they are replaced
        by the stops the resource layer stored, so later edits address the
        persisted ids.
        """
        coordinator = self.coordinator
        async with coordinator.lock:
            await coordinator.settle()
            payload = mappers.load_to_create_payload(coordinator.load, sequence.intermediates(coordinator.stops))
            created = mappers.unwrap(await resources.create_load(payload))
            new_id = str(created["id"])
            self.registry.rekey(self.load_id, new_id)
            logger.info(f"Wizard load {self.load_id} saved as {new_id}")
            self.load_id = new_id
            persisted = mappers.stops_from_payload(await resources.get_stops(new_id))
            coordinator.replace_intermediates(persisted)
            return coordinator.load


class DetailPageAdapter(ViewAdapter):
    """Editing a saved load: each change is written to the resource layer first."""

    surface = "detail"

    def __init__(self, registry: CoordinatorRegistry, load_id: str, resources: LoadResources) -> None:
        super().__init__(registry, load_id)
        if self.coordinator.load.is_temporary:
            raise InvalidOperationError("Save the load before editing it on the detail page.")
        self.resources = resources

    async def _persist_new_stop(self, stop: Stop) -> Stop:
        created = await self.resources.create_stop(self.load_id, mappers.stop_to_payload(stop))
        return mappers.stop_from_payload(created)

    async def _persist_removal(self, stop_id: str) -> None:
        await self.resources.delete_stop(self.load_id, stop_id)

    async def _persist_order(self, order: list[str]) -> None:
        await self.resources.reorder_stops(self.load_id, order)

    async def _persist_stop_changes(self, stop_id: str, changes: dict) -> None:
        await self.resources.update_stop(self.load_id, stop_id, mappers.stop_changes_to_payload(changes))

    async def _persist_location(self, role: StopRole, changes: dict) -> None:
        await self.resources.update_load(self.load_id, mappers.endpoint_fields(role, changes))

    async def _persist_financials(self, fields: dict) -> None:
        await self.resources.update_load(self.load_id, fields)


class SlideOverAdapter(DetailPageAdapter):
    """Route panel over the detail page; it also hosts the map renderer."""

    surface = "slide_over"

    def open(self) -> None:
        """Ask for a route if none has been resolved yet."""
        coordinator = self.coordinator
        if coordinator.resolution is None and coordinator.state not in (
            CoordinatorState.PENDING,
            CoordinatorState.RESOLVING,
        ):
            coordinator.request_resolution()

    def route_loaded(self, event: RouteLoaded) -> bool:
        """Feed the map renderer's result back into the engine."""
        if not event.success or event.distance_miles is None:
            logger.info(f"Map could not draw route for load {self.load_id}: {event.error}")
            return False
        return self.coordinator.handle_route_loaded(
            event.distance_miles,
            event.duration_hours,
            event.geometry,
            event.locations,
        )
