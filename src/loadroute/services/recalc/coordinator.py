"""Keeps a load's stop sequence, route and financials consistent.

Every surface editing a load goes through one coordinator. Location edits are
debounced into a single resolution; an explicit refresh skips the debounce and
the route cache. Each dispatched resolution gets a request token, and a result
is applied only if its token is still the latest and the stops have not moved
since it was dispatched.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence

from ...config import settings
from ...errors import ResolutionError, UpstreamUnavailableError
from ...models.domain import Load, Stop, StopRole
from ..financials import deriver
from ..financials.deriver import FinancialSnapshot
from ..routing.models import ResolveOptions, RouteLocation, RouteResolution, location_fingerprint
from ..routing.resolver import RouteResolver
from ..stops import sequence
from .debounce import Debouncer

logger = logging.getLogger(__name__)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class RouteView:
    """What every surface renders for a load."""

    load_id: str
    state: CoordinatorState
    stops: tuple[Stop, ...]
    financials: FinancialSnapshot
    resolution: Optional[RouteResolution]
    error: Optional[str]
    error_reason: Optional[str]
    request_token: int

    @property
    def refreshing(self) -> bool:
        return self.state in (CoordinatorState.PENDING, CoordinatorState.RESOLVING)

    @property
    def route_unavailable(self) -> bool:
        return self.state is CoordinatorState.FAILED


Listener = Callable[[RouteView], None]


class RecalculationCoordinator:
    def __init__(
        self,
        load: Load,
        intermediate_stops: Iterable[Stop] = (),
        *,
        resolver: RouteResolver,
        debounce_seconds: float | None = None,
        resolve_timeout_seconds: float | None = None,
    ) -> None:
        self.resolver = resolver
        self.resolve_timeout_seconds = (
            resolve_timeout_seconds if resolve_timeout_seconds is not None else settings.resolve_timeout_seconds
        )
        self._load = load
        self._stops = sequence.build(load, intermediate_stops)
        self._financials = FinancialSnapshot.from_load(load)
        self._state = CoordinatorState.IDLE
        self._resolution: Optional[RouteResolution] = None
        self._last_attempt: Optional[RouteResolution] = None
        self._error: Optional[ResolutionError] = None
        self._token = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: list[Listener] = []
        # Surfaces hold this across validate, persist and apply.
        self.lock = asyncio.Lock()
        self._debouncer = Debouncer(
            debounce_seconds if debounce_seconds is not None else settings.debounce_seconds,
            self._on_debounce_expired,
        )

    # ── Observables ────────────────────────────────────────

    @property
    def load_id(self) -> str:
        return self._load.load_id

    @property
    def load(self) -> Load:
        """The load with the current endpoint and financial fields."""
        return replace(
            self._load,
            revenue=self._financials.revenue,
            driver_pay=self._financials.driver_pay,
            miles=self._financials.miles,
            miles_source=self._financials.miles_source,
        )

    @property
    def stops(self) -> list[Stop]:
        return list(self._stops)

    @property
    def financials(self) -> FinancialSnapshot:
        return self._financials

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def resolution(self) -> Optional[RouteResolution]:
        """Last successful resolution; survives later failures."""
        return self._resolution

    @property
    def last_attempt(self) -> Optional[RouteResolution]:
        return self._last_attempt

    @property
    def error(self) -> Optional[ResolutionError]:
        return self._error

    @property
    def request_token(self) -> int:
        return self._token

    def view(self) -> RouteView:
        return RouteView(
            load_id=self.load_id,
            state=self._state,
            stops=tuple(self._stops),
            financials=self._financials,
            resolution=self._resolution,
            error=str(self._error) if self._error else None,
            error_reason=self._error.reason if self._error else None,
            request_token=self._token,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and call it with the current view right away."""
        self._listeners.append(listener)
        listener(self.view())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        current = self.view()
        for listener in list(self._listeners):
            try:
                listener(current)
            except Exception:
                logger.exception(f"Route listener failed for load {self.load_id}")

    # ── Stop and location mutations ────────────────────────

    def insert_stop(self, stop: Stop) -> list[Stop]:
        self._stops = sequence.insert_intermediate(self._stops, stop)
        self._location_changed(f"stop {stop.stop_id} added")
        return self.stops

    def remove_stop(self, stop_id: str) -> list[Stop]:
        self._stops = sequence.remove_intermediate(self._stops, stop_id)
        self._location_changed(f"stop {stop_id} removed")
        return self.stops

    def reorder_stops(self, order: Sequence[str]) -> list[Stop]:
        self._stops = sequence.reorder(self._stops, order)
        self._location_changed("stops reordered")
        return self.stops

    def update_stop(self, stop_id: str, **changes: Any) -> list[Stop]:
        before = sequence.ensure_intermediate(self._stops, stop_id)
        self._stops = sequence.update_intermediate(self._stops, stop_id, **changes)
        after = sequence.find(self._stops, stop_id)
        if (before.address, before.facility_id) != (after.address, after.facility_id):
            self._location_changed(f"stop {stop_id} relocated")
        else:
            self._publish()
        return self.stops

    def relocate(self, role: StopRole, **changes: Any) -> list[Stop]:
        """Apply a pickup/delivery edit; it is written to the load, not a stop."""
        role = StopRole(role)
        load = sequence.relocate_endpoint(self._load, role, **changes)
        index = 0 if role is StopRole.PICKUP else -1
        before = self._stops[index]
        self._load = load
        self._stops = sequence.build(load, sequence.intermediates(self._stops))
        after = self._stops[index]
        if (before.address, before.facility_id) != (after.address, after.facility_id):
            self._location_changed(f"{role.value} relocated")
        else:
            self._publish()
        return self.stops

    def replace_intermediates(self, stops: Iterable[Stop]) -> list[Stop]:
        """Swap in the persisted intermediate stops, e.g. once a drafted load is saved."""
        before = sequence.sequence_fingerprint(self._stops)
        self._stops = sequence.build(self._load, stops)
        if sequence.sequence_fingerprint(self._stops) != before:
            self._location_changed("stops replaced")
        else:
            self._publish()
        return self.stops

    def rekey(self, load_id: str) -> None:
        self._load = replace(self._load, load_id=load_id)
        self._publish()

    # ── Financial edits ────────────────────────────────────

    def override_miles(self, miles: float) -> FinancialSnapshot:
        """Manual miles win over any resolution, including one already in flight."""
        self._financials = deriver.override_miles(self._financials, miles)
        logger.info(f"Load {self.load_id}: miles overridden to {self._financials.miles}")
        self._publish()
        return self._financials

    def reset_to_calculated(self) -> FinancialSnapshot:
        self._financials = deriver.reset_to_calculated(self._financials)
        self._debouncer.cancel()
        self._dispatch(self._options())
        return self._financials

    def update_financials(self, *, revenue: float | None = None, driver_pay: float | None = None) -> FinancialSnapshot:
        self._financials = deriver.update_figures(self._financials, revenue=revenue, driver_pay=driver_pay)
        self._publish()
        return self._financials

    # ── Resolution control ─────────────────────────────────

    def request_resolution(self) -> None:
        """Schedule a debounced resolution without a stop change."""
        self._location_changed("resolution requested")

    def refresh_route(self) -> None:
        """Resolve now, bypassing both the debounce and the route cache."""
        self._debouncer.cancel()
        self._dispatch(self._options(force_refresh=True))

    def handle_route_loaded(
        self,
        distance_miles: float,
        duration_hours: float | None = None,
        geometry: Any = None,
        locations: Sequence[RouteLocation] | None = None,
    ) -> bool:
        """Accept a route reported by the map renderer.

        Returns False when the report was ignored: it describes locations other
        than the current sequence, or it carries no locations while a newer
        edit is still pending or resolving.
        """
        current = sequence.route_locations(self._stops, complete_only=True)
        if locations is None and self._state in (CoordinatorState.PENDING, CoordinatorState.RESOLVING):
            logger.debug(f"Load {self.load_id}: ignoring untagged routeLoaded while an edit is outstanding")
            return False
        if locations is not None:
            reported = [loc for loc in locations if loc.is_complete]
            if location_fingerprint(reported) != location_fingerprint(current):
                logger.debug(f"Load {self.load_id}: ignoring routeLoaded for stale locations")
                return False
        resolution = RouteResolution(
            distance_miles=distance_miles,
            duration_hours=duration_hours,
            geometry=geometry,
            locations=tuple(current),
        )
        self._accept(resolution)
        if self._state in (CoordinatorState.IDLE, CoordinatorState.RESOLVED, CoordinatorState.FAILED):
            self._state = CoordinatorState.RESOLVED
            self._error = None
        self._publish()
        return True

    async def settle(self) -> None:
        """Wait until nothing is pending or in flight."""
        while True:
            await self._debouncer.wait()
            task = self._task
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            if not self._debouncer.pending:
                return

    async def close(self) -> None:
        self._debouncer.cancel()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        self._listeners.clear()

    # ── Internals ──────────────────────────────────────────

    def _location_changed(self, reason: str) -> None:
        if self._state is CoordinatorState.RESOLVING:
            logger.debug(f"Load {self.load_id}: {reason} while resolving; in-flight result will be dropped")
        self._state = CoordinatorState.PENDING
        self._debouncer.trigger()
        logger.debug(f"Load {self.load_id}: {reason}; resolution pending")
        self._publish()

    def _options(self, force_refresh: bool = False) -> ResolveOptions:
        load_id = None if self._load.is_temporary else self.load_id
        return ResolveOptions(force_refresh=force_refresh, load_id=load_id)

    def _on_debounce_expired(self) -> None:
        if self._state is CoordinatorState.PENDING:
            self._dispatch(self._options())

    def _dispatch(self, options: ResolveOptions) -> None:
        self._token += 1
        token = self._token
        locations = sequence.route_locations(self._stops)
        self._state = CoordinatorState.RESOLVING
        logger.info(
            f"Load {self.load_id}: resolving route #{token} through {len(locations)} stops"
            f"{' (forced)' if options.force_refresh else ''}"
        )
        self._task = asyncio.get_running_loop().create_task(self._resolve(token, locations, options))
        self._publish()

    async def _resolve(self, token: int, locations: list[RouteLocation], options: ResolveOptions) -> None:
        try:
            resolution = await asyncio.wait_for(
                self.resolver.resolve(locations, options),
                timeout=self.resolve_timeout_seconds,
            )
        except ResolutionError as exc:
            self._fail(token, locations, exc)
        except asyncio.TimeoutError:
            self._fail(
                token,
                locations,
                UpstreamUnavailableError(f"Route calculation timed out after {self.resolve_timeout_seconds:g}s"),
            )
        except Exception as exc:
            logger.exception(f"Load {self.load_id}: unexpected error resolving route #{token}")
            self._fail(token, locations, UpstreamUnavailableError(f"Route calculation failed: {exc}"))
        else:
            self._succeed(token, resolution)

    def _is_current(self, token: int) -> bool:
        if token != self._token or self._state is not CoordinatorState.RESOLVING:
            logger.debug(f"Load {self.load_id}: discarding stale route #{token} (latest #{self._token})")
            return False
        return True

    def _succeed(self, token: int, resolution: RouteResolution) -> None:
        if not self._is_current(token):
            return
        if resolution.fingerprint != sequence.sequence_fingerprint(self._stops):
            logger.debug(f"Load {self.load_id}: discarding route #{token}; stops changed while in flight")
            return
        self._accept(resolution)
        self._state = CoordinatorState.RESOLVED
        self._error = None
        self._publish()

    def _fail(self, token: int, locations: list[RouteLocation], error: ResolutionError) -> None:
        if not self._is_current(token):
            return
        logger.warning(f"Load {self.load_id}: route #{token} failed ({error.reason}): {error}")
        self._last_attempt = RouteResolution.failure(str(error), error.reason, locations)
        self._error = error
        self._state = CoordinatorState.FAILED
        self._publish()

    def _accept(self, resolution: RouteResolution) -> None:
        self._resolution = resolution
        self._last_attempt = resolution
        self._financials = deriver.apply_resolution(self._financials, resolution)
