"""Route session endpoints for a load."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...errors import (
    InvalidOperationError,
    NotFoundError,
    RouteEngineError,
    UpstreamUnavailableError,
    ValidationError,
)
from ...models.domain import StopRole
from ...persistence import mappers
from ...persistence.resources import TmsResourceClient
from ...schemas.routing import (
    AddStopRequest,
    FinancialsUpdateRequest,
    LocationUpdateRequest,
    MilesOverrideRequest,
    ReorderStopsRequest,
    RouteLoadedRequest,
    RouteStateResponse,
    UpdateStopRequest,
)
from ...services.recalc.registry import CoordinatorRegistry
from ...services.views.adapters import (
    AddStop,
    DetailPageAdapter,
    LocationEdit,
    RemoveStop,
    ReorderStops,
    RouteLoaded,
    SlideOverAdapter,
    UpdateStop,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/loads/{load_id}/route", tags=["route"])

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidOperationError, status.HTTP_409_CONFLICT),
    (UpstreamUnavailableError, status.HTTP_502_BAD_GATEWAY),
)


def _http_error(exc: RouteEngineError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _edited_fields(payload: UpdateStopRequest | LocationUpdateRequest) -> dict:
    """Only the fields the client sent; an explicit null clears the value."""
    fields = {name: getattr(payload, name) for name in payload.model_fields_set}
    if fields.get("address") is not None:
        fields["address"] = fields["address"].to_domain()
    return fields


def get_registry(request: Request) -> CoordinatorRegistry:
    return request.app.state.registry


def get_resources(request: Request) -> TmsResourceClient:
    resources = getattr(request.app.state, "resources", None)
    if resources is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="TMS API is not configured. Set LOADROUTE_TMS_API_BASE_URL.",
        )
    return resources


def _detail_adapter(load_id: str, registry: CoordinatorRegistry, resources: TmsResourceClient) -> DetailPageAdapter:
    try:
        return DetailPageAdapter(registry, load_id, resources)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


def _state(registry: CoordinatorRegistry, load_id: str) -> RouteStateResponse:
    return RouteStateResponse.from_view(registry.get(load_id).view())


@router.post("/open", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def open_route(
    load_id: str,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    """Load the route session for a saved load and request a route if needed."""
    try:
        if load_id not in registry:
            load = mappers.load_from_payload(await resources.get_load(load_id))
            stops = mappers.stops_from_payload(await resources.get_stops(load_id))
            registry.open(load, stops)
        SlideOverAdapter(registry, load_id, resources).open()
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.get("", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
def get_route(load_id: str, registry: CoordinatorRegistry = Depends(get_registry)) -> RouteStateResponse:
    try:
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def close_route(load_id: str, registry: CoordinatorRegistry = Depends(get_registry)) -> None:
    await registry.close(load_id)


@router.post("/stops", response_model=RouteStateResponse, status_code=status.HTTP_201_CREATED)
async def add_stop(
    load_id: str,
    payload: AddStopRequest,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    adapter = _detail_adapter(load_id, registry, resources)
    try:
        await adapter.mutate_stop(
            AddStop(
                address=payload.address.to_domain(),
                facility_id=payload.facility_id,
                facility_name=payload.facility_name,
                scheduled_date=payload.scheduled_date,
            )
        )
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.put("/stops/reorder", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def reorder_stops(
    load_id: str,
    payload: ReorderStopsRequest,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    adapter = _detail_adapter(load_id, registry, resources)
    try:
        await adapter.mutate_stop(ReorderStops(order=tuple(payload.stop_order)))
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.patch("/stops/{stop_id}", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def update_stop(
    load_id: str,
    stop_id: str,
    payload: UpdateStopRequest,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    adapter = _detail_adapter(load_id, registry, resources)
    try:
        await adapter.mutate_stop(UpdateStop(stop_id=stop_id, **_edited_fields(payload)))
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.delete("/stops/{stop_id}", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def delete_stop(
    load_id: str,
    stop_id: str,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    adapter = _detail_adapter(load_id, registry, resources)
    try:
        await adapter.mutate_stop(RemoveStop(stop_id=stop_id))
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.patch("/locations/{role}", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def update_location(
    load_id: str,
    role: StopRole,
    payload: LocationUpdateRequest,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    adapter = _detail_adapter(load_id, registry, resources)
    try:
        await adapter.mutate_location(LocationEdit(role=role, **_edited_fields(payload)))
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.put("/miles", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def override_miles(
    load_id: str,
    payload: MilesOverrideRequest,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    adapter = _detail_adapter(load_id, registry, resources)
    try:
        await adapter.override_miles(payload.miles)
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.post("/miles/reset", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def reset_miles(
    load_id: str,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    adapter = _detail_adapter(load_id, registry, resources)
    try:
        await adapter.reset_to_calculated()
        await adapter.coordinator.settle()
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.patch("/financials", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def update_financials(
    load_id: str,
    payload: FinancialsUpdateRequest,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    adapter = _detail_adapter(load_id, registry, resources)
    try:
        await adapter.update_financials(revenue=payload.revenue, driver_pay=payload.driver_pay)
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc


@router.post("/refresh", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def refresh_route(load_id: str, registry: CoordinatorRegistry = Depends(get_registry)) -> RouteStateResponse:
    """Force a fresh route and wait for the outcome. Failures are reported in the body."""
    try:
        coordinator = registry.get(load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc
    coordinator.refresh_route()
    await coordinator.settle()
    return _state(registry, load_id)


@router.post("/route-loaded", response_model=RouteStateResponse, status_code=status.HTTP_200_OK)
async def route_loaded(
    load_id: str,
    payload: RouteLoadedRequest,
    registry: CoordinatorRegistry = Depends(get_registry),
    resources: TmsResourceClient = Depends(get_resources),
) -> RouteStateResponse:
    """Map renderer callback carrying the distance it drew."""
    try:
        adapter = SlideOverAdapter(registry, load_id, resources)
        accepted = adapter.route_loaded(
            RouteLoaded(
                success=payload.success,
                distance_miles=payload.distance_miles,
                duration_hours=payload.duration_hours,
                geometry=payload.route,
                locations=tuple(loc.to_domain() for loc in payload.locations) if payload.locations else None,
                error=payload.error,
            )
        )
        if not accepted:
            logger.debug(f"routeLoaded for load {load_id} was not applied")
        return _state(registry, load_id)
    except RouteEngineError as exc:
        raise _http_error(exc) from exc
