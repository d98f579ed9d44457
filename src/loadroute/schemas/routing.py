"""Route session request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..models.domain import Address, Stop
from ..services.financials.deriver import FinancialSnapshot
from ..services.recalc.coordinator import RouteView
from ..services.routing.models import RouteLocation, RouteResolution


class AddressModel(BaseModel):
    line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    def to_domain(self) -> Address:
        return Address(line=self.line, city=self.city, state=self.state, zip=self.zip)


class StopModel(BaseModel):
    id: str
    role: str
    sequence: int
    address: AddressModel
    label: str
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    scheduled_date: Optional[date] = None
    temporary: bool = False

    @classmethod
    def from_domain(cls, stop: Stop) -> "StopModel":
        return cls(
            id=stop.stop_id,
            role=stop.role.value,
            sequence=stop.sequence,
            address=AddressModel(
                line=stop.address.line,
                city=stop.address.city,
                state=stop.address.state,
                zip=stop.address.zip,
            ),
            label=stop.address.label(),
            facility_id=stop.facility_id,
            facility_name=stop.facility_name,
            scheduled_date=stop.scheduled_date,
            temporary=stop.is_temporary,
        )


class FinancialsModel(BaseModel):
    revenue: Optional[float] = None
    driver_pay: Optional[float] = None
    miles: Optional[float] = None
    miles_source: str
    last_calculated_miles: Optional[float] = None
    duration_hours: Optional[float] = None
    margin: float
    rate_per_mile: Optional[float] = Field(None, description="Null when miles are missing or zero.")

    @classmethod
    def from_domain(cls, snapshot: FinancialSnapshot) -> "FinancialsModel":
        rpm = snapshot.rate_per_mile
        return cls(
            revenue=snapshot.revenue,
            driver_pay=snapshot.driver_pay,
            miles=snapshot.miles,
            miles_source=snapshot.miles_source.value,
            last_calculated_miles=snapshot.last_calculated_miles,
            duration_hours=snapshot.duration_hours,
            margin=round(snapshot.margin, 2),
            rate_per_mile=round(rpm, 2) if rpm is not None else None,
        )


class ResolutionModel(BaseModel):
    distance_miles: Optional[float]
    duration_hours: Optional[float]
    cached: bool
    resolved_at: datetime
    geometry: Any = None

    @classmethod
    def from_domain(cls, resolution: RouteResolution) -> "ResolutionModel":
        return cls(
            distance_miles=resolution.distance_miles,
            duration_hours=resolution.duration_hours,
            cached=resolution.cached,
            resolved_at=resolution.resolved_at,
            geometry=resolution.geometry,
        )


class RouteStateResponse(BaseModel):
    load_id: str
    state: str
    refreshing: bool
    route_unavailable: bool
    error: Optional[str] = None
    error_reason: Optional[str] = None
    stops: List[StopModel]
    financials: FinancialsModel
    resolution: Optional[ResolutionModel] = None

    @classmethod
    def from_view(cls, view: RouteView) -> "RouteStateResponse":
        return cls(
            load_id=view.load_id,
            state=view.state.value,
            refreshing=view.refreshing,
            route_unavailable=view.route_unavailable,
            error=view.error,
            error_reason=view.error_reason,
            stops=[StopModel.from_domain(stop) for stop in view.stops],
            financials=FinancialsModel.from_domain(view.financials),
            resolution=ResolutionModel.from_domain(view.resolution) if view.resolution else None,
        )


class AddStopRequest(BaseModel):
    address: AddressModel = Field(default_factory=AddressModel)
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    scheduled_date: Optional[date] = None


class UpdateStopRequest(BaseModel):
    address: Optional[AddressModel] = None
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    scheduled_date: Optional[date] = None


class ReorderStopsRequest(BaseModel):
    stop_order: List[str]


class LocationUpdateRequest(BaseModel):
    address: Optional[AddressModel] = None
    name: Optional[str] = None
    facility_id: Optional[str] = None
    scheduled_date: Optional[date] = None


class MilesOverrideRequest(BaseModel):
    miles: float = Field(..., ge=0)


class FinancialsUpdateRequest(BaseModel):
    revenue: Optional[float] = None
    driver_pay: Optional[float] = None


class RouteLocationModel(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    address: Optional[str] = None
    zip: Optional[str] = None

    def to_domain(self) -> RouteLocation:
        return RouteLocation(city=self.city, state=self.state, address=self.address, zip=self.zip)


class RouteLoadedRequest(BaseModel):
    """Body the map renderer posts after drawing a route."""

    success: bool = True
    distance_miles: Optional[float] = Field(None, alias="distanceMiles")
    duration_hours: Optional[float] = Field(None, alias="durationHours")
    route: Any = None
    locations: Optional[List[RouteLocationModel]] = None
    error: Optional[str] = None

    model_config = {"populate_by_name": True}
