"""Domain models for loads, stops and facilities."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

PICKUP_STOP_ID = "pickup"
DELIVERY_STOP_ID = "delivery"
TEMPORARY_ID_PREFIX = "temp-"


class _Unset:
    """Marks a field an edit leaves unchanged, so None can still clear a value."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class StopRole(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    INTERMEDIATE = "intermediate"


class MilesSource(str, Enum):
    CALCULATED = "calculated"
    MANUAL = "manual"


def new_temporary_id() -> str:
    """Id for a stop or load that has not been saved yet."""
    return f"{TEMPORARY_ID_PREFIX}{uuid.uuid4().hex[:12]}"


def is_temporary_id(value: str | None) -> bool:
    return bool(value) and str(value).startswith(TEMPORARY_ID_PREFIX)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True, frozen=True)
class Address:
    """Free-text location fields. Every field may be missing."""

    line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "line", _clean(self.line))
        object.__setattr__(self, "city", _clean(self.city))
        state = _clean(self.state)
        object.__setattr__(self, "state", state.upper() if state else None)
        object.__setattr__(self, "zip", _clean(self.zip))

    @property
    def has_city_and_state(self) -> bool:
        return bool(self.city and self.state)

    def label(self) -> str:
        if self.city and self.state:
            return f"{self.city}, {self.state}"
        return self.city or self.state or "Location TBD"


@dataclass(slots=True, frozen=True)
class Facility:
    """A saved shipper/receiver location that stops may reference."""

    facility_id: str
    name: str
    address: Address = field(default_factory=Address)
    is_active: bool = True


@dataclass(slots=True, frozen=True)
class Stop:
    """One physical location in a load's route."""

    stop_id: str
    role: StopRole
    address: Address = field(default_factory=Address)
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    scheduled_date: Optional[date] = None
    sequence: int = 0

    @property
    def is_intermediate(self) -> bool:
        return self.role is StopRole.INTERMEDIATE

    @property
    def is_temporary(self) -> bool:
        return is_temporary_id(self.stop_id)


@dataclass(slots=True, frozen=True)
class Load:
    """The parent load. Pickup and delivery live here, not as Stop rows."""

    load_id: str
    shipper_name: Optional[str] = None
    shipper_facility_id: Optional[str] = None
    shipper_address: Address = field(default_factory=Address)
    pickup_date: Optional[date] = None
    consignee_name: Optional[str] = None
    consignee_facility_id: Optional[str] = None
    consignee_address: Address = field(default_factory=Address)
    delivery_date: Optional[date] = None
    revenue: Optional[float] = None
    driver_pay: Optional[float] = None
    miles: Optional[float] = None
    miles_source: MilesSource = MilesSource.CALCULATED

    @property
    def is_temporary(self) -> bool:
        return is_temporary_id(self.load_id)
