"""Ordered stop list for a load: pickup, intermediate stops, delivery.

Every function here is pure. They take the full ordered list produced by
:func:`build` and return a new list; the input is never modified.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import date
from typing import Iterable, Optional, Sequence

from ...errors import InvalidOperationError, NotFoundError, ValidationError
from ...models.domain import (
    DELIVERY_STOP_ID,
    PICKUP_STOP_ID,
    Address,
    Load,
    Stop,
    UNSET,
    StopRole,
)
from ..routing.models import RouteLocation, location_fingerprint

RESERVED_IDS = frozenset({PICKUP_STOP_ID, DELIVERY_STOP_ID})


def pickup_stop(load: Load) -> Stop:
    return Stop(
        stop_id=PICKUP_STOP_ID,
        role=StopRole.PICKUP,
        address=load.shipper_address,
        facility_id=load.shipper_facility_id,
        facility_name=load.shipper_name,
        scheduled_date=load.pickup_date,
        sequence=0,
    )


def delivery_stop(load: Load, intermediate_count: int) -> Stop:
    return Stop(
        stop_id=DELIVERY_STOP_ID,
        role=StopRole.DELIVERY,
        address=load.consignee_address,
        facility_id=load.consignee_facility_id,
        facility_name=load.consignee_name,
        scheduled_date=load.delivery_date,
        sequence=intermediate_count + 1,
    )


def build(load: Load, intermediate_stops: Iterable[Stop]) -> list[Stop]:
    """Synthesize pickup/delivery from the load and place intermediates between them."""
    intermediates = list(intermediate_stops)
    for stop in intermediates:
        if not stop.is_intermediate:
            raise ValidationError(f"Stop '{stop.stop_id}' has role '{stop.role.value}', expected intermediate.")
        if stop.stop_id in RESERVED_IDS:
            raise ValidationError(f"Stop id '{stop.stop_id}' is reserved for the load's endpoints.")
    duplicates = [stop_id for stop_id, count in Counter(s.stop_id for s in intermediates).items() if count > 1]
    if duplicates:
        raise ValidationError(f"Duplicate stop ids: {', '.join(sorted(duplicates))}")

    ordered = sorted(intermediates, key=lambda s: s.sequence)
    return [pickup_stop(load), *ordered, delivery_stop(load, len(ordered))]


def intermediates(stops: Sequence[Stop]) -> list[Stop]:
    _check_shape(stops)
    return list(stops[1:-1])


def _check_shape(stops: Sequence[Stop]) -> None:
    if len(stops) < 2 or stops[0].role is not StopRole.PICKUP or stops[-1].role is not StopRole.DELIVERY:
        raise ValidationError("Stop sequence must start with the pickup and end with the delivery.")


def _assemble(stops: Sequence[Stop], middle: Sequence[Stop]) -> list[Stop]:
    renumbered = [replace(stop, sequence=index) for index, stop in enumerate(middle, start=1)]
    return [stops[0], *renumbered, replace(stops[-1], sequence=len(renumbered) + 1)]


def find(stops: Sequence[Stop], stop_id: str) -> Stop:
    for stop in stops:
        if stop.stop_id == stop_id:
            return stop
    raise NotFoundError(f"Stop '{stop_id}' not found.")


def ensure_intermediate(stops: Sequence[Stop], stop_id: str) -> Stop:
    """Return the intermediate stop with ``stop_id`` or raise.

    The pickup and delivery cannot be targeted by stop operations; they belong
    to the load.
    """
    if stop_id in RESERVED_IDS:
        raise InvalidOperationError(
            f"The {stop_id} stop is part of the load; edit the load's {stop_id} location instead."
        )
    return find(intermediates(stops), stop_id)


def insert_intermediate(stops: Sequence[Stop], new_stop: Stop) -> list[Stop]:
    """Append ``new_stop`` after the existing intermediates with the next sequence number."""
    middle = intermediates(stops)
    if new_stop.role is not StopRole.INTERMEDIATE:
        raise InvalidOperationError(f"Cannot add a second {new_stop.role.value} stop to a load.")
    if new_stop.stop_id in RESERVED_IDS or any(s.stop_id == new_stop.stop_id for s in middle):
        raise ValidationError(f"Stop id '{new_stop.stop_id}' is already in use.")
    return _assemble(stops, [*middle, new_stop])


def remove_intermediate(stops: Sequence[Stop], stop_id: str) -> list[Stop]:
    ensure_intermediate(stops, stop_id)
    return _assemble(stops, [s for s in intermediates(stops) if s.stop_id != stop_id])


def reorder(stops: Sequence[Stop], new_intermediate_order: Sequence[str]) -> list[Stop]:
    """Permute the intermediate stops. Pickup and delivery never move."""
    middle = intermediates(stops)
    requested = list(new_intermediate_order)
    if len(set(requested)) != len(requested):
        raise ValidationError("Reorder request lists a stop more than once.")
    current_ids = {s.stop_id for s in middle}
    if set(requested) != current_ids:
        missing = sorted(current_ids - set(requested))
        unknown = sorted(set(requested) - current_ids)
        raise ValidationError(
            f"Reorder must list exactly the current intermediate stops (missing: {missing}, unknown: {unknown})."
        )
    by_id = {s.stop_id: s for s in middle}
    return _assemble(stops, [by_id[stop_id] for stop_id in requested])


def update_intermediate(
    stops: Sequence[Stop],
    stop_id: str,
    *,
    address: Address | object = UNSET,
    facility_id: Optional[str] | object = UNSET,
    facility_name: Optional[str] | object = UNSET,
    scheduled_date: Optional[date] | object = UNSET,
) -> list[Stop]:
    target = ensure_intermediate(stops, stop_id)
    changes = {
        name: value
        for name, value in (
            ("address", address),
            ("facility_id", facility_id),
            ("facility_name", facility_name),
            ("scheduled_date", scheduled_date),
        )
        if value is not UNSET
    }
    updated = replace(target, **changes)
    return [updated if s.stop_id == stop_id else s for s in stops]


def relocate_endpoint(
    load: Load,
    role: StopRole,
    *,
    address: Address | object = UNSET,
    name: Optional[str] | object = UNSET,
    facility_id: Optional[str] | object = UNSET,
    scheduled_date: Optional[date] | object = UNSET,
) -> Load:
    """Write a pickup/delivery edit back onto the load."""
    role = StopRole(role)
    if role is StopRole.PICKUP:
        fields = ("shipper_address", "shipper_name", "shipper_facility_id", "pickup_date")
    elif role is StopRole.DELIVERY:
        fields = ("consignee_address", "consignee_name", "consignee_facility_id", "delivery_date")
    else:
        raise InvalidOperationError("Only the pickup and delivery locations belong to the load.")

    changes = {
        field_name: value
        for field_name, value in zip(fields, (address, name, facility_id, scheduled_date))
        if value is not UNSET
    }
    return replace(load, **changes)


def route_locations(stops: Sequence[Stop], *, complete_only: bool = False) -> list[RouteLocation]:
    locations = [RouteLocation.from_address(stop.address) for stop in stops]
    if complete_only:
        return [loc for loc in locations if loc.is_complete]
    return locations


def sequence_fingerprint(stops: Sequence[Stop]) -> str:
    """Fingerprint of the routable part of the sequence."""
    return location_fingerprint(route_locations(stops, complete_only=True))
