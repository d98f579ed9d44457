"""Conversion between TMS API payloads and domain objects."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, Optional

from ..models.domain import Address, Facility, Load, MilesSource, Stop, StopRole


def unwrap(payload: Any) -> Any:
    """The API wraps most bodies as ``{"success": ..., "data": ...}``."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def address_from_payload(payload: dict | None) -> Address:
    payload = payload or {}
    return Address(
        line=payload.get("address") or payload.get("line1"),
        city=payload.get("city"),
        state=payload.get("state"),
        zip=payload.get("zip"),
    )


def load_from_payload(payload: dict) -> Load:
    payload = unwrap(payload)
    shipper = payload.get("shipper") or {}
    consignee = payload.get("consignee") or {}
    schedule = payload.get("schedule") or {}
    financials = payload.get("financials") or {}
    source = financials.get("miles_source") or payload.get("miles_source") or MilesSource.CALCULATED.value
    return Load(
        load_id=str(payload["id"]),
        shipper_name=shipper.get("name"),
        shipper_facility_id=shipper.get("facility_id"),
        shipper_address=address_from_payload(shipper),
        pickup_date=parse_date(schedule.get("pickup_date")),
        consignee_name=consignee.get("name"),
        consignee_facility_id=consignee.get("facility_id"),
        consignee_address=address_from_payload(consignee),
        delivery_date=parse_date(schedule.get("delivery_date")),
        revenue=to_float(financials.get("revenue")),
        driver_pay=to_float(financials.get("driver_pay")),
        miles=to_float(financials.get("miles")),
        miles_source=MilesSource(source),
    )


def stop_from_payload(payload: dict) -> Stop:
    payload = unwrap(payload)
    return Stop(
        stop_id=str(payload["id"]),
        role=StopRole.INTERMEDIATE,
        address=address_from_payload(payload),
        facility_id=payload.get("facility_id") or None,
        facility_name=payload.get("facility_name") or None,
        scheduled_date=parse_date(payload.get("scheduled_date")),
        sequence=int(payload.get("stop_number") or 0),
    )


def stops_from_payload(payload: Any) -> list[Stop]:
    return [stop_from_payload(item) for item in unwrap(payload) or []]


def stop_to_payload(stop: Stop) -> dict:
    return {
        "facility_id": stop.facility_id,
        "facility_name": stop.facility_name,
        "address": stop.address.line,
        "city": stop.address.city,
        "state": stop.address.state,
        "zip": stop.address.zip,
        "scheduled_date": format_date(stop.scheduled_date),
        "type": "stop",
    }


def stop_changes_to_payload(changes: dict) -> dict:
    """Translate ``update_intermediate`` keyword changes into an API patch."""
    payload: dict[str, Any] = {}
    if "address" in changes:
        address: Address = changes["address"]
        payload.update(address=address.line, city=address.city, state=address.state, zip=address.zip)
    if "facility_id" in changes:
        payload["facility_id"] = changes["facility_id"]
    if "facility_name" in changes:
        payload["facility_name"] = changes["facility_name"]
    if "scheduled_date" in changes:
        payload["scheduled_date"] = format_date(changes["scheduled_date"])
    return payload


def endpoint_fields(role: StopRole, changes: dict) -> dict:
    """Load fields for a pickup/delivery edit, e.g. ``shipper_city``."""
    if StopRole(role) is StopRole.PICKUP:
        prefix, date_field = "shipper", "pickup_date"
    else:
        prefix, date_field = "consignee", "delivery_date"
    fields: dict[str, Any] = {}
    if "address" in changes:
        address: Address = changes["address"]
        fields.update(
            {
                f"{prefix}_address": address.line,
                f"{prefix}_city": address.city,
                f"{prefix}_state": address.state,
                f"{prefix}_zip": address.zip,
            }
        )
    if "name" in changes:
        fields[f"{prefix}_name"] = changes["name"]
    if "facility_id" in changes:
        fields[f"{prefix}_facility_id"] = changes["facility_id"]
    if "scheduled_date" in changes:
        fields[date_field] = format_date(changes["scheduled_date"])
    return fields


def load_to_create_payload(load: Load, intermediate_stops: Iterable[Stop]) -> dict:
    payload: dict[str, Any] = {}
    for role in (StopRole.PICKUP, StopRole.DELIVERY):
        prefix = "shipper" if role is StopRole.PICKUP else "consignee"
        address = load.shipper_address if role is StopRole.PICKUP else load.consignee_address
        payload.update(
            endpoint_fields(
                role,
                {
                    "address": address,
                    "name": getattr(load, f"{prefix}_name"),
                    "facility_id": getattr(load, f"{prefix}_facility_id"),
                    "scheduled_date": load.pickup_date if role is StopRole.PICKUP else load.delivery_date,
                },
            )
        )
    payload.update(
        revenue=load.revenue,
        driver_pay=load.driver_pay,
        miles=int(round(load.miles)) if load.miles is not None else None,
        miles_source=load.miles_source.value,
        stops=[stop_to_payload(stop) for stop in intermediate_stops],
    )
    return payload


def facility_from_payload(payload: dict) -> Facility:
    return Facility(
        facility_id=str(payload["id"]),
        name=payload.get("company_name") or payload.get("name") or "",
        address=address_from_payload(payload.get("address")),
        is_active=bool(payload.get("is_active", True)),
    )
