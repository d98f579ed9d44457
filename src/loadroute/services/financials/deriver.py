"""Financial figures derived from revenue, driver pay and miles."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from ...errors import ValidationError
from ...models.domain import Load, MilesSource
from ..routing.models import RouteResolution


def derive_margin(revenue: Optional[float], driver_pay: Optional[float]) -> float:
    """Revenue minus driver pay; missing figures count as zero."""
    return float(revenue or 0.0) - float(driver_pay or 0.0)


def derive_rate_per_mile(revenue: Optional[float], miles: Optional[float]) -> Optional[float]:
    """Revenue per mile, or None when it cannot be computed.

    None means "not available" and must not be shown as $0.00/mi.
    """
    if revenue is None or miles is None or miles <= 0:
        return None
    return float(revenue) / float(miles)


@dataclass(slots=True, frozen=True)
class FinancialSnapshot:
    revenue: Optional[float] = None
    driver_pay: Optional[float] = None
    miles: Optional[float] = None
    miles_source: MilesSource = MilesSource.CALCULATED
    # Most recent distance reported by a resolution, kept even in manual mode.
    last_calculated_miles: Optional[float] = None
    duration_hours: Optional[float] = None

    @property
    def margin(self) -> float:
        return derive_margin(self.revenue, self.driver_pay)

    @property
    def rate_per_mile(self) -> Optional[float]:
        return derive_rate_per_mile(self.revenue, self.miles)

    @property
    def is_manual(self) -> bool:
        return self.miles_source is MilesSource.MANUAL

    @classmethod
    def from_load(cls, load: Load) -> "FinancialSnapshot":
        return cls(
            revenue=load.revenue,
            driver_pay=load.driver_pay,
            miles=load.miles,
            miles_source=load.miles_source,
            last_calculated_miles=load.miles if load.miles_source is MilesSource.CALCULATED else None,
        )


def apply_resolution(snapshot: FinancialSnapshot, resolution: RouteResolution) -> FinancialSnapshot:
    """Feed a successful resolution into the snapshot.

    In manual mode only the informational ``last_calculated_miles`` changes; the
    user's miles stay active.
    """
    if not resolution.succeeded or resolution.distance_miles is None:
        return snapshot
    if snapshot.is_manual:
        return replace(
            snapshot,
            last_calculated_miles=resolution.distance_miles,
            duration_hours=resolution.duration_hours,
        )
    return replace(
        snapshot,
        miles=resolution.distance_miles,
        miles_source=MilesSource.CALCULATED,
        last_calculated_miles=resolution.distance_miles,
        duration_hours=resolution.duration_hours,
    )


def override_miles(snapshot: FinancialSnapshot, value: float) -> FinancialSnapshot:
    """Set miles by hand. This is the only way into manual mode."""
    if value is None or isinstance(value, bool):
        raise ValidationError("Miles must be a number.")
    try:
        miles = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Miles must be a number, got {value!r}.") from exc
    if miles < 0:
        raise ValidationError("Miles cannot be negative.")
    return replace(snapshot, miles=miles, miles_source=MilesSource.MANUAL)


def reset_to_calculated(snapshot: FinancialSnapshot) -> FinancialSnapshot:
    """Leave manual mode. The caller is expected to request a fresh resolution."""
    return replace(snapshot, miles=snapshot.last_calculated_miles, miles_source=MilesSource.CALCULATED)


def update_figures(
    snapshot: FinancialSnapshot,
    *,
    revenue: Optional[float] = None,
    driver_pay: Optional[float] = None,
) -> FinancialSnapshot:
    """Apply revenue/driver pay edits. None leaves a figure unchanged."""
    changes = {}
    if revenue is not None:
        changes["revenue"] = float(revenue)
    if driver_pay is not None:
        changes["driver_pay"] = float(driver_pay)
    return replace(snapshot, **changes)
