"""Debounced recalculation of routes and financials."""

from .coordinator import CoordinatorState, RecalculationCoordinator, RouteView
from .registry import CoordinatorRegistry

__all__ = ["CoordinatorRegistry", "CoordinatorState", "RecalculationCoordinator", "RouteView"]
