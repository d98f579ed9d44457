"""Error taxonomy for the route and financial derivation engine.

Structural errors (``ValidationError``, ``NotFoundError``,
``InvalidOperationError``) are raised synchronously and block the attempted
mutation. Resolution errors are recoverable: the coordinator captures them into
its state instead of letting them escape to the views.
"""

from __future__ import annotations


class RouteEngineError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(RouteEngineError):
    """A request is malformed, e.g. a reorder whose id set does not match."""


class NotFoundError(RouteEngineError):
    """A stop, load or facility id does not exist."""


class InvalidOperationError(RouteEngineError):
    """The operation is not allowed on the target, e.g. deleting the pickup."""


class ResolutionError(RouteEngineError):
    """A route could not be resolved. Carries a short machine readable reason."""

    reason = "resolution_failed"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class InsufficientLocationError(ResolutionError):
    """Fewer than two locations carry both city and state."""

    reason = "insufficient_locations"


class UpstreamUnavailableError(ResolutionError):
    """The routing service or resource layer failed or timed out."""

    reason = "upstream_unavailable"
