"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root(request: Request) -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    registry = getattr(request.app.state, "registry", None)
    return {
        "status": "ok",
        "routing_backend": settings.routing_backend,
        "open_routes": len(registry) if registry is not None else 0,
    }


@router.get("/health/osrm", status_code=status.HTTP_200_OK)
async def health_osrm() -> dict:
    """Check OSRM service health."""
    from ...services.routing.osrm_client import check_health

    if not settings.osrm_base_url:
        return {"service": "osrm", "healthy": False, "error": "OSRM base URL is not configured."}
    return {"service": "osrm", "healthy": await check_health()}
