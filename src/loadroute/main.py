"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, loads
from .config import settings
from .errors import UpstreamUnavailableError
from .persistence.facilities import FacilityDirectory
from .persistence.resources import TmsResourceClient
from .services.recalc.registry import CoordinatorRegistry
from .services.routing.backends import OSRMRoutingBackend, RoutingBackend, TmsRoutingBackend
from .services.routing.cache import RouteCache
from .services.routing.geocoder import NominatimGeocoder
from .services.routing.osrm_client import OSRMClient
from .services.routing.resolver import RouteResolver

logger = logging.getLogger(__name__)

Closer = Callable[[], Awaitable[None]]


def build_backend(resources: TmsResourceClient | None) -> tuple[RoutingBackend, list[Closer]]:
    """Pick the routing backend named by ``LOADROUTE_ROUTING_BACKEND``."""
    if settings.routing_backend == "osrm":
        backend = OSRMRoutingBackend(NominatimGeocoder(), OSRMClient())
        return backend, [backend.aclose]
    if resources is None:
        raise ValueError("The 'tms' routing backend needs LOADROUTE_TMS_API_BASE_URL.")
    return TmsRoutingBackend(resources), []


def build_registry(backend: RoutingBackend) -> CoordinatorRegistry:
    cache = RouteCache(settings.route_cache_ttl_seconds, max_entries=settings.route_cache_max_entries)
    return CoordinatorRegistry(
        RouteResolver(backend, cache),
        facilities=FacilityDirectory(),
        debounce_seconds=settings.debounce_seconds,
        resolve_timeout_seconds=settings.resolve_timeout_seconds,
    )


def create_app(
    *,
    registry: CoordinatorRegistry | None = None,
    resources: TmsResourceClient | None = None,
) -> FastAPI:
    """Build the app. Passing ``registry`` skips building clients from settings."""
    logging.basicConfig(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        closers: list[Closer] = []
        if registry is None:
            client = TmsResourceClient() if settings.tms_api_base_url else None
            if client is not None:
                closers.append(client.aclose)
            backend, backend_closers = build_backend(client)
            closers.extend(backend_closers)
            app.state.resources = client
            app.state.registry = build_registry(backend)
            if client is not None:
                try:
                    await app.state.registry.facilities.refresh(client)
                except UpstreamUnavailableError as exc:
                    logger.warning(f"Facility directory not loaded at startup: {exc}")
        else:
            app.state.resources = resources
            app.state.registry = registry
        logger.info(f"{settings.app_name} started with '{settings.routing_backend}' routing backend")
        try:
            yield
        finally:
            await app.state.registry.aclose()
            for close in closers:
                await close()
            logger.info(f"{settings.app_name} shut down")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(loads.router, prefix=settings.api_prefix)
    return app


app = create_app()
