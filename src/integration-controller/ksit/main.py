"""Integration controller FastAPI application.

The application hosts:
- Cluster registration and health endpoints
- Integration status endpoints
- Prometheus metrics at /metrics
- The controller itself, started and stopped with the app lifespan
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from shared.config import Settings, get_settings
from shared.observability import get_logger

from . import __version__
from .api import clusters, health, integrations
from .runtime import ControlPlane

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    control_plane: ControlPlane | None = None,
) -> FastAPI:
    """Build the app around a control plane (constructed from settings when omitted).

    Raises:
        ControlPlaneError: the kubernetes store cannot load its client configuration
    """
    settings = settings or get_settings()
    control_plane = control_plane or ControlPlane(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting integration controller", version=settings.app_version)
        await control_plane.start()
        logger.info("Integration controller started successfully")

        yield

        logger.info("Shutting down integration controller")
        await control_plane.stop()
        logger.info("Integration controller shutdown complete")

    app = FastAPI(
        title="KSIT Integration Controller",
        description="Keeps tool integrations converged across a fleet of Kubernetes clusters",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.control_plane = control_plane

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(clusters.router, prefix="/api/v1", tags=["Clusters"])
    app.include_router(integrations.router, prefix="/api/v1", tags=["Integrations"])
    app.include_router(health.router, tags=["Health"])

    if control_plane.metrics_registry is not None:
        app.mount("/metrics", make_asgi_app(registry=control_plane.metrics_registry))

    @app.get("/")
    async def root():
        """Root endpoint with service info."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app
