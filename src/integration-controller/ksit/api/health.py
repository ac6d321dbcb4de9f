"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ..errors import ControlPlaneError
from ..runtime import ControlPlane
from .deps import get_control_plane

router = APIRouter()


@router.get(
    "/health",
    summary="Health check",
    description="Basic liveness check.",
)
async def health(control_plane: ControlPlane = Depends(get_control_plane)):
    return {"status": "healthy", "service": control_plane.settings.app_name}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the controller can reach the control-plane API and is reconciling.",
)
async def ready(control_plane: ControlPlane = Depends(get_control_plane)):
    """Readiness check.

    Verifies the declaration store answers and the controller manager has
    not stopped on a fatal error.
    """
    checks = {
        "control_plane_api": False,
        "controller": not control_plane.failed.is_set() and control_plane.manager.running,
    }

    try:
        await control_plane.store.ping()
        checks["control_plane_api"] = True
    except ControlPlaneError:
        pass

    all_ready = all(checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if all_ready else "not_ready", "checks": checks},
    )
