"""Request dependencies and error mapping shared by the routers."""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException, Request, status

from ..errors import (
    ClusterConnectivityError,
    ClusterNotRegisteredError,
    ConfigurationError,
    ControlPlaneError,
    CredentialsNotFoundError,
    InvalidCredentialsError,
    KsitError,
)
from ..runtime import ControlPlane

_STATUS_CODES: list[tuple[type[KsitError], int, str]] = [
    (ClusterNotRegisteredError, status.HTTP_404_NOT_FOUND, "CLUSTER_NOT_FOUND"),
    (CredentialsNotFoundError, status.HTTP_404_NOT_FOUND, "CREDENTIALS_NOT_FOUND"),
    (InvalidCredentialsError, status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_CREDENTIALS"),
    (ConfigurationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_CONFIGURATION"),
    (ClusterConnectivityError, status.HTTP_502_BAD_GATEWAY, "CLUSTER_UNREACHABLE"),
    (ControlPlaneError, status.HTTP_503_SERVICE_UNAVAILABLE, "CONTROL_PLANE_UNAVAILABLE"),
]


def get_control_plane(request: Request) -> ControlPlane:
    return request.app.state.control_plane


def raise_http_error(error: KsitError) -> NoReturn:
    """Re-raise a controller error as an HTTPException with an error code body."""
    for error_type, status_code, code in _STATUS_CODES:
        if isinstance(error, error_type):
            raise HTTPException(
                status_code=status_code,
                detail={"error": code, "message": str(error), "reason": error.reason},
            ) from error
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "INTERNAL_ERROR", "message": str(error), "reason": error.reason},
    ) from error
