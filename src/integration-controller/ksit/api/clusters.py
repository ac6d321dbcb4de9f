"""Cluster registry API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from shared.models import ClusterConnectionStatus, ClusterHealth, ClusterIdentity
from shared.observability import get_logger

from ..errors import KsitError
from ..runtime import ControlPlane
from ..schemas.cluster import (
    ClusterHealthSummary,
    ClusterListResponse,
    ClusterRegistration,
    ClusterResponse,
    FleetHealth,
)
from ..utils import matches_selector, parse_selector
from .deps import get_control_plane, raise_http_error

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/clusters",
    response_model=ClusterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a cluster",
    description="Register a cluster, or rotate the credentials of a registered one.",
)
async def register_cluster(
    registration: ClusterRegistration,
    control_plane: ControlPlane = Depends(get_control_plane),
):
    """Probe the cluster with the given credentials and install it on success."""
    try:
        connection = await control_plane.registry.register(
            registration.identity(), registration.credentials(), registration.labels
        )
    except KsitError as e:
        logger.warning("Cluster registration rejected", cluster=registration.name, error=str(e))
        raise_http_error(e)
    return ClusterResponse.from_connection(connection)


@router.get(
    "/clusters",
    response_model=ClusterListResponse,
    summary="List clusters",
    description="List registered clusters with optional label and status filters.",
)
async def list_clusters(
    label: str | None = Query(None, description="Label selector, e.g. env=prod,team=core"),
    state: ClusterConnectionStatus | None = Query(None, description="Filter by status"),
    control_plane: ControlPlane = Depends(get_control_plane),
):
    selector = {}
    if label:
        try:
            selector = parse_selector(label)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"error": "INVALID_SELECTOR", "message": str(e)},
            ) from e

    clusters = await control_plane.registry.list()
    items = [
        ClusterResponse.from_connection(c)
        for c in clusters
        if matches_selector(c.labels, selector) and (state is None or c.status == state)
    ]
    return ClusterListResponse(items=items, total=len(items))


@router.get(
    "/clusters/health",
    response_model=FleetHealth,
    summary="Fleet health",
    description="Connection overview of every registered cluster, as of the last health check.",
)
async def get_fleet_health(control_plane: ControlPlane = Depends(get_control_plane)):
    clusters = await control_plane.registry.list()
    counts = {s: 0 for s in ClusterConnectionStatus}
    summaries = []
    for conn in clusters:
        counts[ClusterConnectionStatus(conn.status)] += 1
        summaries.append(
            ClusterHealthSummary(
                cluster=conn.key,
                reachable=conn.is_active,
                status=conn.status,
                error=conn.last_error,
            )
        )
    return FleetHealth(
        total=len(clusters),
        active=counts[ClusterConnectionStatus.ACTIVE],
        connecting=counts[ClusterConnectionStatus.CONNECTING],
        error=counts[ClusterConnectionStatus.ERROR],
        disconnected=counts[ClusterConnectionStatus.DISCONNECTED],
        clusters=summaries,
    )


@router.get(
    "/clusters/{namespace}/{name}",
    response_model=ClusterResponse,
    summary="Get cluster",
)
async def get_cluster(
    namespace: str,
    name: str,
    control_plane: ControlPlane = Depends(get_control_plane),
):
    try:
        connection = await control_plane.registry.get(
            ClusterIdentity(name=name, namespace=namespace)
        )
    except KsitError as e:
        raise_http_error(e)
    return ClusterResponse.from_connection(connection)


@router.delete(
    "/clusters/{namespace}/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deregister cluster",
)
async def delete_cluster(
    namespace: str,
    name: str,
    control_plane: ControlPlane = Depends(get_control_plane),
):
    identity = ClusterIdentity(name=name, namespace=namespace)
    if not await control_plane.registry.remove(identity):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "CLUSTER_NOT_FOUND",
                "message": f"Cluster {identity.key!r} is not registered",
            },
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/clusters/{namespace}/{name}/refresh",
    response_model=ClusterHealth,
    summary="Refresh cluster",
    description="Run a health check now. Unreachable clusters are reported, not rejected.",
)
async def refresh_cluster(
    namespace: str,
    name: str,
    control_plane: ControlPlane = Depends(get_control_plane),
):
    try:
        return await control_plane.health_monitor.refresh(
            ClusterIdentity(name=name, namespace=namespace)
        )
    except KsitError as e:
        raise_http_error(e)


@router.post(
    "/clusters/{namespace}/{name}/reload",
    response_model=ClusterResponse,
    summary="Reload cluster credentials",
    description="Re-read the cluster's credential secret and re-register the cluster.",
)
async def reload_cluster(
    namespace: str,
    name: str,
    control_plane: ControlPlane = Depends(get_control_plane),
):
    try:
        connection = await control_plane.reload_cluster(
            ClusterIdentity(name=name, namespace=namespace)
        )
    except KsitError as e:
        raise_http_error(e)
    return ClusterResponse.from_connection(connection)
