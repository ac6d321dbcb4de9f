"""Integration status API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from shared.observability import get_logger

from ..errors import KsitError
from ..runtime import ControlPlane
from ..schemas.integration import (
    IntegrationListResponse,
    IntegrationStatusResponse,
    ReconcileTriggerResponse,
)
from .deps import get_control_plane, raise_http_error

logger = get_logger(__name__)

router = APIRouter()


def _not_found(namespace: str, name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "INTEGRATION_NOT_FOUND",
            "message": f"Integration {namespace}/{name} not found",
        },
    )


@router.get(
    "/integrations",
    response_model=IntegrationListResponse,
    summary="List integrations",
    description="List Integration declarations with their last written status.",
)
async def list_integrations(control_plane: ControlPlane = Depends(get_control_plane)):
    store = control_plane.store
    try:
        items = []
        for declaration in await store.list_integrations():
            current = await store.get_integration_status(declaration.namespace, declaration.name)
            items.append(IntegrationStatusResponse.build(declaration, current))
    except KsitError as e:
        raise_http_error(e)
    return IntegrationListResponse(items=items, total=len(items))


@router.get(
    "/integrations/{namespace}/{name}",
    response_model=IntegrationStatusResponse,
    summary="Get integration status",
)
async def get_integration(
    namespace: str,
    name: str,
    control_plane: ControlPlane = Depends(get_control_plane),
):
    store = control_plane.store
    try:
        declaration = await store.get_integration(namespace, name)
        current = await store.get_integration_status(namespace, name) if declaration else None
    except KsitError as e:
        raise_http_error(e)
    if declaration is None:
        raise _not_found(namespace, name)
    return IntegrationStatusResponse.build(declaration, current)


@router.post(
    "/integrations/{namespace}/{name}/reconcile",
    response_model=ReconcileTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Trigger reconcile",
    description="Queue a reconcile pass for the Integration ahead of its next periodic pass.",
)
async def trigger_reconcile(
    namespace: str,
    name: str,
    control_plane: ControlPlane = Depends(get_control_plane),
):
    try:
        declaration = await control_plane.store.get_integration(namespace, name)
    except KsitError as e:
        raise_http_error(e)
    if declaration is None:
        raise _not_found(namespace, name)

    control_plane.manager.enqueue_integration(namespace, name)
    logger.info("Reconcile requested", integration=declaration.key)
    return ReconcileTriggerResponse(integration=declaration.key, queued=True)
