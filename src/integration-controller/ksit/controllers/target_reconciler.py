"""IntegrationTarget reconciler.

Resolves a target declaration against the cluster registry and records
whether the cluster is usable. Type independent: every Integration that
references the cluster relies on the same answer.
"""

from __future__ import annotations

from uuid import uuid4

from pydantic import ValidationError

from shared.models import (
    ClusterConnectionStatus,
    ClusterIdentity,
    Condition,
    ConditionStatus,
    IntegrationTargetDeclaration,
    IntegrationTargetStatus,
    set_condition,
)
from shared.observability import ReconcileContext, get_logger

from ..errors import ClusterNotRegisteredError
from ..services.cluster_registry import ClusterRegistry
from ..services.event_service import EventService
from ..services.integration_store import IntegrationStore
from ..utils import Clock, mismatched_labels, utcnow, validate_labels

logger = get_logger(__name__)

REASON_READY = "target cluster is ready"
REASON_NOT_REGISTERED = "target cluster not registered"
REASON_INVALID_REFERENCE = "invalid target cluster reference"


def target_identity(declaration: IntegrationTargetDeclaration) -> ClusterIdentity:
    """Cluster the target points at; defaults to the target's own namespace."""
    return ClusterIdentity(
        name=declaration.cluster_name.strip(),
        namespace=declaration.cluster_namespace or declaration.namespace,
    )


class TargetReconciler:
    """Writes Ready/Reason for IntegrationTarget declarations."""

    def __init__(
        self,
        store: IntegrationStore,
        registry: ClusterRegistry,
        event_service: EventService | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.event_service = event_service
        self.clock = clock

    async def evaluate(self, declaration: IntegrationTargetDeclaration) -> tuple[bool, str]:
        """Readiness and reason for a target, without writing anything."""
        label_errors = validate_labels(declaration.labels)
        if label_errors:
            return False, f"invalid expected labels: {label_errors[0]}"

        try:
            identity = target_identity(declaration)
        except ValidationError:
            return False, REASON_INVALID_REFERENCE

        try:
            connection = await self.registry.get(identity)
        except ClusterNotRegisteredError:
            return False, REASON_NOT_REGISTERED

        mismatched = mismatched_labels(connection.labels, declaration.labels)
        if mismatched:
            return False, f"cluster labels do not match: {', '.join(mismatched)}"

        if connection.status != ClusterConnectionStatus.ACTIVE:
            status = getattr(connection.status, "value", connection.status)
            return False, f"cluster connection status is {status}"

        return True, REASON_READY

    async def reconcile(self, namespace: str, name: str) -> IntegrationTargetStatus | None:
        """Evaluate and persist one target.

        Raises:
            ControlPlaneError: declarations or statuses cannot be accessed
        """
        key = f"{namespace}/{name}"
        async with ReconcileContext(reconcile_id=uuid4().hex[:12], integration=key):
            declaration = await self.store.get_target(namespace, name)
            if declaration is None:
                logger.info("IntegrationTarget not found, skipping")
                return None

            current = await self.store.get_target_status(namespace, name)
            current = current or IntegrationTargetStatus()
            ready, reason = await self.evaluate(declaration)

            now = self.clock()
            condition = Condition(
                type="Ready",
                status=ConditionStatus.TRUE if ready else ConditionStatus.FALSE,
                reason="ClusterReady" if ready else "ClusterNotReady",
                message=reason,
            )
            status = IntegrationTargetStatus(
                ready=ready,
                reason=reason,
                conditions=set_condition(current.conditions, condition, now),
                observed_generation=declaration.generation,
                last_sync_time=now,
            )

            if not await self.store.update_target_status(namespace, name, status):
                logger.info("IntegrationTarget deleted during reconcile, status not written")
                return None

            logger.info("IntegrationTarget reconciled", ready=ready, reason=reason)
            if ready != current.ready and self.event_service:
                cluster_namespace = declaration.cluster_namespace or namespace
                cluster = f"{cluster_namespace}/{declaration.cluster_name.strip()}"
                await self.event_service.publish_target_status_changed(key, cluster, ready)
            return status
