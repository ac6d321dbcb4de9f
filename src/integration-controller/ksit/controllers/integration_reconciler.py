"""Integration reconciler.

Drives one Integration declaration toward "tool installed and healthy on
every target cluster" and rewrites its status on each pass.

Phases: Pending -> Running | Failed, Running <-> Failed. There is no
terminal phase; every pass recomputes the status from scratch.
"""

from __future__ import annotations

import asyncio
import time
from uuid import uuid4

from pydantic import ValidationError

from shared.config import ReconcileSettings
from shared.models import (
    ClusterIdentity,
    Condition,
    ConditionStatus,
    IntegrationDeclaration,
    IntegrationPhase,
    IntegrationStatus,
    IntegrationType,
    TargetStatus,
    set_condition,
)
from shared.observability import ReconcileContext, get_logger

from ..errors import (
    ClusterConnectivityError,
    ClusterNotRegisteredError,
    ConfigurationError,
)
from ..probes import ProbeResult, TypeProbe, get_probe, parse_integration_type
from ..services.cluster_registry import ClusterRegistry
from ..services.integration_store import IntegrationStore
from ..services.kube_client import ClientFactory, ClusterEndpoint, KubeClient
from ..services.metrics import MetricsEmitter, NoopMetricsEmitter
from ..utils import Clock, RetryConfig, retry_async, utcnow

logger = get_logger(__name__)

READY_CONDITION = "Ready"

REASON_DISABLED = "disabled"
REASON_NO_TARGETS = "no target clusters declared"
REASON_INVALID_TARGET = "invalid target cluster reference"
REASON_AWAITING_PROBE = "awaiting first probe round"

# Share of the pass deadline a single target may spend probing
TARGET_BUDGET_SHARE = 0.8


class IntegrationReconciler:
    """Runs reconciliation passes for Integration declarations.

    Target probes from all passes share one semaphore, so the number of
    in-flight cluster calls is bounded process-wide. Waiting for a slot
    counts against the attempt's timeout, and a target's whole retry
    schedule is capped below the pass deadline. A pass starved by other
    Integrations therefore still reports its targets as timed out instead
    of being abandoned.
    """

    def __init__(
        self,
        store: IntegrationStore,
        registry: ClusterRegistry,
        settings: ReconcileSettings | None = None,
        metrics: MetricsEmitter | None = None,
        client_factory: ClientFactory = KubeClient,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings or ReconcileSettings()
        self.metrics = metrics or NoopMetricsEmitter()
        self.client_factory = client_factory
        self.clock = clock
        self._probe_semaphore = asyncio.Semaphore(self.settings.max_concurrent_probes)
        self._retry = RetryConfig(
            max_attempts=self.settings.retry_count,
            initial_delay=self.settings.retry_backoff_seconds,
            max_delay=self.settings.retry_max_backoff_seconds,
            retry_on=(ClusterConnectivityError, asyncio.TimeoutError),
        )
        self._target_budget = _target_budget(self.settings, self._retry)
        # integration key -> (type, cluster keys) with exported status gauges
        self._exported: dict[str, tuple[str, list[str]]] = {}

    async def reconcile(self, namespace: str, name: str) -> IntegrationStatus | None:
        """Run one pass.

        Returns the persisted status, or None when the declaration is gone
        or the pass was abandoned at its deadline.

        Raises:
            ControlPlaneError: declarations or statuses cannot be accessed
        """
        key = f"{namespace}/{name}"
        async with ReconcileContext(reconcile_id=uuid4().hex[:12], integration=key):
            declaration = await self.store.get_integration(namespace, name)
            if declaration is None:
                self._cleanup_metrics(key)
                logger.info("Integration not found, skipping")
                return None

            current = await self.store.get_integration_status(namespace, name)
            start = time.perf_counter()
            try:
                status = await asyncio.wait_for(
                    self._run_pass(declaration, current or IntegrationStatus()),
                    timeout=self.settings.pass_deadline_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Reconcile pass exceeded deadline, results discarded",
                    deadline_seconds=self.settings.pass_deadline_seconds,
                )
                self.metrics.record_reconcile(
                    key, declaration.type, "abandoned", time.perf_counter() - start
                )
                return None

            written = await self.store.update_integration_status(namespace, name, status)
            duration = time.perf_counter() - start
            self.metrics.record_reconcile(key, declaration.type, _outcome(status), duration)
            if not written:
                logger.info("Integration deleted during reconcile, status not written")
                self._cleanup_metrics(key)
                return None

            logger.info(
                "Integration reconciled",
                phase=status.phase,
                reason=status.reason,
                targets=len(status.cluster_statuses),
                duration_ms=round(duration * 1000, 2),
            )
            return status

    async def _run_pass(
        self, declaration: IntegrationDeclaration, current: IntegrationStatus
    ) -> IntegrationStatus:
        key = declaration.key

        if not declaration.enabled:
            self._cleanup_metrics(key)
            return self._build_status(
                declaration,
                current,
                IntegrationPhase.PENDING,
                REASON_DISABLED,
                [],
                ConditionStatus.FALSE,
                "Disabled",
                "Integration is disabled",
            )

        try:
            integration_type = parse_integration_type(declaration.type)
            targets = resolve_targets(declaration)
        except ConfigurationError as e:
            logger.warning("Invalid integration declaration", reason=e.reason, error=str(e))
            self._cleanup_metrics(key)
            return self._build_status(
                declaration,
                current,
                IntegrationPhase.FAILED,
                e.reason,
                [],
                ConditionStatus.FALSE,
                "ReconcileFailed",
                str(e),
            )

        if current.phase is None:
            current = self._build_status(
                declaration,
                current,
                IntegrationPhase.PENDING,
                REASON_AWAITING_PROBE,
                [],
                ConditionStatus.UNKNOWN,
                "Reconciling",
                "Probing target clusters",
            )
            await self.store.update_integration_status(
                declaration.namespace, declaration.name, current
            )

        probe = get_probe(integration_type, declaration.config)
        cluster_statuses = list(
            await asyncio.gather(
                *(self._check_target(declaration, integration_type, probe, t) for t in targets)
            )
        )
        self._export_gauges(key, integration_type, cluster_statuses)

        failing = [s for s in cluster_statuses if not s.ready]
        if not failing:
            return self._build_status(
                declaration,
                current,
                IntegrationPhase.RUNNING,
                f"all {len(cluster_statuses)} target clusters ready",
                cluster_statuses,
                ConditionStatus.TRUE,
                "ReconcileSucceeded",
                "Integration is healthy",
            )

        first = failing[0]
        reason = f"{first.cluster}: {first.reason}"
        if len(failing) > 1:
            reason += f" (and {len(failing) - 1} more)"
        return self._build_status(
            declaration,
            current,
            IntegrationPhase.FAILED,
            reason,
            cluster_statuses,
            ConditionStatus.FALSE,
            "ReconcileFailed",
            f"{len(failing)} of {len(cluster_statuses)} target clusters not ready",
        )

    async def _check_target(
        self,
        declaration: IntegrationDeclaration,
        integration_type: IntegrationType,
        probe: TypeProbe,
        identity: ClusterIdentity,
    ) -> TargetStatus:
        """Probe one target cluster. Never raises for per-cluster failures."""
        cluster = identity.key
        with ReconcileContext(cluster=cluster):
            try:
                _, endpoint = await self.registry.lookup(identity)
            except ClusterNotRegisteredError as e:
                self.metrics.record_sync(declaration.key, cluster, "not_registered", 0.0)
                logger.info("Target cluster not registered")
                return TargetStatus(
                    cluster=cluster, ready=False, reason=e.reason, last_probe_time=self.clock()
                )

            start = time.perf_counter()
            budget = asyncio.timeout(self._target_budget)
            try:
                async with budget:
                    result = await retry_async(
                        lambda: self._probe_once(probe, endpoint),
                        self._retry,
                        operation=f"{integration_type.value} probe",
                    )
                ready, reason = result.ready, result.reason
                outcome = "success" if ready else "not_ready"
            except asyncio.TimeoutError:
                ready, outcome = False, "timeout"
                if budget.expired():
                    # May be probe slot contention, so not held against the cluster
                    reason = f"probe time budget of {self._target_budget:g}s exhausted"
                else:
                    reason = (
                        f"probe timed out after {self._retry.max_attempts} attempts "
                        f"of {self.settings.probe_timeout_seconds:g}s"
                    )
                    await self.registry.record_failure(identity, reason, endpoint=endpoint)
            except ClusterConnectivityError as e:
                ready, outcome, reason = False, "failed", e.reason
                await self.registry.record_failure(identity, e.reason, endpoint=endpoint)
            except Exception as e:
                logger.exception("Probe failed unexpectedly", error=str(e))
                ready, outcome = False, "failed"
                reason = f"{integration_type.value} probe failed: {type(e).__name__}"

            self.metrics.record_sync(
                declaration.key, cluster, outcome, time.perf_counter() - start
            )
            if not ready:
                logger.info("Target not ready", reason=reason)
            return TargetStatus(
                cluster=cluster, ready=ready, reason=reason, last_probe_time=self.clock()
            )

    async def _probe_once(self, probe: TypeProbe, endpoint: ClusterEndpoint) -> ProbeResult:
        return await asyncio.wait_for(
            self._probe(probe, endpoint), timeout=self.settings.probe_timeout_seconds
        )

    async def _probe(self, probe: TypeProbe, endpoint: ClusterEndpoint) -> ProbeResult:
        async with self._probe_semaphore:
            async with self.client_factory(endpoint) as kube:
                return await probe.probe(kube)

    def _build_status(
        self,
        declaration: IntegrationDeclaration,
        current: IntegrationStatus,
        phase: IntegrationPhase,
        reason: str,
        cluster_statuses: list[TargetStatus],
        condition_status: ConditionStatus,
        condition_reason: str,
        condition_message: str,
    ) -> IntegrationStatus:
        now = self.clock()
        condition = Condition(
            type=READY_CONDITION,
            status=condition_status,
            reason=condition_reason,
            message=condition_message,
        )
        return IntegrationStatus(
            phase=phase,
            reason=reason,
            cluster_statuses=cluster_statuses,
            conditions=set_condition(current.conditions, condition, now),
            last_reconcile_time=now,
            observed_generation=declaration.generation,
        )

    def _export_gauges(
        self, key: str, integration_type: IntegrationType, statuses: list[TargetStatus]
    ) -> None:
        clusters = [s.cluster for s in statuses]
        previous = self._exported.get(key)
        if previous:
            previous_type, previous_clusters = previous
            if previous_type != integration_type.value:
                self.metrics.cleanup_integration(key, previous_type, previous_clusters)
            else:
                dropped = [c for c in previous_clusters if c not in clusters]
                if dropped:
                    self.metrics.cleanup_integration(key, previous_type, dropped)
        for status in statuses:
            self.metrics.set_integration_status(
                key, integration_type.value, status.cluster, status.ready
            )
        self._exported[key] = (integration_type.value, clusters)

    def _cleanup_metrics(self, key: str) -> None:
        exported = self._exported.pop(key, None)
        if exported:
            integration_type, clusters = exported
            self.metrics.cleanup_integration(key, integration_type, clusters)

    def exported_clusters(self, key: str) -> list[str]:
        return list(self._exported.get(key, ("", []))[1])


def resolve_targets(declaration: IntegrationDeclaration) -> list[ClusterIdentity]:
    """Parse target references, de-duplicated in declaration order.

    Bare names resolve in the Integration's own namespace.

    Raises:
        ConfigurationError: the list is empty or holds a malformed reference
    """
    if not declaration.target_clusters:
        raise ConfigurationError(
            "Integration declares no target clusters", reason=REASON_NO_TARGETS
        )

    identities: list[ClusterIdentity] = []
    for ref in declaration.target_clusters:
        if not ref or not ref.strip():
            raise ConfigurationError(
                f"Target reference {ref!r} is blank", reason=REASON_INVALID_TARGET
            )
        try:
            identity = ClusterIdentity.parse(ref, default_namespace=declaration.namespace)
        except ValidationError as e:
            raise ConfigurationError(
                f"Target reference {ref!r} is malformed", reason=REASON_INVALID_TARGET
            ) from e
        if "/" in identity.name:
            raise ConfigurationError(
                f"Target reference {ref!r} is malformed", reason=REASON_INVALID_TARGET
            )
        if identity not in identities:
            identities.append(identity)
    return identities


def _target_budget(settings: ReconcileSettings, retry: RetryConfig) -> float | None:
    """Overall probing time for one target, or None when the schedule fits anyway."""
    schedule = retry.max_attempts * settings.probe_timeout_seconds + sum(retry.delays())
    cap = settings.pass_deadline_seconds * TARGET_BUDGET_SHARE
    return cap if schedule > cap else None


def _outcome(status: IntegrationStatus) -> str:
    if status.phase == IntegrationPhase.RUNNING:
        return "success"
    if status.phase == IntegrationPhase.PENDING:
        return "pending"
    return "failed"
