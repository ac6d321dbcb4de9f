"""Process wiring.

``ControlPlane`` builds every service from ``Settings`` and owns their
start/stop order. The HTTP app and the CLI both drive it.
"""

from __future__ import annotations

import asyncio

from prometheus_client import CollectorRegistry

from shared.config import Settings, StoreBackend
from shared.models import ClusterConnection, ClusterIdentity
from shared.observability import get_logger

from .controllers import ControllerManager, IntegrationReconciler, TargetReconciler
from .errors import ControlPlaneError, CredentialsNotFoundError
from .services import (
    ClientFactory,
    ClusterInspector,
    ClusterRegistry,
    CredentialSource,
    EventService,
    HealthMonitor,
    InMemoryIntegrationStore,
    IntegrationStore,
    KubeClient,
    KubernetesIntegrationStore,
    MetricsEmitter,
    NoopMetricsEmitter,
    PrometheusMetricsEmitter,
    SecretCredentialSource,
    StaticCredentialSource,
    build_api_client,
    register_all,
)
from .utils import Clock, utcnow

logger = get_logger(__name__)


class ControlPlane:
    """All long-lived controller components of one process."""

    def __init__(
        self,
        settings: Settings,
        store: IntegrationStore | None = None,
        credential_source: CredentialSource | None = None,
        client_factory: ClientFactory = KubeClient,
        metrics: MetricsEmitter | None = None,
        clock: Clock = utcnow,
    ):
        self.settings = settings
        self.clock = clock

        if store is None or credential_source is None:
            default_store, default_source = self._build_backends(settings)
            store = store or default_store
            credential_source = credential_source or default_source
        self.store = store
        self.credential_source = credential_source

        self.metrics_registry: CollectorRegistry | None = None
        if metrics is None:
            if settings.observability.metrics_enabled:
                self.metrics_registry = CollectorRegistry()
                metrics = PrometheusMetricsEmitter(self.metrics_registry)
            else:
                metrics = NoopMetricsEmitter()
        self.metrics = metrics

        self.event_service = EventService()
        self.registry = ClusterRegistry(
            inspector=ClusterInspector(client_factory),
            failures_before_disconnected=settings.cluster_health.failures_before_disconnected,
            clock=clock,
            event_service=self.event_service,
        )
        self.health_monitor = HealthMonitor(
            self.registry,
            settings=settings.cluster_health,
            metrics=self.metrics,
            event_service=self.event_service,
            clock=clock,
        )
        self.integration_reconciler = IntegrationReconciler(
            self.store,
            self.registry,
            settings=settings.reconcile,
            metrics=self.metrics,
            client_factory=client_factory,
            clock=clock,
        )
        self.target_reconciler = TargetReconciler(
            self.store, self.registry, event_service=self.event_service, clock=clock
        )
        self.manager = ControllerManager(
            self.store,
            self.integration_reconciler,
            self.target_reconciler,
            settings=settings.reconcile,
            event_service=self.event_service,
        )
        self._health_task: asyncio.Task | None = None

    @staticmethod
    def _build_backends(settings: Settings) -> tuple[IntegrationStore, CredentialSource]:
        if settings.store_backend == StoreBackend.MEMORY:
            return InMemoryIntegrationStore(), StaticCredentialSource()
        api_client = build_api_client(settings.kubernetes)
        return (
            KubernetesIntegrationStore(settings.kubernetes, api_client),
            SecretCredentialSource(settings.kubernetes, api_client),
        )

    @property
    def failed(self) -> asyncio.Event:
        """Set once the control-plane API has become unreachable."""
        return self.manager.failed

    @property
    def fatal_error(self) -> ControlPlaneError | None:
        return self.manager.fatal_error

    async def start(self) -> None:
        """Register clusters from credential secrets, then start reconciling.

        Raises:
            ControlPlaneError: declarations or secrets cannot be read
        """
        logger.info(
            "Starting control plane",
            store_backend=self.settings.store_backend,
            health_monitor=self.settings.health_monitor_enabled,
        )
        await self.store.ping()
        await register_all(self.registry, self.credential_source)
        await self.manager.start()

        if self.settings.health_monitor_enabled:
            self._health_task = asyncio.create_task(
                self.health_monitor.run_periodic_checks(), name="health-monitor"
            )
        logger.info("Control plane started", clusters=await self.registry.count())

    async def stop(self) -> None:
        logger.info("Stopping control plane")
        self.health_monitor.stop()
        if self._health_task:
            self._health_task.cancel()
            try:
                await self._health_task
            except asyncio.CancelledError:
                pass
            self._health_task = None
        await self.manager.stop()
        logger.info("Control plane stopped")

    async def reload_cluster(self, identity: ClusterIdentity) -> ClusterConnection:
        """Re-read one cluster's credential secret and re-register it.

        Raises:
            CredentialsNotFoundError: no secret for the cluster
            InvalidCredentialsError: the secret is malformed
            ClusterConnectivityError: the cluster cannot be reached
        """
        secret = await self.credential_source.load(identity)
        if secret is None:
            raise CredentialsNotFoundError(identity.key)
        return await self.registry.register(secret.identity, secret.credentials, secret.labels)
