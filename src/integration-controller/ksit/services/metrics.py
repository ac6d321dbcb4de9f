"""Prometheus metrics for the integration controller.

The reconcilers and the health monitor only talk to the ``MetricsEmitter``
protocol. ``PrometheusMetricsEmitter`` is the production sink; each
instance owns its collectors so tests can pass a private
``CollectorRegistry``.
"""

from __future__ import annotations

from typing import Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

NAMESPACE = "ksit"

SYNC_LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0)


class MetricsEmitter(Protocol):
    def record_reconcile(
        self, integration: str, integration_type: str, status: str, duration_seconds: float
    ) -> None: ...

    def record_sync(
        self, integration: str, cluster: str, status: str, duration_seconds: float
    ) -> None: ...

    def set_integration_status(
        self, integration: str, integration_type: str, cluster: str, ready: bool
    ) -> None: ...

    def set_cluster_connection(self, cluster: str, connected: bool) -> None: ...

    def cleanup_integration(
        self, integration: str, integration_type: str, clusters: list[str]
    ) -> None: ...


class NoopMetricsEmitter:
    """Sink used when metrics are disabled."""

    def record_reconcile(self, integration, integration_type, status, duration_seconds) -> None:
        pass

    def record_sync(self, integration, cluster, status, duration_seconds) -> None:
        pass

    def set_integration_status(self, integration, integration_type, cluster, ready) -> None:
        pass

    def set_cluster_connection(self, cluster, connected) -> None:
        pass

    def cleanup_integration(self, integration, integration_type, clusters) -> None:
        pass


class PrometheusMetricsEmitter:
    """Exports reconcile and cluster metrics under the ``ksit_`` prefix."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else REGISTRY

        self.reconcile_total = Counter(
            "integration_reconcile_total",
            "Total number of integration reconcile passes, labeled by outcome.",
            labelnames=("integration", "type", "status"),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.reconcile_duration = Histogram(
            "integration_reconcile_duration_seconds",
            "Duration of integration reconcile passes in seconds.",
            labelnames=("integration", "type"),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.integration_status = Gauge(
            "integration_status",
            "Per-target integration readiness (1 = ready, 0 = not ready).",
            labelnames=("integration", "type", "cluster"),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.cluster_connection_status = Gauge(
            "cluster_connection_status",
            "Cluster connection status (1 = connected, 0 = disconnected).",
            labelnames=("cluster",),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.sync_operations_total = Counter(
            "sync_operations_total",
            "Total number of per-cluster probe operations, labeled by outcome.",
            labelnames=("integration", "cluster", "status"),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.sync_latency = Histogram(
            "sync_latency_seconds",
            "Latency of per-cluster probe operations in seconds.",
            labelnames=("integration", "cluster"),
            namespace=NAMESPACE,
            registry=self.registry,
            buckets=SYNC_LATENCY_BUCKETS,
        )

    def record_reconcile(
        self, integration: str, integration_type: str, status: str, duration_seconds: float
    ) -> None:
        self.reconcile_total.labels(integration, integration_type, status).inc()
        self.reconcile_duration.labels(integration, integration_type).observe(duration_seconds)

    def record_sync(
        self, integration: str, cluster: str, status: str, duration_seconds: float
    ) -> None:
        self.sync_operations_total.labels(integration, cluster, status).inc()
        self.sync_latency.labels(integration, cluster).observe(duration_seconds)

    def set_integration_status(
        self, integration: str, integration_type: str, cluster: str, ready: bool
    ) -> None:
        self.integration_status.labels(integration, integration_type, cluster).set(
            1 if ready else 0
        )

    def set_cluster_connection(self, cluster: str, connected: bool) -> None:
        self.cluster_connection_status.labels(cluster).set(1 if connected else 0)

    def cleanup_integration(
        self, integration: str, integration_type: str, clusters: list[str]
    ) -> None:
        for cluster in clusters:
            self.integration_status.labels(integration, integration_type, cluster).set(0)
