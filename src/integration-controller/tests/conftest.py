"""Test fixtures for the integration controller.

Member clusters are simulated by ``FakeFleet``: each fake cluster answers
the same calls as ``KubeClient`` from in-memory workload definitions, and
can be switched off (``down``) or made to hang (``hang``).
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

os.environ.setdefault("LOG_FORMAT", "text")

from shared.config import ClusterHealthSettings, ReconcileSettings  # noqa: E402
from shared.models import AuthType, ClusterCredentials, ClusterIdentity  # noqa: E402

from ksit.errors import ClusterConnectivityError  # noqa: E402
from ksit.services import (  # noqa: E402
    ClusterEndpoint,
    ClusterInspector,
    ClusterRegistry,
    EventService,
    InMemoryIntegrationStore,
    PrometheusMetricsEmitter,
)
from ksit.utils import matches_selector, parse_selector  # noqa: E402


class FakeCluster:
    """In-memory member cluster."""

    def __init__(
        self,
        version: str = "v1.29.2",
        nodes: int = 3,
        api_groups: set[str] | None = None,
    ):
        self.version = version
        self.nodes = nodes
        self.api_groups = set(api_groups or {"apps"})
        self.deployments: dict[tuple[str, str], dict[str, Any]] = {}
        self.statefulsets: dict[tuple[str, str], dict[str, Any]] = {}
        self.down = False
        self.hang = False
        self.calls = 0

    def add_deployment(
        self,
        namespace: str,
        name: str,
        replicas: int = 1,
        available: int | None = None,
        labels: dict[str, str] | None = None,
    ) -> None:
        self.deployments[(namespace, name)] = {
            "metadata": {"name": name, "namespace": namespace, "labels": dict(labels or {})},
            "spec": {"replicas": replicas},
            "status": {"availableReplicas": replicas if available is None else available},
        }

    def add_statefulset(
        self,
        namespace: str,
        name: str,
        ready: int = 1,
        labels: dict[str, str] | None = None,
    ) -> None:
        self.statefulsets[(namespace, name)] = {
            "metadata": {"name": name, "namespace": namespace, "labels": dict(labels or {})},
            "spec": {"replicas": max(ready, 1)},
            "status": {"readyReplicas": ready},
        }

    def install_argocd(self, namespace: str = "argocd", healthy: bool = True) -> None:
        for name in ("argocd-server", "argocd-repo-server", "argocd-redis"):
            self.add_deployment(namespace, name, replicas=1, available=1 if healthy else 0)
        self.add_statefulset(namespace, "argocd-application-controller", ready=1)

    def install_prometheus(self, namespace: str = "monitoring", alertmanager_ready: int = 1):
        self.add_deployment(
            namespace,
            "kps-operator",
            labels={"app": "kube-prometheus-stack-operator"},
        )
        self.add_statefulset(
            namespace,
            "prometheus-kps-prometheus",
            ready=1,
            labels={"app.kubernetes.io/name": "prometheus"},
        )
        self.add_statefulset(
            namespace,
            "alertmanager-kps-alertmanager",
            ready=alertmanager_ready,
            labels={"app.kubernetes.io/name": "alertmanager"},
        )


class FakeKubeClient:
    """Drop-in for ``KubeClient`` backed by a ``FakeCluster``."""

    def __init__(self, fleet: "FakeFleet", endpoint: ClusterEndpoint):
        self.fleet = fleet
        self.endpoint = endpoint

    async def __aenter__(self) -> "FakeKubeClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    async def _cluster(self) -> FakeCluster:
        cluster = self.fleet.by_url.get(self.endpoint.url)
        if cluster is None or cluster.down:
            raise ClusterConnectivityError(self.endpoint.cluster, "connection refused")
        if cluster.hang:
            await asyncio.sleep(3600)
        cluster.calls += 1
        return cluster

    async def get_version(self) -> str:
        return (await self._cluster()).version

    async def count_nodes(self) -> int:
        return (await self._cluster()).nodes

    async def list_api_groups(self) -> set[str]:
        return set((await self._cluster()).api_groups)

    async def get_deployment(self, namespace: str, name: str) -> dict[str, Any] | None:
        return (await self._cluster()).deployments.get((namespace, name))

    async def list_deployments(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        cluster = await self._cluster()
        return _select(cluster.deployments, namespace, label_selector)

    async def get_statefulset(self, namespace: str, name: str) -> dict[str, Any] | None:
        return (await self._cluster()).statefulsets.get((namespace, name))

    async def list_statefulsets(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        cluster = await self._cluster()
        return _select(cluster.statefulsets, namespace, label_selector)


def _select(objs: dict[tuple[str, str], dict], namespace: str, selector: str) -> list[dict]:
    wanted = parse_selector(selector)
    return [
        obj
        for (ns, _), obj in sorted(objs.items())
        if ns == namespace and matches_selector(obj["metadata"]["labels"], wanted)
    ]


class FakeFleet:
    """Set of fake member clusters addressed by API server URL."""

    def __init__(self) -> None:
        self.by_url: dict[str, FakeCluster] = {}

    @staticmethod
    def url(name: str, namespace: str = "default") -> str:
        return f"https://{name}.{namespace}.clusters.example.com:6443"

    def add(self, name: str, namespace: str = "default", **kwargs: Any) -> FakeCluster:
        cluster = FakeCluster(**kwargs)
        self.by_url[self.url(name, namespace)] = cluster
        return cluster

    def get(self, name: str, namespace: str = "default") -> FakeCluster:
        return self.by_url[self.url(name, namespace)]

    def credentials(self, name: str, namespace: str = "default") -> ClusterCredentials:
        return ClusterCredentials(
            auth_type=AuthType.TOKEN,
            api_server_url=self.url(name, namespace),
            token=f"token-{name}",
        )

    def client(self, endpoint: ClusterEndpoint) -> FakeKubeClient:
        return FakeKubeClient(self, endpoint)


class MutableClock:
    """Deterministic clock for staleness and TTL tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


async def register(
    registry: ClusterRegistry,
    fleet: FakeFleet,
    name: str,
    namespace: str = "default",
    labels: dict[str, str] | None = None,
):
    """Add a fake cluster (if missing) and register it."""
    if fleet.url(name, namespace) not in fleet.by_url:
        fleet.add(name, namespace)
    return await registry.register(
        ClusterIdentity(name=name, namespace=namespace),
        fleet.credentials(name, namespace),
        labels,
    )


@pytest.fixture
def fleet() -> FakeFleet:
    return FakeFleet()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def event_service() -> EventService:
    return EventService()


@pytest.fixture
def registry(fleet, clock, event_service) -> ClusterRegistry:
    return ClusterRegistry(
        inspector=ClusterInspector(fleet.client),
        failures_before_disconnected=3,
        clock=clock,
        event_service=event_service,
    )


@pytest.fixture
def register_cluster(registry, fleet):
    """``await register_cluster(name, namespace="default", labels=None)``."""

    async def _register(name: str, namespace: str = "default", labels=None):
        return await register(registry, fleet, name, namespace, labels)

    return _register


@pytest.fixture
def store() -> InMemoryIntegrationStore:
    return InMemoryIntegrationStore()


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(metrics_registry) -> PrometheusMetricsEmitter:
    return PrometheusMetricsEmitter(metrics_registry)


@pytest.fixture
def reconcile_settings() -> ReconcileSettings:
    return ReconcileSettings(
        interval_seconds=30,
        resync_seconds=0.05,
        pass_deadline_seconds=5,
        probe_timeout_seconds=0.5,
        retry_count=3,
        retry_backoff_seconds=0.01,
        retry_max_backoff_seconds=0.02,
        workers=2,
        max_concurrent_probes=8,
    )


@pytest.fixture
def health_settings() -> ClusterHealthSettings:
    return ClusterHealthSettings(
        health_check_interval_seconds=0.05,
        health_check_timeout_seconds=0.2,
        stale_max_age_seconds=900,
        credential_ttl_seconds=3600,
        failures_before_disconnected=3,
        max_concurrent_checks=16,
    )
