"""Controller services."""

from .cluster_registry import ClusterRef, ClusterRegistry
from .credential_source import (
    ClusterSecret,
    CredentialSource,
    SecretCredentialSource,
    StaticCredentialSource,
    parse_secret,
    register_all,
)
from .discovery import ClusterInspector, capabilities_from_api_groups
from .event_service import EventService
from .health_monitor import HealthMonitor
from .integration_store import (
    InMemoryIntegrationStore,
    IntegrationStore,
    KubernetesIntegrationStore,
    build_api_client,
)
from .kube_client import ClientFactory, ClusterEndpoint, KubeClient
from .metrics import MetricsEmitter, NoopMetricsEmitter, PrometheusMetricsEmitter

__all__ = [
    "ClientFactory",
    "ClusterEndpoint",
    "ClusterInspector",
    "ClusterRef",
    "ClusterRegistry",
    "ClusterSecret",
    "CredentialSource",
    "EventService",
    "HealthMonitor",
    "InMemoryIntegrationStore",
    "IntegrationStore",
    "KubeClient",
    "KubernetesIntegrationStore",
    "MetricsEmitter",
    "NoopMetricsEmitter",
    "PrometheusMetricsEmitter",
    "SecretCredentialSource",
    "StaticCredentialSource",
    "build_api_client",
    "capabilities_from_api_groups",
    "parse_secret",
    "register_all",
]
