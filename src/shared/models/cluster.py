"""Cluster domain models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import ConfigDict, Field

from .base import KsitBaseModel

DEFAULT_CLUSTER_NAMESPACE = "default"


class ClusterConnectionStatus(str, Enum):
    """Connection state of a registered cluster."""

    ACTIVE = "Active"
    CONNECTING = "Connecting"
    ERROR = "Error"
    DISCONNECTED = "Disconnected"


class AuthType(str, Enum):
    """Authentication type for cluster access."""

    KUBECONFIG = "KUBECONFIG"
    TOKEN = "TOKEN"  # Bearer token
    BASIC = "BASIC"  # Basic auth (username/password)
    CERTIFICATE = "CERTIFICATE"  # Client certificate


class ClusterIdentity(KsitBaseModel):
    """Namespace-scoped cluster identity. Hashable, usable as a dict key."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=253)
    namespace: str = Field(default=DEFAULT_CLUSTER_NAMESPACE, min_length=1, max_length=63)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, ref: str, default_namespace: str = DEFAULT_CLUSTER_NAMESPACE) -> ClusterIdentity:
        """Parse ``namespace/name`` or a bare ``name`` reference."""
        ref = ref.strip()
        if "/" in ref:
            namespace, _, name = ref.partition("/")
            return cls(name=name, namespace=namespace)
        return cls(name=ref, namespace=default_namespace)

    def __str__(self) -> str:
        return self.key


class ClusterCredentials(KsitBaseModel):
    """Cluster access credentials (never returned via API)."""

    auth_type: AuthType
    api_server_url: str | None = Field(
        default=None, description="Kubernetes API URL (taken from kubeconfig when omitted)"
    )
    # Token-based auth
    token: str | None = Field(default=None, repr=False, description="Bearer token")
    # Basic auth
    username: str | None = Field(default=None, description="Username for basic auth")
    password: str | None = Field(default=None, repr=False, description="Password for basic auth")
    # Certificate auth
    client_cert: str | None = Field(default=None, repr=False, description="Client certificate PEM")
    client_key: str | None = Field(default=None, repr=False, description="Client key PEM")
    # Kubeconfig
    kubeconfig: str | None = Field(default=None, repr=False, description="Full kubeconfig content")
    context: str | None = Field(default=None, description="Kubeconfig context to use")
    # TLS settings
    skip_tls_verify: bool = Field(default=False, description="Skip TLS verification")
    ca_cert: str | None = Field(default=None, repr=False, description="CA certificate PEM")


class ClusterConnection(KsitBaseModel):
    """Snapshot of a registered cluster's connection and health state.

    Instances handed out by the registry are copies; mutating them has no
    effect on the registry.
    """

    identity: ClusterIdentity
    api_server_url: str
    status: ClusterConnectionStatus = ClusterConnectionStatus.CONNECTING
    server_version: str | None = None
    node_count: int = Field(default=0, ge=0)
    last_seen: datetime
    labels: dict[str, str] = Field(default_factory=dict)
    capabilities: set[str] = Field(default_factory=set)
    last_error: str | None = None
    consecutive_failures: int = Field(default=0, ge=0)
    credentials_registered_at: datetime

    @property
    def key(self) -> str:
        return self.identity.key

    @property
    def is_active(self) -> bool:
        return self.status == ClusterConnectionStatus.ACTIVE


class ClusterInventory(KsitBaseModel):
    """Result of one discovery pass against a cluster."""

    server_version: str
    node_count: int = Field(default=0, ge=0)
    capabilities: set[str] = Field(default_factory=set)


class ClusterHealth(KsitBaseModel):
    """Outcome of a single cluster health refresh."""

    cluster: str
    reachable: bool
    status: ClusterConnectionStatus
    error: str | None = None
    checked_at: datetime
