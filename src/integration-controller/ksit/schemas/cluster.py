"""Cluster request/response schemas."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from shared.models import (
    DEFAULT_CLUSTER_NAMESPACE,
    AuthType,
    ClusterConnection,
    ClusterConnectionStatus,
    ClusterCredentials,
    ClusterIdentity,
)

from ..utils import validate_labels

NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9.-]{0,251}[a-z0-9])?$")


class ClusterRegistration(BaseModel):
    """Request to register a cluster or rotate its credentials."""

    name: str = Field(..., min_length=1, max_length=253, description="Cluster name")
    namespace: str = Field(
        default=DEFAULT_CLUSTER_NAMESPACE,
        min_length=1,
        max_length=63,
        description="Namespace scoping the cluster name",
    )
    api_server_url: str | None = Field(None, description="Kubernetes API server URL")
    auth_type: AuthType = AuthType.TOKEN
    token: str | None = Field(None, repr=False)
    username: str | None = None
    password: str | None = Field(None, repr=False)
    client_cert: str | None = Field(None, repr=False)
    client_key: str | None = Field(None, repr=False)
    kubeconfig: str | None = Field(None, repr=False)
    context: str | None = None
    ca_cert: str | None = Field(None, repr=False)
    skip_tls_verify: bool = False
    labels: dict[str, str] = Field(default_factory=dict)

    @field_validator("name", "namespace")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError(
                "Must be DNS-compatible: lowercase alphanumeric, '-' or '.', "
                "starting and ending with an alphanumeric character"
            )
        return v

    @field_validator("api_server_url")
    @classmethod
    def validate_api_server_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("https://", "http://")):
            raise ValueError("API server URL must start with https:// or http://")
        return v.rstrip("/") if v else v

    @field_validator("labels")
    @classmethod
    def validate_labels(cls, v: dict[str, str]) -> dict[str, str]:
        errors = validate_labels(v)
        if errors:
            raise ValueError("; ".join(errors))
        return v

    @model_validator(mode="after")
    def require_server_url(self) -> ClusterRegistration:
        if self.auth_type != AuthType.KUBECONFIG and not self.api_server_url:
            raise ValueError("api_server_url is required unless auth_type is KUBECONFIG")
        return self

    def identity(self) -> ClusterIdentity:
        return ClusterIdentity(name=self.name, namespace=self.namespace)

    def credentials(self) -> ClusterCredentials:
        return ClusterCredentials(
            auth_type=self.auth_type,
            api_server_url=self.api_server_url,
            token=self.token,
            username=self.username,
            password=self.password,
            client_cert=self.client_cert,
            client_key=self.client_key,
            kubeconfig=self.kubeconfig,
            context=self.context,
            ca_cert=self.ca_cert,
            skip_tls_verify=self.skip_tls_verify,
        )


class ClusterResponse(BaseModel):
    """Cluster as returned by the API. Credentials are never included."""

    name: str
    namespace: str
    key: str
    api_server_url: str
    status: ClusterConnectionStatus
    server_version: str | None = None
    node_count: int = 0
    last_seen: datetime
    labels: dict[str, str] = Field(default_factory=dict)
    capabilities: list[str] = Field(default_factory=list)
    last_error: str | None = None
    consecutive_failures: int = 0
    credentials_registered_at: datetime

    @classmethod
    def from_connection(cls, connection: ClusterConnection) -> ClusterResponse:
        return cls(
            name=connection.identity.name,
            namespace=connection.identity.namespace,
            key=connection.key,
            api_server_url=connection.api_server_url,
            status=connection.status,
            server_version=connection.server_version,
            node_count=connection.node_count,
            last_seen=connection.last_seen,
            labels=dict(connection.labels),
            capabilities=sorted(connection.capabilities),
            last_error=connection.last_error,
            consecutive_failures=connection.consecutive_failures,
            credentials_registered_at=connection.credentials_registered_at,
        )


class ClusterListResponse(BaseModel):
    items: list[ClusterResponse]
    total: int


class ClusterHealthSummary(BaseModel):
    cluster: str
    reachable: bool
    status: ClusterConnectionStatus
    error: str | None = None


class FleetHealth(BaseModel):
    """Connection overview of every registered cluster."""

    total: int
    active: int
    connecting: int
    error: int
    disconnected: int
    clusters: list[ClusterHealthSummary]
