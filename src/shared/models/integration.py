"""Integration domain models.

Declarations are read from ``Integration`` / ``IntegrationTarget`` custom
resources; statuses are written back to their status subresource. Field
aliases are camelCase so ``model_dump(by_alias=True)`` yields the resource
payload directly.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from .base import KsitBaseModel


class IntegrationType(str, Enum):
    """Supported third-party tool types (closed set)."""

    ARGOCD = "argocd"
    FLUX = "flux"
    PROMETHEUS = "prometheus"
    ISTIO = "istio"


class IntegrationPhase(str, Enum):
    """Coarse-grained Integration lifecycle state."""

    PENDING = "Pending"
    RUNNING = "Running"
    FAILED = "Failed"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ResourceModel(KsitBaseModel):
    """Base for models that round-trip through custom resource payloads."""

    model_config = ConfigDict(alias_generator=to_camel)


class Condition(ResourceModel):
    """Kubernetes-style status condition."""

    type: str
    status: ConditionStatus
    reason: str
    message: str = ""
    last_transition_time: datetime | None = None


def set_condition(conditions: list[Condition], new: Condition, now: datetime) -> list[Condition]:
    """Return ``conditions`` with ``new`` merged in by type.

    The transition time is carried over when the condition status did not
    change.
    """
    merged: list[Condition] = []
    replaced = False
    for existing in conditions:
        if existing.type != new.type:
            merged.append(existing)
            continue
        transition = existing.last_transition_time if existing.status == new.status else now
        merged.append(new.model_copy(update={"last_transition_time": transition or now}))
        replaced = True
    if not replaced:
        merged.append(new.model_copy(update={"last_transition_time": now}))
    return merged


class IntegrationDeclaration(ResourceModel):
    """Desired state: run one tool type across a set of target clusters.

    ``type`` stays a raw string so that unknown values can be reported as a
    configuration error instead of failing to parse.
    """

    name: str
    namespace: str = "default"
    generation: int = 0
    type: str
    enabled: bool = True
    target_clusters: list[str] = Field(default_factory=list)
    config: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> IntegrationDeclaration:
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", "default"),
            generation=metadata.get("generation") or 0,
            type=spec.get("type", ""),
            enabled=spec.get("enabled", True),
            target_clusters=list(spec.get("targetClusters") or []),
            config={str(k): str(v) for k, v in (spec.get("config") or {}).items()},
        )


class TargetStatus(ResourceModel):
    """Per-target-cluster readiness within an Integration status."""

    cluster: str
    ready: bool
    reason: str
    last_probe_time: datetime | None = None


class IntegrationStatus(ResourceModel):
    """Observed state of an Integration, rewritten on every pass."""

    phase: IntegrationPhase | None = None
    reason: str = ""
    cluster_statuses: list[TargetStatus] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)
    last_reconcile_time: datetime | None = None
    observed_generation: int = 0

    def comparable(self) -> dict[str, Any]:
        """Status content with every timestamp stripped."""
        return self.model_dump(
            mode="json",
            exclude={
                "last_reconcile_time": True,
                "cluster_statuses": {"__all__": {"last_probe_time"}},
                "conditions": {"__all__": {"last_transition_time"}},
            },
        )

    def to_resource(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> IntegrationStatus:
        return cls.model_validate(obj.get("status") or {})


class IntegrationTargetDeclaration(ResourceModel):
    """Declares that a cluster is a valid target with expected labels."""

    name: str
    namespace: str = "default"
    generation: int = 0
    cluster_name: str
    cluster_namespace: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> IntegrationTargetDeclaration:
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", "default"),
            generation=metadata.get("generation") or 0,
            cluster_name=spec.get("clusterName", ""),
            cluster_namespace=spec.get("namespace") or None,
            labels=dict(spec.get("labels") or {}),
        )


class IntegrationTargetStatus(ResourceModel):
    """Observed readiness of an IntegrationTarget."""

    ready: bool = False
    reason: str = ""
    conditions: list[Condition] = Field(default_factory=list)
    observed_generation: int = 0
    last_sync_time: datetime | None = None

    def to_resource(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> IntegrationTargetStatus:
        return cls.model_validate(obj.get("status") or {})
