"""Type probe base classes.

A probe checks that the workloads a tool needs exist on a member cluster
(``is_installed``) and are serving (``is_healthy``). Required components
are checked in declaration order and the first failing one is named in the
reason.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from shared.models import IntegrationType

from ..services.kube_client import KubeClient


class WorkloadKind(str, Enum):
    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"


@dataclass(frozen=True)
class WorkloadRequirement:
    """One workload a tool needs, looked up by name or by label selector."""

    component: str
    kind: WorkloadKind
    name: str | None = None
    selector: str | None = None

    def __post_init__(self) -> None:
        if (self.name is None) == (self.selector is None):
            raise ValueError("exactly one of name or selector must be set")


@dataclass(frozen=True)
class ProbeResult:
    installed: bool
    healthy: bool
    reason: str

    @property
    def ready(self) -> bool:
        return self.installed and self.healthy


def deployment_ready(obj: dict[str, Any]) -> bool:
    """A deployment is ready when all desired replicas (at least one) are available."""
    desired = (obj.get("spec") or {}).get("replicas", 1)
    available = (obj.get("status") or {}).get("availableReplicas") or 0
    return desired > 0 and available >= desired


def statefulset_ready(obj: dict[str, Any]) -> bool:
    return ((obj.get("status") or {}).get("readyReplicas") or 0) >= 1


class TypeProbe(ABC):
    """Installed/healthy checks for one integration type."""

    integration_type: ClassVar[IntegrationType]
    default_namespace: ClassVar[str]

    def __init__(self, config: dict[str, str] | None = None):
        self.config = dict(config or {})

    @property
    def namespace(self) -> str:
        return self.config.get("namespace") or self.default_namespace

    @abstractmethod
    def required_components(self) -> list[WorkloadRequirement]:
        """Workloads to check, in reporting order."""

    async def _fetch(self, kube: KubeClient, req: WorkloadRequirement) -> list[dict[str, Any]]:
        if req.kind == WorkloadKind.DEPLOYMENT:
            if req.name:
                obj = await kube.get_deployment(self.namespace, req.name)
                return [obj] if obj else []
            return await kube.list_deployments(self.namespace, req.selector)
        if req.name:
            obj = await kube.get_statefulset(self.namespace, req.name)
            return [obj] if obj else []
        return await kube.list_statefulsets(self.namespace, req.selector)

    def _missing_reason(self, req: WorkloadRequirement) -> str:
        return f"{req.component} {req.kind.value} not found in namespace {self.namespace}"

    def _unhealthy_reason(self, req: WorkloadRequirement, objs: list[dict[str, Any]]) -> str | None:
        for obj in objs:
            name = (obj.get("metadata") or {}).get("name", req.component)
            status = obj.get("status") or {}
            if req.kind == WorkloadKind.DEPLOYMENT and not deployment_ready(obj):
                desired = (obj.get("spec") or {}).get("replicas", 1)
                available = status.get("availableReplicas") or 0
                return (
                    f"{req.component} deployment {name} not ready "
                    f"({available}/{desired} replicas available)"
                )
            if req.kind == WorkloadKind.STATEFULSET and not statefulset_ready(obj):
                return f"{req.component} statefulset {name} has no ready replicas"
        return None

    async def is_installed(self, kube: KubeClient) -> tuple[bool, str | None]:
        for req in self.required_components():
            if not await self._fetch(kube, req):
                return False, self._missing_reason(req)
        return True, None

    async def is_healthy(self, kube: KubeClient) -> tuple[bool, str | None]:
        for req in self.required_components():
            objs = await self._fetch(kube, req)
            if not objs:
                return False, self._missing_reason(req)
            reason = self._unhealthy_reason(req, objs)
            if reason:
                return False, reason
        return True, None

    async def probe(self, kube: KubeClient) -> ProbeResult:
        """Run both checks, fetching each component once.

        Raises:
            ClusterConnectivityError: the cluster could not be queried
        """
        fetched = [(req, await self._fetch(kube, req)) for req in self.required_components()]

        for req, objs in fetched:
            if not objs:
                return ProbeResult(installed=False, healthy=False, reason=self._missing_reason(req))
        for req, objs in fetched:
            reason = self._unhealthy_reason(req, objs)
            if reason:
                return ProbeResult(installed=True, healthy=False, reason=reason)
        return ProbeResult(
            installed=True,
            healthy=True,
            reason=f"{self.integration_type.value} is installed and healthy",
        )
