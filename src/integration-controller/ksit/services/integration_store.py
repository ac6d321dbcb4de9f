"""Declaration and status storage.

``KubernetesIntegrationStore`` reads ``Integration`` / ``IntegrationTarget``
custom resources from the control-plane cluster and writes their status
subresource. ``InMemoryIntegrationStore`` offers the same interface for
local development and tests.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, TypeVar

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from shared.config import KubernetesSettings
from shared.models import (
    IntegrationDeclaration,
    IntegrationStatus,
    IntegrationTargetDeclaration,
    IntegrationTargetStatus,
)
from shared.observability import get_logger

from ..errors import ControlPlaneError

logger = get_logger(__name__)

T = TypeVar("T")

STATUS_CONFLICT_RETRIES = 3


class IntegrationStore(ABC):
    """Access to declarations and their statuses.

    Missing objects are reported as ``None``; any other failure raises
    ``ControlPlaneError``.
    """

    @abstractmethod
    async def list_integrations(self) -> list[IntegrationDeclaration]: ...

    @abstractmethod
    async def get_integration(self, namespace: str, name: str) -> IntegrationDeclaration | None: ...

    @abstractmethod
    async def get_integration_status(self, namespace: str, name: str) -> IntegrationStatus | None:
        """Current status, or None when the Integration does not exist."""

    @abstractmethod
    async def update_integration_status(
        self, namespace: str, name: str, status: IntegrationStatus
    ) -> bool:
        """Overwrite the status. Returns False when the Integration is gone."""

    @abstractmethod
    async def list_targets(self) -> list[IntegrationTargetDeclaration]: ...

    @abstractmethod
    async def get_target(
        self, namespace: str, name: str
    ) -> IntegrationTargetDeclaration | None: ...

    @abstractmethod
    async def get_target_status(
        self, namespace: str, name: str
    ) -> IntegrationTargetStatus | None: ...

    @abstractmethod
    async def update_target_status(
        self, namespace: str, name: str, status: IntegrationTargetStatus
    ) -> bool: ...

    @abstractmethod
    async def ping(self) -> None:
        """Raise ControlPlaneError when the backing API is unreachable."""


def build_api_client(settings: KubernetesSettings) -> client.ApiClient:
    """Client for the control-plane cluster: in-cluster config first, then kubeconfig."""
    if settings.kubeconfig is None:
        try:
            configuration = client.Configuration()
            config.load_incluster_config(client_configuration=configuration)
            return client.ApiClient(configuration)
        except config.ConfigException:
            logger.debug("In-cluster config unavailable, falling back to kubeconfig")
    try:
        return config.new_client_from_config(
            config_file=settings.kubeconfig, context=settings.context
        )
    except (config.ConfigException, OSError) as e:
        raise ControlPlaneError(f"Cannot load control-plane kubeconfig: {e}") from e


class KubernetesIntegrationStore(IntegrationStore):
    """Custom resource backed store.

    The kubernetes client is synchronous; every call runs in a worker
    thread via ``asyncio.to_thread``.
    """

    def __init__(
        self,
        settings: KubernetesSettings,
        api_client: client.ApiClient | None = None,
    ):
        self.settings = settings
        self.api = client.CustomObjectsApi(api_client or build_api_client(settings))
        self._timeout = settings.request_timeout_seconds

    async def _call(
        self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any
    ) -> T | None:
        try:
            return await asyncio.to_thread(fn, *args, _request_timeout=self._timeout, **kwargs)
        except ApiException as e:
            if e.status == 404:
                return None
            raise ControlPlaneError(
                f"Control-plane API call {operation} failed: {e.status} {e.reason}"
            ) from e
        except Exception as e:
            raise ControlPlaneError(f"Control-plane API call {operation} failed: {e}") from e

    async def _list(self, plural: str) -> list[dict[str, Any]]:
        group, version = self.settings.api_group, self.settings.api_version
        if self.settings.watch_namespace:
            result = await self._call(
                f"list {plural}",
                self.api.list_namespaced_custom_object,
                group,
                version,
                self.settings.watch_namespace,
                plural,
            )
        else:
            result = await self._call(
                f"list {plural}",
                self.api.list_cluster_custom_object,
                group,
                version,
                plural,
            )
        return list((result or {}).get("items") or [])

    async def _get(self, plural: str, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._call(
            f"get {plural}/{namespace}/{name}",
            self.api.get_namespaced_custom_object,
            self.settings.api_group,
            self.settings.api_version,
            namespace,
            plural,
            name,
        )

    async def _replace_status(
        self, plural: str, namespace: str, name: str, status: dict[str, Any]
    ) -> bool:
        for attempt in range(1, STATUS_CONFLICT_RETRIES + 1):
            obj = await self._get(plural, namespace, name)
            if obj is None:
                return False
            obj["status"] = status
            try:
                await asyncio.to_thread(
                    self.api.replace_namespaced_custom_object_status,
                    self.settings.api_group,
                    self.settings.api_version,
                    namespace,
                    plural,
                    name,
                    obj,
                    _request_timeout=self._timeout,
                )
                return True
            except ApiException as e:
                if e.status == 404:
                    return False
                if e.status == 409 and attempt < STATUS_CONFLICT_RETRIES:
                    logger.debug(
                        "Status update conflict, retrying",
                        resource=f"{plural}/{namespace}/{name}",
                        attempt=attempt,
                    )
                    continue
                raise ControlPlaneError(
                    f"Status update for {plural}/{namespace}/{name} failed: {e.status} {e.reason}"
                ) from e
            except Exception as e:
                raise ControlPlaneError(
                    f"Status update for {plural}/{namespace}/{name} failed: {e}"
                ) from e
        return False

    async def list_integrations(self) -> list[IntegrationDeclaration]:
        items = await self._list(self.settings.integration_plural)
        return [IntegrationDeclaration.from_resource(obj) for obj in items]

    async def get_integration(self, namespace: str, name: str) -> IntegrationDeclaration | None:
        obj = await self._get(self.settings.integration_plural, namespace, name)
        return IntegrationDeclaration.from_resource(obj) if obj else None

    async def get_integration_status(self, namespace: str, name: str) -> IntegrationStatus | None:
        obj = await self._get(self.settings.integration_plural, namespace, name)
        return IntegrationStatus.from_resource(obj) if obj else None

    async def update_integration_status(
        self, namespace: str, name: str, status: IntegrationStatus
    ) -> bool:
        return await self._replace_status(
            self.settings.integration_plural, namespace, name, status.to_resource()
        )

    async def list_targets(self) -> list[IntegrationTargetDeclaration]:
        items = await self._list(self.settings.target_plural)
        return [IntegrationTargetDeclaration.from_resource(obj) for obj in items]

    async def get_target(self, namespace: str, name: str) -> IntegrationTargetDeclaration | None:
        obj = await self._get(self.settings.target_plural, namespace, name)
        return IntegrationTargetDeclaration.from_resource(obj) if obj else None

    async def get_target_status(self, namespace: str, name: str) -> IntegrationTargetStatus | None:
        obj = await self._get(self.settings.target_plural, namespace, name)
        return IntegrationTargetStatus.from_resource(obj) if obj else None

    async def update_target_status(
        self, namespace: str, name: str, status: IntegrationTargetStatus
    ) -> bool:
        return await self._replace_status(
            self.settings.target_plural, namespace, name, status.to_resource()
        )

    async def ping(self) -> None:
        await self._list(self.settings.integration_plural)


class InMemoryIntegrationStore(IntegrationStore):
    """Dictionary-backed store for local development and tests."""

    def __init__(self) -> None:
        self._integrations: dict[tuple[str, str], IntegrationDeclaration] = {}
        self._integration_statuses: dict[tuple[str, str], IntegrationStatus] = {}
        self._targets: dict[tuple[str, str], IntegrationTargetDeclaration] = {}
        self._target_statuses: dict[tuple[str, str], IntegrationTargetStatus] = {}
        self.status_writes = 0

    def put_integration(self, declaration: IntegrationDeclaration) -> IntegrationDeclaration:
        """Create or update a declaration, bumping its generation like the API server."""
        key = (declaration.namespace, declaration.name)
        previous = self._integrations.get(key)
        generation = (previous.generation if previous else 0) + 1
        stored = declaration.model_copy(update={"generation": generation}, deep=True)
        self._integrations[key] = stored
        self._integration_statuses.setdefault(key, IntegrationStatus())
        return stored

    def delete_integration(self, namespace: str, name: str) -> bool:
        self._integration_statuses.pop((namespace, name), None)
        return self._integrations.pop((namespace, name), None) is not None

    def put_target(self, declaration: IntegrationTargetDeclaration) -> IntegrationTargetDeclaration:
        key = (declaration.namespace, declaration.name)
        previous = self._targets.get(key)
        generation = (previous.generation if previous else 0) + 1
        stored = declaration.model_copy(update={"generation": generation}, deep=True)
        self._targets[key] = stored
        self._target_statuses.setdefault(key, IntegrationTargetStatus())
        return stored

    def delete_target(self, namespace: str, name: str) -> bool:
        self._target_statuses.pop((namespace, name), None)
        return self._targets.pop((namespace, name), None) is not None

    async def list_integrations(self) -> list[IntegrationDeclaration]:
        return [self._integrations[k].model_copy(deep=True) for k in sorted(self._integrations)]

    async def get_integration(self, namespace: str, name: str) -> IntegrationDeclaration | None:
        declaration = self._integrations.get((namespace, name))
        return declaration.model_copy(deep=True) if declaration else None

    async def get_integration_status(self, namespace: str, name: str) -> IntegrationStatus | None:
        if (namespace, name) not in self._integrations:
            return None
        return self._integration_statuses[(namespace, name)].model_copy(deep=True)

    async def update_integration_status(
        self, namespace: str, name: str, status: IntegrationStatus
    ) -> bool:
        if (namespace, name) not in self._integrations:
            return False
        self._integration_statuses[(namespace, name)] = status.model_copy(deep=True)
        self.status_writes += 1
        return True

    async def list_targets(self) -> list[IntegrationTargetDeclaration]:
        return [self._targets[k].model_copy(deep=True) for k in sorted(self._targets)]

    async def get_target(self, namespace: str, name: str) -> IntegrationTargetDeclaration | None:
        declaration = self._targets.get((namespace, name))
        return declaration.model_copy(deep=True) if declaration else None

    async def get_target_status(self, namespace: str, name: str) -> IntegrationTargetStatus | None:
        if (namespace, name) not in self._targets:
            return None
        return self._target_statuses[(namespace, name)].model_copy(deep=True)

    async def update_target_status(
        self, namespace: str, name: str, status: IntegrationTargetStatus
    ) -> bool:
        if (namespace, name) not in self._targets:
            return False
        self._target_statuses[(namespace, name)] = status.model_copy(deep=True)
        self.status_writes += 1
        return True

    async def ping(self) -> None:
        return None
