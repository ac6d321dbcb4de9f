"""Tests for declaration and status storage."""

from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from shared.config import KubernetesSettings
from shared.models import (
    IntegrationDeclaration,
    IntegrationPhase,
    IntegrationStatus,
    IntegrationTargetDeclaration,
    IntegrationTargetStatus,
)

from ksit.errors import ControlPlaneError
from ksit.services import InMemoryIntegrationStore, KubernetesIntegrationStore


class TestInMemoryStore:
    async def test_put_bumps_generation(self) -> None:
        store = InMemoryIntegrationStore()
        first = store.put_integration(IntegrationDeclaration(name="a", type="flux"))
        second = store.put_integration(IntegrationDeclaration(name="a", type="flux"))
        assert (first.generation, second.generation) == (1, 2)

    async def test_status_lifecycle(self) -> None:
        store = InMemoryIntegrationStore()
        assert await store.get_integration_status("default", "a") is None
        assert not await store.update_integration_status("default", "a", IntegrationStatus())

        store.put_integration(IntegrationDeclaration(name="a", type="flux"))
        assert (await store.get_integration_status("default", "a")).phase is None

        status = IntegrationStatus(phase=IntegrationPhase.RUNNING, reason="ok")
        assert await store.update_integration_status("default", "a", status)
        assert (await store.get_integration_status("default", "a")).reason == "ok"

        store.delete_integration("default", "a")
        assert await store.get_integration_status("default", "a") is None

    async def test_returns_copies(self) -> None:
        store = InMemoryIntegrationStore()
        store.put_integration(IntegrationDeclaration(name="a", type="flux", target_clusters=["x"]))

        declaration = await store.get_integration("default", "a")
        declaration.target_clusters.append("y")

        assert (await store.get_integration("default", "a")).target_clusters == ["x"]

    async def test_lists_sorted(self) -> None:
        store = InMemoryIntegrationStore()
        store.put_target(IntegrationTargetDeclaration(name="b", cluster_name="b"))
        store.put_target(IntegrationTargetDeclaration(name="a", cluster_name="a"))
        assert [t.name for t in await store.list_targets()] == ["a", "b"]


@pytest.fixture
def sample_integration_resource() -> dict:
    return {
        "apiVersion": "ksit.io/v1alpha1",
        "kind": "Integration",
        "metadata": {"name": "argocd", "namespace": "platform", "generation": 3},
        "spec": {"type": "argocd", "targetClusters": ["prod-east"]},
        "status": {"phase": "Running", "reason": "all 1 target clusters ready"},
    }


@pytest.fixture
def api() -> MagicMock:
    return MagicMock()


@pytest.fixture
def kube_store(api) -> KubernetesIntegrationStore:
    store = KubernetesIntegrationStore(KubernetesSettings(), api_client=MagicMock())
    store.api = api
    return store


class TestKubernetesStore:
    async def test_list_all_namespaces(self, kube_store, api, sample_integration_resource) -> None:
        api.list_cluster_custom_object.return_value = {"items": [sample_integration_resource]}

        declarations = await kube_store.list_integrations()

        assert [d.key for d in declarations] == ["platform/argocd"]
        args, _ = api.list_cluster_custom_object.call_args
        assert args == ("ksit.io", "v1alpha1", "integrations")

    async def test_list_watch_namespace(self, api) -> None:
        settings = KubernetesSettings(watch_namespace="platform")
        store = KubernetesIntegrationStore(settings, api_client=MagicMock())
        store.api = api
        api.list_namespaced_custom_object.return_value = {"items": []}

        assert await store.list_targets() == []
        args, _ = api.list_namespaced_custom_object.call_args
        assert args == ("ksit.io", "v1alpha1", "platform", "integrationtargets")

    async def test_not_found_is_none(self, kube_store, api) -> None:
        api.get_namespaced_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        assert await kube_store.get_integration("platform", "missing") is None
        assert await kube_store.get_target_status("platform", "missing") is None

    async def test_api_errors_are_control_plane_errors(self, kube_store, api) -> None:
        api.list_cluster_custom_object.side_effect = ApiException(status=500, reason="Internal")
        with pytest.raises(ControlPlaneError):
            await kube_store.ping()

        api.get_namespaced_custom_object.side_effect = ConnectionError("refused")
        with pytest.raises(ControlPlaneError):
            await kube_store.get_target("platform", "prod-east")

    async def test_status_read(self, kube_store, api, sample_integration_resource) -> None:
        api.get_namespaced_custom_object.return_value = sample_integration_resource
        status = await kube_store.get_integration_status("platform", "argocd")
        assert status.phase == IntegrationPhase.RUNNING

    async def test_status_write_retries_conflicts(
        self, kube_store, api, sample_integration_resource
    ) -> None:
        api.get_namespaced_custom_object.return_value = sample_integration_resource
        api.replace_namespaced_custom_object_status.side_effect = [
            ApiException(status=409, reason="Conflict"),
            None,
        ]
        status = IntegrationStatus(phase=IntegrationPhase.FAILED, reason="boom")

        assert await kube_store.update_integration_status("platform", "argocd", status)

        assert api.replace_namespaced_custom_object_status.call_count == 2
        body = api.replace_namespaced_custom_object_status.call_args.args[5]
        assert body["status"]["phase"] == "Failed"
        assert body["status"]["reason"] == "boom"

    async def test_status_write_gives_up_after_repeated_conflicts(
        self, kube_store, api, sample_integration_resource
    ) -> None:
        api.get_namespaced_custom_object.return_value = sample_integration_resource
        api.replace_namespaced_custom_object_status.side_effect = ApiException(
            status=409, reason="Conflict"
        )
        with pytest.raises(ControlPlaneError):
            await kube_store.update_integration_status("platform", "argocd", IntegrationStatus())
        assert api.replace_namespaced_custom_object_status.call_count == 3

    async def test_status_write_for_deleted_resource(self, kube_store, api) -> None:
        api.get_namespaced_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        assert not await kube_store.update_target_status(
            "platform", "prod-east", IntegrationTargetStatus(ready=True)
        )
        api.replace_namespaced_custom_object_status.assert_not_called()
