"""Tests for per-type probes."""

import pytest

from shared.models import IntegrationType

from ksit.errors import UnsupportedIntegrationTypeError
from ksit.probes import (
    PROBES,
    ArgoCDProbe,
    FluxProbe,
    IstioProbe,
    PrometheusProbe,
    get_probe,
    parse_integration_type,
)
from ksit.probes.base import deployment_ready, statefulset_ready
from ksit.services import ClusterEndpoint


@pytest.fixture
def kube(fleet):
    fleet.add("member")
    endpoint = ClusterEndpoint(cluster="default/member", url=fleet.url("member"))
    return fleet.client(endpoint)


@pytest.fixture
def member(fleet, kube):
    return fleet.get("member")


class TestDispatch:
    def test_every_type_has_a_probe(self) -> None:
        assert set(PROBES) == set(IntegrationType)

    @pytest.mark.parametrize(
        "value,probe_class",
        [
            ("argocd", ArgoCDProbe),
            ("flux", FluxProbe),
            ("prometheus", PrometheusProbe),
            ("istio", IstioProbe),
        ],
    )
    def test_get_probe(self, value, probe_class) -> None:
        assert isinstance(get_probe(value), probe_class)

    @pytest.mark.parametrize("value", ["argcd", "ArgoCD", "", "helm"])
    def test_unknown_type_rejected(self, value) -> None:
        with pytest.raises(UnsupportedIntegrationTypeError) as exc:
            parse_integration_type(value)
        assert exc.value.reason == "unsupported integration type"

    def test_namespace_override(self) -> None:
        assert get_probe("flux").namespace == "flux-system"
        assert get_probe("flux", {"namespace": "gitops"}).namespace == "gitops"


class TestReadiness:
    def test_deployment_ready(self) -> None:
        assert deployment_ready({"spec": {"replicas": 2}, "status": {"availableReplicas": 2}})
        assert not deployment_ready({"spec": {"replicas": 2}, "status": {"availableReplicas": 1}})
        assert not deployment_ready({"spec": {"replicas": 0}, "status": {}})

    def test_statefulset_ready(self) -> None:
        assert statefulset_ready({"status": {"readyReplicas": 1}})
        assert not statefulset_ready({"status": {}})


class TestArgoCD:
    async def test_healthy(self, kube, member) -> None:
        member.install_argocd()
        result = await ArgoCDProbe().probe(kube)
        assert result.ready
        assert result.reason == "argocd is installed and healthy"

    async def test_missing_component_named(self, kube, member) -> None:
        member.install_argocd()
        del member.deployments[("argocd", "argocd-repo-server")]

        result = await ArgoCDProbe().probe(kube)

        assert not result.installed
        assert result.reason == "argocd-repo-server deployment not found in namespace argocd"

    async def test_unavailable_replicas(self, kube, member) -> None:
        member.install_argocd(healthy=False)

        result = await ArgoCDProbe().probe(kube)

        assert result.installed and not result.healthy
        assert result.reason == (
            "argocd-server deployment argocd-server not ready (0/1 replicas available)"
        )

    async def test_installed_and_healthy_checks(self, kube, member) -> None:
        probe = ArgoCDProbe()
        assert await probe.is_installed(kube) == (
            False,
            "argocd-server deployment not found in namespace argocd",
        )
        member.install_argocd()
        assert await probe.is_installed(kube) == (True, None)
        assert await probe.is_healthy(kube) == (True, None)


class TestFlux:
    async def test_all_controllers_required(self, kube, member) -> None:
        for name in ("source-controller", "kustomize-controller", "helm-controller"):
            member.add_deployment("flux-system", name)

        result = await FluxProbe().probe(kube)

        assert not result.ready
        assert result.reason == (
            "notification-controller deployment not found in namespace flux-system"
        )

        member.add_deployment("flux-system", "notification-controller")
        assert (await FluxProbe().probe(kube)).ready


class TestPrometheus:
    async def test_healthy_stack(self, kube, member) -> None:
        member.install_prometheus()
        assert (await PrometheusProbe().probe(kube)).ready

    async def test_alertmanager_without_ready_replicas(self, kube, member) -> None:
        member.install_prometheus(alertmanager_ready=0)

        result = await PrometheusProbe().probe(kube)

        assert result.installed and not result.healthy
        assert "alertmanager" in result.reason
        assert result.reason == (
            "alertmanager statefulset alertmanager-kps-alertmanager has no ready replicas"
        )

    async def test_operator_found_by_label(self, kube, member) -> None:
        member.install_prometheus(namespace="observability")

        assert not (await PrometheusProbe().probe(kube)).ready
        assert (await PrometheusProbe({"namespace": "observability"}).probe(kube)).ready


class TestIstio:
    async def test_istiod_only_by_default(self, kube, member) -> None:
        member.add_deployment("istio-system", "istiod", replicas=2)
        assert (await IstioProbe().probe(kube)).ready

    async def test_ingress_gateway_when_requested(self, kube, member) -> None:
        member.add_deployment("istio-system", "istiod")
        probe = IstioProbe({"ingressGateway": "true"})

        result = await probe.probe(kube)
        assert result.reason == (
            "istio-ingressgateway deployment not found in namespace istio-system"
        )

        member.add_deployment("istio-system", "istio-ingressgateway")
        assert (await probe.probe(kube)).ready
