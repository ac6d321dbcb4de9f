"""Istio probe."""

from shared.models import IntegrationType

from .base import TypeProbe, WorkloadKind, WorkloadRequirement


class IstioProbe(TypeProbe):
    """istiod, plus the ingress gateway when ``config.ingressGateway`` is "true"."""

    integration_type = IntegrationType.ISTIO
    default_namespace = "istio-system"

    def required_components(self) -> list[WorkloadRequirement]:
        components = [WorkloadRequirement("istiod", WorkloadKind.DEPLOYMENT, name="istiod")]
        if self.config.get("ingressGateway", "").lower() == "true":
            components.append(
                WorkloadRequirement(
                    "istio-ingressgateway", WorkloadKind.DEPLOYMENT, name="istio-ingressgateway"
                )
            )
        return components
