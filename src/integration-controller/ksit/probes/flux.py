"""Flux probe."""

from shared.models import IntegrationType

from .base import TypeProbe, WorkloadKind, WorkloadRequirement

FLUX_CONTROLLERS = (
    "source-controller",
    "kustomize-controller",
    "helm-controller",
    "notification-controller",
)


class FluxProbe(TypeProbe):
    integration_type = IntegrationType.FLUX
    default_namespace = "flux-system"

    def required_components(self) -> list[WorkloadRequirement]:
        return [
            WorkloadRequirement(name, WorkloadKind.DEPLOYMENT, name=name)
            for name in FLUX_CONTROLLERS
        ]
