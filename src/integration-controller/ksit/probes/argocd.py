"""Argo CD probe."""

from shared.models import IntegrationType

from .base import TypeProbe, WorkloadKind, WorkloadRequirement


class ArgoCDProbe(TypeProbe):
    """API server, repo server and redis deployments plus the application controller."""

    integration_type = IntegrationType.ARGOCD
    default_namespace = "argocd"

    def required_components(self) -> list[WorkloadRequirement]:
        return [
            WorkloadRequirement("argocd-server", WorkloadKind.DEPLOYMENT, name="argocd-server"),
            WorkloadRequirement(
                "argocd-repo-server", WorkloadKind.DEPLOYMENT, name="argocd-repo-server"
            ),
            WorkloadRequirement("argocd-redis", WorkloadKind.DEPLOYMENT, name="argocd-redis"),
            WorkloadRequirement(
                "argocd-application-controller",
                WorkloadKind.STATEFULSET,
                name="argocd-application-controller",
            ),
        ]
