"""Prometheus (kube-prometheus-stack) probe.

Workload names depend on the Helm release name, so components are found by
label instead of by name.
"""

from shared.models import IntegrationType

from .base import TypeProbe, WorkloadKind, WorkloadRequirement

OPERATOR_SELECTOR = "app=kube-prometheus-stack-operator"


class PrometheusProbe(TypeProbe):
    """Prometheus operator plus the prometheus and alertmanager statefulsets."""

    integration_type = IntegrationType.PROMETHEUS
    default_namespace = "monitoring"

    def required_components(self) -> list[WorkloadRequirement]:
        return [
            WorkloadRequirement(
                "prometheus-operator", WorkloadKind.DEPLOYMENT, selector=OPERATOR_SELECTOR
            ),
            WorkloadRequirement(
                "prometheus",
                WorkloadKind.STATEFULSET,
                selector="app.kubernetes.io/name=prometheus",
            ),
            WorkloadRequirement(
                "alertmanager",
                WorkloadKind.STATEFULSET,
                selector="app.kubernetes.io/name=alertmanager",
            ),
        ]
