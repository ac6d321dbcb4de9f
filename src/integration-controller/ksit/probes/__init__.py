"""Per-type health probes.

Dispatch is a closed mapping from ``IntegrationType`` to probe class; an
unknown type is a configuration error, never a default probe.
"""

from shared.models import IntegrationType

from ..errors import UnsupportedIntegrationTypeError
from .argocd import ArgoCDProbe
from .base import ProbeResult, TypeProbe, WorkloadKind, WorkloadRequirement
from .flux import FluxProbe
from .istio import IstioProbe
from .prometheus import PrometheusProbe

PROBES: dict[IntegrationType, type[TypeProbe]] = {
    IntegrationType.ARGOCD: ArgoCDProbe,
    IntegrationType.FLUX: FluxProbe,
    IntegrationType.PROMETHEUS: PrometheusProbe,
    IntegrationType.ISTIO: IstioProbe,
}

_missing = set(IntegrationType) - set(PROBES)
if _missing:
    raise RuntimeError(f"No probe registered for: {sorted(t.value for t in _missing)}")


def parse_integration_type(value: str) -> IntegrationType:
    """Strict parse of a declared type.

    Raises:
        UnsupportedIntegrationTypeError: value is not a supported type
    """
    try:
        return IntegrationType(value)
    except ValueError:
        raise UnsupportedIntegrationTypeError(value) from None


def get_probe(
    integration_type: str | IntegrationType, config: dict[str, str] | None = None
) -> TypeProbe:
    """Instantiate the probe for a declared type."""
    return PROBES[parse_integration_type(integration_type)](config)


__all__ = [
    "PROBES",
    "ArgoCDProbe",
    "FluxProbe",
    "IstioProbe",
    "PrometheusProbe",
    "ProbeResult",
    "TypeProbe",
    "WorkloadKind",
    "WorkloadRequirement",
    "get_probe",
    "parse_integration_type",
]
