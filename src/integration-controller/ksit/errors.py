"""Exception taxonomy for the integration controller.

Every error carries a stable, human-readable ``reason`` that is safe to
write into a resource status.
"""

from __future__ import annotations


class KsitError(Exception):
    """Base class for controller errors."""

    reason = "internal error"

    def __init__(self, message: str | None = None, reason: str | None = None):
        if reason is not None:
            self.reason = reason
        super().__init__(message or self.reason)


class ConfigurationError(KsitError):
    """The declaration itself is invalid. Terminal for the pass, never retried."""

    reason = "invalid configuration"


class UnsupportedIntegrationTypeError(ConfigurationError):
    """The declared type is not one of the supported tool types."""

    reason = "unsupported integration type"

    def __init__(self, integration_type: str):
        self.integration_type = integration_type
        super().__init__(f"Unsupported integration type: {integration_type!r}")


class ClusterError(KsitError):
    """Base class for errors attributed to one cluster."""

    def __init__(self, cluster: str, message: str | None = None, reason: str | None = None):
        self.cluster = cluster
        super().__init__(message, reason)


class ClusterConnectivityError(ClusterError):
    """Cluster API unreachable, timed out or refused our credentials."""

    reason = "cluster unreachable"


class ClusterNotRegisteredError(ClusterError):
    """No registry entry exists for the cluster."""

    reason = "target cluster not registered"

    def __init__(self, cluster: str):
        super().__init__(cluster, f"Cluster {cluster!r} is not registered")


class InvalidCredentialsError(ClusterError):
    """Credentials are malformed or incomplete; registration is rejected."""

    reason = "invalid cluster credentials"


class CredentialsNotFoundError(ClusterError):
    """No credential Secret is available for the cluster."""

    reason = "cluster credentials not found"

    def __init__(self, cluster: str):
        super().__init__(cluster, f"No credential secret found for cluster {cluster!r}")


class ControlPlaneError(KsitError):
    """Declarations or statuses cannot be read or written. Fatal to the process."""

    reason = "control-plane API unavailable"
