"""Cluster inventory discovery.

Collects the server version, node count and capability tags of a member
cluster. Capabilities are derived from the API groups the cluster serves.
"""

import asyncio

from shared.models import ClusterInventory
from shared.observability import get_logger

from .kube_client import ClientFactory, ClusterEndpoint, KubeClient

logger = get_logger(__name__)

# API group served by the cluster -> capability tag
CAPABILITY_API_GROUPS = {
    "argoproj.io": "argocd",
    "source.toolkit.fluxcd.io": "flux",
    "monitoring.coreos.com": "prometheus-operator",
    "networking.istio.io": "istio",
}


def capabilities_from_api_groups(groups: set[str]) -> set[str]:
    return {tag for group, tag in CAPABILITY_API_GROUPS.items() if group in groups}


class ClusterInspector:
    """Discovers version, node count and capabilities of a cluster."""

    def __init__(self, client_factory: ClientFactory = KubeClient):
        self.client_factory = client_factory

    async def inspect(self, endpoint: ClusterEndpoint) -> ClusterInventory:
        """Run full discovery against one cluster.

        Raises:
            ClusterConnectivityError: the cluster cannot be reached
        """
        async with self.client_factory(endpoint) as kube:
            version, node_count, groups = await asyncio.gather(
                kube.get_version(),
                kube.count_nodes(),
                kube.list_api_groups(),
            )

        inventory = ClusterInventory(
            server_version=version,
            node_count=node_count,
            capabilities=capabilities_from_api_groups(groups),
        )
        logger.debug(
            "Cluster inspected",
            cluster=endpoint.cluster,
            server_version=version,
            node_count=node_count,
            capabilities=sorted(inventory.capabilities),
        )
        return inventory
