"""Shared data models for the KSIT control plane.

All models follow these conventions:
- Timestamps: timezone-aware UTC datetimes
- Cluster identity: ``namespace/name`` key strings
- Field names: lowercase snake_case (camelCase aliases on resource models)
"""

# Base
from .base import KsitBaseModel

# Cluster domain
from .cluster import (
    DEFAULT_CLUSTER_NAMESPACE,
    AuthType,
    ClusterConnection,
    ClusterConnectionStatus,
    ClusterCredentials,
    ClusterHealth,
    ClusterIdentity,
    ClusterInventory,
)

# Event models
from .events import Event, EventType

# Integration domain
from .integration import (
    Condition,
    ConditionStatus,
    IntegrationDeclaration,
    IntegrationPhase,
    IntegrationStatus,
    IntegrationTargetDeclaration,
    IntegrationTargetStatus,
    IntegrationType,
    TargetStatus,
    set_condition,
)

__all__ = [
    # Base
    "KsitBaseModel",
    # Cluster
    "DEFAULT_CLUSTER_NAMESPACE",
    "AuthType",
    "ClusterConnection",
    "ClusterConnectionStatus",
    "ClusterCredentials",
    "ClusterHealth",
    "ClusterIdentity",
    "ClusterInventory",
    # Events
    "Event",
    "EventType",
    # Integration
    "Condition",
    "ConditionStatus",
    "IntegrationDeclaration",
    "IntegrationPhase",
    "IntegrationStatus",
    "IntegrationTargetDeclaration",
    "IntegrationTargetStatus",
    "IntegrationType",
    "TargetStatus",
    "set_condition",
]
