"""Event models for in-process change notifications.

Events are ephemeral: they only re-trigger reconciliation and are never
persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import Field

from .base import KsitBaseModel


class EventType(str, Enum):
    """Event types published on the control-plane event bus."""

    # Cluster registry events
    CLUSTER_REGISTERED = "CLUSTER_REGISTERED"
    CLUSTER_DELETED = "CLUSTER_DELETED"
    CLUSTER_STATUS_CHANGED = "CLUSTER_STATUS_CHANGED"
    CLUSTER_CREDENTIALS_UPDATED = "CLUSTER_CREDENTIALS_UPDATED"
    CLUSTER_CAPABILITIES_CHANGED = "CLUSTER_CAPABILITIES_CHANGED"

    # Target events
    TARGET_STATUS_CHANGED = "TARGET_STATUS_CHANGED"


class Event(KsitBaseModel):
    """Base event model."""

    event_id: UUID
    event_type: EventType
    cluster: str | None = Field(default=None, description="Cluster key (namespace/name)")
    timestamp: datetime
    payload: dict[str, Any] = Field(
        default_factory=dict, description="Event-specific payload"
    )
