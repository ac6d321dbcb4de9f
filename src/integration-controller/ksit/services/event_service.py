"""In-process event bus.

Events re-trigger reconciliation; they are delivered to subscribers in the
same process and never persisted.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

from shared.models import ClusterConnection, Event, EventType
from shared.observability import get_logger

from ..utils import utcnow

logger = get_logger(__name__)

EventHandler = Callable[[Event], Awaitable[None]]


class EventService:
    """Publishes control-plane events to subscribed handlers.

    Events emitted:
    - CLUSTER_REGISTERED
    - CLUSTER_DELETED
    - CLUSTER_STATUS_CHANGED
    - CLUSTER_CREDENTIALS_UPDATED
    - CLUSTER_CAPABILITIES_CHANGED
    - TARGET_STATUS_CHANGED
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[frozenset[EventType] | None, EventHandler]] = []

    def subscribe(self, handler: EventHandler, event_types: set[EventType] | None = None) -> None:
        """Register a handler for the given event types (all types when None)."""
        self._handlers.append((frozenset(event_types) if event_types else None, handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        self._handlers = [(t, h) for t, h in self._handlers if h != handler]

    async def publish(
        self, event_type: EventType, payload: dict[str, Any], cluster: str | None = None
    ) -> Event:
        """Deliver an event to every matching handler.

        A failing handler is logged and does not prevent delivery to the
        others.
        """
        event = Event(
            event_id=uuid4(),
            event_type=event_type,
            cluster=cluster,
            timestamp=utcnow(),
            payload=payload,
        )

        for types, handler in list(self._handlers):
            if types is not None and event_type not in types:
                continue
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event_type.value,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )

        logger.debug("Event published", event_type=event_type.value, cluster=cluster)
        return event

    async def publish_cluster_registered(self, connection: ClusterConnection) -> None:
        payload = {
            "cluster": connection.key,
            "api_server_url": connection.api_server_url,
            "server_version": connection.server_version,
        }
        await self.publish(EventType.CLUSTER_REGISTERED, payload, connection.key)

    async def publish_cluster_deleted(self, cluster: str) -> None:
        await self.publish(EventType.CLUSTER_DELETED, {"cluster": cluster}, cluster)

    async def publish_cluster_status_changed(
        self, cluster: str, old_status: str | None, new_status: str
    ) -> None:
        payload = {
            "cluster": cluster,
            "old_status": old_status,
            "new_status": new_status,
        }
        await self.publish(EventType.CLUSTER_STATUS_CHANGED, payload, cluster)

    async def publish_cluster_credentials_updated(self, cluster: str) -> None:
        await self.publish(EventType.CLUSTER_CREDENTIALS_UPDATED, {"cluster": cluster}, cluster)

    async def publish_cluster_capabilities_changed(
        self, cluster: str, capabilities: set[str]
    ) -> None:
        payload = {
            "cluster": cluster,
            "capabilities": sorted(capabilities),
        }
        await self.publish(EventType.CLUSTER_CAPABILITIES_CHANGED, payload, cluster)

    async def publish_target_status_changed(self, target: str, cluster: str, ready: bool) -> None:
        payload = {
            "target": target,
            "cluster": cluster,
            "ready": ready,
        }
        await self.publish(EventType.TARGET_STATUS_CHANGED, payload, cluster)
