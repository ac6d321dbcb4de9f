"""Cluster registry.

Single owner of per-cluster connection state. All reads and writes go
through one writer-preferring reader/writer lock; network probes always
run outside of it. Callers only ever receive copies of registry entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from shared.models import (
    ClusterConnection,
    ClusterConnectionStatus,
    ClusterCredentials,
    ClusterIdentity,
)
from shared.observability import get_logger

from ..errors import (
    ClusterConnectivityError,
    ClusterNotRegisteredError,
    ConfigurationError,
)
from ..utils import AsyncRWLock, Clock, utcnow, validate_labels
from .discovery import ClusterInspector
from .event_service import EventService
from .kube_client import ClusterEndpoint

logger = get_logger(__name__)

ClusterRef = ClusterIdentity | str


@dataclass
class _Entry:
    connection: ClusterConnection
    endpoint: ClusterEndpoint
    # Tags added through add_capability survive rediscovery
    manual_capabilities: set[str] = field(default_factory=set)


def _key(identity: ClusterRef) -> str:
    if isinstance(identity, ClusterIdentity):
        return identity.key
    return ClusterIdentity.parse(identity).key


class ClusterRegistry:
    """Store of record for registered clusters, keyed by ``namespace/name``."""

    def __init__(
        self,
        inspector: ClusterInspector | None = None,
        failures_before_disconnected: int = 3,
        clock: Clock = utcnow,
        event_service: EventService | None = None,
    ):
        self.inspector = inspector or ClusterInspector()
        self.failures_before_disconnected = max(1, failures_before_disconnected)
        self.clock = clock
        self.event_service = event_service
        self._entries: dict[str, _Entry] = {}
        self._lock = AsyncRWLock()

    async def register(
        self,
        identity: ClusterIdentity,
        credentials: ClusterCredentials,
        labels: dict[str, str] | None = None,
    ) -> ClusterConnection:
        """Register a cluster or rotate the credentials of a registered one.

        The new credentials are probed before anything is installed. On
        failure the registry is left as it was.

        Raises:
            InvalidCredentialsError: credentials are malformed
            ClusterConnectivityError: the endpoint cannot be reached
            ConfigurationError: labels are not valid Kubernetes labels
        """
        key = identity.key
        if labels:
            self._check_labels(labels)
        endpoint = ClusterEndpoint.from_credentials(key, credentials)

        previous_status = await self._mark_connecting(key)
        installed = False
        try:
            inventory = await self.inspector.inspect(endpoint)

            now = self.clock()
            async with self._lock.write():
                existing = self._entries.get(key)
                manual = existing.manual_capabilities if existing else set()
                connection = ClusterConnection(
                    identity=identity,
                    api_server_url=endpoint.url,
                    status=ClusterConnectionStatus.ACTIVE,
                    server_version=inventory.server_version,
                    node_count=inventory.node_count,
                    last_seen=now,
                    labels=dict(labels) if labels is not None else (
                        dict(existing.connection.labels) if existing else {}
                    ),
                    capabilities=set(inventory.capabilities) | manual,
                    credentials_registered_at=now,
                )
                self._entries[key] = _Entry(
                    connection=connection, endpoint=endpoint, manual_capabilities=set(manual)
                )
                snapshot = connection.model_copy(deep=True)
            installed = True
        finally:
            if not installed and previous_status is not None:
                await self._restore_status(key, previous_status)

        logger.info(
            "Cluster registered",
            cluster=key,
            rotated=previous_status is not None,
            server_version=snapshot.server_version,
            node_count=snapshot.node_count,
        )
        if self.event_service:
            if previous_status is None:
                await self.event_service.publish_cluster_registered(snapshot)
            else:
                await self.event_service.publish_cluster_credentials_updated(key)
        return snapshot

    async def _mark_connecting(self, key: str) -> str | None:
        async with self._lock.write():
            entry = self._entries.get(key)
            if entry is None:
                return None
            previous = entry.connection.status
            entry.connection.status = ClusterConnectionStatus.CONNECTING
            return previous

    async def _restore_status(self, key: str, status: str) -> None:
        async with self._lock.write():
            entry = self._entries.get(key)
            if entry and entry.connection.status == ClusterConnectionStatus.CONNECTING:
                entry.connection.status = status

    async def get(self, identity: ClusterRef) -> ClusterConnection:
        """Return a snapshot of the entry.

        Raises:
            ClusterNotRegisteredError: no such cluster
        """
        key = _key(identity)
        async with self._lock.read():
            entry = self._entries.get(key)
            if entry is None:
                raise ClusterNotRegisteredError(key)
            return entry.connection.model_copy(deep=True)

    async def get_endpoint(self, identity: ClusterRef) -> ClusterEndpoint:
        """Return the connection handle. The handle is immutable."""
        key = _key(identity)
        async with self._lock.read():
            entry = self._entries.get(key)
            if entry is None:
                raise ClusterNotRegisteredError(key)
            return entry.endpoint

    async def lookup(self, identity: ClusterRef) -> tuple[ClusterConnection, ClusterEndpoint]:
        """Snapshot and connection handle read under one lock acquisition."""
        key = _key(identity)
        async with self._lock.read():
            entry = self._entries.get(key)
            if entry is None:
                raise ClusterNotRegisteredError(key)
            return entry.connection.model_copy(deep=True), entry.endpoint

    async def remove(self, identity: ClusterRef) -> bool:
        key = _key(identity)
        async with self._lock.write():
            removed = self._entries.pop(key, None) is not None

        if removed:
            logger.info("Cluster removed", cluster=key)
            if self.event_service:
                await self.event_service.publish_cluster_deleted(key)
        return removed

    async def list(self) -> list[ClusterConnection]:
        async with self._lock.read():
            return [
                self._entries[k].connection.model_copy(deep=True) for k in sorted(self._entries)
            ]

    async def list_by_label(self, key: str, value: str) -> list[ClusterConnection]:
        return [c for c in await self.list() if c.labels.get(key) == value]

    async def list_by_status(self, status: ClusterConnectionStatus) -> list[ClusterConnection]:
        return [c for c in await self.list() if c.status == status]

    async def count(self) -> int:
        async with self._lock.read():
            return len(self._entries)

    async def keys(self) -> list[str]:
        async with self._lock.read():
            return sorted(self._entries)

    async def refresh(self, identity: ClusterRef) -> ClusterConnection:
        """Re-probe version, node count and capabilities.

        On failure the entry is kept and marked Error, or Disconnected once
        the consecutive failure threshold is reached.

        Raises:
            ClusterNotRegisteredError: no such cluster
            ClusterConnectivityError: the probe failed
        """
        key = _key(identity)
        endpoint = await self.get_endpoint(key)

        try:
            inventory = await self.inspector.inspect(endpoint)
        except ClusterConnectivityError as e:
            await self.record_failure(key, e.reason, endpoint=endpoint)
            raise

        async with self._lock.write():
            entry = self._entries.get(key)
            if entry is None:
                raise ClusterNotRegisteredError(key)
            conn = entry.connection
            old_capabilities = set(conn.capabilities)
            if entry.endpoint is endpoint:
                conn.status = ClusterConnectionStatus.ACTIVE
                conn.server_version = inventory.server_version
                conn.node_count = inventory.node_count
                conn.capabilities = set(inventory.capabilities) | entry.manual_capabilities
                conn.last_seen = self.clock()
                conn.last_error = None
                conn.consecutive_failures = 0
            snapshot = conn.model_copy(deep=True)

        if self.event_service and snapshot.capabilities != old_capabilities:
            await self.event_service.publish_cluster_capabilities_changed(
                key, snapshot.capabilities
            )
        return snapshot

    async def record_failure(
        self, identity: ClusterRef, reason: str, endpoint: ClusterEndpoint | None = None
    ) -> ClusterConnection | None:
        """Count a failed probe against the entry.

        When ``endpoint`` is given the failure is only recorded if the entry
        still uses that handle, so a probe of rotated-out credentials cannot
        degrade the new ones. Returns the updated snapshot, or None when the
        entry is gone or was re-registered.
        """
        key = _key(identity)
        async with self._lock.write():
            entry = self._entries.get(key)
            if entry is None or (endpoint is not None and entry.endpoint is not endpoint):
                return None
            conn = entry.connection
            conn.consecutive_failures += 1
            conn.last_error = reason
            conn.status = (
                ClusterConnectionStatus.DISCONNECTED
                if conn.consecutive_failures >= self.failures_before_disconnected
                else ClusterConnectionStatus.ERROR
            )
            return conn.model_copy(deep=True)

    async def evict_stale(self, max_age: timedelta | float) -> list[str]:
        """Remove entries not seen within ``max_age``; return the evicted keys."""
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        cutoff = self.clock() - max_age

        async with self._lock.write():
            evicted = sorted(k for k, e in self._entries.items() if e.connection.last_seen < cutoff)
            for key in evicted:
                del self._entries[key]

        for key in evicted:
            logger.info("Stale cluster evicted", cluster=key, cutoff=cutoff.isoformat())
            if self.event_service:
                await self.event_service.publish_cluster_deleted(key)
        return evicted

    async def set_labels(self, identity: ClusterRef, labels: dict[str, str]) -> ClusterConnection:
        """Replace the label map of a registered cluster."""
        self._check_labels(labels)
        key = _key(identity)
        async with self._lock.write():
            entry = self._entries.get(key)
            if entry is None:
                raise ClusterNotRegisteredError(key)
            entry.connection.labels = dict(labels)
            return entry.connection.model_copy(deep=True)

    async def add_capability(self, identity: ClusterRef, capability: str) -> bool:
        """Add a capability tag. Returns False when it was already present."""
        key = _key(identity)
        async with self._lock.write():
            entry = self._entries.get(key)
            if entry is None:
                raise ClusterNotRegisteredError(key)
            entry.manual_capabilities.add(capability)
            if capability in entry.connection.capabilities:
                return False
            entry.connection.capabilities.add(capability)
            capabilities = set(entry.connection.capabilities)

        if self.event_service:
            await self.event_service.publish_cluster_capabilities_changed(key, capabilities)
        return True

    @staticmethod
    def _check_labels(labels: dict[str, str]) -> None:
        errors = validate_labels(labels)
        if errors:
            raise ConfigurationError("; ".join(errors), reason="invalid cluster labels")
