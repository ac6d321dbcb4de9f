"""Cluster health monitoring.

Keeps registry entries fresh: periodically re-probes every registered
cluster, evicts entries that have not been seen for too long and warns
about credentials older than their TTL.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from shared.config import ClusterHealthSettings
from shared.models import ClusterConnectionStatus, ClusterHealth
from shared.observability import get_logger

from ..errors import ClusterConnectivityError, ClusterNotRegisteredError
from ..utils import Clock, utcnow
from .cluster_registry import ClusterRef, ClusterRegistry
from .event_service import EventService
from .metrics import MetricsEmitter, NoopMetricsEmitter

logger = get_logger(__name__)


class HealthMonitor:
    """Background health checking for all registered clusters."""

    def __init__(
        self,
        registry: ClusterRegistry,
        settings: ClusterHealthSettings | None = None,
        metrics: MetricsEmitter | None = None,
        event_service: EventService | None = None,
        clock: Clock = utcnow,
    ):
        self.registry = registry
        self.settings = settings or ClusterHealthSettings()
        self.metrics = metrics or NoopMetricsEmitter()
        self.event_service = event_service
        self.clock = clock
        self._semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_checks))
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def refresh(self, identity: ClusterRef) -> ClusterHealth:
        """Run one health check against a registered cluster.

        Connectivity failures and timeouts are reported in the result, never
        raised.

        Raises:
            ClusterNotRegisteredError: no such cluster
        """
        before, endpoint = await self.registry.lookup(identity)
        key = before.key

        error = None
        try:
            after = await asyncio.wait_for(
                self.registry.refresh(key),
                timeout=self.settings.health_check_timeout_seconds,
            )
        except ClusterConnectivityError as e:
            error = e.reason
            after = await self._current(key)
        except asyncio.TimeoutError:
            error = "cluster health check timed out"
            after = await self.registry.record_failure(key, error, endpoint=endpoint)
            if after is None:
                after = await self._current(key)

        status = after.status if after else ClusterConnectionStatus.DISCONNECTED
        reachable = error is None
        self.metrics.set_cluster_connection(key, reachable)

        if status != before.status:
            logger.info(
                "Cluster status changed",
                cluster=key,
                old_status=before.status,
                new_status=status,
            )
            if self.event_service:
                await self.event_service.publish_cluster_status_changed(
                    key, _value(before.status), _value(status)
                )
        if error:
            logger.warning("Cluster health check failed", cluster=key, error=error)

        return ClusterHealth(
            cluster=key,
            reachable=reachable,
            status=status,
            error=error,
            checked_at=self.clock(),
        )

    async def _current(self, key: str):
        try:
            return await self.registry.get(key)
        except ClusterNotRegisteredError:
            return None

    async def health_check_all(self) -> dict[str, bool]:
        """Check every registered cluster concurrently.

        Checks are bounded by the configured concurrency and each one by its
        own timeout, so a hanging cluster only delays itself. Clusters
        removed while the round is running are left out of the result.
        """
        keys = await self.registry.keys()

        async def check(key: str) -> bool | None:
            async with self._semaphore:
                try:
                    health = await self.refresh(key)
                except ClusterNotRegisteredError:
                    return None
                return health.reachable

        results = await asyncio.gather(*(check(k) for k in keys), return_exceptions=True)

        health: dict[str, bool] = {}
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                logger.error("Health check failed", cluster=key, error=str(result))
                health[key] = False
            elif result is not None:
                health[key] = result
        return health

    async def evict_stale(self) -> list[str]:
        evicted = await self.registry.evict_stale(
            timedelta(seconds=self.settings.stale_max_age_seconds)
        )
        for key in evicted:
            self.metrics.set_cluster_connection(key, False)
        return evicted

    async def check_credential_age(self) -> list[str]:
        """Return clusters whose credentials are older than the TTL, logging each."""
        ttl = timedelta(seconds=self.settings.credential_ttl_seconds)
        now = self.clock()
        expired = []
        for conn in await self.registry.list():
            age = now - conn.credentials_registered_at
            if age > ttl:
                expired.append(conn.key)
                logger.warning(
                    "Cluster credentials exceed TTL; re-register to refresh them",
                    cluster=conn.key,
                    age_seconds=int(age.total_seconds()),
                    ttl_seconds=int(ttl.total_seconds()),
                )
        return expired

    async def run_periodic_checks(self) -> None:
        """Run periodic health checks in background."""
        self._running = True
        logger.info(
            "Starting periodic health checks",
            interval_seconds=self.settings.health_check_interval_seconds,
        )

        while self._running:
            try:
                results = await self.health_check_all()
                evicted = await self.evict_stale()
                await self.check_credential_age()
                logger.debug(
                    "Health check round complete",
                    clusters=len(results),
                    unreachable=sum(1 for ok in results.values() if not ok),
                    evicted=len(evicted),
                )

                await asyncio.sleep(self.settings.health_check_interval_seconds)

            except asyncio.CancelledError:
                logger.info("Periodic health checks cancelled")
                break
            except Exception as e:
                logger.error("Error in periodic health check loop", error=str(e))
                await asyncio.sleep(5)  # Brief pause before retry

        self._running = False

    def stop(self) -> None:
        self._running = False


def _value(status) -> str:
    return status.value if isinstance(status, ClusterConnectionStatus) else status
