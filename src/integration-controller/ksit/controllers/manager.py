"""Controller manager.

Feeds reconcile requests to a bounded pool of workers per resource kind.
Requests come from three triggers: a periodic requeue after every pass,
a resync loop that notices new, changed and deleted declarations, and
cluster/target events published on the event bus.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from shared.config import ReconcileSettings
from shared.models import Event, EventType
from shared.observability import get_logger

from ..errors import ControlPlaneError
from ..services.event_service import EventService
from ..services.integration_store import IntegrationStore
from .integration_reconciler import IntegrationReconciler
from .target_reconciler import TargetReconciler

logger = get_logger(__name__)

ReconcileFn = Callable[[str, str], Awaitable[object]]

RETRIGGER_EVENTS = {
    EventType.CLUSTER_REGISTERED,
    EventType.CLUSTER_DELETED,
    EventType.CLUSTER_STATUS_CHANGED,
    EventType.CLUSTER_CREDENTIALS_UPDATED,
    EventType.TARGET_STATUS_CHANGED,
}


class WorkQueue:
    """De-duplicating work queue of ``namespace/name`` keys.

    A key waits in the queue at most once, and is never handed to a second
    worker while one is processing it; re-adds during processing are
    replayed when the worker calls ``done``.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._queued: set[str] = set()
        self._processing: set[str] = set()
        self._dirty: set[str] = set()
        self._delayed: dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._queued)

    def add(self, key: str) -> None:
        if key in self._queued:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def add_after(self, key: str, delay: float) -> None:
        """Add ``key`` once ``delay`` seconds have passed, replacing any earlier timer."""
        existing = self._delayed.pop(key, None)
        if existing:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._delayed[key] = loop.call_later(delay, self._fire, key)

    def _fire(self, key: str) -> None:
        self._delayed.pop(key, None)
        self.add(key)

    async def get(self) -> str:
        key = await self._queue.get()
        self._queued.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: str) -> None:
        self._processing.discard(key)
        if key in self._dirty:
            self._dirty.discard(key)
            self.add(key)

    def is_processing(self, key: str) -> bool:
        return key in self._processing

    def shutdown(self) -> None:
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()


class ControllerManager:
    """Runs the Integration and IntegrationTarget reconcilers."""

    def __init__(
        self,
        store: IntegrationStore,
        integration_reconciler: IntegrationReconciler,
        target_reconciler: TargetReconciler,
        settings: ReconcileSettings | None = None,
        event_service: EventService | None = None,
    ):
        self.store = store
        self.integration_reconciler = integration_reconciler
        self.target_reconciler = target_reconciler
        self.settings = settings or ReconcileSettings()
        self.event_service = event_service

        self.integration_queue = WorkQueue()
        self.target_queue = WorkQueue()
        self.failed = asyncio.Event()
        self.fatal_error: ControlPlaneError | None = None

        # key -> generation, as of the last resync
        self._integration_generations: dict[str, int] = {}
        self._target_generations: dict[str, int] = {}
        # integration key -> referenced cluster keys; target key -> cluster key
        self._references: dict[str, set[str]] = {}
        self._target_clusters: dict[str, str] = {}
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        """Run an initial resync, then start workers and the resync loop.

        Raises:
            ControlPlaneError: declarations cannot be listed
        """
        await self.resync()

        for i in range(self.settings.workers):
            self._tasks.append(
                asyncio.create_task(
                    self._worker(
                        self.integration_queue,
                        self.integration_reconciler.reconcile,
                        self._integration_generations,
                    ),
                    name=f"integration-worker-{i}",
                )
            )
            self._tasks.append(
                asyncio.create_task(
                    self._worker(
                        self.target_queue,
                        self.target_reconciler.reconcile,
                        self._target_generations,
                    ),
                    name=f"target-worker-{i}",
                )
            )
        self._tasks.append(asyncio.create_task(self._resync_loop(), name="resync"))

        if self.event_service:
            self.event_service.subscribe(self._on_event, RETRIGGER_EVENTS)

        logger.info(
            "Controller manager started",
            workers=self.settings.workers,
            integrations=len(self._integration_generations),
            targets=len(self._target_generations),
        )

    async def stop(self) -> None:
        if self.event_service:
            self.event_service.unsubscribe(self._on_event)
        self.integration_queue.shutdown()
        self.target_queue.shutdown()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Controller manager stopped")

    def enqueue_integration(self, namespace: str, name: str) -> None:
        self.integration_queue.add(f"{namespace}/{name}")

    def enqueue_target(self, namespace: str, name: str) -> None:
        self.target_queue.add(f"{namespace}/{name}")

    def integrations_referencing(self, cluster: str) -> list[str]:
        return sorted(k for k, refs in self._references.items() if cluster in refs)

    async def resync(self) -> None:
        """Enqueue declarations that are new, changed or deleted since the last resync."""
        integrations = await self.store.list_integrations()
        targets = await self.store.list_targets()

        generations = {d.key: d.generation for d in integrations}
        _enqueue_changes(self.integration_queue, self._integration_generations, generations)
        self._integration_generations.clear()
        self._integration_generations.update(generations)
        self._references = {
            d.key: _referenced_clusters(d.namespace, d.target_clusters) for d in integrations
        }

        generations = {d.key: d.generation for d in targets}
        _enqueue_changes(self.target_queue, self._target_generations, generations)
        self._target_generations.clear()
        self._target_generations.update(generations)
        self._target_clusters = {
            d.key: f"{d.cluster_namespace or d.namespace}/{d.cluster_name.strip()}"
            for d in targets
        }

    async def _resync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.resync_seconds)
            try:
                await self.resync()
            except ControlPlaneError as e:
                self._fail(e)
                return

    async def _worker(
        self, queue: WorkQueue, reconcile: ReconcileFn, known: dict[str, int]
    ) -> None:
        while True:
            key = await queue.get()
            namespace, _, name = key.partition("/")
            try:
                await reconcile(namespace, name)
            except ControlPlaneError as e:
                queue.done(key)
                self._fail(e)
                return
            except Exception as e:
                logger.exception("Reconcile failed", key=key, error=str(e))
                queue.done(key)
                queue.add_after(key, self.settings.retry_backoff_seconds)
                continue

            queue.done(key)
            if key in known:
                queue.add_after(key, self.settings.interval_seconds)

    async def _on_event(self, event: Event) -> None:
        cluster = event.cluster
        if not cluster:
            return
        if event.event_type != EventType.TARGET_STATUS_CHANGED:
            for key, target_cluster in self._target_clusters.items():
                if target_cluster == cluster:
                    self.target_queue.add(key)
        for key in self.integrations_referencing(cluster):
            self.integration_queue.add(key)

    def _fail(self, error: ControlPlaneError) -> None:
        if self.fatal_error is None:
            self.fatal_error = error
            logger.error("Control-plane API unavailable, stopping", error=str(error))
        self.failed.set()


def _enqueue_changes(queue: WorkQueue, previous: dict[str, int], current: dict[str, int]) -> None:
    for key, generation in current.items():
        if previous.get(key) != generation:
            queue.add(key)
    # One final pass for deleted keys cleans up their metrics
    for key in previous.keys() - current.keys():
        queue.add(key)


def _referenced_clusters(namespace: str, refs: list[str]) -> set[str]:
    clusters = set()
    for ref in refs:
        if not ref or not ref.strip():
            continue
        namespace_part, sep, name = ref.strip().partition("/")
        clusters.add(f"{namespace_part}/{name}" if sep else f"{namespace}/{namespace_part}")
    return clusters
