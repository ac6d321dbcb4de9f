"""Tests for the IntegrationTarget reconciler."""

import pytest

from shared.models import ClusterIdentity, EventType, IntegrationTargetDeclaration

from ksit.controllers import TargetReconciler, target_identity


@pytest.fixture
def reconciler(store, registry, event_service, clock) -> TargetReconciler:
    return TargetReconciler(store, registry, event_service=event_service, clock=clock)


def declare(store, cluster_name="prod", **kwargs) -> IntegrationTargetDeclaration:
    return store.put_target(
        IntegrationTargetDeclaration(name="t1", cluster_name=cluster_name, **kwargs)
    )


class TestTargetIdentity:
    def test_defaults_to_own_namespace(self) -> None:
        decl = IntegrationTargetDeclaration(name="t", namespace="team", cluster_name="prod")
        assert target_identity(decl) == ClusterIdentity(name="prod", namespace="team")

    def test_explicit_cluster_namespace(self) -> None:
        decl = IntegrationTargetDeclaration(
            name="t", namespace="team", cluster_name=" prod ", cluster_namespace="clusters"
        )
        assert target_identity(decl).key == "clusters/prod"


async def test_registered_active_cluster_is_ready(
    reconciler, store, register_cluster
) -> None:
    await register_cluster("prod", labels={"env": "prod", "region": "east"})
    declaration = declare(store, labels={"env": "prod"})

    status = await reconciler.reconcile("default", "t1")

    assert status.ready is True
    assert status.reason == "target cluster is ready"
    assert status.observed_generation == declaration.generation
    assert status.conditions[0].reason == "ClusterReady"
    assert (await store.get_target_status("default", "t1")).ready is True


async def test_unregistered_cluster(reconciler, store) -> None:
    declare(store, cluster_name="ghost")

    status = await reconciler.reconcile("default", "t1")

    assert status.ready is False
    assert status.reason == "target cluster not registered"
    assert status.conditions[0].reason == "ClusterNotReady"


async def test_label_mismatch_lists_pairs(reconciler, store, register_cluster) -> None:
    await register_cluster("prod", labels={"env": "dev"})
    declare(store, labels={"env": "prod", "tier": "gold"})

    status = await reconciler.reconcile("default", "t1")

    assert status.ready is False
    assert status.reason == "cluster labels do not match: env=prod, tier=gold"


async def test_invalid_expected_labels(reconciler, store, register_cluster) -> None:
    await register_cluster("prod")
    declare(store, labels={"bad key!": "x"})

    status = await reconciler.reconcile("default", "t1")

    assert status.ready is False
    assert status.reason.startswith("invalid expected labels: ")


async def test_blank_cluster_name(reconciler, store) -> None:
    declare(store, cluster_name="  ")

    status = await reconciler.reconcile("default", "t1")

    assert status.ready is False
    assert status.reason == "invalid target cluster reference"


async def test_errored_cluster_not_ready(reconciler, store, register_cluster, registry) -> None:
    await register_cluster("prod")
    await registry.record_failure("default/prod", "boom")
    declare(store)

    status = await reconciler.reconcile("default", "t1")

    assert status.ready is False
    assert status.reason == "cluster connection status is Error"


async def test_readiness_change_publishes_event(
    reconciler, store, register_cluster, registry, event_service
) -> None:
    seen = []

    async def handler(event):
        seen.append((event.event_type, event.cluster))

    event_service.subscribe(handler, {EventType.TARGET_STATUS_CHANGED})
    await register_cluster("prod")
    declare(store)

    await reconciler.reconcile("default", "t1")
    await reconciler.reconcile("default", "t1")
    await registry.remove("default/prod")
    await reconciler.reconcile("default", "t1")

    assert seen == [
        (EventType.TARGET_STATUS_CHANGED, "default/prod"),
        (EventType.TARGET_STATUS_CHANGED, "default/prod"),
    ]


async def test_transition_time_kept_while_unchanged(
    reconciler, store, register_cluster, clock
) -> None:
    await register_cluster("prod")
    declare(store)

    first = await reconciler.reconcile("default", "t1")
    clock.advance(30)
    second = await reconciler.reconcile("default", "t1")

    assert second.last_sync_time == clock.now
    assert second.conditions[0].last_transition_time == first.conditions[0].last_transition_time


async def test_missing_declaration(reconciler) -> None:
    assert await reconciler.reconcile("default", "nothing") is None


async def test_deleted_target_not_written(reconciler, store) -> None:
    declare(store)
    store.delete_target("default", "t1")
    writes = store.status_writes

    assert await reconciler.reconcile("default", "t1") is None
    assert store.status_writes == writes
