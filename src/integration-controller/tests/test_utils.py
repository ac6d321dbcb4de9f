"""Tests for label helpers, retry and the reader/writer lock."""

import asyncio

import pytest

from ksit.errors import ClusterConnectivityError, ConfigurationError
from ksit.utils import (
    AsyncRWLock,
    RetryConfig,
    matches_selector,
    mismatched_labels,
    parse_selector,
    retry_async,
    strip_label_prefix,
    validate_labels,
)


class TestLabels:
    @pytest.mark.parametrize(
        "labels",
        [
            {"env": "prod"},
            {"app.kubernetes.io/name": "argocd"},
            {"team": ""},
            {"a" * 63: "b" * 63},
        ],
    )
    def test_valid(self, labels) -> None:
        assert validate_labels(labels) == []

    @pytest.mark.parametrize(
        "labels",
        [
            {"": "x"},
            {"bad key!": "x"},
            {"a" * 64: "x"},
            {"env": "x" * 64},
            {"env": "-leading"},
            {"-prefix.io/name": "x"},
        ],
    )
    def test_invalid(self, labels) -> None:
        assert validate_labels(labels)

    def test_selectors(self) -> None:
        selector = parse_selector("app=x, tier==web")
        assert selector == {"app": "x", "tier": "web"}
        assert matches_selector({"app": "x", "tier": "web", "extra": "1"}, selector)
        assert not matches_selector({"app": "x"}, selector)
        assert mismatched_labels({"app": "y"}, selector) == ["app=x", "tier=web"]
        with pytest.raises(ValueError):
            parse_selector("app")

    def test_strip_prefix(self) -> None:
        labels = {"cluster.ksit.io/env": "prod", "cluster.ksit.io/": "x", "other": "y"}
        assert strip_label_prefix(labels, "cluster.ksit.io/") == {"env": "prod"}


class TestRetry:
    def test_delays_are_capped(self) -> None:
        config = RetryConfig(max_attempts=5, initial_delay=1, max_delay=3)
        assert config.delays() == [1, 2, 3, 3]

    async def test_succeeds_after_retries(self) -> None:
        attempts = []
        sleeps = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ClusterConnectivityError("default/a")
            return "ok"

        async def fake_sleep(delay):
            sleeps.append(delay)

        config = RetryConfig(
            max_attempts=3, initial_delay=0.5, retry_on=(ClusterConnectivityError,)
        )
        assert await retry_async(flaky, config, sleep=fake_sleep) == "ok"
        assert sleeps == [0.5, 1.0]

    async def test_reraises_last_error(self) -> None:
        async def failing():
            raise ClusterConnectivityError("default/a")

        config = RetryConfig(max_attempts=2, initial_delay=0, retry_on=(ClusterConnectivityError,))
        with pytest.raises(ClusterConnectivityError):
            await retry_async(failing, config)

    async def test_other_errors_not_retried(self) -> None:
        attempts = []

        async def invalid():
            attempts.append(1)
            raise ConfigurationError("bad")

        config = RetryConfig(max_attempts=3, initial_delay=0, retry_on=(ClusterConnectivityError,))
        with pytest.raises(ConfigurationError):
            await retry_async(invalid, config)
        assert len(attempts) == 1


class TestAsyncRWLock:
    async def test_readers_share(self) -> None:
        lock = AsyncRWLock()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def reader():
            async with lock.read():
                inside.set()
                await release.wait()

        tasks = [asyncio.create_task(reader()) for _ in range(3)]
        await inside.wait()
        await asyncio.sleep(0)
        assert lock.readers == 3
        release.set()
        await asyncio.gather(*tasks)
        assert lock.readers == 0

    async def test_writer_excludes_readers(self) -> None:
        lock = AsyncRWLock()
        order = []

        async def writer():
            async with lock.write():
                order.append("write-start")
                await asyncio.sleep(0.02)
                order.append("write-end")

        async def reader():
            await asyncio.sleep(0.005)
            async with lock.read():
                order.append("read")

        await asyncio.gather(writer(), reader())
        assert order == ["write-start", "write-end", "read"]

    async def test_waiting_writer_blocks_new_readers(self) -> None:
        lock = AsyncRWLock()
        order = []
        release = asyncio.Event()

        async def first_reader():
            async with lock.read():
                await release.wait()
                order.append("reader-1")

        async def writer():
            async with lock.write():
                order.append("writer")

        async def late_reader():
            async with lock.read():
                order.append("reader-2")

        tasks = [asyncio.create_task(first_reader())]
        await asyncio.sleep(0)
        tasks.append(asyncio.create_task(writer()))
        await asyncio.sleep(0)
        tasks.append(asyncio.create_task(late_reader()))
        await asyncio.sleep(0.01)
        release.set()
        await asyncio.gather(*tasks)

        assert order == ["reader-1", "writer", "reader-2"]

    @pytest.mark.parametrize("mode", ["read", "write"])
    async def test_release_survives_cancellation(self, mode) -> None:
        lock = AsyncRWLock()
        entered = asyncio.Event()
        leave = asyncio.Event()

        async def holder():
            async with getattr(lock, mode)():
                entered.set()
                await leave.wait()

        task = asyncio.create_task(holder())
        await entered.wait()

        # The holder exits its body while the internal condition is busy,
        # then gets cancelled while waiting to release
        await lock._cond.acquire()
        leave.set()
        for _ in range(3):
            await asyncio.sleep(0)
        task.cancel()
        for _ in range(3):
            await asyncio.sleep(0)
        lock._cond.release()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert lock.readers == 0
        assert not lock.locked_for_write
        async with asyncio.timeout(1):
            async with lock.write():
                pass

    async def test_cancelled_writer_releases_readers(self) -> None:
        lock = AsyncRWLock()
        release = asyncio.Event()

        async def holder():
            async with lock.read():
                await release.wait()

        holding = asyncio.create_task(holder())
        await asyncio.sleep(0)
        writer = asyncio.create_task(lock.write().__aenter__())
        await asyncio.sleep(0)
        writer.cancel()
        await asyncio.gather(writer, return_exceptions=True)

        async with asyncio.timeout(1):
            async with lock.read():
                pass
        release.set()
        await holding
