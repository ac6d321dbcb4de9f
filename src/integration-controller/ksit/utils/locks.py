"""Asyncio reader/writer lock."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager


class AsyncRWLock:
    """Writer-preferring reader/writer lock for coroutines on one event loop.

    Any number of readers may hold the lock together; a writer holds it
    alone. Once a writer is waiting, new readers queue behind it, so a
    steady stream of lookups cannot starve mutations.

    Releasing always completes, even when the releasing task is cancelled
    while it waits for the internal condition; the cancellation is
    re-raised afterwards.

    Usage:
        async with lock.read():
            ...
        async with lock.write():
            ...
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def locked_for_write(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._waiting_writers == 0)
            self._readers += 1
        try:
            yield
        finally:
            await self._release(self._release_reader)

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            except BaseException:
                # Readers parked behind this writer must re-check
                self._waiting_writers -= 1
                self._cond.notify_all()
                raise
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            await self._release(self._release_writer)

    def _release_reader(self) -> None:
        self._readers -= 1
        if self._readers == 0:
            self._cond.notify_all()

    def _release_writer(self) -> None:
        self._writer = False
        self._cond.notify_all()

    async def _release(self, update: Callable[[], None]) -> None:
        # Counters must be updated even if cancelled while acquiring
        cancelled = False
        while True:
            try:
                await self._cond.acquire()
                break
            except asyncio.CancelledError:
                cancelled = True
        try:
            update()
        finally:
            self._cond.release()
        if cancelled:
            raise asyncio.CancelledError
