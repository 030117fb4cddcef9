"""Reader/writer lock for asyncio tasks."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class ReadWriteLock:
    """
    Lets any number of readers in at once, or one writer alone.

    Waiting writers block new readers so a steady stream of reads cannot
    starve a write. Releasing updates the counters without awaiting, so a
    holder cancelled on the way out still frees the lock.

    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    async def _notify_all(self) -> None:
        async with self._cond:
            self._cond.notify_all()

    async def _wake_waiters(self) -> None:
        # Shielded so waiters are still woken if the releasing task is cancelled
        await asyncio.shield(self._notify_all())

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and not self._writers_waiting)
            self._readers += 1
        try:
            yield
        finally:
            self._readers -= 1
            if not self._readers:
                await self._wake_waiters()

    @asynccontextmanager
    async def writing(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and not self._readers)
            finally:
                self._writers_waiting -= 1
                if not self._writers_waiting:
                    self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            self._writer = False
            await self._wake_waiters()
