"""Bounded async scheduling for record streams."""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Iterable

T = TypeVar("T")


class StreamPool(Generic[T]):
    """Run awaitables with at most ``limit`` in flight; yield results as they finish.

    Slots are handed out in submission order, so ``limit=1`` drains the jobs
    strictly one after another. The first failure cancels every job still
    pending or running and is re-raised to the caller.
    """

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._slots = asyncio.Semaphore(limit)
        self._in_flight = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak(self) -> int:
        """Highest number of jobs that ran at the same time."""

        return self._peak

    async def run(self, jobs: Iterable[Awaitable[T]]) -> AsyncIterator[T]:
        pending: set[asyncio.Task[T]] = {
            asyncio.create_task(self._guarded(job)) for job in jobs
        }
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    exc = task.exception()
                    if exc is not None:
                        raise exc
                    yield task.result()
        finally:
            await _cancel(pending)

    async def _guarded(self, job: Awaitable[T]) -> T:
        try:
            await self._slots.acquire()
        except asyncio.CancelledError:
            # Never started; close it so it is not reported as unawaited.
            if inspect.iscoroutine(job):
                job.close()
            raise
        try:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)
            return await job
        finally:
            self._in_flight -= 1
            self._slots.release()


async def _cancel(tasks: set[asyncio.Task[T]]) -> None:
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["StreamPool"]
