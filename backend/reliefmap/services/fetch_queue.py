"""Concurrency-limited, rate-spaced task queue for tile downloads.

The queue admits tasks in submission order, keeps at most
``max_concurrent`` of them running, and waits ``spacing`` seconds before
launching a task while another one is still in flight. Callers await the
outcome of their own task only.

There is no priority and no cancellation propagation: once admitted, a
task runs to completion even if the caller stops waiting for it.

Example:
    >>> queue = ThrottledFetchQueue(max_concurrent=6, spacing=0.1)
    >>> outcome = await queue.enqueue(lambda: fetcher.fetch(coord, 5.0))
"""

from __future__ import annotations

import asyncio
import collections
import dataclasses
import logging
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclasses.dataclass
class _Job:
    task: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]


class ThrottledFetchQueue:
    """FIFO task queue with bounded concurrency and launch spacing."""

    def __init__(self, max_concurrent: int = 6, spacing: float = 0.1) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if spacing < 0:
            raise ValueError("spacing must be non-negative")
        self.max_concurrent = max_concurrent
        self.spacing = spacing
        self._pending: collections.deque[_Job] = collections.deque()
        self._active = 0
        self._running: set[asyncio.Task[None]] = set()

    @property
    def active(self) -> int:
        """Tasks admitted and not yet finished."""
        return self._active

    @property
    def pending(self) -> int:
        """Tasks waiting for a free slot."""
        return len(self._pending)

    async def enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        """Submit ``task`` and wait for its result.

        Args:
            task: Zero-argument callable returning an awaitable.

        Returns:
            Whatever the task's awaitable resolves to. Exceptions raised by
            the task propagate to this caller only.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._pending.append(_Job(task, future))
        self._admit()
        return await future

    def _admit(self) -> None:
        while self._active < self.max_concurrent and self._pending:
            job = self._pending.popleft()
            delay = self.spacing if self._active > 0 else 0.0
            self._active += 1
            runner = asyncio.get_running_loop().create_task(self._run(job, delay))
            self._running.add(runner)
            runner.add_done_callback(self._running.discard)

    async def _run(self, job: _Job, delay: float) -> None:
        try:
            if delay:
                await asyncio.sleep(delay)
            result = await job.task()
        except Exception as exc:  # noqa: BLE001
            if not job.future.done():
                job.future.set_exception(exc)
        else:
            if not job.future.done():
                job.future.set_result(result)
        finally:
            self._active -= 1
            if self._pending:
                logger.debug(
                    "Fetch slot freed, %d task(s) waiting", len(self._pending)
                )
            self._admit()
