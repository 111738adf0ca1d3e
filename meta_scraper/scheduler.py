"""FIFO task runner with a hard ceiling on concurrently running jobs."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Optional, Set, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Job = Callable[[], Awaitable[T]]


class BoundedScheduler:
    """Runs submitted jobs with at most ``concurrency`` executing at once.

    Jobs start strictly in submission order as slots free up. A job's outcome
    is delivered through the future returned by ``submit`` and never affects
    other jobs. There are no priorities and no per-job timeouts.
    """

    def __init__(self, concurrency: int = 3) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self._pending: Deque[Tuple[Job, asyncio.Future]] = deque()
        self._running: Set[asyncio.Task] = set()
        self._in_flight = 0
        self._idle: Optional[asyncio.Event] = None
        self.peak = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, job: Job) -> "asyncio.Future[T]":
        future = asyncio.get_running_loop().create_future()
        self._pending.append((job, future))
        self._start_ready()
        return future

    async def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until nothing is queued or running; ``False`` on timeout."""

        if not self._pending and not self._in_flight:
            return True
        if self._idle is None:
            self._idle = asyncio.Event()
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _start_ready(self) -> None:
        while self._pending and self._in_flight < self.concurrency:
            job, future = self._pending.popleft()
            if future.cancelled():
                continue
            self._in_flight += 1
            self.peak = max(self.peak, self._in_flight)
            task = asyncio.ensure_future(self._run(job, future))
            self._running.add(task)
            task.add_done_callback(self._running.discard)

        if not self._pending and not self._in_flight and self._idle is not None:
            self._idle.set()
            self._idle = None

    async def _run(self, job: Job, future: asyncio.Future) -> None:
        try:
            result = await job()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            logger.debug("Scheduled job raised %r", exc)
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._in_flight -= 1
            self._start_ready()
