"""
Bounded-concurrency request queue for outbound fetches.

Every fetcher call goes through one of these queues. Each fetch category
(catalog lookups vs. pricing lookups) gets its own queue so a slow category
cannot starve another.

Usage:
    queue = RequestQueue(concurrency_limit=50, name="catalog")
    card = await queue.submit(lambda: adapter.get_card("swsh12pt5-160"))
"""
import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from tcgprice.core.config import Settings

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class QueueJob:
    """A submitted job and the future its submitter is waiting on."""
    run: Callable[[], Awaitable[Any]]
    future: asyncio.Future


class RequestQueue:
    """
    FIFO job scheduler with a fixed concurrency limit.

    Guarantees:
    - never more than ``concurrency_limit`` jobs execute at once
    - pending jobs start in submission order as slots free up
    - a failing job settles only its own result; siblings keep running

    There is no priority, cancellation or timeout here. Jobs own their
    timeouts (the HTTP clients set them).
    """

    def __init__(self, concurrency_limit: int, name: str = "default"):
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self.concurrency_limit = concurrency_limit
        self.name = name
        self.active_count = 0
        self._pending: deque[QueueJob] = deque()
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def submit(self, job: Callable[[], Awaitable[T]]) -> T:
        """
        Queue a job and wait for its result.

        Args:
            job: Zero-argument callable returning an awaitable.

        Returns:
            Whatever the job returns.

        Raises:
            Whatever the job raises.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append(QueueJob(run=job, future=future))
        self._dispatch()
        return await future

    def _dispatch(self) -> None:
        """Start pending jobs while there are free slots."""
        while self._pending and self.active_count < self.concurrency_limit:
            queued = self._pending.popleft()
            self.active_count += 1
            task = asyncio.create_task(self._run(queued))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._pending:
            logger.debug(
                "Request queue saturated",
                queue=self.name,
                active=self.active_count,
                pending=len(self._pending),
            )

    async def _run(self, queued: QueueJob) -> None:
        try:
            result = await queued.run()
        except Exception as e:
            if not queued.future.done():
                queued.future.set_exception(e)
        else:
            if not queued.future.done():
                queued.future.set_result(result)
        finally:
            self.active_count -= 1
            self._dispatch()


@dataclass
class RequestQueues:
    """The per-category queues shared by all fetchers of one aggregator."""
    catalog: RequestQueue
    pricing: RequestQueue

    @classmethod
    def from_settings(cls, settings: Settings) -> "RequestQueues":
        return cls(
            catalog=RequestQueue(settings.catalog_queue_concurrency, name="catalog"),
            pricing=RequestQueue(settings.pricing_queue_concurrency, name="pricing"),
        )
