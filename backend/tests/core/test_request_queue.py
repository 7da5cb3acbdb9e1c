"""Tests for the bounded-concurrency request queue."""
import asyncio

import pytest

from tcgprice.core.config import Settings
from tcgprice.core.request_queue import RequestQueue, RequestQueues


class TestRequestQueue:
    """Tests for RequestQueue."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit,burst", [(1, 5), (3, 20), (10, 4), (50, 200)])
    async def test_never_exceeds_concurrency_limit(self, limit, burst):
        """Active jobs never exceed the limit, whatever the burst size."""
        queue = RequestQueue(concurrency_limit=limit, name="test")
        running = 0
        peak = 0

        async def job():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            assert queue.active_count <= limit
            await asyncio.sleep(0.001)
            running -= 1
            return True

        results = await asyncio.gather(*(queue.submit(job) for _ in range(burst)))

        assert all(results)
        assert peak <= limit
        assert peak == min(limit, burst)
        assert queue.active_count == 0
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_jobs_start_in_submission_order(self):
        """Pending jobs are started FIFO as slots free up."""
        queue = RequestQueue(concurrency_limit=2, name="test")
        started: list[int] = []

        def make_job(index: int):
            async def job():
                started.append(index)
                await asyncio.sleep(0.005)
                return index
            return job

        results = await asyncio.gather(*(queue.submit(make_job(i)) for i in range(8)))

        assert results == list(range(8))
        assert started == list(range(8))

    @pytest.mark.asyncio
    async def test_single_slot_completes_fifo(self):
        """With one slot, equal-duration jobs finish in submission order."""
        queue = RequestQueue(concurrency_limit=1, name="test")
        finished: list[int] = []

        def make_job(index: int):
            async def job():
                await asyncio.sleep(0.001)
                finished.append(index)
            return job

        await asyncio.gather(*(queue.submit(make_job(i)) for i in range(6)))

        assert finished == list(range(6))

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_later_jobs(self):
        """A rejecting job settles only its own result."""
        queue = RequestQueue(concurrency_limit=1, name="test")

        async def ok(value):
            return value

        async def boom():
            raise RuntimeError("upstream exploded")

        first = asyncio.ensure_future(queue.submit(lambda: ok("a")))
        failing = asyncio.ensure_future(queue.submit(boom))
        later = asyncio.ensure_future(queue.submit(lambda: ok("b")))

        assert await first == "a"
        with pytest.raises(RuntimeError, match="upstream exploded"):
            await failing
        assert await later == "b"
        assert queue.active_count == 0

    @pytest.mark.asyncio
    async def test_pending_jobs_wait_for_free_slot(self):
        """Jobs beyond the limit stay pending until a slot frees up."""
        queue = RequestQueue(concurrency_limit=1, name="test")
        gate = asyncio.Event()

        async def blocker():
            await gate.wait()
            return "released"

        async def quick():
            return "quick"

        blocked = asyncio.ensure_future(queue.submit(blocker))
        waiting = asyncio.ensure_future(queue.submit(quick))
        await asyncio.sleep(0)

        assert queue.active_count == 1
        assert queue.pending_count == 1
        assert not waiting.done()

        gate.set()
        assert await blocked == "released"
        assert await waiting == "quick"

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            RequestQueue(concurrency_limit=0)


def test_queues_from_settings():
    """Each fetch category gets its own queue with its own limit."""
    queues = RequestQueues.from_settings(
        Settings(_env_file=None, catalog_queue_concurrency=7, pricing_queue_concurrency=11)
    )

    assert queues.catalog.concurrency_limit == 7
    assert queues.pricing.concurrency_limit == 11
    assert queues.catalog is not queues.pricing
