"""Tests for sequential queue module."""

import asyncio
import pytest

from src.watcher.queue import SequentialQueue
from src.watcher.exceptions import QueueClosedError


class TestSequentialQueue:
    """Tests for SequentialQueue class."""

    def test_processes_in_fifo_order(self):
        async def scenario():
            seen = []

            async def handler(item):
                seen.append(item)

            queue = SequentialQueue(handler)
            await queue.start()
            for i in range(5):
                queue.enqueue(i)
            await queue.join()
            await queue.stop()
            return seen

        assert asyncio.run(scenario()) == [0, 1, 2, 3, 4]

    def test_one_item_at_a_time(self):
        async def scenario():
            active = 0
            max_active = 0
            log = []

            async def handler(item):
                nonlocal active, max_active
                active += 1
                max_active = max(max_active, active)
                log.append(("start", item))
                await asyncio.sleep(0.01)
                log.append(("end", item))
                active -= 1

            queue = SequentialQueue(handler)
            await queue.start()
            for i in range(3):
                queue.enqueue(i)
            await queue.join()
            await queue.stop()
            return max_active, log

        max_active, log = asyncio.run(scenario())

        assert max_active == 1
        assert log == [
            ("start", 0), ("end", 0),
            ("start", 1), ("end", 1),
            ("start", 2), ("end", 2),
        ]

    def test_failure_does_not_stop_queue(self):
        async def scenario():
            seen = []

            async def handler(item):
                if item == "bad":
                    raise ValueError("bad item")
                seen.append(item)

            queue = SequentialQueue(handler)
            await queue.start()
            queue.enqueue("a")
            queue.enqueue("bad")
            queue.enqueue("b")
            await queue.join()
            await queue.stop()
            return seen, queue

        seen, queue = asyncio.run(scenario())

        assert seen == ["a", "b"]
        assert queue.processed == 2
        assert queue.failed == 1

    def test_enqueue_returns_size(self):
        async def scenario():
            async def handler(item):
                pass

            queue = SequentialQueue(handler)
            sizes = [queue.enqueue(1), queue.enqueue(2)]
            return sizes, queue.size()

        sizes, size = asyncio.run(scenario())

        assert sizes == [1, 2]
        assert size == 2

    def test_items_enqueued_before_start_are_processed(self):
        async def scenario():
            seen = []

            async def handler(item):
                seen.append(item)

            queue = SequentialQueue(handler)
            queue.enqueue("early")
            await queue.start()
            await queue.join()
            await queue.stop()
            return seen

        assert asyncio.run(scenario()) == ["early"]

    def test_stop_drains(self):
        async def scenario():
            seen = []

            async def handler(item):
                await asyncio.sleep(0.01)
                seen.append(item)

            queue = SequentialQueue(handler)
            await queue.start()
            for i in range(3):
                queue.enqueue(i)
            await queue.stop(drain=True)
            return seen, queue

        seen, queue = asyncio.run(scenario())

        assert seen == [0, 1, 2]
        assert queue.closed
        assert not queue.is_running

    def test_enqueue_after_stop_raises(self):
        async def scenario():
            async def handler(item):
                pass

            queue = SequentialQueue(handler)
            await queue.start()
            await queue.stop()
            with pytest.raises(QueueClosedError):
                queue.enqueue(1)

        asyncio.run(scenario())

    def test_stop_idempotent(self):
        async def scenario():
            async def handler(item):
                pass

            queue = SequentialQueue(handler)
            await queue.start()
            await queue.stop()
            await queue.stop()

        asyncio.run(scenario())

    def test_async_context_manager(self):
        async def scenario():
            seen = []

            async def handler(item):
                seen.append(item)

            async with SequentialQueue(handler) as queue:
                assert queue.is_running
                queue.enqueue("x")
            return seen

        assert asyncio.run(scenario()) == ["x"]
