"""Single-consumer FIFO that runs asynchronous work items one at a time."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from .exceptions import QueueClosedError, QueueError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SequentialQueue(Generic[T]):
    """
    Asynchronous FIFO with exactly one worker.

    Features:
    - Each item's handler settles (success or failure) before the next starts
    - Handler exceptions are logged and never stop the worker
    - Graceful stop that drains queued items first
    """

    def __init__(self, handler: Callable[[T], Awaitable[Any]], name: str = "events"):
        """
        Initialize the queue.

        Args:
            handler: Coroutine function invoked for each item
            name: Name used in log messages and the worker task name
        """
        self.handler = handler
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._closed = False
        self.processed = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the worker task on the running loop."""
        if self._closed:
            raise QueueClosedError(f"Queue '{self.name}' is closed")
        if self.is_running:
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name=f"{self.name}-worker")
        logger.debug(f"Queue '{self.name}' started")

    def enqueue(self, item: T) -> int:
        """
        Append an item to the queue.

        Args:
            item: Item to hand to the handler

        Returns:
            Number of items waiting, including this one

        Raises:
            QueueClosedError: If the queue has been stopped
        """
        if self._closed:
            raise QueueClosedError(f"Queue '{self.name}' is closed")
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._queue.put_nowait(item)
        return self._queue.qsize()

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self.handler(item)
                self.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error(f"Queue '{self.name}' item failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued item has been processed."""
        if self._queue is None:
            return
        if not self.is_running and self._queue.qsize():
            raise QueueError(f"Queue '{self.name}' has pending items but no worker")
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """
        Stop the worker.

        Args:
            drain: Process items already queued before stopping
        """
        if self._closed:
            return
        self._closed = True

        if self._worker is None:
            return

        if drain and self._queue is not None:
            await self._queue.join()

        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.debug(f"Queue '{self.name}' stopped ({self.processed} processed, {self.failed} failed)")

    def size(self) -> int:
        """
        Get the number of items waiting to be processed.

        Returns:
            Number of waiting items (the one in flight is not counted)
        """
        if self._queue is None:
            return 0
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        return False
