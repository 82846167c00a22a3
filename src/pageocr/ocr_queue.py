# src/pageocr/ocr_queue.py
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Optional, Set

from .exceptions import QueueClearedError
from .models import RecognitionRequest, RecognitionResult
from .progress import ProgressSink

logger = logging.getLogger("pageocr")

Processor = Callable[[RecognitionRequest, Optional[ProgressSink]], Awaitable[RecognitionResult]]


@dataclass
class QueueItem:
    id: str
    request: RecognitionRequest
    progress: Optional[ProgressSink]
    future: asyncio.Future


class RecognitionQueue:
    """
    FIFO queue capping the number of recognitions in flight.

    Items start in enqueue order; completion order is whatever the engine
    produces. Only items that have not started can be cleared.
    """

    def __init__(self, processor: Processor, max_concurrent: int = 2, delay: float = 0.1):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._processor = processor
        self.max_concurrent = max_concurrent
        self.delay = delay
        self._pending: Deque[QueueItem] = deque()
        self._active = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def active_count(self) -> int:
        return self._active

    def enqueue(self, request: RecognitionRequest, progress: Optional[ProgressSink] = None) -> asyncio.Future:
        """Add a request; the returned future resolves to its RecognitionResult."""
        loop = asyncio.get_running_loop()
        item = QueueItem(
            id=uuid.uuid4().hex[:12],
            request=request,
            progress=progress,
            future=loop.create_future(),
        )
        self._pending.append(item)
        logger.debug("Queued OCR item %s (%s), %d waiting", item.id, request.label, len(self._pending))
        self._pump()
        return item.future

    def _pump(self) -> None:
        while self._active < self.max_concurrent and self._pending:
            item = self._pending.popleft()
            if item.future.done():  # cancelled by its awaiter while waiting
                continue
            self._active += 1
            task = asyncio.ensure_future(self._run(item))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, item: QueueItem) -> None:
        try:
            result = await self._processor(item.request, item.progress)
        except asyncio.CancelledError:
            item.future.cancel()
            raise
        except Exception as e:
            if not item.future.done():
                item.future.set_exception(e)
        else:
            if not item.future.done():
                item.future.set_result(result)
        finally:
            self._active -= 1
            if self._pending:
                asyncio.get_running_loop().call_later(self.delay, self._pump)

    def clear_queue(self) -> int:
        """Fail every item that has not started yet. Returns how many were dropped."""
        dropped = 0
        while self._pending:
            item = self._pending.popleft()
            if not item.future.done():
                item.future.set_exception(QueueClearedError("Queue cleared"))
                dropped += 1
        if dropped:
            logger.info("Cleared %d queued OCR item(s)", dropped)
        return dropped

    async def join(self) -> None:
        """Wait until every started item has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
