# src/pageocr/progress.py
"""
Progress reporting as an async stream.

Producers call ``publish(status, fraction)``; consumers iterate the channel::

    channel = ProgressChannel()
    async for event in channel:
        print(event.percent, event.status)

Fractions are clamped to 0..1 and never go backwards. The stream ends after a
``completed`` or ``failed`` event, or when the consumer calls ``cancel()``.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    status: str
    progress: float
    state: str = RUNNING
    error: Optional[str] = None

    @property
    def percent(self) -> int:
        return int(round(self.progress * 100))

    @property
    def is_terminal(self) -> bool:
        return self.state != RUNNING


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class ProgressSink:
    """Anything that accepts progress updates."""

    def publish(self, status: str, progress: float) -> None:
        raise NotImplementedError

    def scaled(self, start: float, end: float) -> "ProgressSink":
        """A view that maps 0..1 into the [start, end] slice of this sink."""
        return _ScaledProgress(self, start, end)


class _ScaledProgress(ProgressSink):
    def __init__(self, parent: ProgressSink, start: float, end: float):
        self._parent = parent
        self._start = _clamp(start)
        self._end = max(self._start, _clamp(end))

    def publish(self, status: str, progress: float) -> None:
        span = self._end - self._start
        self._parent.publish(status, self._start + span * _clamp(progress))


class ProgressChannel(ProgressSink):
    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._latest = ProgressEvent(status="Pending", progress=0.0)
        self._closed = False
        self._cancelled = False
        self._drained = False

    @property
    def latest(self) -> ProgressEvent:
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, status: str, progress: float) -> None:
        if self._closed or self._cancelled:
            return
        value = max(self._latest.progress, _clamp(progress))
        self._emit(ProgressEvent(status=status, progress=value))

    def complete(self, status: str = "Complete") -> None:
        if self._closed:
            return
        self._emit(ProgressEvent(status=status, progress=1.0, state=COMPLETED))
        self._closed = True

    def fail(self, error: BaseException, status: str = "Failed") -> None:
        if self._closed:
            return
        self._emit(ProgressEvent(
            status=status, progress=self._latest.progress, state=FAILED, error=str(error),
        ))
        self._closed = True

    def cancel(self) -> None:
        """Stop listening. Later updates are dropped and iteration ends."""
        if self._cancelled:
            return
        self._cancelled = True
        self._queue.put_nowait(None)

    def _emit(self, event: ProgressEvent) -> None:
        self._latest = event
        if not self._cancelled:
            self._queue.put_nowait(event)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._drained:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            self._drained = True
            raise StopAsyncIteration
        if event.is_terminal:
            self._drained = True
        return event
