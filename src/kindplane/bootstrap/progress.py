"""Progress reporting from the bootstrap worker.

The executor talks to a ProgressSink and never to a renderer directly.
Two sinks exist:

- ChannelSink: pushes events onto a bounded ProgressChannel consumed by the
  interactive dashboard running concurrently on the same event loop.
- DirectSink: hands each event straight to a synchronous consumer (the
  plain renderer), printing inline as the worker goes.

The worker is the only party that closes a channel.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from ..shared.logging import get_logger
from .events import (
    INDETERMINATE,
    LogLine,
    OperationUpdate,
    PhaseCompleted,
    PhaseFailed,
    PhaseSkipped,
    PhaseStarted,
    PodStatusSnapshot,
    PodSummary,
    ProgressEvent,
)
from .state import ExecutionState

logger = get_logger(__name__)

DEFAULT_CHANNEL_SIZE = 256


class ProgressChannel:
    """Bounded FIFO of progress events, worker -> renderer."""

    def __init__(self, maxsize: int = DEFAULT_CHANNEL_SIZE):
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def full(self) -> bool:
        return self._queue.full()

    def qsize(self) -> int:
        return self._queue.qsize()

    def try_send(self, event: ProgressEvent) -> bool:
        """Enqueue without waiting. Returns False if the channel is full."""
        if self.closed:
            raise RuntimeError("send on closed progress channel")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    async def send(self, event: ProgressEvent) -> None:
        if self.closed:
            raise RuntimeError("send on closed progress channel")
        await self._queue.put(event)

    def close(self) -> None:
        """Mark the channel closed. Buffered events remain receivable."""
        self._closed.set()

    async def receive(self) -> ProgressEvent | None:
        """Next event in FIFO order, or None once closed and drained."""
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self.closed:
            return None

        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closer.cancel()
            if not getter.done():
                # a cancelled getter leaves any item in the queue
                getter.cancel()

        if getter in done:
            return getter.result()
        return self._queue.get_nowait() if not self._queue.empty() else None

    def drain(self) -> list[ProgressEvent]:
        """Remove and return everything currently buffered."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events


class ProgressSink(ABC):
    """Where the executor reports what it is doing."""

    @abstractmethod
    async def emit(self, event: ProgressEvent) -> None:
        """Deliver one event."""

    async def close(self) -> None:
        """Signal that no further events will be emitted."""

    async def phase_started(self, name: str) -> None:
        await self.emit(PhaseStarted(name))

    async def phase_completed(self, name: str, message: str = "") -> None:
        await self.emit(PhaseCompleted(name, message))

    async def phase_skipped(self, name: str, reason: str) -> None:
        await self.emit(PhaseSkipped(name, reason))

    async def phase_failed(self, name: str, error: BaseException | str) -> None:
        await self.emit(PhaseFailed(name, str(error)))

    async def operation(self, step: str, progress: float = INDETERMINATE) -> None:
        await self.emit(OperationUpdate(step, progress))

    async def log(self, text: str) -> None:
        await self.emit(LogLine(text))

    async def pods(self, pods: Iterable[PodSummary]) -> None:
        await self.emit(PodStatusSnapshot(tuple(pods)))


class ChannelSink(ProgressSink):
    """Sink feeding a ProgressChannel.

    A full channel applies back-pressure to the worker until the renderer
    catches up or the run is cancelled; once cancelled, events that do not
    fit are dropped so a departed renderer cannot wedge the worker.
    """

    def __init__(self, channel: ProgressChannel, state: ExecutionState):
        self.channel = channel
        self.state = state
        self.dropped = 0

    async def emit(self, event: ProgressEvent) -> None:
        if self.channel.closed:
            return
        if self.channel.try_send(event):
            return
        if not self.state.cancelled:
            put = asyncio.ensure_future(self.channel.send(event))
            waiter = asyncio.ensure_future(self.state.wait())
            try:
                await asyncio.wait({put, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
                if not put.done():
                    put.cancel()
            if put.done() and not put.cancelled():
                return
        self.dropped += 1
        logger.debug("Dropped progress event", event_type=type(event).__name__)

    async def close(self) -> None:
        self.channel.close()


class DirectSink(ProgressSink):
    """Sink that calls a synchronous consumer inline."""

    def __init__(self, consumer: Callable[[ProgressEvent], None]):
        self.consumer = consumer

    async def emit(self, event: ProgressEvent) -> None:
        self.consumer(event)
