"""Cancellable execution state for a bootstrap run.

An ExecutionState is a cancellation scope with a deadline attached. The run
creates one per bootstrap, optionally derived from a parent scope (for
example one cancelled by SIGINT). Cancellation is one-shot: once triggered
the state is terminal and cannot be reused.

Every wait inside the worker goes through ``guard`` or ``sleep`` so a user
quit or deadline expiry takes effect at the next suspension point.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import Enum
from typing import TypeVar

from ..errors import BootstrapCancelled, BootstrapTimedOut, KindplaneError

T = TypeVar("T")

# Default run timeout and per-keypress extension
DEFAULT_TIMEOUT_SECONDS = 600.0
DEFAULT_EXTEND_SECONDS = 300.0

# Extension is only honoured when less than this much time remains
EXTEND_THRESHOLD_SECONDS = 120.0


class CancelReason(Enum):
    """Why an execution state was cancelled."""

    USER = "user"
    TIMEOUT = "timeout"
    PARENT = "parent"


class ExecutionState:
    """Derived cancellation scope plus run deadline."""

    def __init__(
        self,
        parent: ExecutionState | None = None,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
        extend_increment: float = DEFAULT_EXTEND_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize execution state.

        Args:
            parent: Scope whose cancellation also cancels this one.
            timeout: Seconds until the deadline; None for no deadline.
            extend_increment: Seconds added by a successful ``extend``.
            clock: Monotonic time source.
        """
        self.parent = parent
        self.extend_increment = extend_increment
        self._clock = clock
        self._event = asyncio.Event()
        self._children: list[ExecutionState] = []
        self.reason: CancelReason | None = None
        self.started_at = clock()
        self.deadline = self.started_at + timeout if timeout is not None else None

        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(CancelReason.PARENT)

    # ── Cancellation ──

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    def cancel(self, reason: CancelReason = CancelReason.USER) -> bool:
        """Trigger cancellation.

        Returns:
            True if this call cancelled the scope, False if it already was.
        """
        if self.reason is not None:
            return False
        self.reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(CancelReason.PARENT)
        return True

    def error(self) -> KindplaneError:
        """The error describing why this scope ended."""
        if self.reason == CancelReason.TIMEOUT:
            return BootstrapTimedOut(elapsed_seconds=self.elapsed())
        return BootstrapCancelled()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise BootstrapCancelled()

    async def wait(self) -> None:
        """Block until the scope is cancelled."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the scope is cancelled first.

        Raises:
            BootstrapCancelled: The scope was cancelled before completion.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise BootstrapCancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        # Let the operation unwind (e.g. kill its subprocess) before reporting
        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled():
            task.exception()
        raise BootstrapCancelled()

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early with BootstrapCancelled on cancellation."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise BootstrapCancelled()

    # ── Deadline ──

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def remaining(self) -> float | None:
        """Seconds until the deadline, floored at zero; None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def can_extend(self, threshold: float = EXTEND_THRESHOLD_SECONDS) -> bool:
        remaining = self.remaining()
        return not self.cancelled and remaining is not None and remaining < threshold

    def extend(
        self,
        increment: float | None = None,
        threshold: float = EXTEND_THRESHOLD_SECONDS,
    ) -> bool:
        """Move the deadline forward.

        Only honoured when less than ``threshold`` seconds remain and the
        scope is still live.

        Returns:
            True if the deadline moved.
        """
        if not self.can_extend(threshold):
            return False
        self.deadline += self.extend_increment if increment is None else increment
        return True

    def deadline_at(self) -> datetime | None:
        """Wall-clock time of the deadline, for display."""
        remaining = self.remaining()
        if remaining is None:
            return None
        return datetime.now() + timedelta(seconds=remaining)
