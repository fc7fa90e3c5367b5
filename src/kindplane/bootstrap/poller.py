"""Readiness polling for bootstrap stages.

Polls a probe until it reports everything ready or the run is cancelled.
Used for Crossplane pod readiness, provider health and the local registry.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..errors import BootstrapCancelled, FatalProbeError
from ..shared.logging import get_logger
from .state import ExecutionState

logger = get_logger(__name__)


@dataclass
class Readiness:
    """Point-in-time answer from a readiness probe."""

    snapshot: Any = None
    all_ready: bool = False


@dataclass
class PollResult:
    """Result of a readiness poll."""

    ready: bool
    snapshot: Any = None
    attempts: int = 0
    elapsed_seconds: float = 0.0


Probe = Callable[[], Awaitable[Readiness]]
AttemptCallback = Callable[[int, Any, str | None], None]


class ReadinessPoller:
    """Poll a probe until all-ready, a fatal error, or cancellation."""

    def __init__(self, interval_seconds: float = 2.0):
        """Initialize readiness poller.

        Args:
            interval_seconds: Seconds between probe invocations.
        """
        self.interval_seconds = interval_seconds

    async def wait_until_ready(
        self,
        probe: Probe,
        state: ExecutionState,
        on_attempt: AttemptCallback | None = None,
    ) -> PollResult:
        """Run ``probe`` now and then every interval until it reports ready.

        Transient probe errors are logged and polling continues; the API
        server is often flaky while a fresh cluster settles. There is no
        attempt limit: the run deadline bounds the wait.

        Args:
            probe: Async callable returning a Readiness.
            state: Execution state observed at every wait.
            on_attempt: Optional callback called with (attempt, snapshot, error)
                       for progress reporting.

        Returns:
            PollResult with the final snapshot.

        Raises:
            BootstrapCancelled: The execution state was cancelled.
            FatalProbeError: The probe reported an unrecoverable condition.
        """
        start = datetime.now()
        attempt = 0

        while True:
            state.raise_if_cancelled()
            attempt += 1
            snapshot: Any = None
            error: str | None = None
            ready = False

            try:
                readiness = await state.guard(probe())
                snapshot = readiness.snapshot
                ready = readiness.all_ready
            except (BootstrapCancelled, FatalProbeError):
                raise
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.warning("Readiness probe failed, retrying", attempt=attempt, error=error)

            if on_attempt:
                on_attempt(attempt, snapshot, error)

            if ready:
                return PollResult(
                    ready=True,
                    snapshot=snapshot,
                    attempts=attempt,
                    elapsed_seconds=(datetime.now() - start).total_seconds(),
                )

            await state.sleep(self.interval_seconds)
