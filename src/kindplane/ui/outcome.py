"""Terminal outcome of a bootstrap run.

Both renderers derive the outcome from the first RunCompleted event they
consume, through the same function, so renderer choice never changes the
result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..bootstrap.events import RunCompleted
from ..errors import BootstrapCancelled, BootstrapTimedOut

SUCCESS_MESSAGE = "Bootstrap completed successfully"
FAILED_MESSAGE = "Bootstrap failed"
CANCELLED_MESSAGE = "Bootstrap cancelled"
TIMED_OUT_MESSAGE = "Bootstrap timed out"


class OutcomeStatus(Enum):
    """How a bootstrap run ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


@dataclass
class RunOutcome:
    """Result handed back to the caller of a bootstrap run."""

    status: OutcomeStatus
    message: str
    error: str | None = None
    next_step_hint: str | None = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED


def outcome_from_event(event: RunCompleted | None) -> RunOutcome:
    """Map the terminal event to an outcome.

    A run that ended without any RunCompleted (the renderer was torn down
    first) counts as cancelled.
    """
    if event is None:
        return RunOutcome(OutcomeStatus.CANCELLED, CANCELLED_MESSAGE, str(BootstrapCancelled()))
    if event.success:
        return RunOutcome(
            OutcomeStatus.SUCCEEDED,
            event.message or SUCCESS_MESSAGE,
            next_step_hint=event.next_step_hint,
        )
    if event.timed_out:
        status = OutcomeStatus.TIMED_OUT
    elif event.cancelled:
        status = OutcomeStatus.CANCELLED
    else:
        status = OutcomeStatus.FAILED
    return RunOutcome(status, event.message or FAILED_MESSAGE, event.error)


def timed_out_event(elapsed_seconds: float) -> RunCompleted:
    """The completion a renderer synthesizes when the deadline passes."""
    return RunCompleted(
        success=False,
        message=TIMED_OUT_MESSAGE,
        error=str(BootstrapTimedOut(elapsed_seconds=elapsed_seconds)),
        timed_out=True,
    )


def abandoned_event() -> RunCompleted:
    """The completion recorded when the worker ends without reporting one."""
    return RunCompleted(
        success=False,
        message=FAILED_MESSAGE,
        error="bootstrap worker exited without reporting a result",
    )


def cancelled_event() -> RunCompleted:
    """The completion a renderer records when the operator quits."""
    return RunCompleted(
        success=False,
        message=CANCELLED_MESSAGE,
        error=str(BootstrapCancelled()),
        cancelled=True,
    )
