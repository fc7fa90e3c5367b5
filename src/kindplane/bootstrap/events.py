"""Progress events sent from the bootstrap worker to a renderer.

Events flow one way only. Renderers consume them in order and keep their
own copy of phase, log and pod state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

# OperationUpdate.progress value for work with no known completion ratio
INDETERMINATE = -1.0


@dataclass(frozen=True)
class PodSummary:
    """One pod row in a status snapshot."""

    name: str
    namespace: str
    phase: str
    ready: str = "0/0"
    restarts: int = 0


@dataclass(frozen=True)
class PhaseStarted:
    name: str


@dataclass(frozen=True)
class PhaseCompleted:
    name: str
    message: str = ""


@dataclass(frozen=True)
class PhaseSkipped:
    name: str
    reason: str = ""


@dataclass(frozen=True)
class PhaseFailed:
    name: str
    error: str = ""


@dataclass(frozen=True)
class OperationUpdate:
    """Sub-step inside the running phase.

    ``progress`` is a ratio in [0, 1], or INDETERMINATE for a spinner.
    """

    step: str
    progress: float = INDETERMINATE

    @property
    def indeterminate(self) -> bool:
        return self.progress < 0


@dataclass(frozen=True)
class LogLine:
    text: str


@dataclass(frozen=True)
class PodStatusSnapshot:
    pods: tuple[PodSummary, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TimeoutExtended:
    deadline: datetime


@dataclass(frozen=True)
class RunCompleted:
    """Terminal event. Renderers derive the run outcome from it."""

    success: bool
    message: str = ""
    error: str | None = None
    next_step_hint: str | None = None
    cancelled: bool = False
    timed_out: bool = False


ProgressEvent = Union[
    PhaseStarted,
    PhaseCompleted,
    PhaseSkipped,
    PhaseFailed,
    OperationUpdate,
    LogLine,
    PodStatusSnapshot,
    TimeoutExtended,
    RunCompleted,
]
