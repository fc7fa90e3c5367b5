"""Bootstrap orchestration engine.

The phase state machine, progress events and channel, the cancellable
execution state and the readiness poller live here. The executor and the
``run_bootstrap`` entry point are in ``kindplane.bootstrap.executor`` and
``kindplane.bootstrap.run``; they import the adapters, which in turn
import this package, so they are not re-exported.
"""

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
    RunCompleted,
    TimeoutExtended,
)
from .phases import Phase, PhaseStatus, PhaseTracker, format_phase_duration, summary_status
from .poller import PollResult, Readiness, ReadinessPoller
from .progress import ChannelSink, DirectSink, ProgressChannel, ProgressSink
from .state import CancelReason, ExecutionState

__all__ = [
    # Phases
    "Phase",
    "PhaseStatus",
    "PhaseTracker",
    "format_phase_duration",
    "summary_status",
    # Events
    "INDETERMINATE",
    "PodSummary",
    "PhaseStarted",
    "PhaseCompleted",
    "PhaseSkipped",
    "PhaseFailed",
    "OperationUpdate",
    "LogLine",
    "PodStatusSnapshot",
    "TimeoutExtended",
    "RunCompleted",
    "ProgressEvent",
    # Progress delivery
    "ProgressChannel",
    "ProgressSink",
    "ChannelSink",
    "DirectSink",
    # Execution state
    "CancelReason",
    "ExecutionState",
    # Readiness
    "Readiness",
    "PollResult",
    "ReadinessPoller",
]
