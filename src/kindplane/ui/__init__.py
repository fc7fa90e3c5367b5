"""Progress renderers: the live dashboard and the plain line printer."""

from .dashboard import DashboardModel, Effect, KeyPress, Tick
from .interactive import InteractiveRenderer
from .outcome import OutcomeStatus, RunOutcome, outcome_from_event
from .plain import PlainRenderer

__all__ = [
    # Dashboard
    "DashboardModel",
    "Effect",
    "KeyPress",
    "Tick",
    "InteractiveRenderer",
    # Plain
    "PlainRenderer",
    # Outcome
    "OutcomeStatus",
    "RunOutcome",
    "outcome_from_event",
]
