"""Dashboard state machine for the interactive renderer.

DashboardModel holds everything the live view shows and changes only in
``update``. ``update`` performs no I/O: it returns an Effect telling the
runner whether to redraw, quit, cancel the run or try to extend the
deadline. Rendering lives in ``view.py``; driving the loop in
``interactive.py``.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

from ..bootstrap.events import (
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
from ..bootstrap.phases import PhaseTracker
from ..bootstrap.state import EXTEND_THRESHOLD_SECONDS, CancelReason
from .outcome import RunOutcome, cancelled_event, outcome_from_event, timed_out_event

# Visible log rows, and how many screens of history are kept for scroll-back
LOG_VISIBLE_LINES = 15
LOG_HISTORY_MULTIPLIER = 10
LOG_HISTORY_LINES = LOG_VISIBLE_LINES * LOG_HISTORY_MULTIPLIER

QUIT_KEYS = ("q", "ctrl+c")


@dataclass(frozen=True)
class KeyPress:
    """A key from the terminal, normalised (``q``, ``up``, ``ctrl+c``...)."""

    key: str


@dataclass(frozen=True)
class Tick:
    """Once-a-second clock reading from the execution state."""

    remaining: float | None
    elapsed: float


@dataclass(frozen=True)
class Frame:
    """Animation frame for the spinner."""


@dataclass(frozen=True)
class Interrupted:
    """The execution state was cancelled from outside the dashboard."""


DashboardMessage = Union[ProgressEvent, KeyPress, Tick, Frame, Interrupted]


@dataclass(frozen=True)
class Effect:
    """What the runner must do after an update."""

    redraw: bool = False
    quit: bool = False
    cancel: CancelReason | None = None
    extend: bool = False


@dataclass
class DashboardModel:
    """Everything the dashboard displays."""

    tracker: PhaseTracker
    cluster_name: str = ""
    config_source: str = ""
    extend_increment: float = 300.0
    extend_threshold: float = EXTEND_THRESHOLD_SECONDS

    logs: deque[str] = field(default_factory=lambda: deque(maxlen=LOG_HISTORY_LINES))
    log_offset: int = 0
    auto_scroll: bool = True
    verbose: bool = False
    show_pods: bool = False
    pods: tuple[PodSummary, ...] = ()

    step: str = ""
    progress: float = INDETERMINATE
    spinner_frame: int = 0

    remaining: float | None = None
    elapsed: float = 0.0
    deadline: datetime | None = None
    show_extend: bool = False

    completed: bool = False
    result: RunCompleted | None = None
    quitting: bool = False

    @property
    def outcome(self) -> RunOutcome:
        return outcome_from_event(self.result)

    # ── Log buffer ──

    @property
    def max_log_offset(self) -> int:
        return max(0, len(self.logs) - LOG_VISIBLE_LINES)

    def visible_logs(self) -> list[str]:
        lines = list(self.logs)
        return lines[self.log_offset : self.log_offset + LOG_VISIBLE_LINES]

    def add_log_line(self, line: str) -> None:
        at_capacity = len(self.logs) == self.logs.maxlen
        self.logs.append(line)
        if self.auto_scroll:
            self.log_offset = self.max_log_offset
        elif at_capacity:
            # oldest line fell off; keep the same lines in view
            self.log_offset = max(0, self.log_offset - 1)

    def scroll_up(self, lines: int = 1) -> None:
        self.log_offset = max(0, self.log_offset - lines)
        self.auto_scroll = self.log_offset >= self.max_log_offset

    def scroll_down(self, lines: int = 1) -> None:
        self.log_offset = min(self.max_log_offset, self.log_offset + lines)
        self.auto_scroll = self.log_offset >= self.max_log_offset

    # ── Transitions ──

    def update(self, message: DashboardMessage) -> Effect:
        """Apply one message and report the resulting effect."""
        if isinstance(message, KeyPress):
            return self._on_key(message.key)
        if isinstance(message, Tick):
            return self._on_tick(message)
        if isinstance(message, Frame):
            self.spinner_frame += 1
            return Effect(redraw=not self.completed)
        if isinstance(message, Interrupted):
            if self.completed:
                return Effect()
            self._complete(cancelled_event())
            self.quitting = True
            return Effect(redraw=True, quit=True)
        return self._on_event(message)

    def _on_key(self, key: str) -> Effect:
        if self.completed:
            self.quitting = True
            return Effect(quit=True)

        if key in QUIT_KEYS:
            self._complete(cancelled_event())
            self.quitting = True
            return Effect(redraw=True, quit=True, cancel=CancelReason.USER)
        if key == "v":
            self.verbose = not self.verbose
            return Effect(redraw=True)
        if key == "p":
            self.show_pods = not self.show_pods
            return Effect(redraw=True)
        if key == "e":
            if self.remaining is not None and self.remaining < self.extend_threshold:
                return Effect(extend=True)
            return Effect()
        if key in ("up", "k") and self.verbose:
            self.scroll_up()
            return Effect(redraw=True)
        if key in ("down", "j") and self.verbose:
            self.scroll_down()
            return Effect(redraw=True)
        if key in ("pgup", "ctrl+u") and self.verbose:
            self.scroll_up(LOG_VISIBLE_LINES // 2)
            return Effect(redraw=True)
        if key in ("pgdown", "ctrl+d") and self.verbose:
            self.scroll_down(LOG_VISIBLE_LINES // 2)
            return Effect(redraw=True)
        if key in ("home", "g") and self.verbose:
            self.scroll_up(len(self.logs))
            return Effect(redraw=True)
        if key in ("end", "G") and self.verbose:
            self.scroll_down(len(self.logs))
            return Effect(redraw=True)
        return Effect()

    def _on_tick(self, tick: Tick) -> Effect:
        self.remaining = tick.remaining
        self.elapsed = tick.elapsed
        if self.completed or tick.remaining is None:
            return Effect(redraw=not self.completed)

        self.show_extend = 0 < tick.remaining < self.extend_threshold
        if tick.remaining <= 0:
            self._complete(timed_out_event(tick.elapsed))
            return Effect(redraw=True, quit=True, cancel=CancelReason.TIMEOUT)
        return Effect(redraw=True)

    def _on_event(self, event: ProgressEvent) -> Effect:
        if self.completed:
            return Effect()

        if isinstance(event, PhaseStarted):
            self.tracker.mark_running(event.name)
            self.step = ""
            self.progress = INDETERMINATE
            self.add_log_line(f"Starting: {event.name}")
        elif isinstance(event, PhaseCompleted):
            self.tracker.mark_complete_with_message(event.message)
            note = f" ({event.message})" if event.message else ""
            self.add_log_line(f"Completed: {event.name}{note}")
            self.step = ""
            self.progress = INDETERMINATE
        elif isinstance(event, PhaseSkipped):
            self.tracker.mark_skipped(event.name, event.reason)
            self.add_log_line(f"Skipped: {event.name} ({event.reason})")
        elif isinstance(event, PhaseFailed):
            self.tracker.mark_failed(event.error)
            self.add_log_line(f"Failed: {event.name} - {event.error}")
        elif isinstance(event, OperationUpdate):
            self.step = event.step
            self.progress = event.progress
            if event.step:
                self.add_log_line(f"  {event.step}")
        elif isinstance(event, LogLine):
            self.add_log_line(event.text)
        elif isinstance(event, PodStatusSnapshot):
            self.pods = event.pods
        elif isinstance(event, TimeoutExtended):
            self.deadline = event.deadline
            self.show_extend = False
            self.add_log_line(f"Timeout extended to {event.deadline:%H:%M:%S}")
        elif isinstance(event, RunCompleted):
            self._complete(event)
            return Effect(redraw=True, quit=True)
        else:
            raise TypeError(f"unhandled progress event: {event!r}")
        return Effect(redraw=True)

    def _complete(self, event: RunCompleted) -> None:
        self.result = event
        self.completed = True
        self.show_extend = False
        if event.success:
            self.add_log_line("Bootstrap completed successfully!")
        elif event.error:
            self.add_log_line(f"{event.message}: {event.error}")
        else:
            self.add_log_line(event.message)
