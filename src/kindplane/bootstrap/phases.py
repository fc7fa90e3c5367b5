"""Phase state machine for the bootstrap sequence.

A run is an ordered list of named phases. Each phase moves
Pending -> Running -> Complete/Failed, or Pending -> Skipped, and never
leaves a terminal status. At most one phase is Running at a time.

The ``mark_*`` methods only change state. The ``*_phase`` methods make the
same transitions and also print a line, for the plain renderer.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from rich.console import Console
from rich.markup import escape


class PhaseStatus(Enum):
    """Status of a single bootstrap phase."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PhaseStatus.COMPLETE, PhaseStatus.SKIPPED, PhaseStatus.FAILED)


@dataclass
class Phase:
    """One named stage of the bootstrap."""

    name: str
    status: PhaseStatus = PhaseStatus.PENDING
    message: str = ""
    skip_reason: str = ""
    error: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    def duration_seconds(self, now: datetime | None = None) -> float | None:
        """Elapsed seconds, or None if the phase never started."""
        if self.start_time is None:
            return None
        end = self.end_time or now or datetime.now()
        return (end - self.start_time).total_seconds()


def format_duration(seconds: float) -> str:
    """Format seconds as ``<1s``, ``42s`` or ``3m 5s``."""
    if seconds < 1:
        return "<1s"
    total = int(seconds)
    if total < 60:
        return f"{total}s"
    return f"{total // 60}m {total % 60}s"


def format_phase_duration(phase: Phase, now: datetime | None = None) -> str:
    """Duration column for a phase; ``-`` when it never ran."""
    seconds = phase.duration_seconds(now)
    if seconds is None:
        return "-"
    return format_duration(seconds)


def summary_status(phase: Phase) -> str:
    """Parenthetical status note used in final summaries.

    Returns an empty string for completed phases.
    """
    if phase.status == PhaseStatus.RUNNING:
        return "(interrupted)"
    if phase.status == PhaseStatus.PENDING:
        return "(not started)"
    if phase.status == PhaseStatus.SKIPPED:
        return f"(skipped: {phase.skip_reason})" if phase.skip_reason else "(skipped)"
    if phase.status == PhaseStatus.FAILED:
        return "(failed)"
    return ""


class PhaseTracker:
    """Ordered phases plus a cursor on the phase currently in progress."""

    def __init__(
        self,
        console: Console | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize an empty tracker.

        Args:
            console: Console used by the printing transitions.
            clock: Time source for phase start/end stamps.
        """
        self.phases: list[Phase] = []
        self.current = -1
        self.console = console or Console()
        self._clock = clock

    # ── Building the plan ──

    def add_phase(self, name: str) -> Phase:
        """Append a Pending phase.

        Raises:
            ValueError: If a phase with this name already exists.
        """
        if self._index(name) >= 0:
            raise ValueError(f"duplicate phase name: {name}")
        phase = Phase(name=name)
        self.phases.append(phase)
        return phase

    def add_phase_if(self, condition: bool, name: str) -> Phase | None:
        """Append a phase only when ``condition`` holds."""
        if not condition:
            return None
        return self.add_phase(name)

    # ── Queries ──

    def phase(self, name: str) -> Phase | None:
        index = self._index(name)
        return self.phases[index] if index >= 0 else None

    def names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.phases)

    def current_phase(self) -> Phase | None:
        if 0 <= self.current < len(self.phases):
            return self.phases[self.current]
        return None

    def has_failed(self) -> bool:
        return any(p.status == PhaseStatus.FAILED for p in self.phases)

    def all_complete(self) -> bool:
        """True when every phase is Complete or Skipped."""
        return all(p.status in (PhaseStatus.COMPLETE, PhaseStatus.SKIPPED) for p in self.phases)

    @property
    def active_count(self) -> int:
        """Number of phases that are not Skipped (the ``n`` in ``[m/n]``)."""
        return sum(1 for p in self.phases if p.status != PhaseStatus.SKIPPED)

    @property
    def active_index(self) -> int:
        """1-based position of the current phase among non-Skipped phases.

        0 before the first phase starts.
        """
        if self.current < 0:
            return 0
        return sum(
            1 for p in self.phases[: self.current + 1] if p.status != PhaseStatus.SKIPPED
        )

    def _index(self, name: str) -> int:
        for i, phase in enumerate(self.phases):
            if phase.name == name:
                return i
        return -1

    def _running(self) -> Phase | None:
        for phase in self.phases:
            if phase.status == PhaseStatus.RUNNING:
                return phase
        return None

    # ── State-only transitions ──

    def mark_running(self, name: str) -> bool:
        """Move a Pending phase to Running and make it current."""
        index = self._index(name)
        if index < 0:
            return False
        phase = self.phases[index]
        if phase.status != PhaseStatus.PENDING or self._running() is not None:
            return False
        phase.status = PhaseStatus.RUNNING
        phase.start_time = self._clock()
        self.current = index
        return True

    def mark_complete(self) -> bool:
        return self.mark_complete_with_message("")

    def mark_complete_with_message(self, message: str) -> bool:
        """Complete the current Running phase."""
        phase = self.current_phase()
        if phase is None or phase.status != PhaseStatus.RUNNING:
            return False
        phase.status = PhaseStatus.COMPLETE
        phase.message = message
        phase.end_time = self._clock()
        return True

    def mark_skipped(self, name: str, reason: str) -> bool:
        """Skip a Pending phase."""
        phase = self.phase(name)
        if phase is None or phase.status != PhaseStatus.PENDING:
            return False
        phase.status = PhaseStatus.SKIPPED
        phase.skip_reason = reason
        return True

    def mark_failed(self, error: BaseException | str) -> bool:
        """Fail the current Running phase."""
        phase = self.current_phase()
        if phase is None or phase.status != PhaseStatus.RUNNING:
            return False
        phase.status = PhaseStatus.FAILED
        phase.error = str(error)
        phase.end_time = self._clock()
        return True

    # ── Printing transitions (plain renderer only) ──

    def start_phase(self, name: str) -> bool:
        if not self.mark_running(name):
            return False
        label = f"[{self.active_index}/{self.active_count}]"
        self.console.print(f"[bold]{label}[/bold] {escape(name)}...")
        return True

    def complete_phase(self, message: str = "") -> bool:
        if not self.mark_complete_with_message(message):
            return False
        phase = self.phases[self.current]
        note = f" [dim]({escape(message)})[/dim]" if message else ""
        duration = format_phase_duration(phase)
        self.console.print(f"  [green]✓[/green] {escape(phase.name)}{note} [dim]{duration}[/dim]")
        return True

    def skip_phase(self, name: str, reason: str) -> bool:
        if not self.mark_skipped(name, reason):
            return False
        self.console.print(f"  [dim]○ {escape(name)} (skipped: {escape(reason)})[/dim]")
        return True

    def fail_phase(self, error: BaseException | str) -> bool:
        if not self.mark_failed(error):
            return False
        phase = self.phases[self.current]
        self.console.print(f"  [red]✗ {escape(phase.name)}: {escape(phase.error or '')}[/red]")
        return True
