"""Non-interactive progress renderer.

Used when stdout is not a terminal (CI, pipes). Prints the phase plan once,
then one line per event. No redraw loop, no key input: besides the worker it
only watches the deadline and the cancellation scope.
"""

from __future__ import annotations

import asyncio

from rich.console import Console
from rich.markup import escape

from ..bootstrap.events import (
    LogLine,
    OperationUpdate,
    PhaseCompleted,
    PhaseFailed,
    PhaseSkipped,
    PhaseStarted,
    PodStatusSnapshot,
    ProgressEvent,
    RunCompleted,
    TimeoutExtended,
)
from ..bootstrap.phases import PhaseStatus, PhaseTracker, format_phase_duration, summary_status
from ..bootstrap.state import CancelReason, ExecutionState
from .outcome import (
    RunOutcome,
    abandoned_event,
    cancelled_event,
    outcome_from_event,
    timed_out_event,
)


class PlainRenderer:
    """Line-per-event printer driving the tracker's printing transitions."""

    def __init__(
        self,
        tracker: PhaseTracker,
        console: Console | None = None,
        cluster_name: str = "",
        config_source: str = "",
    ):
        self.tracker = tracker
        self.console = console or tracker.console
        self.tracker.console = self.console
        self.cluster_name = cluster_name
        self.config_source = config_source
        self.result: RunCompleted | None = None
        self._pods_ready: tuple[int, int] | None = None

    @property
    def outcome(self) -> RunOutcome:
        return outcome_from_event(self.result)

    def print_header(self) -> None:
        cluster = escape(self.cluster_name)
        self.console.print(f"[bold]kindplane up[/bold] [dim]cluster:[/dim] {cluster}")
        if self.config_source:
            self.console.print(f"[dim]config:[/dim] {escape(self.config_source)}")
        self.console.print(f"\nBootstrap plan ({len(self.tracker.phases)} phases):")
        for i, phase in enumerate(self.tracker.phases, 1):
            self.console.print(f"  {i:>2}. {escape(phase.name)}")
        self.console.print()

    def handle(self, event: ProgressEvent) -> None:
        """Print one event. Events after the terminal RunCompleted are ignored."""
        if self.result is not None:
            return

        if isinstance(event, PhaseStarted):
            self.tracker.start_phase(event.name)
        elif isinstance(event, PhaseCompleted):
            self.tracker.complete_phase(event.message)
        elif isinstance(event, PhaseSkipped):
            self.tracker.skip_phase(event.name, event.reason)
        elif isinstance(event, PhaseFailed):
            self.tracker.fail_phase(event.error)
        elif isinstance(event, OperationUpdate):
            if event.step:
                suffix = "" if event.indeterminate else f" ({event.progress:.0%})"
                self.console.print(f"    [dim]→ {escape(event.step)}{suffix}[/dim]")
        elif isinstance(event, LogLine):
            self.console.print(f"    [dim]{escape(event.text)}[/dim]")
        elif isinstance(event, PodStatusSnapshot):
            self._print_pods(event)
        elif isinstance(event, TimeoutExtended):
            self.console.print(f"    Timeout extended to {event.deadline:%H:%M:%S}")
        elif isinstance(event, RunCompleted):
            self.result = event
            self._print_result(event)
        else:
            raise TypeError(f"unhandled progress event: {event!r}")

    def _print_pods(self, event: PodStatusSnapshot) -> None:
        total = len(event.pods)
        running = sum(1 for pod in event.pods if pod.phase == "Running")
        if (running, total) == self._pods_ready:
            return
        self._pods_ready = (running, total)
        self.console.print(f"    [dim]pods running: {running}/{total}[/dim]")

    def _print_result(self, event: RunCompleted) -> None:
        self.console.print()
        if event.success:
            self.console.print(f"[green]✓ {escape(event.message)}[/green]")
            if event.next_step_hint:
                self.console.print(f"\nNext: [cyan]{escape(event.next_step_hint)}[/cyan]")
            return

        self.console.print(f"[red]✗ {escape(event.message)}[/red]")
        if event.error:
            self.console.print(f"  {escape(event.error)}")
        unfinished = [p for p in self.tracker.phases if p.status != PhaseStatus.COMPLETE]
        if unfinished:
            self.console.print("\nPhase summary:")
            for phase in self.tracker.phases:
                duration = format_phase_duration(phase)
                note = summary_status(phase)
                self.console.print(f"  {escape(phase.name):<40} {duration:>8} {escape(note)}")

    async def run(self, worker: asyncio.Task, state: ExecutionState) -> RunOutcome:
        """Print the header, then wait for the worker, the deadline or a cancel.

        Events arrive through a DirectSink while the worker runs. If the
        deadline passes first, a timed-out completion is recorded and the
        execution state is cancelled once. A cancel from outside (a signal
        or a parent scope) ends the wait with a cancelled completion.
        """
        self.print_header()
        interrupted = asyncio.ensure_future(state.wait())
        try:
            while not worker.done():
                await asyncio.wait(
                    {worker, interrupted},
                    timeout=state.remaining(),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if worker.done() or self.result is not None:
                    break
                if state.expired:
                    self.handle(timed_out_event(state.elapsed()))
                    state.cancel(CancelReason.TIMEOUT)
                    break
                if state.cancelled:
                    self.handle(cancelled_event())
                    break
        finally:
            interrupted.cancel()
        if self.result is None:
            self.handle(abandoned_event())
        return self.outcome
