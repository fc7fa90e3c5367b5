"""Unit tests for the dashboard state machine."""

from __future__ import annotations

import io
from datetime import datetime

from rich.console import Console

from kindplane.bootstrap.events import (
    LogLine,
    OperationUpdate,
    PhaseCompleted,
    PhaseFailed,
    PhaseSkipped,
    PhaseStarted,
    PodStatusSnapshot,
    PodSummary,
    RunCompleted,
    TimeoutExtended,
)
from kindplane.bootstrap.phases import PhaseStatus, PhaseTracker
from kindplane.bootstrap.state import CancelReason
from kindplane.ui.dashboard import (
    LOG_HISTORY_LINES,
    LOG_VISIBLE_LINES,
    DashboardModel,
    Frame,
    Interrupted,
    KeyPress,
    Tick,
)
from kindplane.ui.outcome import OutcomeStatus
from kindplane.ui.view import render_dashboard


def make_model(*phases: str) -> DashboardModel:
    tracker = PhaseTracker(console=Console(file=io.StringIO()))
    for name in phases or ("Create Kind cluster", "Connect to cluster"):
        tracker.add_phase(name)
    return DashboardModel(tracker=tracker, cluster_name="dev", config_source="kindplane.yaml")


class TestProgressEvents:
    """Tests for applying progress events."""

    def test_phase_lifecycle(self):
        """Test started/completed events drive the tracker and the log."""
        model = make_model()
        model.update(PhaseStarted("Create Kind cluster"))
        assert model.tracker.phase("Create Kind cluster").status == PhaseStatus.RUNNING

        effect = model.update(PhaseCompleted("Create Kind cluster", "created"))
        assert effect.redraw
        assert model.tracker.phase("Create Kind cluster").status == PhaseStatus.COMPLETE
        assert list(model.logs)[-1] == "Completed: Create Kind cluster (created)"

    def test_skip_and_fail(self):
        """Test skipped and failed phases are recorded."""
        model = make_model()
        model.update(PhaseSkipped("Create Kind cluster", "already exists"))
        model.update(PhaseStarted("Connect to cluster"))
        model.update(PhaseFailed("Connect to cluster", "refused"))
        assert model.tracker.phase("Create Kind cluster").status == PhaseStatus.SKIPPED
        assert model.tracker.has_failed()
        assert "Failed: Connect to cluster - refused" in model.logs

    def test_operation_update(self):
        """Test operation updates set the step and progress."""
        model = make_model()
        model.update(OperationUpdate("Installing Helm chart", 0.75))
        assert model.step == "Installing Helm chart"
        assert model.progress == 0.75

    def test_pod_snapshot(self):
        """Test pod snapshots replace the pod list."""
        model = make_model()
        pods = (PodSummary("crossplane-abc", "crossplane-system", "Running", "1/1"),)
        model.update(PodStatusSnapshot(pods))
        assert model.pods == pods

    def test_timeout_extended(self):
        """Test an extension updates the deadline and hides the prompt."""
        model = make_model()
        model.show_extend = True
        deadline = datetime(2024, 1, 1, 12, 30, 0)
        model.update(TimeoutExtended(deadline))
        assert model.deadline == deadline
        assert not model.show_extend
        assert "Timeout extended to 12:30:00" in model.logs

    def test_run_completed_quits(self):
        """Test the terminal event completes the model and quits."""
        model = make_model()
        effect = model.update(RunCompleted(success=True, message="ok", next_step_hint="kubectl get pods"))
        assert effect.quit
        assert model.completed
        assert model.outcome.status == OutcomeStatus.SUCCEEDED
        assert model.outcome.next_step_hint == "kubectl get pods"

    def test_events_after_completion_ignored(self):
        """Test the first terminal event wins."""
        model = make_model()
        model.update(RunCompleted(success=False, message="Phase 'x' failed", error="boom"))
        effect = model.update(RunCompleted(success=True))
        assert effect.redraw is False
        assert model.outcome.status == OutcomeStatus.FAILED
        assert model.outcome.error == "boom"


class TestKeys:
    """Tests for key handling."""

    def test_quit_cancels(self):
        """Test q cancels the run with a user reason."""
        model = make_model()
        effect = model.update(KeyPress("q"))
        assert effect.quit
        assert effect.cancel == CancelReason.USER
        assert model.outcome.status == OutcomeStatus.CANCELLED

    def test_ctrl_c_cancels(self):
        """Test ctrl+c behaves like q."""
        effect = make_model().update(KeyPress("ctrl+c"))
        assert effect.cancel == CancelReason.USER

    def test_any_key_after_completion_quits(self):
        """Test any key dismisses a completed dashboard without cancelling."""
        model = make_model()
        model.update(RunCompleted(success=True))
        effect = model.update(KeyPress("x"))
        assert effect.quit
        assert effect.cancel is None

    def test_toggles(self):
        """Test v and p toggle the log and pod panels."""
        model = make_model()
        model.update(KeyPress("v"))
        model.update(KeyPress("p"))
        assert model.verbose
        assert model.show_pods

    def test_extend_requires_low_remaining(self):
        """Test e only asks for an extension near the deadline."""
        model = make_model()
        model.update(Tick(remaining=500, elapsed=100))
        assert not model.update(KeyPress("e")).extend
        model.update(Tick(remaining=60, elapsed=540))
        assert model.show_extend
        assert model.update(KeyPress("e")).extend

    def test_scrolling_requires_verbose(self):
        """Test scroll keys are ignored unless the log panel is open."""
        model = make_model()
        for i in range(LOG_VISIBLE_LINES + 5):
            model.add_log_line(f"line {i}")
        model.update(KeyPress("up"))
        assert model.auto_scroll

        model.update(KeyPress("v"))
        model.update(KeyPress("up"))
        assert not model.auto_scroll
        assert model.log_offset == model.max_log_offset - 1
        model.update(KeyPress("G"))
        assert model.auto_scroll

    def test_page_keys_scroll_half_a_screen(self):
        """Test page up/down and ctrl+u/ctrl+d move the log by half the visible rows."""
        model = make_model()
        for i in range(LOG_VISIBLE_LINES * 3):
            model.add_log_line(f"line {i}")
        model.update(KeyPress("v"))
        bottom = model.max_log_offset
        half = LOG_VISIBLE_LINES // 2

        assert model.update(KeyPress("pgup")).redraw
        assert model.log_offset == bottom - half
        model.update(KeyPress("ctrl+u"))
        assert model.log_offset == bottom - 2 * half
        assert not model.auto_scroll

        model.update(KeyPress("ctrl+d"))
        model.update(KeyPress("pgdown"))
        assert model.log_offset == bottom
        assert model.auto_scroll


class TestClock:
    """Tests for ticks, frames and interruptions."""

    def test_deadline_tick_times_out(self):
        """Test a tick at zero remaining completes as timed out."""
        model = make_model()
        effect = model.update(Tick(remaining=0, elapsed=600))
        assert effect.quit
        assert effect.cancel == CancelReason.TIMEOUT
        assert model.outcome.status == OutcomeStatus.TIMED_OUT

    def test_tick_without_deadline(self):
        """Test a tick with no deadline never times out."""
        model = make_model()
        effect = model.update(Tick(remaining=None, elapsed=5))
        assert not effect.quit
        assert model.elapsed == 5

    def test_frame_advances_spinner(self):
        """Test frames animate until completion."""
        model = make_model()
        assert model.update(Frame()).redraw
        assert model.spinner_frame == 1
        model.update(RunCompleted(success=True))
        assert not model.update(Frame()).redraw

    def test_interrupted(self):
        """Test an outside cancellation ends the dashboard as cancelled."""
        model = make_model()
        effect = model.update(Interrupted())
        assert effect.quit
        assert effect.cancel is None
        assert model.outcome.status == OutcomeStatus.CANCELLED


class TestLogBuffer:
    """Tests for the bounded log history."""

    def test_history_is_bounded(self):
        """Test old lines fall off once the history is full."""
        model = make_model()
        for i in range(LOG_HISTORY_LINES + 10):
            model.add_log_line(f"line {i}")
        assert len(model.logs) == LOG_HISTORY_LINES
        assert model.logs[0] == "line 10"
        assert model.visible_logs()[-1] == f"line {LOG_HISTORY_LINES + 9}"

    def test_manual_scroll_holds_position(self):
        """Test new lines do not move a manually scrolled view."""
        model = make_model()
        for i in range(LOG_VISIBLE_LINES * 2):
            model.add_log_line(f"line {i}")
        model.scroll_up(5)
        offset = model.log_offset
        model.add_log_line("new")
        assert model.log_offset == offset


class TestView:
    """Tests for rendering the model."""

    def test_render_dashboard(self):
        """Test the dashboard renders in every state without errors."""
        model = make_model()
        console = Console(file=io.StringIO(), width=120)
        console.print(render_dashboard(model))

        model.update(PhaseStarted("Create Kind cluster"))
        model.update(OperationUpdate("Preparing nodes"))
        model.update(LogLine("Node Image: kindest/node:v1.29.2"))
        model.update(KeyPress("v"))
        model.update(KeyPress("p"))
        console.print(render_dashboard(model))

        model.update(RunCompleted(success=False, message="Bootstrap cancelled", cancelled=True))
        console.print(render_dashboard(model))
        output = console.file.getvalue()
        assert "Create Kind cluster" in output
        assert "dev" in output
