"""Unit tests for the bootstrap phase tracker."""

from __future__ import annotations

import io
from datetime import datetime, timedelta

import pytest
from rich.console import Console

from kindplane.bootstrap.phases import (
    Phase,
    PhaseStatus,
    PhaseTracker,
    format_duration,
    format_phase_duration,
    summary_status,
)


def make_tracker(*names: str) -> PhaseTracker:
    tracker = PhaseTracker(console=Console(file=io.StringIO(), width=120))
    for name in names:
        tracker.add_phase(name)
    return tracker


class TestFormatDuration:
    """Tests for duration formatting."""

    def test_sub_second(self):
        """Test durations under a second render as <1s."""
        assert format_duration(0.4) == "<1s"

    def test_seconds(self):
        """Test durations under a minute render in seconds."""
        assert format_duration(42.9) == "42s"

    def test_minutes(self):
        """Test longer durations render as minutes and seconds."""
        assert format_duration(185) == "3m 5s"

    def test_phase_never_started(self):
        """Test a phase that never ran shows a dash."""
        assert format_phase_duration(Phase(name="x")) == "-"

    def test_phase_with_times(self):
        """Test a finished phase uses its own start and end."""
        start = datetime(2024, 1, 1, 12, 0, 0)
        phase = Phase(name="x", start_time=start, end_time=start + timedelta(seconds=65))
        assert format_phase_duration(phase) == "1m 5s"


class TestSummaryStatus:
    """Tests for the summary status notes."""

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (PhaseStatus.RUNNING, "(interrupted)"),
            (PhaseStatus.PENDING, "(not started)"),
            (PhaseStatus.FAILED, "(failed)"),
            (PhaseStatus.COMPLETE, ""),
        ],
    )
    def test_status_notes(self, status, expected):
        """Test each status maps to its note."""
        assert summary_status(Phase(name="x", status=status)) == expected

    def test_skipped_with_reason(self):
        """Test a skip reason is included."""
        phase = Phase(name="x", status=PhaseStatus.SKIPPED, skip_reason="already exists")
        assert summary_status(phase) == "(skipped: already exists)"


class TestPhaseTracker:
    """Tests for PhaseTracker transitions."""

    def test_add_phase_rejects_duplicates(self):
        """Test phase names are unique."""
        tracker = make_tracker("a")
        with pytest.raises(ValueError):
            tracker.add_phase("a")

    def test_add_phase_if(self):
        """Test conditional phases are only added when the condition holds."""
        tracker = make_tracker()
        assert tracker.add_phase_if(False, "skipped") is None
        assert tracker.add_phase_if(True, "kept") is not None
        assert tracker.names() == ("kept",)

    def test_running_then_complete(self):
        """Test the normal Pending -> Running -> Complete path."""
        tracker = make_tracker("a", "b")
        assert tracker.mark_running("a")
        assert tracker.current_phase().name == "a"
        assert tracker.mark_complete_with_message("done")
        phase = tracker.phase("a")
        assert phase.status == PhaseStatus.COMPLETE
        assert phase.message == "done"
        assert phase.end_time is not None

    def test_only_one_running(self):
        """Test a second phase cannot start while one is running."""
        tracker = make_tracker("a", "b")
        tracker.mark_running("a")
        assert not tracker.mark_running("b")
        assert tracker.phase("b").status == PhaseStatus.PENDING

    def test_terminal_status_is_final(self):
        """Test a completed phase never changes status again."""
        tracker = make_tracker("a")
        tracker.mark_running("a")
        tracker.mark_complete()
        assert not tracker.mark_running("a")
        assert not tracker.mark_failed("late error")
        assert not tracker.mark_skipped("a", "late")
        assert tracker.phase("a").status == PhaseStatus.COMPLETE

    def test_skip_only_pending(self):
        """Test only Pending phases can be skipped."""
        tracker = make_tracker("a", "b")
        assert tracker.mark_skipped("b", "already exists")
        tracker.mark_running("a")
        assert not tracker.mark_skipped("a", "nope")

    def test_mark_failed(self):
        """Test failing the running phase records the error."""
        tracker = make_tracker("a")
        tracker.mark_running("a")
        assert tracker.mark_failed(RuntimeError("boom"))
        assert tracker.has_failed()
        assert tracker.phase("a").error == "boom"

    def test_unknown_phase(self):
        """Test transitions on unknown names are rejected."""
        tracker = make_tracker("a")
        assert not tracker.mark_running("missing")
        assert tracker.phase("missing") is None

    def test_all_complete_counts_skipped(self):
        """Test skipped phases count as done."""
        tracker = make_tracker("a", "b")
        tracker.mark_skipped("a", "already exists")
        tracker.mark_running("b")
        tracker.mark_complete()
        assert tracker.all_complete()

    def test_active_index_excludes_skipped(self):
        """Test [m/n] numbering ignores skipped phases."""
        tracker = make_tracker("a", "b", "c")
        assert tracker.active_index == 0
        tracker.mark_skipped("a", "already exists")
        tracker.mark_running("b")
        assert tracker.active_count == 2
        assert tracker.active_index == 1

    def test_clock_stamps(self):
        """Test start and end times come from the injected clock."""
        times = iter([datetime(2024, 1, 1, 0, 0, 0), datetime(2024, 1, 1, 0, 0, 30)])
        tracker = PhaseTracker(console=Console(file=io.StringIO()), clock=lambda: next(times))
        tracker.add_phase("a")
        tracker.mark_running("a")
        tracker.mark_complete()
        assert tracker.phase("a").duration_seconds() == 30


class TestPrintingTransitions:
    """Tests for the printing variants used by the plain renderer."""

    def test_start_and_complete_print(self):
        """Test start prints the counter and complete prints a check mark."""
        tracker = make_tracker("Create Kind cluster", "Connect to cluster")
        tracker.start_phase("Create Kind cluster")
        tracker.complete_phase("Cluster 'dev' created")
        output = tracker.console.file.getvalue()
        assert "[1/2] Create Kind cluster..." in output
        assert "✓ Create Kind cluster (Cluster 'dev' created)" in output

    def test_invalid_transition_prints_nothing(self):
        """Test a rejected transition does not print."""
        tracker = make_tracker("a")
        assert not tracker.complete_phase("nothing running")
        assert tracker.console.file.getvalue() == ""

    def test_fail_and_skip_print(self):
        """Test failure and skip lines."""
        tracker = make_tracker("a", "b")
        tracker.skip_phase("a", "already exists")
        tracker.start_phase("b")
        tracker.fail_phase("helm exited 1")
        output = tracker.console.file.getvalue()
        assert "○ a (skipped: already exists)" in output
        assert "✗ b: helm exited 1" in output
