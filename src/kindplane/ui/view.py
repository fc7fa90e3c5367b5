"""Rich rendering of the dashboard model."""

from __future__ import annotations

from rich import box
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from ..bootstrap.phases import (
    Phase,
    PhaseStatus,
    format_duration,
    format_phase_duration,
    summary_status,
)
from .dashboard import LOG_VISIBLE_LINES, DashboardModel

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

STATUS_ICONS = {
    PhaseStatus.PENDING: ("○", "dim"),
    PhaseStatus.COMPLETE: ("✓", "green"),
    PhaseStatus.SKIPPED: ("⊘", "dim"),
    PhaseStatus.FAILED: ("✗", "red"),
}


def _spinner(model: DashboardModel) -> str:
    return SPINNER_FRAMES[model.spinner_frame % len(SPINNER_FRAMES)]


def _phase_icon(model: DashboardModel, phase: Phase) -> Text:
    if phase.status == PhaseStatus.RUNNING:
        return Text(_spinner(model), style="cyan")
    icon, style = STATUS_ICONS[phase.status]
    return Text(icon, style=style)


def _render_countdown(model: DashboardModel) -> Text:
    text = Text("Timeout: ", style="dim")
    if model.remaining is None:
        text.append("none")
        return text
    if model.remaining <= 0:
        text.append("expired", style="bold red")
        return text
    style = "yellow" if model.remaining < model.extend_threshold else "green"
    text.append(f"{format_duration(model.remaining)} remaining", style=style)
    if model.show_extend:
        minutes = int(model.extend_increment // 60)
        text.append(f" (press 'e' to extend by {minutes}m)", style="bold yellow")
    return text


def render_header(model: DashboardModel) -> Panel:
    lines = Text("kindplane up", style="bold")
    if model.cluster_name:
        lines.append("\nCluster: ", style="dim")
        lines.append(model.cluster_name)
    if model.config_source:
        lines.append("  Config: ", style="dim")
        lines.append(model.config_source)
    lines.append("\n")
    lines.append_text(_render_countdown(model))
    return Panel(lines, box=box.ROUNDED)


def render_phase_table(model: DashboardModel) -> Table:
    tracker = model.tracker
    title = f"Phases [{tracker.active_index}/{tracker.active_count}]"
    table = Table(title=title, box=box.ROUNDED, expand=True, title_justify="left")
    table.add_column("", width=2)
    table.add_column("Phase", ratio=2)
    table.add_column("Time", justify="right", width=8)
    table.add_column("Details", ratio=3, overflow="ellipsis", no_wrap=True)

    for phase in tracker.phases:
        if phase.status == PhaseStatus.FAILED:
            details = Text(phase.error or "", style="red")
        elif phase.status == PhaseStatus.SKIPPED:
            details = Text(phase.skip_reason, style="dim")
        else:
            details = Text(phase.message, style="dim")
        name_style = "bold" if phase.status == PhaseStatus.RUNNING else ""
        table.add_row(
            _phase_icon(model, phase),
            Text(phase.name, style=name_style),
            format_phase_duration(phase),
            details,
        )
    return table


def render_operation(model: DashboardModel) -> Panel | None:
    current = model.tracker.current_phase()
    if current is None or current.status != PhaseStatus.RUNNING:
        return None
    step = model.step or current.name
    if model.progress >= 0:
        body: RenderableType = Group(
            Text(step),
            ProgressBar(total=100, completed=min(model.progress, 1.0) * 100),
        )
    else:
        body = Text.assemble((f"{_spinner(model)} ", "cyan"), step)
    return Panel(body, title="Current operation", title_align="left", box=box.ROUNDED)


def render_logs(model: DashboardModel) -> Panel:
    lines = model.visible_logs()
    body = Text("\n".join(lines)) if lines else Text("No log output yet", style="dim")
    subtitle = None if model.auto_scroll else "scrolled - press end to follow"
    return Panel(
        body,
        title=f"Logs ({len(model.logs)} lines)",
        title_align="left",
        subtitle=subtitle,
        box=box.ROUNDED,
        height=LOG_VISIBLE_LINES + 2,
    )


def render_pods(model: DashboardModel) -> Table:
    table = Table(title="Pods", box=box.ROUNDED, expand=True, title_justify="left")
    table.add_column("Namespace", style="dim")
    table.add_column("Name")
    table.add_column("Ready", justify="right")
    table.add_column("Status")
    table.add_column("Restarts", justify="right")
    if not model.pods:
        table.add_row("", Text("no pods reported", style="dim"), "", "", "")
    for pod in model.pods:
        status_style = "green" if pod.phase in ("Running", "Succeeded") else "yellow"
        table.add_row(
            pod.namespace,
            pod.name,
            pod.ready,
            Text(pod.phase, style=status_style),
            str(pod.restarts),
        )
    return table


def render_summary(model: DashboardModel) -> Panel:
    outcome = model.outcome
    table = Table(box=None, show_header=False, expand=True, padding=(0, 1))
    table.add_column(width=2)
    table.add_column(ratio=3)
    table.add_column(justify="right", width=8)
    table.add_column(ratio=2)
    for phase in model.tracker.phases:
        if phase.status == PhaseStatus.RUNNING:
            icon = Text("◐", style="yellow")
        else:
            icon = _phase_icon(model, phase)
        table.add_row(
            icon,
            Text(phase.name),
            format_phase_duration(phase),
            Text(summary_status(phase), style="dim"),
        )

    style = "green" if outcome.success else "red"
    parts: list[RenderableType] = [Text(outcome.message, style=f"bold {style}")]
    if outcome.error:
        parts.append(Text(outcome.error, style=style))
    parts.append(table)
    if outcome.next_step_hint:
        parts.append(Text.assemble(("Next: ", "dim"), (outcome.next_step_hint, "cyan")))
    return Panel(
        Group(*parts), title="Summary", title_align="left", box=box.ROUNDED, border_style=style
    )


def render_footer(model: DashboardModel) -> Text:
    text = Text(f"Elapsed: {format_duration(model.elapsed)}", style="dim")
    if model.completed:
        return text
    keys = [
        ("v", "compact" if model.verbose else "verbose"),
        ("p", "hide pods" if model.show_pods else "pods"),
    ]
    if model.show_extend:
        keys.append(("e", "extend"))
    if model.verbose:
        keys.append(("↑/↓", "scroll"))
    keys.append(("q", "quit"))
    for key, label in keys:
        text.append("  ·  ", style="dim")
        text.append(key, style="bold")
        text.append(f" {label}", style="dim")
    return text


def render_dashboard(model: DashboardModel) -> Group:
    """Compose the full dashboard for the current model state."""
    parts: list[RenderableType] = [render_header(model), render_phase_table(model)]
    if model.completed:
        parts.append(render_summary(model))
    else:
        operation = render_operation(model)
        if operation is not None:
            parts.append(operation)
    if model.verbose:
        parts.append(render_logs(model))
    if model.show_pods:
        parts.append(render_pods(model))
    parts.append(render_footer(model))
    return Group(*parts)
