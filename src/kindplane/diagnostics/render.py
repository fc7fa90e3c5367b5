"""Rich rendering of diagnostics reports.

Rendering is presentation-only: long messages are truncated on the way
out and the report itself is left untouched.
"""

from __future__ import annotations

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .models import DiagnosticsReport, PodDiagnostic, ProviderDiagnostic, ReleaseDiagnostic

MAX_LINE_WIDTH = 80
LABEL_WIDTH = 14


def truncate(text: str, width: int = MAX_LINE_WIDTH) -> str:
    return text if len(text) <= width else text[:width] + "..."


def _label(text: Text, indent: int, label: str, value: str, style: str = "") -> None:
    text.append(" " * indent)
    text.append(label.ljust(LABEL_WIDTH), style="dim")
    text.append(value, style=style)
    text.append("\n")


def _section(title: str) -> Text:
    text = Text()
    text.append(f"{title}\n", style="bold cyan")
    return text


def render_providers(providers: list[ProviderDiagnostic]) -> Text:
    text = _section("📦 Providers")
    for p in providers:
        icon, style = ("✓", "bold green") if p.healthy else ("✗", "bold red")
        text.append(f"  {icon} {p.name}\n", style=style)
        _label(text, 4, "Package:", p.package, "dim")
        if p.conditions:
            text.append("    Conditions:\n", style="dim")
        for cond in p.conditions:
            if cond.status == "True":
                icon, style = "✓", "green"
            elif cond.status == "False":
                icon, style = "✗", "red"
            else:
                icon, style = "○", "yellow"
            text.append(f"      {icon} ", style=style)
            text.append(cond.type, style="bold")
            text.append(f": {cond.status}\n", style="dim")
            if cond.reason:
                text.append(f"        Reason: {cond.reason}\n", style="dim")
            if cond.message:
                text.append(f"        Message: {truncate(cond.message)}\n", style="dim")
        text.append("\n")
    return text


def _pod_icon(pod: PodDiagnostic) -> tuple[str, str]:
    if pod.phase == "Running":
        return ("✓", "bold green") if pod.ready else ("⚠", "yellow")
    if pod.phase == "Pending":
        return "○", "yellow"
    if pod.phase in ("Failed", "Unknown"):
        return "✗", "bold red"
    if pod.phase == "Succeeded":
        return "✓", "bold green"
    return "•", "dim"


def render_pods(pods: list[PodDiagnostic]) -> Text:
    text = _section("☸ Pods")
    for pod in pods:
        if pod.error:
            text.append(f"  ✗ Error: {pod.error}\n", style="bold red")
            continue

        icon, style = _pod_icon(pod)
        text.append(f"  {icon} {pod.name}", style=style)
        text.append(f" ({pod.namespace})\n", style="dim")
        _label(text, 4, "Phase:", pod.phase)
        if pod.ready_containers != pod.total_containers:
            _label(text, 4, "Ready:", f"{pod.ready_containers}/{pod.total_containers} containers", "yellow")

        for cond in pod.conditions:
            if cond.status != "True" and cond.message:
                text.append(f"    ⚠ {cond.type}: {cond.status}\n", style="yellow")
                text.append(f"      {truncate(cond.message)}\n", style="dim")

        for c in pod.containers:
            if not c.has_issue():
                continue
            text.append(f"    Container: {c.name}\n", style="bold cyan")
            _label(text, 6, "State:", c.state)
            if c.restarts > 0:
                _label(text, 6, "Restarts:", str(c.restarts), "yellow")
            if c.waiting_reason:
                _label(text, 6, "Waiting:", c.waiting_reason, "red")
                if c.waiting_message:
                    text.append(f"        {truncate(c.waiting_message)}\n", style="dim")
            if c.terminated_reason:
                _label(text, 6, "Terminated:", f"{c.terminated_reason} (exit code {c.exit_code})", "red")
                if c.terminated_message:
                    text.append(f"        {truncate(c.terminated_message)}\n", style="dim")
            if c.recent_logs:
                text.append("      Recent Logs:\n", style="bold cyan")
                for line in c.recent_logs:
                    text.append(f"        {truncate(line)}\n", style="dim")
        text.append("\n")
    return text


def render_release(release: ReleaseDiagnostic) -> Text:
    text = _section("⚙ Helm Release")
    _label(text, 2, "Name:", release.name)
    _label(text, 2, "Namespace:", release.namespace)
    _label(text, 2, "Status:", release.status, "bold green" if release.status == "deployed" else "bold red")
    if release.chart:
        _label(text, 2, "Chart:", release.chart, "dim")
    if release.description:
        _label(text, 2, "Description:", truncate(release.description), "dim")
    if release.error:
        _label(text, 2, "Error:", truncate(release.error), "red")
    return text


def build_report_panel(report: DiagnosticsReport) -> Panel:
    """Providers first, then pods, then the release, then collection notes."""
    parts: list[Text] = []
    if report.providers:
        parts.append(render_providers(report.providers))
    if report.pods:
        parts.append(render_pods(report.pods))
    if report.helm_release is not None:
        parts.append(render_release(report.helm_release))
    if report.notes:
        notes = _section("Notes")
        for note in report.notes:
            notes.append(f"  • {truncate(note)}\n", style="yellow")
        parts.append(notes)
    if not parts:
        parts.append(Text("No diagnostics collected.", style="dim"))

    return Panel(
        Group(*parts),
        title=Text(" ✗ DIAGNOSTICS ", style="bold red"),
        title_align="left",
        subtitle=Text(report.component.value, style="dim"),
        border_style="red",
        box=box.ROUNDED,
        padding=(1, 2),
    )


def render_report(report: DiagnosticsReport, console: Console) -> None:
    console.print()
    console.print(build_report_panel(report))
