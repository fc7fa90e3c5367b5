"""Console sink for diagnostics reports."""

from __future__ import annotations

from rich.console import Console

from .models import DiagnosticsReport
from .render import render_report


class ConsoleDiagnosticsSink:
    """Prints reports to a rich console.

    With ``defer`` set, reports are held until ``flush()`` so they don't
    collide with a live display that owns the terminal.
    """

    def __init__(self, console: Console | None = None, defer: bool = False):
        self.console = console or Console(stderr=True)
        self.defer = defer
        self.pending: list[DiagnosticsReport] = []

    def report(self, report: DiagnosticsReport) -> None:
        if self.defer:
            self.pending.append(report)
        else:
            render_report(report, self.console)

    def flush(self) -> None:
        pending, self.pending = self.pending, []
        for report in pending:
            render_report(report, self.console)
