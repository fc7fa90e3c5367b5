"""Failure diagnostics: collection, report model and rendering."""

from .collector import DiagnosticsCollector
from .models import (
    Component,
    Condition,
    ContainerDiagnostic,
    DiagnosticsContext,
    DiagnosticsReport,
    PodDiagnostic,
    ProviderDiagnostic,
    ReleaseDiagnostic,
    default_context,
)
from .render import build_report_panel, render_report
from .sink import ConsoleDiagnosticsSink

__all__ = [
    # Collection
    "DiagnosticsCollector",
    "DiagnosticsContext",
    "default_context",
    # Report
    "Component",
    "Condition",
    "ContainerDiagnostic",
    "DiagnosticsReport",
    "PodDiagnostic",
    "ProviderDiagnostic",
    "ReleaseDiagnostic",
    # Output
    "ConsoleDiagnosticsSink",
    "build_report_panel",
    "render_report",
]
