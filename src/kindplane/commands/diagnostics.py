"""``kindplane diagnostics``: inspect cluster components on demand.

Runs the same collector a failed bootstrap phase uses, against a cluster
that already exists, and prints a report for every component with issues.
"""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console

from ..bootstrap.interfaces import ChartInstaller, ClusterProvider, KubeClient
from ..cluster import KindClusterProvider, KubectlClient
from ..config import Config, load_config
from ..diagnostics import (
    Component,
    DiagnosticsCollector,
    DiagnosticsContext,
    DiagnosticsReport,
    default_context,
    render_report,
)
from ..errors import ConfigError, KindplaneError
from ..helm import HelmChartInstaller
from ..shared.logging import configure_logging
from .up import DURATION

COMPONENTS = ("crossplane", "providers", "eso", "helm")
DEFAULT_COMPONENTS = (Component.CROSSPLANE, Component.PROVIDERS)


def build_contexts(
    config: Config,
    component: str | None,
    namespace: str | None,
    release: str | None,
    max_logs: int,
) -> list[DiagnosticsContext]:
    """One collection context per component to inspect.

    Crossplane and providers follow the configured Crossplane namespace. A
    Helm release without ``--namespace`` uses the namespace of the chart of
    the same name in the config.
    """
    components = [Component(component)] if component else list(DEFAULT_COMPONENTS)
    contexts = []
    for comp in components:
        ctx = default_context(comp)
        ctx.max_log_lines = max_logs
        if comp in (Component.CROSSPLANE, Component.PROVIDERS):
            ctx.namespace = config.crossplane.namespace
        if comp == Component.HELM and release:
            ctx.release_name = release
            chart = next((c for c in config.charts if c.name == release), None)
            ctx.namespace = chart.namespace if chart else "default"
        if namespace:
            ctx.namespace = namespace
        contexts.append(ctx)
    return contexts


async def collect_reports(
    config: Config,
    contexts: list[DiagnosticsContext],
    cluster: ClusterProvider,
    kube: KubeClient,
    charts: ChartInstaller,
) -> list[DiagnosticsReport]:
    """Collect a report per context from an existing cluster.

    Raises:
        KindplaneError: The cluster does not exist.
    """
    name = config.cluster.name
    if not await cluster.exists(name):
        raise KindplaneError(f"cluster '{name}' does not exist; run 'kindplane up' first")

    collector = DiagnosticsCollector(kube, charts)
    return [await collector.collect(ctx) for ctx in contexts]


def print_reports(reports: list[DiagnosticsReport], console: Console) -> bool:
    """Print reports that found something. Returns True when any had issues."""
    found = False
    for report in reports:
        if report.has_issues() or report.notes:
            found = found or report.has_issues()
            render_report(report, console)
        else:
            console.print(f"[green]✓[/green] No issues found for component: {report.component.value}")
    if not found:
        console.print("\n[green]✓ All components are functioning correctly.[/green]")
    return found


@click.command()
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False), help="Config file path")
@click.option("--component", type=click.Choice(COMPONENTS), help="Component to diagnose")
@click.option("-n", "--namespace", help="Namespace to inspect")
@click.option("--release", help="Helm release name (for the helm component)")
@click.option("--max-logs", type=click.IntRange(min=1), default=30, show_default=True, help="Log lines per container")
@click.option("--timeout", type=DURATION, default="30s", show_default=True, help="Deadline for collection")
@click.pass_context
def diagnostics(
    ctx: click.Context,
    config_path: str | None,
    component: str | None,
    namespace: str | None,
    release: str | None,
    max_logs: int,
    timeout: float,
) -> None:
    """Collect and display diagnostics for cluster components.

    Examples:

        # Crossplane and its providers
        kindplane diagnostics

        # One Helm release
        kindplane diagnostics --component helm --release ingress -n ingress-nginx
    """
    ctx.ensure_object(dict)
    configure_logging("debug" if ctx.obj.get("verbose", 0) >= 2 else "warning", ctx.obj.get("log_file"))
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    console = Console()
    contexts = build_contexts(config, component, namespace, release, max_logs)
    context = config.cluster.context_name
    console.print(f"[bold]kindplane diagnostics[/bold] [dim]cluster:[/dim] {config.cluster.name}\n")
    try:
        reports = asyncio.run(
            asyncio.wait_for(
                collect_reports(
                    config,
                    contexts,
                    KindClusterProvider(),
                    KubectlClient(context),
                    HelmChartInstaller(context),
                ),
                timeout=timeout,
            )
        )
    except asyncio.TimeoutError:
        click.echo(f"✗ diagnostics timed out after {timeout:.0f}s", err=True)
        sys.exit(1)
    except KindplaneError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    print_reports(reports, console)
