"""``kindplane status``: show the cluster, Crossplane and provider health."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..bootstrap.events import PodSummary
from ..bootstrap.interfaces import ClusterProvider, KubeClient, ProviderStatus
from ..cluster import KindClusterProvider, KubectlClient, pod_is_ready, summarize_pod
from ..config import Config, load_config
from ..crossplane import CROSSPLANE_POD_SELECTOR, CrossplaneProviderInstaller
from ..errors import ConfigError, KindplaneError
from ..shared.logging import configure_logging, get_logger
from .up import DURATION

logger = get_logger(__name__)

PACKAGE_WIDTH = 35


@dataclass
class ClusterStatus:
    """Point-in-time view of a kindplane cluster."""

    name: str
    context: str
    exists: bool = False
    crossplane_installed: bool = False
    crossplane_ready: bool = False
    crossplane_version: str = ""
    crossplane_error: str = ""
    pods: list[PodSummary] = field(default_factory=list)
    providers: list[ProviderStatus] = field(default_factory=list)
    providers_error: str = ""


def _image_tag(pod: dict) -> str:
    containers = pod.get("spec", {}).get("containers", []) or []
    image = containers[0].get("image", "") if containers else ""
    name, _, tag = image.rpartition(":")
    return tag if name and "/" not in tag else ""


async def gather_status(config: Config, cluster: ClusterProvider, kube: KubeClient) -> ClusterStatus:
    """Read cluster, Crossplane and provider state.

    Only a failure to check for the cluster itself raises; Crossplane and
    provider lookups degrade to an error message on the result.
    """
    status = ClusterStatus(name=config.cluster.name, context=config.cluster.context_name)
    status.exists = await cluster.exists(status.name)
    if not status.exists:
        return status

    try:
        pods = await kube.list_pods(config.crossplane.namespace, CROSSPLANE_POD_SELECTOR)
    except Exception as e:
        logger.warning("Crossplane status unavailable", error=str(e))
        status.crossplane_error = str(e)
    else:
        status.crossplane_installed = bool(pods)
        status.crossplane_ready = bool(pods) and all(pod_is_ready(p) for p in pods)
        status.crossplane_version = _image_tag(pods[0]) if pods else ""
        status.pods = [summarize_pod(p) for p in pods]

    try:
        status.providers = await CrossplaneProviderInstaller(kube).get_status()
    except Exception as e:
        logger.warning("Provider status unavailable", error=str(e))
        status.providers_error = str(e)
    return status


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


def render_status(status: ClusterStatus, console: Console, detailed: bool = False) -> None:
    console.print("[bold]Cluster[/bold]")
    if not status.exists:
        console.print("  Status:    [red]✗ not found[/red]")
        console.print("\nRun 'kindplane up' to create the cluster.")
        return
    console.print(f"  Name:      {escape(status.name)}")
    console.print("  Status:    [green]✓ running[/green]")
    console.print(f"  Context:   [cyan]{escape(status.context)}[/cyan]")

    console.print("\n[bold]Crossplane[/bold]")
    if status.crossplane_error:
        console.print(f"  [red]✗ Failed to get status: {escape(status.crossplane_error)}[/red]")
    elif not status.crossplane_installed:
        console.print("  Installed: [dim]no[/dim]")
    else:
        console.print("  Installed: [green]✓ yes[/green]")
        if status.crossplane_version:
            console.print(f"  Version:   {escape(status.crossplane_version)}")
        ready = "[green]✓ yes[/green]" if status.crossplane_ready else "[yellow]! no[/yellow]"
        console.print(f"  Ready:     {ready}")
        if detailed:
            console.print("\n  [dim]Pods:[/dim]")
            for pod in status.pods:
                icon = "[green]✓[/green]" if pod.phase == "Running" else "[yellow]![/yellow]"
                console.print(f"    {icon} {escape(pod.name)} [dim]({pod.phase}, {pod.ready})[/dim]")

    console.print("\n[bold]Providers[/bold]")
    if status.providers_error:
        console.print("  [dim]Unable to fetch provider status[/dim]")
        return
    if not status.providers:
        console.print("  [dim]No providers installed[/dim]")
        return

    table = Table(box=None, padding=(0, 2))
    table.add_column("NAME")
    table.add_column("REVISION")
    table.add_column("PACKAGE")
    table.add_column("STATUS")
    for provider in status.providers:
        if provider.healthy:
            health = "[green]✓ healthy[/green]"
        elif detailed and provider.message:
            health = f"[red]✗ {escape(provider.message)}[/red]"
        else:
            health = "[red]✗ unhealthy[/red]"
        table.add_row(
            escape(provider.name),
            escape(provider.revision),
            escape(_truncate(provider.package, PACKAGE_WIDTH)),
            health,
        )
    console.print(table)


@click.command()
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False), help="Config file path")
@click.option("-d", "--detailed", is_flag=True, help="Include pods and provider messages")
@click.option("--timeout", type=DURATION, default="30s", show_default=True, help="Deadline for status checks")
@click.pass_context
def status(ctx: click.Context, config_path: str | None, detailed: bool, timeout: float) -> None:
    """Show cluster and component status."""
    ctx.ensure_object(dict)
    configure_logging("debug" if ctx.obj.get("verbose", 0) >= 2 else "warning", ctx.obj.get("log_file"))
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    try:
        result = asyncio.run(
            asyncio.wait_for(
                gather_status(
                    config, KindClusterProvider(), KubectlClient(config.cluster.context_name)
                ),
                timeout=timeout,
            )
        )
    except asyncio.TimeoutError:
        click.echo(f"✗ status checks timed out after {timeout:.0f}s", err=True)
        sys.exit(1)
    except KindplaneError as e:
        click.echo(f"✗ Failed to check cluster: {e}", err=True)
        sys.exit(1)
    render_status(result, Console(), detailed)
