"""``kindplane doctor``: check the host is ready to run kindplane."""

from __future__ import annotations

import asyncio
import sys

import click

from ..cluster import KindClusterProvider, KubectlClient
from ..config import load_config
from ..doctor import CheckResult, check_cluster, run_checks
from ..errors import ConfigError, KindplaneError
from ..shared.logging import configure_logging, get_logger
from .up import DURATION

logger = get_logger(__name__)


async def _doctor(config_path: str | None) -> list[CheckResult]:
    results = await run_checks()

    # Cluster checks only run when a config names a cluster that exists
    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.debug("No config for cluster checks", error=str(e))
        return results
    try:
        exists = await KindClusterProvider().exists(config.cluster.name)
    except KindplaneError as e:
        logger.debug("Cluster lookup failed", error=str(e))
        return results
    if exists:
        kube = KubectlClient(config.cluster.context_name)
        results.extend(await check_cluster(kube, config.crossplane.namespace))
    return results


def print_results(results: list[CheckResult], quiet: bool = False) -> int:
    """Print check lines and a summary; returns the number of required failures."""
    passed = sum(1 for r in results if r.passed)
    failed = len(results) - passed
    required_failures = sum(1 for r in results if not r.passed and r.required)

    for result in results:
        if result.passed:
            if quiet:
                continue
            click.echo(f"  ✓ {result.name}: {result.message}")
        else:
            icon = "✗" if result.required else "!"
            click.echo(f"  {icon} {result.name}: {result.message}")
        if result.details:
            click.echo(f"    {result.details}")
        if result.suggestion and not result.passed:
            click.echo(f"    → {result.suggestion}")

    click.echo()
    if failed == 0:
        click.echo(f"✓ All {passed} checks passed. Your system is ready.")
    elif required_failures == 0:
        click.echo(f"! {passed}/{len(results)} checks passed ({failed} warnings)")
    else:
        click.echo(f"✗ {passed}/{len(results)} checks passed ({required_failures} failures)")
        click.echo("Fix the required issues before running kindplane.")
    return required_failures


@click.command()
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False), help="Config file path")
@click.option("-q", "--quiet", is_flag=True, help="Only show failures")
@click.option("--timeout", type=DURATION, default="30s", show_default=True, help="Deadline for all checks")
@click.pass_context
def doctor(ctx: click.Context, config_path: str | None, quiet: bool, timeout: float) -> None:
    """Check system requirements and prerequisites.

    Checks Docker, the kind, kubectl and helm binaries, git (optional) and
    free disk space. When the configured cluster exists, also checks the
    Kubernetes API and whether Crossplane is installed.
    """
    ctx.ensure_object(dict)
    configure_logging("debug" if ctx.obj.get("verbose", 0) >= 2 else "warning", ctx.obj.get("log_file"))
    if not quiet:
        click.echo("\nkindplane doctor\n")
    try:
        results = asyncio.run(asyncio.wait_for(_doctor(config_path), timeout=timeout))
    except asyncio.TimeoutError:
        click.echo(f"✗ checks timed out after {timeout:.0f}s", err=True)
        sys.exit(1)
    if print_results(results, quiet):
        sys.exit(1)
