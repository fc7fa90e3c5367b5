"""``kindplane down``: delete the cluster and its local registry."""

from __future__ import annotations

import asyncio
import sys

import click

from ..cluster import KindClusterProvider
from ..config import Config, load_config
from ..errors import ConfigError, KindplaneError
from ..registry import LocalRegistry
from ..shared.logging import configure_logging


async def _down(config: Config, keep_registry: bool) -> list[str]:
    done = []
    provider = KindClusterProvider()
    name = config.cluster.name
    if await provider.exists(name):
        await provider.delete(name)
        done.append(f"Cluster '{name}' deleted.")
    else:
        done.append(f"Cluster '{name}' not found.")

    registry = config.cluster.registry
    if registry.enabled and not (keep_registry or registry.persistent):
        await LocalRegistry(registry).remove()
        done.append(f"Registry '{registry.name}' removed.")
    return done


@click.command()
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False), help="Config file path")
@click.option("--keep-registry", is_flag=True, help="Leave the local registry container running")
@click.pass_context
def down(ctx: click.Context, config_path: str | None, keep_registry: bool) -> None:
    """Delete the Kind cluster and the local registry."""
    ctx.ensure_object(dict)
    configure_logging("debug" if ctx.obj.get("verbose", 0) >= 2 else "warning", ctx.obj.get("log_file"))
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    try:
        messages = asyncio.run(_down(config, keep_registry))
    except KindplaneError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    for message in messages:
        click.echo(f"✓ {message}")
