"""``kindplane up``: create and bootstrap the cluster.

Loads the config, picks the live dashboard or plain output, wires SIGINT
and SIGTERM to the run's parent scope and maps the outcome to an exit code.
"""

from __future__ import annotations

import asyncio
import re
import signal
import sys

import click
from rich.console import Console

from ..bootstrap.executor import BootstrapOptions
from ..bootstrap.run import run_bootstrap
from ..bootstrap.state import DEFAULT_EXTEND_SECONDS, CancelReason, ExecutionState
from ..config import ENV_VARS, Config, load_config
from ..errors import ConfigError
from ..shared.logging import configure_logging, get_logger
from ..shared.paths import ensure_dirs, get_log_file
from ..ui.outcome import OutcomeStatus, RunOutcome

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)([hms])")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


class DurationParamType(click.ParamType):
    """Durations such as ``90s``, ``10m``, ``1h30m`` or bare seconds."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            return float(value)
        text = str(value).strip().lower()
        try:
            return float(text)
        except ValueError:
            pass
        parts = _DURATION_PART.findall(text)
        if not parts or "".join(n + u for n, u in parts) != text:
            self.fail(f"{value!r} is not a duration (e.g. 90s, 10m, 1h)", param, ctx)
        return float(sum(float(n) * _UNIT_SECONDS[u] for n, u in parts))


DURATION = DurationParamType()


def exit_code(outcome: RunOutcome) -> int:
    if outcome.status == OutcomeStatus.SUCCEEDED:
        return EXIT_OK
    if outcome.status == OutcomeStatus.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_FAILED


def _log_level(verbose: int) -> str:
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return "warning"


def _setup_logging(obj: dict, interactive: bool) -> None:
    log_file = obj.get("log_file")
    if log_file is None and interactive:
        ensure_dirs()
        log_file = get_log_file()
    configure_logging(_log_level(obj.get("verbose", 0)), log_file=log_file)


async def _run_up(
    config: Config, options: BootstrapOptions, interactive: bool, console: Console
) -> RunOutcome:
    parent = ExecutionState(timeout=None)
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, parent.cancel, CancelReason.USER)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handler not supported", signal=sig.name)
    try:
        return await run_bootstrap(
            config, options, parent=parent, interactive=interactive, console=console
        )
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@click.command()
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False), help="Config file path")
@click.option(
    "--timeout",
    type=DURATION,
    envvar=ENV_VARS["timeout"],
    default="10m",
    show_default=True,
    help="Overall deadline for the bootstrap",
)
@click.option("--rollback-on-failure", is_flag=True, help="Delete the cluster if a phase fails")
@click.option("--skip-crossplane", is_flag=True, help="Do not install Crossplane or providers")
@click.option("--skip-providers", is_flag=True, help="Do not install providers")
@click.option("--skip-charts", is_flag=True, help="Do not install configured charts")
@click.option("--skip-compositions", is_flag=True, help="Do not apply compositions")
@click.option("--plain", is_flag=True, help="Plain line output instead of the live dashboard")
@click.option("--show-values", is_flag=True, help="Log merged Helm values for each release")
@click.option("--pull-images", is_flag=True, help="Pull images missing locally before pre-loading")
@click.pass_context
def up(
    ctx: click.Context,
    config_path: str | None,
    timeout: float,
    rollback_on_failure: bool,
    skip_crossplane: bool,
    skip_providers: bool,
    skip_charts: bool,
    skip_compositions: bool,
    plain: bool,
    show_values: bool,
    pull_images: bool,
) -> None:
    """Create a Kind cluster and bootstrap it.

    Examples:

        # Bootstrap from ./kindplane.yaml
        kindplane up

        # CI: plain output, clean up on failure
        kindplane up --plain --rollback-on-failure --timeout 20m
    """
    ctx.ensure_object(dict)
    console = Console()
    interactive = not plain and console.is_terminal and sys.stdin.isatty()
    _setup_logging(ctx.obj, interactive)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(EXIT_FAILED)

    options = BootstrapOptions(
        timeout=timeout,
        extend_increment=DEFAULT_EXTEND_SECONDS,
        rollback_on_failure=rollback_on_failure,
        skip_crossplane=skip_crossplane,
        skip_providers=skip_providers,
        skip_charts=skip_charts,
        skip_compositions=skip_compositions,
        show_values=show_values,
        pull_missing_images=pull_images,
    )
    outcome = asyncio.run(_run_up(config, options, interactive, console))
    sys.exit(exit_code(outcome))
