"""CLI main entry point."""

import click

from .commands.diagnostics import diagnostics
from .commands.doctor import doctor
from .commands.down import down
from .commands.status import status
from .commands.up import up


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Write logs to this file")
@click.version_option(package_name="kindplane", prog_name="kindplane")
@click.pass_context
def cli(ctx: click.Context, verbose: int, log_file: str | None) -> None:
    """Bootstrap local Kind clusters with Crossplane, providers and charts."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file


cli.add_command(up)
cli.add_command(down)
cli.add_command(status)
cli.add_command(diagnostics)
cli.add_command(doctor)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
