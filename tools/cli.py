"""Click CLI group and global options for the IPMI finder CLI."""

from __future__ import annotations

import click

from tools.commands.power import machines, off, on, status
from tools.commands.scan import scan
from tools.commands.watch import watch
from tools.connection import DEFAULT_LOG_LEVEL, LOG_LEVELS, configure_logging


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    envvar="IPMI_FINDER_CONFIG",
    type=click.Path(dir_okay=False),
    help="Configuration file (JSON).  [default: config.json]",
)
@click.option(
    "--log-level",
    type=click.Choice(list(LOG_LEVELS), case_sensitive=False),
    default=None,
    help="Minimum severity to log.  [default: from config, else WARN]",
)
@click.option(
    "--json",
    "use_json",
    is_flag=True,
    default=False,
    help="Output JSON instead of table.",
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    log_level: str | None,
    use_json: bool,
    verbose: bool,
) -> None:
    """Discover IPMI controllers and control machine power."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["use_json"] = use_json
    # The configuration file may still choose the level when it is loaded
    ctx.obj["log_level_from_config"] = log_level is None and not verbose

    if verbose:
        configure_logging("DEBUG")
    else:
        configure_logging(log_level.upper() if log_level else DEFAULT_LOG_LEVEL)


# Register commands
cli.add_command(scan)
cli.add_command(watch)
cli.add_command(machines)
cli.add_command(status)
cli.add_command(on)
cli.add_command(off)


if __name__ == "__main__":
    cli()
