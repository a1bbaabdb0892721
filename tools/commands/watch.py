"""watch command -- continuous discovery with periodic rescans."""

from __future__ import annotations

import contextlib

import click

from ipmi_finder.app.finder import FinderConfig, IPMIFinder
from tools.commands.scan import emit_cycle
from tools.connection import load_app_config, run_finder


@click.command()
@click.argument("cidr", required=False)
@click.option(
    "--interval",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds between scans.  [default: from config, else 1800]",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum concurrent probes.  [default: from config, else 16]",
)
@click.option(
    "--cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Exit after this many completed scans.",
)
@click.pass_context
def watch(
    ctx: click.Context,
    cidr: str | None,
    interval: float | None,
    workers: int | None,
    cycles: int | None,
) -> None:
    """Keep scanning CIDR and print the hosts found by each scan.

    Without CIDR, the discovery section of the configuration file is used.
    """
    use_json: bool = ctx.obj["use_json"]
    if cidr is None:
        base = load_app_config(ctx).finder
        if base is None:
            msg = "no CIDR given and the configuration has no discovery section"
            raise click.ClickException(msg)
    else:
        base = FinderConfig(cidr=cidr)

    config = FinderConfig(
        cidr=cidr or base.cidr,
        workers=workers or base.workers,
        rescan_interval=interval or base.rescan_interval,
        port=base.port,
        probe_timeout=base.probe_timeout,
    )

    async def _watch(finder: IPMIFinder) -> None:
        completed = 0
        async with contextlib.aclosing(finder.completed_cycles()) as published:
            async for cycle in published:
                emit_cycle(cycle, list(cycle.responsive), use_json)
                completed += 1
                if cycles is not None and completed >= cycles:
                    break

    with contextlib.suppress(KeyboardInterrupt):
        run_finder(config, _watch)
