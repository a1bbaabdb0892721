"""scan command -- one discovery pass over an address block."""

from __future__ import annotations

import click

from ipmi_finder.app.finder import FinderConfig, IPMIFinder, ScanCycle
from ipmi_finder.errors import ConfigurationError
from ipmi_finder.network.address import AddressBlock
from ipmi_finder.transport.probe import DEFAULT_PROBE_TIMEOUT, IPMI_PORT
from tools.connection import run_finder
from tools.formatting import print_error, print_json, print_table


def emit_cycle(cycle: ScanCycle | None, servers: list[str], use_json: bool) -> None:
    """Print the responsive hosts of a completed cycle."""
    if use_json:
        print_json({"servers": servers, "cycle": cycle})
        return
    if not servers:
        click.echo("No IPMI controllers found.")
    else:
        print_table(["Address"], [[address] for address in sorted(servers, key=_address_key)])
    if cycle is not None:
        click.echo(
            f"\nScan {cycle.number}: {len(servers)} responsive of {cycle.dispatched} probed"
            f" ({cycle.failed} failed) in {cycle.duration or 0.0:.2f}s"
        )


def _address_key(address: str) -> tuple[int, ...]:
    return tuple(int(part) for part in address.split("."))


@click.command()
@click.argument("cidr")
@click.option(
    "--workers",
    default=16,
    type=click.IntRange(min=1),
    show_default=True,
    help="Maximum concurrent probes.",
)
@click.option(
    "--timeout",
    default=DEFAULT_PROBE_TIMEOUT,
    type=click.FloatRange(min=0, min_open=True),
    show_default=True,
    help="Probe reply deadline in seconds.",
)
@click.option(
    "--port",
    default=IPMI_PORT,
    type=click.IntRange(1, 65535),
    show_default=True,
    help="Destination UDP port.",
)
@click.pass_context
def scan(ctx: click.Context, cidr: str, workers: int, timeout: float, port: int) -> None:
    """Probe every address in CIDR once and list IPMI controllers.

    Example: scan 192.168.1.0/24 --workers 64
    """
    use_json: bool = ctx.obj["use_json"]
    try:
        AddressBlock.parse(cidr)
    except ConfigurationError as exc:
        print_error(str(exc), use_json)
        ctx.exit(1)

    config = FinderConfig(cidr=cidr, workers=workers, probe_timeout=timeout, port=port)

    async def _scan(finder: IPMIFinder) -> tuple[list[str], ScanCycle | None]:
        servers = await finder.list_servers()
        return servers, finder.last_cycle

    servers, cycle = run_finder(config, _scan)
    emit_cycle(cycle, servers, use_json)
