"""machines/status/on/off commands -- power control of configured machines."""

from __future__ import annotations

import click

from ipmi_finder.app.power import MachineService
from ipmi_finder.errors import PowerControlError, ServerNotFoundError
from tools.connection import load_app_config, run_service
from tools.formatting import print_error, print_json, print_kv, print_table


def _service(ctx: click.Context) -> MachineService:
    return MachineService(load_app_config(ctx).servers)


@click.command()
@click.pass_context
def machines(ctx: click.Context) -> None:
    """List configured machines (credentials are never shown)."""
    use_json: bool = ctx.obj["use_json"]
    servers = _service(ctx).list_machines()
    if use_json:
        print_json([server.to_dict() for server in servers])
        return
    if not servers:
        click.echo("No machines configured.")
        return
    print_table(
        ["Name", "Host", "Port"],
        [[server.name, server.host, server.port] for server in servers],
    )


@click.command()
@click.argument("name")
@click.pass_context
def status(ctx: click.Context, name: str) -> None:
    """Show the chassis power state of machine NAME."""
    use_json: bool = ctx.obj["use_json"]
    service = _service(ctx)
    try:
        result = run_service(service, lambda svc: svc.machine_status(name))
    except ServerNotFoundError as exc:
        print_error(str(exc), use_json)
        ctx.exit(1)
    except PowerControlError as exc:
        print_error(str(exc), use_json)
        ctx.exit(2)
    if use_json:
        print_json(result)
        return
    print_kv(
        [
            ("Name", result.server.name),
            ("Host", f"{result.server.host}:{result.server.port}"),
            ("Power", f"{result.power_status} ({result.power_code:#04x})"),
        ]
    )


def _change_state(ctx: click.Context, name: str, powered: bool) -> None:
    use_json: bool = ctx.obj["use_json"]
    service = _service(ctx)
    action = "on" if powered else "off"
    try:
        if powered:
            run_service(service, lambda svc: svc.power_on(name))
        else:
            run_service(service, lambda svc: svc.power_off(name))
    except ServerNotFoundError as exc:
        print_error(str(exc), use_json)
        ctx.exit(1)
    except PowerControlError as exc:
        print_error(str(exc), use_json)
        ctx.exit(2)
    if use_json:
        print_json({"name": name, "power": action})
    else:
        click.echo(f"{name}: power {action} sent")


@click.command()
@click.argument("name")
@click.pass_context
def on(ctx: click.Context, name: str) -> None:
    """Power machine NAME up."""
    _change_state(ctx, name, powered=True)


@click.command()
@click.argument("name")
@click.pass_context
def off(ctx: click.Context, name: str) -> None:
    """Power machine NAME down."""
    _change_state(ctx, name, powered=False)
