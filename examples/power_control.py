"""Chassis power control of configured machines.

Loads ``config.json``, prints the power state of every configured
machine and powers on the ones that are off.  Requires ``ipmitool``.
"""

import asyncio

from ipmi_finder import MachineService, PowerControlError, load_config


async def main() -> None:
    """Report and fix the power state of every configured machine."""
    config = load_config("config.json")
    service = MachineService(config.servers)

    for server in service.list_machines():
        try:
            status = await service.machine_status(server.name)
        except PowerControlError as exc:
            print(f"{server.name}: unreachable ({exc})")
            continue
        print(f"{server.name}: {status.power_status}")
        if status.power_status == "OFF":
            await service.power_on(server.name)
            print(f"{server.name}: power on sent")


if __name__ == "__main__":
    asyncio.run(main())
