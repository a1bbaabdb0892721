"""One-shot IPMI controller discovery with ipmi-finder.

Sweeps an address block once, waits for the scan to finish and prints
every management controller that answered the discovery ping.
"""

import asyncio
import logging

from ipmi_finder import FinderConfig, IPMIFinder


async def main() -> None:
    """Scan 192.168.1.0/24 with 32 probes in flight."""
    config = FinderConfig(cidr="192.168.1.0/24", workers=32)

    async with IPMIFinder(config) as finder:
        servers = await finder.list_servers()
        cycle = finder.last_cycle

    if not servers:
        print("No IPMI controllers found.")
        return
    print(f"Found {len(servers)} controller(s):")
    for address in servers:
        print(f"  {address}")
    if cycle is not None:
        print(f"Probed {cycle.dispatched} addresses in {cycle.duration or 0.0:.2f}s")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
