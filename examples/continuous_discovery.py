"""Continuous discovery with periodic rescans.

Starts a finder that rescans every 60 seconds, reports the registry
after each completed scan, and looks up one specific controller.
Stop with Ctrl-C.
"""

import asyncio
import contextlib
import logging

from ipmi_finder import FinderConfig, IPMIFinder


async def main() -> None:
    """Watch 10.0.0.0/24 and report changes between scans."""
    config = FinderConfig(cidr="10.0.0.0/24", workers=16, rescan_interval=60.0)
    finder = IPMIFinder(config, logger=logging.getLogger("bmc-watch"))
    await finder.start()
    previous: set[str] = set()
    try:
        async with contextlib.aclosing(finder.completed_cycles()) as cycles:
            async for cycle in cycles:
                current = set(cycle.responsive)
                print(f"scan {cycle.number}: {len(current)} controllers")
                for address in sorted(current - previous):
                    print(f"+ {address}")
                for address in sorted(previous - current):
                    print(f"- {address}")
                previous = current

                host = await finder.find_server("10.0.0.21")
                print(f"10.0.0.21 {'is' if host else 'is not'} an IPMI controller")
    finally:
        await finder.stop()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
