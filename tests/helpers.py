"""Shared test utilities for ipmi-finder tests."""

from __future__ import annotations

import asyncio

from ipmi_finder.transport.probe import ProbeResult


class FakeProbe:
    """Scripted stand-in for the UDP discovery probe.

    Records every address it is asked to probe and the peak number of
    concurrent calls.  When ``gate`` is set to an event, every call waits
    for it before reporting.
    """

    def __init__(
        self,
        responsive: set[str] | frozenset[str] = frozenset(),
        *,
        failing: set[str] | frozenset[str] = frozenset(),
        delay: float = 0.0,
    ) -> None:
        self.responsive = set(responsive)
        self.failing = set(failing)
        self.delay = delay
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []
        self.completed: list[str] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, address: str) -> ProbeResult:
        self.calls.append(address)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        self.completed.append(address)
        if address in self.failing:
            return ProbeResult.failed(address, "dial UDP: unreachable")
        if address in self.responsive:
            return ProbeResult.responsive(address)
        return ProbeResult.not_responsive(address, "awaiting pong: no reply within 200 ms")


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until *predicate* is true."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)
