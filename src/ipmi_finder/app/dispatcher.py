"""Bounded fan-out of discovery probes.

The dispatcher pulls candidates from an address sequence and runs one
probe task per candidate, never more than ``max_in_flight`` at once.
Enumeration is suspended while the budget is exhausted, so a large
block never materialises more than ``max_in_flight`` pending tasks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ipmi_finder.errors import ConfigurationError
from ipmi_finder.transport.probe import ProbeResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    ProbeFunc = Callable[[str], Awaitable[ProbeResult]]
    ReportFunc = Callable[[ProbeResult], None]
    AdmitFunc = Callable[[str], None]

logger = logging.getLogger(__name__)

DEFAULT_MAX_IN_FLIGHT = 16


class BoundedDispatcher:
    """Runs probes concurrently under a fixed in-flight budget.

    Usage::

        dispatcher = BoundedDispatcher(probe, max_in_flight=16)
        dispatched = await dispatcher.dispatch(block, report=results.append)
    """

    def __init__(self, probe: ProbeFunc, max_in_flight: int = DEFAULT_MAX_IN_FLIGHT) -> None:
        """Initialise the dispatcher.

        :param probe: Coroutine function probing one address.  It should
            return a :class:`ProbeResult` rather than raise.
        :param max_in_flight: Maximum number of concurrent probes.
        :raises ConfigurationError: If *max_in_flight* is less than 1.
        """
        if max_in_flight < 1:
            msg = f"probe concurrency must be >= 1, got {max_in_flight}"
            raise ConfigurationError(msg)
        self._probe = probe
        self._max_in_flight = max_in_flight
        self._in_flight = 0

    @property
    def max_in_flight(self) -> int:
        """The concurrency budget."""
        return self._max_in_flight

    @property
    def in_flight(self) -> int:
        """Number of probes currently running."""
        return self._in_flight

    async def dispatch(
        self,
        candidates: Iterable[str],
        report: ReportFunc,
        stop: asyncio.Event | None = None,
        on_dispatch: AdmitFunc | None = None,
    ) -> int:
        """Probe every candidate exactly once and wait for all probes.

        *report* is called once per probe, in completion order, before
        the probe's slot is released.  The call returns only after every
        dispatched probe has reported.

        :param candidates: Addresses to probe, consumed lazily.
        :param report: Receives each :class:`ProbeResult`.
        :param stop: When set, no further candidates are admitted; probes
            already running are left to finish.
        :param on_dispatch: Called with each address as it is admitted,
            before its probe task first runs.
        :returns: The number of probes dispatched.
        """
        slots = asyncio.Semaphore(self._max_in_flight)
        tasks: set[asyncio.Task[None]] = set()
        dispatched = 0
        for address in candidates:
            await slots.acquire()
            if stop is not None and stop.is_set():
                slots.release()
                logger.debug("Dispatch halted after %d candidates", dispatched)
                break
            self._in_flight += 1
            task = asyncio.create_task(self._run(address, slots, report))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
            dispatched += 1
            if on_dispatch is not None:
                on_dispatch(address)
        if tasks:
            await asyncio.gather(*tasks)
        return dispatched

    async def _run(self, address: str, slots: asyncio.Semaphore, report: ReportFunc) -> None:
        try:
            try:
                result = await self._probe(address)
            except Exception as exc:
                logger.debug("IPMI probe %s raised", address, exc_info=True)
                result = ProbeResult.failed(address, str(exc) or type(exc).__name__)
            report(result)
        finally:
            self._in_flight -= 1
            slots.release()
