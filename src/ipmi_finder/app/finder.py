"""Continuous IPMI controller discovery.

:class:`IPMIFinder` owns the registry of responsive hosts.  A single
control loop task is its only writer: probe results, scan requests and
stop requests all arrive as messages on one mailbox and are applied in
order.  Each scan cycle collects into its own buffer, and the published
registry is swapped in only once that cycle's probes have all reported,
so readers see either the previous complete scan or the new complete
scan, never a partial one.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeAlias

from ipmi_finder.app.dispatcher import DEFAULT_MAX_IN_FLIGHT, BoundedDispatcher
from ipmi_finder.errors import ConfigurationError, LifecycleError
from ipmi_finder.network.address import AddressBlock
from ipmi_finder.transport.probe import DEFAULT_PROBE_TIMEOUT, IPMI_PORT, ProbeStatus, probe

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from ipmi_finder.transport.probe import ProbeResult

DEFAULT_RESCAN_INTERVAL = 1800.0  # seconds


class LifecycleState(Enum):
    """Lifecycle of an :class:`IPMIFinder`."""

    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class FinderConfig:
    """Configuration for an :class:`IPMIFinder`.

    The address block is deliberately not validated here: a malformed
    ``cidr`` only empties the scan cycles that use it.
    """

    cidr: str
    workers: int = DEFAULT_MAX_IN_FLIGHT
    rescan_interval: float = DEFAULT_RESCAN_INTERVAL  # seconds
    port: int = IPMI_PORT
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT  # seconds

    def __post_init__(self) -> None:
        if self.workers < 1:
            msg = f"workers must be >= 1, got {self.workers}"
            raise ConfigurationError(msg)
        if self.rescan_interval <= 0:
            msg = f"rescan_interval must be > 0, got {self.rescan_interval}"
            raise ConfigurationError(msg)
        if not 0 < self.port <= 0xFFFF:
            msg = f"port must be 1-65535, got {self.port}"
            raise ConfigurationError(msg)
        if self.probe_timeout <= 0:
            msg = f"probe_timeout must be > 0, got {self.probe_timeout}"
            raise ConfigurationError(msg)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "cidr": self.cidr,
            "workers": self.workers,
            "rescan_interval": self.rescan_interval,
            "port": self.port,
            "probe_timeout": self.probe_timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FinderConfig:
        """Reconstruct from JSON-friendly dict."""
        return cls(
            cidr=data["cidr"],
            workers=data.get("workers", DEFAULT_MAX_IN_FLIGHT),
            rescan_interval=data.get("rescan_interval", DEFAULT_RESCAN_INTERVAL),
            port=data.get("port", IPMI_PORT),
            probe_timeout=data.get("probe_timeout", DEFAULT_PROBE_TIMEOUT),
        )


@dataclass(frozen=True, slots=True)
class DiscoveredHost:
    """A management controller that answered the discovery probe."""

    address: str
    port: int = IPMI_PORT

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"address": self.address, "port": self.port}


@dataclass
class ScanCycle:
    """Bookkeeping for one pass over the address block."""

    number: int
    started_at: float
    finished_at: float | None = None
    launched: int = 0
    dispatched: int = 0
    responsive: list[str] = field(default_factory=list)
    not_responsive: int = 0
    failed: int = 0
    aborted: bool = False
    completed: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def reported(self) -> int:
        """Number of probes that have reported an outcome."""
        return len(self.responsive) + self.not_responsive + self.failed

    @property
    def in_flight(self) -> int:
        """Probes started but not yet reported."""
        return self.launched - self.reported

    @property
    def is_complete(self) -> bool:
        return self.completed.is_set()

    @property
    def duration(self) -> float | None:
        """Wall-clock seconds the cycle took, once finished."""
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "number": self.number,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "dispatched": self.dispatched,
            "responsive": list(self.responsive),
            "not_responsive": self.not_responsive,
            "failed": self.failed,
            "aborted": self.aborted,
        }


# --- Control loop messages ---


@dataclass(frozen=True, slots=True)
class _ProbeReport:
    cycle: ScanCycle
    result: ProbeResult


@dataclass(frozen=True, slots=True)
class _CycleDrained:
    cycle: ScanCycle
    dispatched: int
    expected: int


@dataclass(frozen=True, slots=True)
class _ScanRequested:
    reason: str


@dataclass(frozen=True, slots=True)
class _StopRequested:
    pass


_Message: TypeAlias = _ProbeReport | _CycleDrained | _ScanRequested | _StopRequested


class IPMIFinder:
    """Discovers IPMI controllers in an address block and keeps rescanning.

    Usage::

        finder = IPMIFinder(FinderConfig(cidr="10.0.0.0/24", workers=16))
        await finder.start()
        hosts = await finder.list_servers()  # waits for the running scan
        ...
        await finder.stop()
    """

    def __init__(
        self,
        config: FinderConfig,
        *,
        probe_func: Callable[[str], Awaitable[ProbeResult]] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialise the finder.

        :param config: Scan configuration.
        :param probe_func: Coroutine function probing one address.
            Defaults to the UDP discovery probe using ``config.port`` and
            ``config.probe_timeout``.
        :param logger: Logger for scan and lifecycle events.  Defaults to
            this module's logger.
        """
        self._config = config
        self._probe = probe_func or functools.partial(
            probe, port=config.port, timeout=config.probe_timeout
        )
        self._log = logger or logging.getLogger(__name__)
        self._state = LifecycleState.STOPPED
        self._mailbox: asyncio.Queue[_Message] | None = None
        self._halt: asyncio.Event | None = None
        self._ready: asyncio.Event | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._ticker_task: asyncio.Task[None] | None = None
        self._cycle_task: asyncio.Task[None] | None = None
        self._stop_task: asyncio.Task[None] | None = None
        self._subscribers: set[asyncio.Queue[ScanCycle | None]] = set()
        self._registry: tuple[str, ...] = ()
        self._current: ScanCycle | None = None
        self._last_cycle: ScanCycle | None = None
        self._cycle_count = 0

    @property
    def config(self) -> FinderConfig:
        """The scan configuration."""
        return self._config

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is LifecycleState.RUNNING

    @property
    def last_cycle(self) -> ScanCycle | None:
        """The most recently completed, non-aborted scan cycle."""
        return self._last_cycle

    @property
    def in_flight(self) -> int:
        """Probes currently outstanding in the running cycle."""
        cycle = self._current
        if cycle is None or cycle.is_complete:
            return 0
        return cycle.in_flight

    async def start(self) -> None:
        """Start scanning.

        Begins the first scan cycle immediately and rescans every
        ``config.rescan_interval`` seconds until :meth:`stop`.

        :raises LifecycleError: If the finder is already running or is
            still stopping.
        """
        if self._state is LifecycleState.RUNNING:
            msg = "IPMI finder already started"
            raise LifecycleError(msg)
        if self._stop_task is not None:
            msg = "IPMI finder still stopping"
            raise LifecycleError(msg)
        self._mailbox = asyncio.Queue()
        self._halt = asyncio.Event()
        self._ready = asyncio.Event()
        self._registry = ()
        self._current = None
        self._last_cycle = None
        self._state = LifecycleState.RUNNING
        self._mailbox.put_nowait(_ScanRequested("start"))
        self._loop_task = asyncio.create_task(self._control_loop())
        self._ticker_task = asyncio.create_task(self._ticker())
        self._log.info(
            "IPMI finder started on %s (workers=%d, rescan every %ss)",
            self._config.cidr,
            self._config.workers,
            self._config.rescan_interval,
        )
        await self._ready.wait()

    async def stop(self) -> None:
        """Stop scanning.

        No further cycles are started.  A cycle in progress admits no new
        candidates; probes already running finish and report, then the
        control loop exits.  An interrupted cycle is not published.
        Every caller, including concurrent ones, returns only once the
        control loop has exited.  Calling ``stop()`` on a stopped finder
        is a no-op.
        """
        task = self._stop_task
        if task is None:
            if self._state is LifecycleState.STOPPED:
                return
            self._state = LifecycleState.STOPPED
            if self._halt is not None:
                self._halt.set()
            task = self._stop_task = asyncio.create_task(self._shutdown())
        await asyncio.shield(task)

    async def _shutdown(self) -> None:
        try:
            if self._ticker_task is not None:
                self._ticker_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._ticker_task
                self._ticker_task = None
            assert self._mailbox is not None
            self._mailbox.put_nowait(_StopRequested())
            if self._loop_task is not None:
                await self._loop_task
                self._loop_task = None
            if self._cycle_task is not None:
                await self._cycle_task
                self._cycle_task = None
            self._log.info("IPMI finder stopped")
        finally:
            self._stop_task = None

    async def __aenter__(self) -> IPMIFinder:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def request_scan(self) -> None:
        """Ask for a scan cycle now instead of waiting for the next tick.

        Ignored (with a warning) if a cycle is already in progress.

        :raises LifecycleError: If the finder is not running.
        """
        if self._state is not LifecycleState.RUNNING or self._mailbox is None:
            msg = "IPMI finder not running"
            raise LifecycleError(msg)
        self._mailbox.put_nowait(_ScanRequested("request"))

    async def list_servers(self) -> list[str]:
        """Return the addresses that answered the last complete scan.

        Blocks until the cycle in progress (if any) has drained, then
        returns that cycle's responsive hosts in discovery order.  The
        order within a cycle is the probe completion order.

        :raises LifecycleError: If the finder has never been started.
        """
        if self._mailbox is None:
            msg = "IPMI finder not started"
            raise LifecycleError(msg)
        cycle = self._current
        if cycle is not None:
            await cycle.completed.wait()
        return list(self._registry)

    async def find_server(self, address: str) -> DiscoveredHost | None:
        """Look up a responsive host by exact address.

        Waits like :meth:`list_servers`.
        """
        for server in await self.list_servers():
            if server == address:
                return DiscoveredHost(address=server, port=self._config.port)
        return None

    async def completed_cycles(self) -> AsyncIterator[ScanCycle]:
        """Yield every scan cycle published from now on, in order.

        Interrupted cycles are not yielded.  Cycles that complete while
        the consumer is busy are queued, so none is missed.  Iteration
        ends when the finder stops.

        Usage::

            async with contextlib.aclosing(finder.completed_cycles()) as cycles:
                async for cycle in cycles:
                    print(cycle.number, cycle.responsive)

        :raises LifecycleError: If the finder is not running.
        """
        if self._state is not LifecycleState.RUNNING:
            msg = "IPMI finder not running"
            raise LifecycleError(msg)
        queue: asyncio.Queue[ScanCycle | None] = asyncio.Queue()
        self._subscribers.add(queue)
        try:
            while (cycle := await queue.get()) is not None:
                yield cycle
        finally:
            self._subscribers.discard(queue)

    # --- Control loop (sole writer of the registry) ---

    async def _control_loop(self) -> None:
        assert self._mailbox is not None
        mailbox = self._mailbox
        stopping = False
        while True:
            message = await mailbox.get()
            match message:
                case _ProbeReport(cycle=cycle, result=result):
                    self._record(cycle, result)
                case _CycleDrained(cycle=cycle, dispatched=dispatched, expected=expected):
                    self._complete(cycle, dispatched, expected)
                    if stopping:
                        break
                case _ScanRequested(reason=reason):
                    if self._state is LifecycleState.RUNNING:
                        self._begin_cycle(reason)
                    if self._ready is not None:
                        self._ready.set()
                case _StopRequested():
                    stopping = True
                    if self._current is None or self._current.is_complete:
                        break
        for queue in self._subscribers:
            queue.put_nowait(None)
        self._log.debug("IPMI finder control loop exited")

    def _begin_cycle(self, reason: str) -> None:
        current = self._current
        if current is not None and not current.is_complete:
            self._log.warning(
                "IPMI scan %d still running, skipping %s rescan", current.number, reason
            )
            return
        self._cycle_count += 1
        cycle = ScanCycle(number=self._cycle_count, started_at=time.time())
        self._current = cycle
        self._log.debug("IPMI scan %d starting (%s)", cycle.number, reason)
        self._cycle_task = asyncio.create_task(self._run_cycle(cycle))

    def _record(self, cycle: ScanCycle, result: ProbeResult) -> None:
        match result.status:
            case ProbeStatus.RESPONSIVE:
                cycle.responsive.append(result.address)
                self._log.debug("IPMI scan %d: found %s", cycle.number, result.address)
            case ProbeStatus.NOT_RESPONSIVE:
                cycle.not_responsive += 1
            case ProbeStatus.FAILED:
                cycle.failed += 1

    def _complete(self, cycle: ScanCycle, dispatched: int, expected: int) -> None:
        cycle.dispatched = dispatched
        cycle.finished_at = time.time()
        cycle.aborted = dispatched < expected
        if cycle.aborted:
            self._log.info(
                "IPMI scan %d interrupted after %d/%d candidates, keeping previous results",
                cycle.number,
                dispatched,
                expected,
            )
        else:
            self._registry = tuple(cycle.responsive)
            self._last_cycle = cycle
            for queue in self._subscribers:
                queue.put_nowait(cycle)
            self._log.info(
                "IPMI scan %d complete: %d/%d responsive (%d failed) in %.2fs",
                cycle.number,
                len(cycle.responsive),
                dispatched,
                cycle.failed,
                cycle.duration or 0.0,
            )
        cycle.completed.set()

    # --- Cycle and timer tasks (never touch the registry) ---

    async def _run_cycle(self, cycle: ScanCycle) -> None:
        assert self._mailbox is not None
        mailbox = self._mailbox

        def admitted(address: str) -> None:
            cycle.launched += 1

        def report(result: ProbeResult) -> None:
            mailbox.put_nowait(_ProbeReport(cycle, result))

        dispatched = 0
        expected = 0
        try:
            block = AddressBlock.parse(self._config.cidr)
        except ConfigurationError as exc:
            self._log.error("IPMI scan %d - parse CIDR: %s", cycle.number, exc)
            mailbox.put_nowait(_CycleDrained(cycle, dispatched, expected))
            return
        expected = len(block)
        try:
            dispatcher = BoundedDispatcher(self._probe, self._config.workers)
            dispatched = await dispatcher.dispatch(
                block, report, stop=self._halt, on_dispatch=admitted
            )
        finally:
            mailbox.put_nowait(_CycleDrained(cycle, dispatched, expected))

    async def _ticker(self) -> None:
        assert self._mailbox is not None
        while True:
            await asyncio.sleep(self._config.rescan_interval)
            self._mailbox.put_nowait(_ScanRequested("interval"))
