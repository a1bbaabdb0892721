"""IPMI discovery probe over asyncio UDP.

A probe sends one fixed RMCP presence request to ``address:623`` and
waits a bounded time for the controller's reply.  The outcome is always
returned as a :class:`ProbeResult`; network errors are routine while
sweeping address space and never propagate out of :func:`probe`.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ipmi_finder.errors import ProbeError, ProbeTimeoutError

logger = logging.getLogger(__name__)

IPMI_PORT = 623
"""UDP port of the RMCP/IPMI-over-LAN service."""

DISCOVERY_REQUEST = bytes.fromhex("06 00 00 06 00 00 11 be 80 00 00 00")
"""RMCP header + ASF presence ping, sent verbatim to every candidate."""

REPLY_BUFFER_SIZE = 28
REPLY_MARKER_OFFSET = 8
REPLY_MARKER = 0x40  # ASF presence pong message type

DEFAULT_PROBE_TIMEOUT = 0.2  # seconds


class ProbeStatus(Enum):
    """Classification of a single probe."""

    RESPONSIVE = "responsive"
    NOT_RESPONSIVE = "not_responsive"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Outcome of probing one candidate address."""

    address: str
    status: ProbeStatus
    reason: str | None = None

    @property
    def is_responsive(self) -> bool:
        """True if the candidate answered with a valid discovery reply."""
        return self.status is ProbeStatus.RESPONSIVE

    @classmethod
    def responsive(cls, address: str) -> ProbeResult:
        return cls(address, ProbeStatus.RESPONSIVE)

    @classmethod
    def not_responsive(cls, address: str, reason: str) -> ProbeResult:
        return cls(address, ProbeStatus.NOT_RESPONSIVE, reason)

    @classmethod
    def failed(cls, address: str, reason: str) -> ProbeResult:
        return cls(address, ProbeStatus.FAILED, reason)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        result: dict[str, Any] = {"address": self.address, "status": self.status.value}
        if self.reason is not None:
            result["reason"] = self.reason
        return result


def is_discovery_reply(data: bytes | bytearray | memoryview) -> bool:
    """Check whether *data* is a valid discovery reply.

    Only the first :data:`REPLY_BUFFER_SIZE` octets of a datagram are
    considered; a reply is valid when the octet at
    :data:`REPLY_MARKER_OFFSET` equals :data:`REPLY_MARKER`.  Replies
    too short to carry that octet are invalid.
    """
    reply = bytes(data[:REPLY_BUFFER_SIZE])
    if len(reply) <= REPLY_MARKER_OFFSET:
        return False
    return reply[REPLY_MARKER_OFFSET] == REPLY_MARKER


class _ProbeProtocol(asyncio.DatagramProtocol):
    """Resolves a future with the first datagram (or error) on a connected UDP socket."""

    def __init__(self, reply: asyncio.Future[bytes]) -> None:
        self._reply = reply

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        if not self._reply.done():
            self._reply.set_result(data[:REPLY_BUFFER_SIZE])

    def error_received(self, exc: Exception) -> None:
        # ICMP port/host unreachable surfaces here on a connected socket
        if not self._reply.done():
            self._reply.set_exception(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if not self._reply.done():
            self._reply.set_exception(exc or ConnectionError("socket closed"))


async def _exchange(address: str, port: int, timeout: float) -> bytes:
    """Send the discovery request and return the raw (truncated) reply.

    :raises ProbeTimeoutError: If nothing arrives within *timeout* seconds.
    :raises ProbeError: On resolution, socket, send or receive failure.
    """
    loop = asyncio.get_running_loop()
    reply: asyncio.Future[bytes] = loop.create_future()
    try:
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _ProbeProtocol(reply),
            remote_addr=(address, port),
            family=socket.AF_INET,
        )
    except OSError as exc:
        raise ProbeError(address, f"dial UDP: {exc}") from exc

    try:
        try:
            transport.sendto(DISCOVERY_REQUEST)
        except OSError as exc:
            raise ProbeError(address, f"ping: {exc}") from exc
        try:
            async with asyncio.timeout(timeout):
                return await reply
        except TimeoutError as exc:
            msg = f"awaiting pong: no reply within {timeout * 1000:.0f} ms"
            raise ProbeTimeoutError(address, msg) from exc
        except OSError as exc:
            raise ProbeError(address, f"awaiting pong: {exc}") from exc
    finally:
        if not reply.done():
            reply.cancel()
        transport.close()


async def probe(
    address: str,
    port: int = IPMI_PORT,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> ProbeResult:
    """Probe one candidate address for an IPMI controller.

    Never retries and never raises for network conditions; the outcome
    is logged at debug level and returned.

    :param address: Dotted-quad IPv4 address to probe.
    :param port: Destination UDP port.
    :param timeout: Reply deadline in seconds.
    :returns: ``RESPONSIVE`` on a valid reply, ``NOT_RESPONSIVE`` on
        silence or an unexpected reply, ``FAILED`` on a network error.
    """
    try:
        reply = await _exchange(address, port, timeout)
    except ProbeTimeoutError as exc:
        logger.debug("IPMI probe %s: %s", address, exc.reason)
        return ProbeResult.not_responsive(address, exc.reason)
    except ProbeError as exc:
        logger.debug("IPMI probe %s: %s", address, exc.reason)
        return ProbeResult.failed(address, exc.reason)

    if not is_discovery_reply(reply):
        logger.debug("IPMI probe %s: server did not pong", address)
        return ProbeResult.not_responsive(address, "unexpected reply")
    logger.debug("IPMI probe %s: pong", address)
    return ProbeResult.responsive(address)
