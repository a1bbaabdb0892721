"""IPv4 address blocks and the candidate address enumerator."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ipmi_finder.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(frozen=True, slots=True)
class AddressBlock:
    """A contiguous IPv4 range expressed as base address + prefix length.

    Host bits in the descriptor are masked off, so ``10.0.0.5/30``
    describes the same block as ``10.0.0.0/30``.  Iterating a block
    yields every address it contains in ascending order, network and
    broadcast addresses included.  Each call to :func:`iter` starts a
    fresh, independent pass.
    """

    network: ipaddress.IPv4Network

    @classmethod
    def parse(cls, cidr: str) -> AddressBlock:
        """Parse a CIDR descriptor such as ``"192.168.1.0/24"``.

        :param cidr: Base address and prefix length separated by ``/``.
        :returns: The parsed block.
        :raises ConfigurationError: If *cidr* is not a valid IPv4 CIDR
            descriptor.  A prefix length is mandatory.
        """
        if not isinstance(cidr, str) or "/" not in cidr:
            msg = f"invalid CIDR address: {cidr!r}"
            raise ConfigurationError(msg)
        try:
            network = ipaddress.ip_network(cidr.strip(), strict=False)
        except ValueError as exc:
            msg = f"invalid CIDR address: {cidr!r}"
            raise ConfigurationError(msg) from exc
        if not isinstance(network, ipaddress.IPv4Network):
            msg = f"only IPv4 address blocks can be scanned, got {cidr!r}"
            raise ConfigurationError(msg)
        return cls(network=network)

    @property
    def first(self) -> str:
        """Lowest address in the block."""
        return str(self.network.network_address)

    @property
    def last(self) -> str:
        """Highest address in the block."""
        return str(self.network.broadcast_address)

    def __len__(self) -> int:
        return self.network.num_addresses

    def __iter__(self) -> Iterator[str]:
        start = int(self.network.network_address)
        for value in range(start, start + self.network.num_addresses):
            yield str(ipaddress.IPv4Address(value))

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        try:
            return ipaddress.IPv4Address(address) in self.network
        except ValueError:
            return False

    def __str__(self) -> str:
        return str(self.network)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "cidr": str(self.network),
            "first": self.first,
            "last": self.last,
            "size": len(self),
        }


def enumerate_addresses(cidr: str) -> Iterator[str]:
    """Return a lazy, ascending sequence of every address in *cidr*.

    The descriptor is parsed eagerly so a malformed block fails here,
    before any candidate is produced.

    :raises ConfigurationError: If *cidr* cannot be parsed.
    """
    return iter(AddressBlock.parse(cidr))
