"""Address blocks and candidate enumeration."""

from ipmi_finder.network.address import AddressBlock, enumerate_addresses

__all__ = ["AddressBlock", "enumerate_addresses"]
