"""Error types raised by ipmi-finder."""

from __future__ import annotations


class IPMIFinderError(Exception):
    """Base exception for all ipmi-finder errors."""


class ConfigurationError(IPMIFinderError, ValueError):
    """Invalid configuration: a malformed address block, file or value.

    A malformed address block is scoped to a single scan cycle; the
    scanner logs it and carries on with zero candidates.
    """


class ProbeError(IPMIFinderError):
    """A single discovery probe could not complete.

    Covers resolution, socket, send and receive failures.  Probe errors
    are routine while sweeping address space and are converted into a
    :class:`~ipmi_finder.transport.probe.ProbeResult` inside the probe.
    """

    def __init__(self, address: str, reason: str) -> None:
        """Initialise a probe error.

        Args:
            address: Candidate address that was being probed.
            reason: Human-readable failure description.
        """
        self.address = address
        self.reason = reason
        super().__init__(f"{address}: {reason}")


class ProbeTimeoutError(ProbeError):
    """No reply arrived before the probe deadline."""


class LifecycleError(IPMIFinderError, RuntimeError):
    """An operation was invoked in the wrong lifecycle state."""


class ServerNotFoundError(IPMIFinderError, LookupError):
    """No configured machine matches the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"server not found: {name}")


class PowerControlError(IPMIFinderError):
    """The IPMI client failed to query or change a machine's power state."""
