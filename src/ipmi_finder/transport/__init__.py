"""IPMI discovery datagram transport."""

from ipmi_finder.transport.probe import (
    DISCOVERY_REQUEST,
    IPMI_PORT,
    ProbeResult,
    ProbeStatus,
    is_discovery_reply,
    probe,
)

__all__ = [
    "DISCOVERY_REQUEST",
    "IPMI_PORT",
    "ProbeResult",
    "ProbeStatus",
    "is_discovery_reply",
    "probe",
]
