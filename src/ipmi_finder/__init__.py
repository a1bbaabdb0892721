"""ipmi-finder: asynchronous IPMI controller discovery for Python 3.13+.

Typical usage::

    from ipmi_finder import FinderConfig, IPMIFinder

    async with IPMIFinder(FinderConfig(cidr="10.0.0.0/24")) as finder:
        hosts = await finder.list_servers()
"""

__version__ = "0.3.0"

from ipmi_finder.app.finder import (
    DiscoveredHost,
    FinderConfig,
    IPMIFinder,
    LifecycleState,
    ScanCycle,
)
from ipmi_finder.app.power import (
    ChassisControl,
    ChassisPowerStatus,
    IPMIClient,
    IpmitoolClient,
    MachineService,
    MachineStatus,
    ServerConfig,
)
from ipmi_finder.config import AppConfig, load_config
from ipmi_finder.errors import (
    ConfigurationError,
    IPMIFinderError,
    LifecycleError,
    PowerControlError,
    ProbeError,
    ProbeTimeoutError,
    ServerNotFoundError,
)
from ipmi_finder.network.address import AddressBlock, enumerate_addresses
from ipmi_finder.serialization import deserialize, serialize
from ipmi_finder.transport.probe import ProbeResult, ProbeStatus, probe

__all__ = [
    "AddressBlock",
    "AppConfig",
    "ChassisControl",
    "ChassisPowerStatus",
    "ConfigurationError",
    "DiscoveredHost",
    "FinderConfig",
    "IPMIClient",
    "IPMIFinder",
    "IPMIFinderError",
    "IpmitoolClient",
    "LifecycleError",
    "LifecycleState",
    "MachineService",
    "MachineStatus",
    "PowerControlError",
    "ProbeError",
    "ProbeResult",
    "ProbeStatus",
    "ProbeTimeoutError",
    "ScanCycle",
    "ServerConfig",
    "ServerNotFoundError",
    "__version__",
    "deserialize",
    "enumerate_addresses",
    "load_config",
    "probe",
    "serialize",
]
