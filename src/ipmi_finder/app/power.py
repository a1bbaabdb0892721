"""Machine catalogue and chassis power control.

The session and command protocol of IPMI-over-LAN is delegated to an
external client.  :class:`MachineService` maps machine names from the
configuration to connection parameters, asks an :class:`IPMIClient`
for power state or power changes, and strips credentials from anything
it hands back to callers.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, runtime_checkable

from ipmi_finder.errors import ConfigurationError, PowerControlError, ServerNotFoundError
from ipmi_finder.transport.probe import IPMI_PORT

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)


class ChassisPowerStatus(IntEnum):
    """Power state codes reported for a chassis."""

    OFF = 0x20
    ON = 0x21

    @classmethod
    def describe(cls, code: int) -> str:
        """Return ``"OFF"``, ``"ON"`` or ``"UNKNOWN"`` for a raw power code."""
        try:
            return cls(code).name
        except ValueError:
            return "UNKNOWN"


class ChassisControl(IntEnum):
    """Chassis Control command values (IPMI v2.0 section 28.3)."""

    POWER_DOWN = 0
    POWER_UP = 1
    POWER_CYCLE = 2
    HARD_RESET = 3


_IPMITOOL_POWER_ACTIONS: dict[ChassisControl, str] = {
    ChassisControl.POWER_DOWN: "off",
    ChassisControl.POWER_UP: "on",
    ChassisControl.POWER_CYCLE: "cycle",
    ChassisControl.HARD_RESET: "reset",
}


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """A named machine and the credentials of its management controller."""

    name: str
    host: str
    port: int = IPMI_PORT
    username: str = ""
    password: str = dataclasses.field(default="", repr=False)

    def redacted(self) -> ServerConfig:
        """Return a copy with username and password cleared."""
        return dataclasses.replace(self, username="", password="")

    def to_dict(self, *, include_credentials: bool = False) -> dict[str, Any]:
        """Convert to JSON-friendly dict, without credentials by default."""
        result: dict[str, Any] = {"name": self.name, "host": self.host, "port": self.port}
        if include_credentials:
            if self.username:
                result["username"] = self.username
            if self.password:
                result["password"] = self.password
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerConfig:
        """Reconstruct from JSON-friendly dict.

        :raises ConfigurationError: If a field is missing or has the wrong type.
        """
        try:
            name = data["name"]
            host = data["host"]
        except (KeyError, TypeError) as exc:
            msg = f"server entry needs 'name' and 'host': {data!r}"
            raise ConfigurationError(msg) from exc
        port = data.get("port", IPMI_PORT)
        username = data.get("username", "")
        password = data.get("password", "")
        if not isinstance(name, str) or not isinstance(host, str):
            msg = f"server 'name' and 'host' must be strings: {data!r}"
            raise ConfigurationError(msg)
        if not isinstance(port, int) or isinstance(port, bool) or not 0 < port <= 0xFFFF:
            msg = f"server {name!r}: port must be 1-65535, got {port!r}"
            raise ConfigurationError(msg)
        if not isinstance(username, str) or not isinstance(password, str):
            msg = f"server {name!r}: credentials must be strings"
            raise ConfigurationError(msg)
        return cls(name=name, host=host, port=port, username=username, password=password)


@dataclass(frozen=True, slots=True)
class MachineStatus:
    """A machine together with its reported chassis power state."""

    server: ServerConfig
    power_code: int

    @property
    def power_status(self) -> str:
        return ChassisPowerStatus.describe(self.power_code)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        result = self.server.to_dict()
        result["power_code"] = self.power_code
        result["power_status"] = self.power_status
        return result


@runtime_checkable
class IPMIClient(Protocol):
    """Session-level IPMI client bound to one management controller."""

    async def chassis_power_state(self) -> int:
        """Return the raw chassis power state code.

        :raises PowerControlError: If the controller cannot be queried.
        """
        ...

    async def chassis_control(self, control: ChassisControl) -> None:
        """Issue a Chassis Control command.

        :raises PowerControlError: If the command fails.
        """
        ...


ClientFactory: TypeAlias = "Callable[[ServerConfig], IPMIClient]"


def parse_raw_response(output: str) -> bytes:
    """Parse ``ipmitool raw`` output (space-separated hex octets)."""
    try:
        data = bytes.fromhex(" ".join(output.split()))
    except ValueError as exc:
        msg = f"unparsable ipmitool raw output: {output.strip()!r}"
        raise PowerControlError(msg) from exc
    if not data:
        msg = "empty ipmitool raw output"
        raise PowerControlError(msg)
    return data


class IpmitoolClient:
    """:class:`IPMIClient` that drives the ``ipmitool`` executable.

    The password is passed through the ``IPMI_PASSWORD`` environment
    variable (``-E``) so it never appears in the process list.
    """

    def __init__(
        self,
        server: ServerConfig,
        *,
        interface: str = "lanplus",
        timeout: float = 30.0,
        executable: str = "ipmitool",
    ) -> None:
        self._server = server
        self._interface = interface
        self._timeout = timeout
        self._executable = executable

    def command(self, *args: str) -> list[str]:
        """Build the full ipmitool argument vector for *args*."""
        cmd = [
            self._executable,
            "-I",
            self._interface,
            "-H",
            self._server.host,
            "-p",
            str(self._server.port),
        ]
        if self._server.username:
            cmd += ["-U", self._server.username]
        cmd.append("-E")
        cmd.extend(args)
        return cmd

    async def _run(self, *args: str) -> str:
        cmd = self.command(*args)
        env = dict(os.environ)
        env["IPMI_PASSWORD"] = self._server.password
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            msg = f"cannot run {self._executable}: {exc}"
            raise PowerControlError(msg) from exc
        try:
            async with asyncio.timeout(self._timeout):
                stdout, stderr = await proc.communicate()
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            msg = f"{self._executable} timed out after {self._timeout}s for {self._server.host}"
            raise PowerControlError(msg) from exc
        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            msg = f"{self._executable} exited with {proc.returncode}: {detail}"
            raise PowerControlError(msg)
        return stdout.decode(errors="replace")

    async def chassis_power_state(self) -> int:
        # Get Chassis Status (NetFn 0x00, Cmd 0x01); byte 0 is the power state
        output = await self._run("raw", "0x00", "0x01")
        return parse_raw_response(output)[0]

    async def chassis_control(self, control: ChassisControl) -> None:
        await self._run("chassis", "power", _IPMITOOL_POWER_ACTIONS[control])


class MachineService:
    """Power-control operations over a fixed catalogue of machines."""

    def __init__(
        self,
        servers: Iterable[ServerConfig],
        client_factory: ClientFactory = IpmitoolClient,
    ) -> None:
        self._servers = list(servers)
        self._client_factory = client_factory

    def list_machines(self) -> list[ServerConfig]:
        """All configured machines, credentials stripped."""
        return [server.redacted() for server in self._servers]

    def find_machine(self, name: str) -> ServerConfig | None:
        """Look up a machine by name (credentials included)."""
        for server in self._servers:
            if server.name == name:
                return server
        return None

    def get_machine(self, name: str) -> ServerConfig:
        """Look up a machine by name, credentials stripped.

        :raises ServerNotFoundError: If no machine has that name.
        """
        return self._require(name).redacted()

    async def machine_status(self, name: str) -> MachineStatus:
        """Query the chassis power state of a machine.

        :raises ServerNotFoundError: If no machine has that name.
        :raises PowerControlError: If the controller cannot be queried.
        """
        server = self._require(name)
        code = await self._client_factory(server).chassis_power_state()
        status = MachineStatus(server=server.redacted(), power_code=code)
        logger.debug("Machine %s power status %s (%#04x)", name, status.power_status, code)
        return status

    async def power_on(self, name: str) -> None:
        """Power a machine up."""
        await self.change_machine_state(name, ChassisControl.POWER_UP)

    async def power_off(self, name: str) -> None:
        """Power a machine down."""
        await self.change_machine_state(name, ChassisControl.POWER_DOWN)

    async def change_machine_state(self, name: str, control: ChassisControl) -> None:
        """Send a Chassis Control command to a machine.

        :raises ServerNotFoundError: If no machine has that name.
        :raises PowerControlError: If the command fails.
        """
        server = self._require(name)
        await self._client_factory(server).chassis_control(control)
        logger.info("Machine %s: chassis control %s", name, control.name)

    def _require(self, name: str) -> ServerConfig:
        server = self.find_machine(name)
        if server is None:
            raise ServerNotFoundError(name)
        return server
