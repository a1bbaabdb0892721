"""Tests for the command line interface in tools/."""

from __future__ import annotations

import asyncio
import logging

import orjson
import pytest
from click.testing import CliRunner

from ipmi_finder.app.finder import IPMIFinder
from ipmi_finder.app.power import ChassisControl, MachineService
from ipmi_finder.errors import PowerControlError
from tests.helpers import FakeProbe
from tools.cli import cli
from tools.connection import LOG_LEVELS, configure_logging

CONFIG = {
    "discovery": {"cidr": "10.0.0.0/30", "workers": 2},
    "servers": [
        {"name": "node-a", "host": "10.0.0.11", "username": "admin", "password": "hunter2"},
        {"name": "node-b", "host": "10.0.0.12", "port": 6230},
    ],
}


class RecordingClient:
    controls: list[tuple[str, ChassisControl]] = []
    power_code = 0x20
    error: str | None = None

    def __init__(self, server):
        self.server = server

    async def chassis_power_state(self) -> int:
        if RecordingClient.error:
            raise PowerControlError(RecordingClient.error)
        return RecordingClient.power_code

    async def chassis_control(self, control: ChassisControl) -> None:
        if RecordingClient.error:
            raise PowerControlError(RecordingClient.error)
        RecordingClient.controls.append((self.server.name, control))


@pytest.fixture(autouse=True)
def _reset_client():
    RecordingClient.controls = []
    RecordingClient.power_code = 0x20
    RecordingClient.error = None
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_bytes(orjson.dumps(CONFIG))
    return str(path)


@pytest.fixture
def fake_service(monkeypatch):
    monkeypatch.setattr(
        "tools.commands.power.MachineService",
        lambda servers: MachineService(servers, client_factory=RecordingClient),
    )


@pytest.fixture
def fake_probe(monkeypatch):
    probe = FakeProbe(responsive={"10.0.0.2", "10.0.0.1"})

    def run_finder(config, coro_factory):
        async def _run():
            async with IPMIFinder(config, probe_func=probe) as finder:
                return await coro_factory(finder)

        return asyncio.run(_run())

    monkeypatch.setattr("tools.commands.scan.run_finder", run_finder)
    monkeypatch.setattr("tools.commands.watch.run_finder", run_finder)
    return probe


def invoke(*args: str):
    return CliRunner().invoke(cli, list(args), catch_exceptions=False)


class TestLogging:
    def test_levels(self):
        assert list(LOG_LEVELS) == ["ERROR", "WARN", "INFO", "DEBUG"]
        assert LOG_LEVELS["WARN"] == logging.WARNING

    def test_configure_logging(self):
        configure_logging("DEBUG")
        assert logging.getLogger().level == logging.DEBUG
        configure_logging("ERROR")
        assert logging.getLogger().level == logging.ERROR


class TestLogLevelSelection:
    @pytest.fixture
    def debug_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_bytes(orjson.dumps({**CONFIG, "log_level": "DEBUG"}))
        return str(path)

    def test_default_without_config(self, fake_probe):
        invoke("scan", "10.0.0.0/30")
        assert logging.getLogger().level == logging.WARNING

    def test_config_file_level(self, fake_service, debug_config):
        invoke("--config", debug_config, "machines")
        assert logging.getLogger().level == logging.DEBUG

    def test_option_overrides_config(self, fake_service, debug_config):
        invoke("--config", debug_config, "--log-level", "error", "machines")
        assert logging.getLogger().level == logging.ERROR

    def test_verbose_overrides_config(self, fake_service, config_path):
        invoke("--config", config_path, "--verbose", "machines")
        assert logging.getLogger().level == logging.DEBUG

    def test_config_default_level(self, fake_service, config_path):
        invoke("--config", config_path, "machines")
        assert logging.getLogger().level == logging.INFO


class TestScan:
    def test_table(self, fake_probe):
        result = invoke("scan", "10.0.0.0/30")
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0].strip() == "Address"
        assert lines[2:4] == ["10.0.0.1", "10.0.0.2"]
        assert "2 responsive of 4 probed" in result.output
        assert sorted(fake_probe.calls) == ["10.0.0.0", "10.0.0.1", "10.0.0.2", "10.0.0.3"]

    def test_json(self, fake_probe):
        result = invoke("--json", "scan", "10.0.0.0/30", "--workers", "1")
        assert result.exit_code == 0
        data = orjson.loads(result.output)
        assert sorted(data["servers"]) == ["10.0.0.1", "10.0.0.2"]
        assert data["cycle"]["dispatched"] == 4
        assert fake_probe.max_active == 1

    def test_nothing_found(self, fake_probe):
        fake_probe.responsive = set()
        result = invoke("scan", "10.0.0.0/30")
        assert result.exit_code == 0
        assert "No IPMI controllers found." in result.output

    def test_invalid_cidr(self, fake_probe):
        result = invoke("scan", "10.0.0.0")
        assert result.exit_code == 1
        assert "invalid CIDR address" in result.output
        assert fake_probe.calls == []

    def test_invalid_workers(self, fake_probe):
        result = invoke("scan", "10.0.0.0/30", "--workers", "0")
        assert result.exit_code == 2


class TestWatch:
    def test_cycles_from_config(self, fake_probe, config_path):
        result = invoke(
            "--config", config_path, "--json", "watch", "--interval", "0.05", "--cycles", "2"
        )
        assert result.exit_code == 0
        documents = [orjson.loads(line) for line in _split_documents(result.output)]
        assert [doc["cycle"]["number"] for doc in documents] == [1, 2]
        assert all(sorted(doc["servers"]) == ["10.0.0.1", "10.0.0.2"] for doc in documents)

    def test_explicit_cidr(self, fake_probe):
        result = invoke("watch", "10.0.0.0/31", "--cycles", "1")
        assert result.exit_code == 0
        assert "10.0.0.1" in result.output
        assert sorted(fake_probe.calls) == ["10.0.0.0", "10.0.0.1"]

    def test_every_completed_scan_printed(self, fake_probe):
        result = invoke("--json", "watch", "10.0.0.0/30", "--interval", "0.05", "--cycles", "3")
        assert result.exit_code == 0
        documents = [orjson.loads(doc) for doc in _split_documents(result.output)]
        assert [doc["cycle"]["number"] for doc in documents] == [1, 2, 3]

    def test_rescans_faster_than_output(self, fake_probe):
        result = invoke("--json", "watch", "10.0.0.0/30", "--interval", "0.01", "--cycles", "5")
        assert result.exit_code == 0
        documents = [orjson.loads(doc) for doc in _split_documents(result.output)]
        assert [doc["cycle"]["number"] for doc in documents] == [1, 2, 3, 4, 5]

    def test_missing_discovery_section(self, fake_probe, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"servers": []}')
        result = CliRunner().invoke(cli, ["--config", str(path), "watch", "--cycles", "1"])
        assert result.exit_code == 1
        assert "no CIDR given" in result.output


def _split_documents(output: str) -> list[str]:
    """Split concatenated pretty-printed JSON objects."""
    documents: list[str] = []
    current: list[str] | None = None
    for line in output.splitlines():
        if line == "{":
            current = []
        if current is None:
            continue
        current.append(line)
        if line == "}":
            documents.append("\n".join(current))
            current = None
    return documents


class TestMachines:
    def test_table_hides_credentials(self, fake_service, config_path):
        result = invoke("--config", config_path, "machines")
        assert result.exit_code == 0
        assert "node-a" in result.output
        assert "10.0.0.12" in result.output
        assert "hunter2" not in result.output
        assert "admin" not in result.output

    def test_json(self, fake_service, config_path):
        result = invoke("--config", config_path, "--json", "machines")
        assert orjson.loads(result.output) == [
            {"name": "node-a", "host": "10.0.0.11", "port": 623},
            {"name": "node-b", "host": "10.0.0.12", "port": 6230},
        ]

    def test_missing_config(self, fake_service, tmp_path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.json"), "machines"])
        assert result.exit_code == 1
        assert "unable to load config file" in result.output

    def test_config_from_environment(self, fake_service, config_path):
        result = CliRunner().invoke(
            cli, ["machines"], env={"IPMI_FINDER_CONFIG": config_path}, catch_exceptions=False
        )
        assert "node-b" in result.output


class TestPower:
    def test_status(self, fake_service, config_path):
        RecordingClient.power_code = 0x21
        result = invoke("--config", config_path, "status", "node-a")
        assert result.exit_code == 0
        assert "ON (0x21)" in result.output
        assert "10.0.0.11:623" in result.output

    def test_status_json(self, fake_service, config_path):
        result = invoke("--config", config_path, "--json", "status", "node-b")
        data = orjson.loads(result.output)
        assert data["power_status"] == "OFF"
        assert data["port"] == 6230
        assert "password" not in data

    def test_status_unknown_machine(self, fake_service, config_path):
        result = invoke("--config", config_path, "status", "node-z")
        assert result.exit_code == 1
        assert "server not found: node-z" in result.output

    def test_status_controller_error(self, fake_service, config_path):
        RecordingClient.error = "ipmitool exited with 1: session refused"
        result = invoke("--config", config_path, "--json", "status", "node-a")
        assert result.exit_code == 2
        assert orjson.loads(result.output) == {"error": "ipmitool exited with 1: session refused"}

    def test_on(self, fake_service, config_path):
        result = invoke("--config", config_path, "on", "node-a")
        assert result.exit_code == 0
        assert "node-a: power on sent" in result.output
        assert RecordingClient.controls == [("node-a", ChassisControl.POWER_UP)]

    def test_off(self, fake_service, config_path):
        result = invoke("--config", config_path, "--json", "off", "node-b")
        assert result.exit_code == 0
        assert orjson.loads(result.output) == {"name": "node-b", "power": "off"}
        assert RecordingClient.controls == [("node-b", ChassisControl.POWER_DOWN)]

    def test_on_unknown_machine(self, fake_service, config_path):
        result = invoke("--config", config_path, "on", "node-z")
        assert result.exit_code == 1
        assert RecordingClient.controls == []
