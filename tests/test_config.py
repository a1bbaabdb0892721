"""Tests for configuration file loading."""

from __future__ import annotations

import orjson
import pytest

from ipmi_finder.app.finder import FinderConfig
from ipmi_finder.app.power import ServerConfig
from ipmi_finder.config import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_PATH,
    AppConfig,
    load_config,
    resolve_config_path,
)
from ipmi_finder.errors import ConfigurationError

DOCUMENT = {
    "api_host": "127.0.0.1",
    "api_port": 9090,
    "log_level": "debug",
    "discovery": {"cidr": "10.0.0.0/24", "workers": 8, "rescan_interval": 600},
    "servers": [
        {"name": "node-a", "host": "10.0.0.11", "username": "admin", "password": "hunter2"},
        {"name": "node-b", "host": "10.0.0.12", "port": 6230},
    ],
}


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_bytes(orjson.dumps(DOCUMENT))
    return path


class TestLoadConfig:
    def test_full_document(self, config_file):
        config = load_config(config_file)
        assert config.api_host == "127.0.0.1"
        assert config.api_port == 9090
        assert config.log_level == "DEBUG"
        assert config.finder == FinderConfig(cidr="10.0.0.0/24", workers=8, rescan_interval=600)
        assert config.servers == [
            ServerConfig(name="node-a", host="10.0.0.11", username="admin", password="hunter2"),
            ServerConfig(name="node-b", host="10.0.0.12", port=6230),
        ]

    def test_str_path(self, config_file):
        assert load_config(str(config_file)).api_port == 9090

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="unable to load config file"):
            load_config(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{servers: [")
        with pytest.raises(ConfigurationError, match="unable to read config file"):
            load_config(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[]")
        with pytest.raises(ConfigurationError, match="unable to read config file"):
            load_config(path)

    def test_env_var(self, config_file, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(config_file))
        assert load_config().api_port == 9090

    def test_default_path(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / DEFAULT_CONFIG_PATH).write_text('{"servers": []}')
        config = load_config()
        assert config.servers == []
        assert config.finder is None

    def test_configuration_error_is_value_error(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(tmp_path / "absent.json")


class TestResolveConfigPath:
    def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, "/etc/ipmi-finder.json")
        assert str(resolve_config_path("local.json")) == "local.json"

    def test_env(self, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, "/etc/ipmi-finder.json")
        assert str(resolve_config_path()) == "/etc/ipmi-finder.json"

    def test_default(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        assert str(resolve_config_path()) == DEFAULT_CONFIG_PATH


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig.from_dict({})
        assert config.api_host == "0.0.0.0"
        assert config.api_port == 8080
        assert config.log_level == "INFO"
        assert config.servers == []
        assert config.finder is None

    def test_warning_normalised(self):
        assert AppConfig.from_dict({"log_level": "warning"}).log_level == "WARN"

    @pytest.mark.parametrize(
        "data",
        [
            {"api_host": 8080},
            {"api_port": 0},
            {"api_port": "8080"},
            {"api_port": True},
            {"log_level": "TRACE"},
            {"servers": {"name": "node-a"}},
            {"servers": [{"name": "node-a"}]},
            {"discovery": "10.0.0.0/24"},
            {"discovery": {"workers": 4}},
            {"discovery": {"cidr": "10.0.0.0/24", "workers": 0}},
            {"discovery": {"cidr": "10.0.0.0/24", "workers": "many"}},
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(ConfigurationError):
            AppConfig.from_dict(data)

    def test_duplicate_server_names(self):
        servers = [{"name": "node-a", "host": "10.0.0.1"}, {"name": "node-a", "host": "10.0.0.2"}]
        with pytest.raises(ConfigurationError, match="duplicate server names: node-a"):
            AppConfig.from_dict({"servers": servers})

    def test_malformed_cidr_is_not_a_config_error(self):
        config = AppConfig.from_dict({"discovery": {"cidr": "not-a-cidr"}})
        assert config.finder is not None
        assert config.finder.cidr == "not-a-cidr"

    def test_to_dict_strips_credentials(self):
        data = AppConfig.from_dict(DOCUMENT).to_dict()
        assert data["servers"][0] == {"name": "node-a", "host": "10.0.0.11", "port": 623}
        assert data["discovery"]["cidr"] == "10.0.0.0/24"
        assert "hunter2" not in orjson.dumps(data).decode()
