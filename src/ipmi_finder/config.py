"""Process configuration file loading.

The configuration is a JSON document::

    {
      "api_host": "0.0.0.0",
      "api_port": 8080,
      "log_level": "INFO",
      "discovery": {"cidr": "10.0.0.0/24", "workers": 16, "rescan_interval": 1800},
      "servers": [
        {"name": "node1", "host": "10.0.0.21", "port": 623,
         "username": "admin", "password": "secret"}
      ]
    }
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson

from ipmi_finder.app.finder import FinderConfig
from ipmi_finder.app.power import ServerConfig
from ipmi_finder.errors import ConfigurationError
from ipmi_finder.serialization import deserialize

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
CONFIG_PATH_ENV = "IPMI_FINDER_CONFIG"

LOG_LEVELS = ("ERROR", "WARN", "INFO", "DEBUG")


@dataclass
class AppConfig:
    """Top-level process configuration."""

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    servers: list[ServerConfig] = field(default_factory=list)
    finder: FinderConfig | None = None
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict (server credentials stripped)."""
        result: dict[str, Any] = {
            "api_host": self.api_host,
            "api_port": self.api_port,
            "log_level": self.log_level,
            "servers": [server.to_dict() for server in self.servers],
        }
        if self.finder is not None:
            result["discovery"] = self.finder.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        """Build and validate a configuration from a decoded document.

        :raises ConfigurationError: If any value has the wrong type or range.
        """
        api_host = data.get("api_host", "0.0.0.0")
        api_port = data.get("api_port", 8080)
        if not isinstance(api_host, str):
            msg = f"api_host must be a string, got {api_host!r}"
            raise ConfigurationError(msg)
        if (
            not isinstance(api_port, int)
            or isinstance(api_port, bool)
            or not 0 < api_port <= 0xFFFF
        ):
            msg = f"api_port must be 1-65535, got {api_port!r}"
            raise ConfigurationError(msg)

        log_level = str(data.get("log_level", "INFO")).upper()
        if log_level == "WARNING":
            log_level = "WARN"
        if log_level not in LOG_LEVELS:
            msg = f"log_level must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
            raise ConfigurationError(msg)

        raw_servers = data.get("servers", [])
        if not isinstance(raw_servers, list):
            msg = "servers must be a list"
            raise ConfigurationError(msg)
        servers = [ServerConfig.from_dict(entry) for entry in raw_servers]
        names = [server.name for server in servers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            msg = f"duplicate server names: {', '.join(duplicates)}"
            raise ConfigurationError(msg)

        finder = None
        discovery = data.get("discovery")
        if discovery is not None:
            if not isinstance(discovery, dict) or "cidr" not in discovery:
                msg = "discovery must be an object with a 'cidr' key"
                raise ConfigurationError(msg)
            try:
                finder = FinderConfig.from_dict(discovery)
            except TypeError as exc:
                msg = f"invalid discovery settings: {exc}"
                raise ConfigurationError(msg) from exc

        return cls(
            api_host=api_host,
            api_port=api_port,
            servers=servers,
            finder=finder,
            log_level=log_level,
        )


def resolve_config_path(path: str | os.PathLike[str] | None = None) -> Path:
    """Pick the configuration path: explicit, then environment, then default."""
    if path is not None:
        return Path(path)
    return Path(os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH))


def load_config(path: str | os.PathLike[str] | None = None) -> AppConfig:
    """Load and validate the configuration file.

    :param path: File to read.  Defaults to ``$IPMI_FINDER_CONFIG`` or
        ``config.json``.
    :raises ConfigurationError: If the file is missing, unreadable, not a
        JSON object, or holds invalid values.
    """
    config_path = resolve_config_path(path)
    try:
        raw = config_path.read_bytes()
    except OSError as exc:
        msg = f"unable to load config file {config_path}: {exc.strerror or exc}"
        raise ConfigurationError(msg) from exc
    try:
        data = deserialize(raw)
    except (orjson.JSONDecodeError, TypeError) as exc:
        msg = f"unable to read config file {config_path}: {exc}"
        raise ConfigurationError(msg) from exc
    config = AppConfig.from_dict(data)
    logger.debug("Loaded configuration from %s (%d servers)", config_path, len(config.servers))
    return config
