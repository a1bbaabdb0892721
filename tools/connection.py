"""Async bridge between Click (sync) and the ipmi-finder async API."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

import click

from ipmi_finder.app.finder import FinderConfig, IPMIFinder
from ipmi_finder.app.power import MachineService
from ipmi_finder.config import AppConfig, load_config
from ipmi_finder.errors import ConfigurationError

T = TypeVar("T")

# Each level enables itself and every more severe level
LOG_LEVELS = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}
DEFAULT_LOG_LEVEL = "WARN"


def configure_logging(level: str) -> None:
    """Install the process-wide log filter."""
    logging.basicConfig(
        level=LOG_LEVELS[level],
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def run_finder(
    config: FinderConfig,
    coro_factory: Callable[[IPMIFinder], Coroutine[Any, Any, T]],
) -> T:
    """Start an IPMI finder, run a coroutine against it, then stop it.

    Args:
        config: Scan configuration.
        coro_factory: Callable that receives the running finder and
            returns a coroutine to execute.

    Returns:
        The return value of the coroutine.
    """

    async def _run() -> T:
        async with IPMIFinder(config) as finder:
            return await coro_factory(finder)

    return asyncio.run(_run())


def run_service(
    service: MachineService,
    coro_factory: Callable[[MachineService], Coroutine[Any, Any, T]],
) -> T:
    """Run a coroutine against a machine service on a fresh event loop."""
    return asyncio.run(coro_factory(service))


def load_app_config(ctx: click.Context) -> AppConfig:
    """Load the configuration file named on the command line.

    The file's ``log_level`` takes effect unless ``--log-level`` or
    ``--verbose`` was given.

    Raises:
        click.ClickException: If the file is missing or invalid.
    """
    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    if ctx.obj.get("log_level_from_config"):
        configure_logging(config.log_level)
    return config
