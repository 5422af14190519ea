"""Helpers shared by the keeper and solver command lines."""

import asyncio
import signal
from typing import Awaitable, Callable

import click

from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)


def install_stop_handlers(stop_event: asyncio.Event) -> None:
    """SIGINT / SIGTERM set `stop_event` so the process shuts down cleanly."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass


async def run_until_stopped(runner: Callable[[asyncio.Event], Awaitable[None]]) -> None:
    stop_event = asyncio.Event()
    install_stop_handlers(stop_event)
    await runner(stop_event)


def validated(config):
    """Validate a loaded config, turning ConfigurationError into a clean exit."""
    try:
        config.validate()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise click.ClickException(f"Invalid configuration: {e}")
    return config


config_option = click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.toml (default: $FUELSTACK_CONFIG or ./config.toml)",
)
