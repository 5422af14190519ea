#!/usr/bin/env python3
"""
FuelStack Keeper CLI

Usage:
    fuelstack-keeper run [--config FILE]
    fuelstack-keeper orders [--config FILE] [--status STATUS]
    fuelstack-keeper settle-stuck [--config FILE]
"""

import asyncio
from typing import Optional

import click
from rich.console import Console

from ..bridge.settler import Settler
from ..bridge.types import OrderStatus
from ..config.loader import KeeperConfig, load_keeper_config
from ..keeper.manager import KeeperManager, build_ledger, build_registry, build_retry_policy
from ..logger import get_logger
from .common import config_option, run_until_stopped, validated

logger = get_logger(__name__)

@click.group()
@click.version_option(version="0.1.0", prog_name="fuelstack-keeper")
def cli():
    """FuelStack keeper: watches gates, validates fills and settles orders."""
    pass


@cli.command("run")
@config_option
def run_cmd(config_path: Optional[str]):
    """Run the keeper until interrupted."""
    config = validated(load_keeper_config(config_path))
    manager = KeeperManager(config)
    asyncio.run(run_until_stopped(manager.run))


async def _show_orders(config: KeeperConfig, status: Optional[OrderStatus]) -> None:
    ledger = build_ledger(config)
    await ledger.open()
    try:
        if status is None:
            await ledger.dump(Console())
        else:
            for order in await ledger.list_orders(status):
                click.echo(f"{order.key}  {order.amount_out} -> {order.recipient}  {order.fill_tx_hash or ''}")
    finally:
        await ledger.close()


@cli.command("orders")
@config_option
@click.option(
    "--status", "-s",
    type=click.Choice([s.value for s in OrderStatus], case_sensitive=False),
    default=None,
    help="Only list orders in this status",
)
def orders_cmd(config_path: Optional[str], status: Optional[str]):
    """List orders in the ledger (sqlite backend)."""
    config = load_keeper_config(config_path)
    if config.ledger.backend != "sqlite":
        raise click.ClickException("The memory ledger is not persisted; set ledger.backend = \"sqlite\"")
    asyncio.run(_show_orders(config, OrderStatus(status.upper()) if status else None))


async def _settle_stuck(config: KeeperConfig) -> int:
    ledger = build_ledger(config)
    registry = build_registry(config)
    settler = Settler(
        ledger,
        registry,
        retry_policy=build_retry_policy(config.settlement),
        receipt_timeout=config.settlement.receipt_timeout,
    )
    await ledger.open()
    try:
        settled = await settler.settle_stuck()
    finally:
        await registry.close()
        await ledger.close()
    return len(settled)


@cli.command("settle-stuck")
@config_option
def settle_stuck_cmd(config_path: Optional[str]):
    """Retry settlement of every order left FILLED."""
    config = validated(load_keeper_config(config_path))
    if config.ledger.backend != "sqlite":
        raise click.ClickException("settle-stuck needs the sqlite ledger backend")
    count = asyncio.run(_settle_stuck(config))
    click.echo(click.style(f"Settled {count} order(s)", fg="green" if count else "yellow"))


def main():
    cli()


if __name__ == "__main__":
    main()
