#!/usr/bin/env python3
"""
FuelStack Solver CLI

Usage:
    fuelstack-solver run [--config FILE]
    fuelstack-solver fill --order-id ID [--config FILE]
"""

import asyncio
from typing import Optional, Tuple

import click

from ..bridge.types import FillOutcome
from ..chains.evm import EvmChainClient, FillGateContract, OpenGateContract
from ..config.loader import SolverConfig, load_solver_config
from ..logger import get_logger
from ..solver.filler import EvmOrderFiller, OrderFiller, StacksOrderFiller
from ..solver.listener import SolverListener
from ..stacks.api import HiroClient
from ..stacks.transactions import StacksKey
from .common import config_option, run_until_stopped, validated

logger = get_logger(__name__)


def build_filler(config: SolverConfig) -> Tuple[OrderFiller, list]:
    """Build the filler for the configured destination plus the clients to close."""
    origin = config.origin_chain
    origin_client = EvmChainClient(origin.chain_id, origin.rpc_url, origin.name)
    open_gate = OpenGateContract(origin_client, origin.gate_address)

    if config.destination_type == "evm":
        dest = config.evm_destination
        dest_client = EvmChainClient(dest.chain_id, dest.rpc_url, dest.name, private_key=config.solver_private_key)
        filler = EvmOrderFiller(
            open_gate,
            FillGateContract(dest_client, dest.gate_address),
            solver_origin_address=config.solver_origin_address or None,
        )
        return filler, [origin_client, dest_client]

    hiro = HiroClient(config.stacks.api_url)
    filler = StacksOrderFiller(
        open_gate,
        hiro,
        config.stacks,
        StacksKey(config.stacks_private_key),
        solver_origin_address=config.solver_origin_address,
        stacks_recipient_address=config.stacks_recipient_address,
        fee=config.stacks_fee,
    )
    return filler, [origin_client, hiro]


@click.group()
@click.version_option(version="0.1.0", prog_name="fuelstack-solver")
def cli():
    """FuelStack solver: fills open orders on the destination chain."""
    pass


async def _run(config: SolverConfig, stop_event: asyncio.Event) -> None:
    filler, clients = build_filler(config)
    listener = SolverListener(
        config.origin_chain,
        filler.open_gate.client,
        filler,
        auto_fill=config.auto_fill,
        fill_delay=config.fill_delay,
    )
    try:
        await listener.run(stop_event)
    finally:
        for client in clients:
            await client.close()
        if summary := listener.summary():
            logger.info(f"Solver stopped: {summary}")


@cli.command("run")
@config_option
def run_cmd(config_path: Optional[str]):
    """Watch the origin gate and fill new orders until interrupted."""
    config = validated(load_solver_config(config_path))
    asyncio.run(run_until_stopped(lambda stop_event: _run(config, stop_event)))


async def _fill_once(config: SolverConfig, order_id: int) -> FillOutcome:
    filler, clients = build_filler(config)
    try:
        return await filler.fill_order(order_id)
    finally:
        for client in clients:
            await client.close()


@cli.command("fill")
@config_option
@click.option("--order-id", "-o", type=click.IntRange(min=0), required=True, help="Origin order id")
def fill_cmd(config_path: Optional[str], order_id: int):
    """Fill a single order."""
    config = validated(load_solver_config(config_path))
    outcome = asyncio.run(_fill_once(config, order_id))
    if outcome.filled:
        click.echo(click.style(f"Order {order_id} filled: {outcome.tx_id}", fg="green"))
        return
    detail = outcome.details.get("detail", "") if outcome.details else ""
    raise click.ClickException(f"Order {order_id} not filled: {outcome.reason} {detail}".rstrip())


def main():
    cli()


if __name__ == "__main__":
    main()
