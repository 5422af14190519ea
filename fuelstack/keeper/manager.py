"""
Keeper orchestration.

Builds the component graph from a KeeperConfig (ledger, chain registry,
validator, settler, fill pipeline, listeners), runs every listener as its
own asyncio task and shuts everything down in order:

    stop listeners -> close HTTP clients -> dump ledger -> close ledger
"""

import asyncio
import time
from typing import Callable, List, Optional

from rich.console import Console

from ..bridge.ledger import InMemoryOrderStore, OrderLedger
from ..bridge.settler import BoundedRetryPolicy, NoRetryPolicy, RetryPolicy, Settler
from ..bridge.sqlite_store import SQLiteOrderStore
from ..bridge.validator import FillValidator
from ..chains.evm import EvmChainClient, OpenGateContract
from ..chains.registry import ChainRegistry
from ..config.loader import KeeperConfig, SettlementConfig
from ..logger import get_logger
from ..stacks.api import HiroClient
from .listeners import (
    EvmFillGateListener,
    OpenGateListener,
    StacksFillGateListener,
    _TaskListener,
)
from .pipeline import FillProcessor

logger = get_logger(__name__)


def build_ledger(config: KeeperConfig) -> OrderLedger:
    if config.ledger.backend == "sqlite":
        return OrderLedger(SQLiteOrderStore(config.ledger.path))
    return OrderLedger(InMemoryOrderStore())


def build_retry_policy(settlement: SettlementConfig) -> RetryPolicy:
    if settlement.max_attempts <= 1:
        return NoRetryPolicy()
    return BoundedRetryPolicy(settlement.max_attempts, settlement.retry_delay)


def build_registry(config: KeeperConfig) -> ChainRegistry:
    """One oracle-signing client and open gate per origin chain."""
    registry = ChainRegistry()
    for chain in config.origin_chains:
        client = EvmChainClient(
            chain_id=chain.chain_id,
            rpc_url=chain.rpc_url,
            name=chain.name,
            private_key=config.oracle_private_key,
        )
        registry.register(OpenGateContract(client, chain.gate_address))
    return registry


class KeeperManager:
    """
    Owns every long-running keeper component.

    Components can be injected (tests); anything missing is built from
    `config`.
    """

    def __init__(
        self,
        config: KeeperConfig,
        ledger: Optional[OrderLedger] = None,
        registry: Optional[ChainRegistry] = None,
        hiro: Optional[HiroClient] = None,
        evm_destination_client: Optional[EvmChainClient] = None,
        clock: Callable[[], float] = time.time,
        console: Optional[Console] = None,
    ):
        self.config = config
        self.ledger = ledger or build_ledger(config)
        self.registry = registry or build_registry(config)
        self.validator = FillValidator(self.ledger, clock=clock)
        self.settler = Settler(
            self.ledger,
            self.registry,
            retry_policy=build_retry_policy(config.settlement),
            receipt_timeout=config.settlement.receipt_timeout,
        )
        self.processor = FillProcessor(self.validator, self.settler)
        self.console = console or Console()

        self.hiro = hiro
        self.evm_destination_client = evm_destination_client
        self.listeners: List[_TaskListener] = []
        self._build_listeners()
        self._started = False

    def _build_listeners(self) -> None:
        for chain in self.config.origin_chains:
            gate = self.registry.get(chain.chain_id)
            self.listeners.append(OpenGateListener(chain, gate.client, self.ledger))

        if self.config.destination_type == "evm":
            dest = self.config.evm_destination
            if self.evm_destination_client is None:
                self.evm_destination_client = EvmChainClient(dest.chain_id, dest.rpc_url, dest.name)
            self.listeners.append(
                EvmFillGateListener(dest, self.evm_destination_client, self.processor.handle_evm_fill)
            )
        else:
            if self.hiro is None:
                self.hiro = HiroClient(self.config.stacks.api_url)
            self.listeners.append(
                StacksFillGateListener(self.config.stacks, self.hiro, self.processor.handle_stacks_fill)
            )

    async def start(self) -> None:
        if self._started:
            return
        await self.ledger.open()
        logger.info(
            f"Keeper starting: {len(self.config.origin_chains)} origin chain(s) "
            f"{self.registry.chain_ids}, destination {self.config.destination_type}"
        )
        for listener in self.listeners:
            listener.start()
        self._started = True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Start, block until `stop_event` is set, then shut down."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    async def stop(self) -> None:
        if not self._started:
            return
        logger.info("Keeper shutting down")
        for listener in self.listeners:
            await listener.stop()

        await self.registry.close()
        if self.hiro is not None:
            await self.hiro.close()
        if self.evm_destination_client is not None:
            await self.evm_destination_client.close()

        stats = self.processor.stats
        logger.info(
            f"Fills seen {stats.fills_seen}, accepted {stats.accepted}, rejected {stats.rejected}, "
            f"settled {stats.settled}, settlement failures {stats.settlement_failures}"
        )
        await self.ledger.dump(self.console)
        await self.ledger.close()
        self._started = False
