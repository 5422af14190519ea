"""
Keeper chain listeners.

  - OpenGateListener: OrderOpened on one origin chain -> ledger (OPENED)
  - EvmFillGateListener: OrderFilled on the EVM destination -> fill handler
  - StacksFillGateListener: Hiro API poll of fill gate print events -> fill handler

Each listener runs as its own asyncio task and survives network errors.
"""

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, Optional, Set

from ..bridge.events import decode_order_filled, decode_order_opened
from ..bridge.ledger import OrderLedger
from ..bridge.types import EvmFillEvent, OrderOpenedEvent, StacksFillEvent
from ..chains.abis import ORDER_FILLED_TOPIC, ORDER_OPENED_TOPIC
from ..chains.evm import EvmChainClient, EvmLogWatcher
from ..config.loader import EvmChainConfig, StacksConfig
from ..exceptions import ChainError, DecodeError
from ..logger import get_logger
from ..stacks.api import HiroClient
from ..stacks.events import decode_fill_event, event_id, is_contract_log

logger = get_logger(__name__)

SEEN_EVENT_HISTORY = 1000


class _TaskListener:
    """start()/stop() around a `run()` coroutine."""

    name = "listener"

    def __init__(self):
        self._task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        raise NotImplementedError

    def _request_stop(self) -> None:
        raise NotImplementedError

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=self.name)
            logger.info(f"[{self.name}] Started")
        return self._task

    async def stop(self) -> None:
        self._request_stop()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info(f"[{self.name}] Stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


class OpenGateListener(_TaskListener):
    """Ingests OrderOpened events of one origin chain into the ledger."""

    def __init__(self, chain: EvmChainConfig, client: EvmChainClient, ledger: OrderLedger):
        super().__init__()
        self.chain = chain
        self.ledger = ledger
        self.name = f"open-gate:{chain.name or chain.chain_id}"
        self.watcher = EvmLogWatcher(
            client=client,
            address=chain.gate_address,
            topic=ORDER_OPENED_TOPIC,
            decoder=decode_order_opened,
            handler=self.on_order_opened,
            name=self.name,
            start_block=chain.start_block,
            confirmations=chain.confirmations,
            poll_interval=chain.poll_interval,
            retry_delay=chain.retry_delay,
            max_block_range=chain.max_block_range,
        )

    async def on_order_opened(self, event: OrderOpenedEvent) -> None:
        if event.source_chain_id and event.source_chain_id != self.chain.chain_id:
            logger.warning(
                f"[{self.name}] Order {event.order_id} reports chain {event.source_chain_id}, "
                f"listener is on {self.chain.chain_id}"
            )
        await self.ledger.insert(event.to_order(self.chain.chain_id))

    async def run(self) -> None:
        await self.watcher.run()

    def _request_stop(self) -> None:
        self.watcher.stop()


class EvmFillGateListener(_TaskListener):
    """Hands OrderFilled events of the EVM fill gate to `handler`."""

    def __init__(
        self,
        chain: EvmChainConfig,
        client: EvmChainClient,
        handler: Callable[[EvmFillEvent], Awaitable[None]],
    ):
        super().__init__()
        self.name = f"fill-gate:{chain.name or chain.chain_id}"
        self.watcher = EvmLogWatcher(
            client=client,
            address=chain.gate_address,
            topic=ORDER_FILLED_TOPIC,
            decoder=decode_order_filled,
            handler=handler,
            name=self.name,
            start_block=chain.start_block,
            confirmations=chain.confirmations,
            poll_interval=chain.poll_interval,
            retry_delay=chain.retry_delay,
            max_block_range=chain.max_block_range,
        )

    async def run(self) -> None:
        await self.watcher.run()

    def _request_stop(self) -> None:
        self.watcher.stop()


class StacksFillGateListener(_TaskListener):
    """
    Polls the fill gate's contract events every `poll_interval` seconds.

    The API returns the newest events first. Each poll walks the page until
    it reaches the last processed "{tx_id}-{event_index}", then handles the
    new events oldest first. Polls never overlap: the next one starts
    `poll_interval` seconds after the previous one finished.
    """

    def __init__(
        self,
        config: StacksConfig,
        api: HiroClient,
        handler: Callable[[StacksFillEvent], Awaitable[None]],
    ):
        super().__init__()
        self.config = config
        self.api = api
        self.handler = handler
        self.contract_id = config.fill_gate_contract_id
        self.name = "fill-gate:stacks"

        self.last_event_id: Optional[str] = None
        self._primed = config.initial_cursor != "latest"
        self._seen: Set[str] = set()
        self._seen_order: Deque[str] = deque()
        self._stop = asyncio.Event()

    def _remember(self, eid: str) -> None:
        self._seen.add(eid)
        self._seen_order.append(eid)
        while len(self._seen_order) > SEEN_EVENT_HISTORY:
            self._seen.discard(self._seen_order.popleft())

    async def poll_once(self) -> int:
        """One fetch/process cycle. Returns the number of fills handled."""
        events = await self.api.get_contract_events(self.contract_id, self.config.event_limit)
        if not events:
            return 0

        newest_id = event_id(events[0])
        if not self._primed:
            self.last_event_id = newest_id
            self._primed = True
            logger.info(f"[{self.name}] Starting after latest event {newest_id}")
            return 0

        fresh = []
        for raw in events:
            eid = event_id(raw)
            if eid == self.last_event_id:
                break
            fresh.append(raw)

        handled = 0
        for raw in reversed(fresh):
            eid = event_id(raw)
            if eid in self._seen:
                continue
            self._remember(eid)
            if not is_contract_log(raw, self.contract_id):
                continue
            try:
                event = decode_fill_event(raw)
            except DecodeError as e:
                logger.warning(f"[{self.name}] Skipping undecodable event {eid}: {e}")
                continue
            logger.info(
                f"[{self.name}] Fill event {eid} for order {event.order_id}: "
                f"{event.amount_out} {event.token_out} to {event.recipient}"
            )
            try:
                await self.handler(event)
                handled += 1
            except Exception as e:
                logger.error(f"[{self.name}] Handler failed for event {eid}: {e}")

        self.last_event_id = newest_id
        return handled

    async def run(self) -> None:
        self._stop.clear()
        logger.info(f"[{self.name}] Polling {self.contract_id} every {self.config.poll_interval}s")
        while not self._stop.is_set():
            try:
                await self.poll_once()
            except ChainError as e:
                logger.warning(f"[{self.name}] Poll failed, retrying next tick: {e}")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                pass

    def _request_stop(self) -> None:
        self._stop.set()
