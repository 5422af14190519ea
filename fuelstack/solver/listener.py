"""
Solver listener: watches the origin open gate and fills new orders one at
a time, so the solver account never has two transactions racing for a nonce.
"""

import asyncio
from collections import deque
from typing import Deque, List, Optional

from ..bridge.events import decode_order_opened
from ..bridge.types import FillOutcome, OrderOpenedEvent
from ..chains.abis import ORDER_OPENED_TOPIC
from ..chains.evm import EvmChainClient, EvmLogWatcher
from ..config.loader import EvmChainConfig
from ..constants import SOLVER_RECENT_OUTCOMES
from ..logger import get_logger
from .filler import OrderFiller

logger = get_logger(__name__)


class SolverListener:

    def __init__(
        self,
        chain: EvmChainConfig,
        client: EvmChainClient,
        filler: OrderFiller,
        auto_fill: bool = True,
        fill_delay: float = 0.0,
    ):
        self.filler = filler
        self.auto_fill = auto_fill
        self.fill_delay = fill_delay
        self.name = f"solver:{chain.name or chain.chain_id}"
        self.queue: "asyncio.Queue[int]" = asyncio.Queue()
        self.outcomes: Deque[FillOutcome] = deque(maxlen=SOLVER_RECENT_OUTCOMES)
        self.attempted = 0
        self.filled = 0
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
        self._tasks: List[asyncio.Task] = []

    async def on_order_opened(self, event: OrderOpenedEvent) -> None:
        logger.info(
            f"[{self.name}] Order {event.order_id} opened: {event.amount_out} of "
            f"{event.token_out} to {event.recipient}, deadline {event.fill_deadline}"
        )
        if not self.auto_fill:
            logger.info(f"[{self.name}] Auto-fill disabled, not filling order {event.order_id}")
            return
        await self.queue.put(event.order_id)

    async def process_next(self) -> FillOutcome:
        """Fill the next queued order."""
        order_id = await self.queue.get()
        try:
            if self.fill_delay > 0:
                await asyncio.sleep(self.fill_delay)
            outcome = await self.filler.fill_order(order_id)
            self.outcomes.append(outcome)
            self.attempted += 1
            if outcome.filled:
                self.filled += 1
            return outcome
        finally:
            self.queue.task_done()

    async def _worker(self) -> None:
        while True:
            outcome = await self.process_next()
            if outcome.filled:
                logger.info(f"[{self.name}] Order {outcome.order_id} filled: {outcome.tx_id}")
            else:
                logger.info(f"[{self.name}] Order {outcome.order_id} skipped: {outcome.reason}")

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self.watcher.run(), name=f"{self.name}:watch"),
            asyncio.create_task(self._worker(), name=f"{self.name}:fill"),
        ]
        logger.info(f"[{self.name}] Started (auto_fill={self.auto_fill}, fill_delay={self.fill_delay}s)")

    async def stop(self) -> None:
        self.watcher.stop()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info(f"[{self.name}] Stopped")

    def summary(self) -> Optional[str]:
        return summarize(self.filled, self.attempted)

    async def run(self, stop_event: asyncio.Event) -> None:
        self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()


def summarize(filled: int, attempted: int) -> Optional[str]:
    if not attempted:
        return None
    return f"{filled}/{attempted} orders filled"
