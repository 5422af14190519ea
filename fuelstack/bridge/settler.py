"""
FuelStack Settler

Closes the loop for a FILLED order: calls `settle(orderId, solverRecipient)`
on the open gate of the order's origin chain with the oracle key, then
moves the order to SETTLED once the receipt confirms.

Exactly-once on the keeper side:
  - only FILLED orders are settled; SETTLED orders are refused without
    touching the chain
  - one settlement per order may be in flight in this process
  - a failed settlement leaves the order FILLED
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Set

from eth_utils import is_address

from ..chains.registry import ChainRegistry
from ..constants import RECEIPT_TIMEOUT
from ..exceptions import FuelStackException, SettlementError
from ..logger import get_logger
from .ledger import OrderLedger
from .types import OrderKey, OrderStatus

logger = get_logger(__name__)


class RetryPolicy:
    """Decides whether a failed settlement attempt is retried."""

    def next_delay(self, attempt: int, error: Exception) -> Optional[float]:
        """Seconds to wait before attempt `attempt + 1`, or None to give up."""
        raise NotImplementedError


class NoRetryPolicy(RetryPolicy):
    def next_delay(self, attempt: int, error: Exception) -> Optional[float]:
        return None


class BoundedRetryPolicy(RetryPolicy):
    """Fixed delay between attempts, at most `max_attempts` attempts in total."""

    def __init__(self, max_attempts: int, delay: float):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.max_attempts = max_attempts
        self.delay = delay

    def next_delay(self, attempt: int, error: Exception) -> Optional[float]:
        if attempt >= self.max_attempts:
            return None
        return self.delay


class Settler:
    """
    Settles FILLED orders on their origin chain.

    Args:
        ledger: The order ledger
        registry: Origin chain id -> open gate (signing with the oracle key)
        retry_policy: Defaults to NoRetryPolicy
        receipt_timeout: Seconds to wait for the settle receipt
        sleep: Injectable for tests
    """

    def __init__(
        self,
        ledger: OrderLedger,
        registry: ChainRegistry,
        retry_policy: Optional[RetryPolicy] = None,
        receipt_timeout: float = RECEIPT_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.registry = registry
        self.retry_policy = retry_policy or NoRetryPolicy()
        self.receipt_timeout = receipt_timeout
        self._sleep = sleep
        self._in_flight: Set[OrderKey] = set()

    def is_in_flight(self, key: OrderKey) -> bool:
        return key in self._in_flight

    async def settle(self, key: OrderKey, solver_recipient: Optional[str] = None) -> str:
        """
        Settle the order at `key`. Returns the settle transaction hash.

        `solver_recipient` defaults to the one recorded when the fill was
        accepted.

        Raises:
            SettlementError: order not FILLED, already in flight, or the
                settle transaction failed (the cause is chained)
        """
        order = await self.ledger.get(key)
        if order is None:
            raise SettlementError(f"Order {key} not found")
        if order.status == OrderStatus.SETTLED:
            raise SettlementError(f"Order {key} already SETTLED ({order.settle_tx_hash or 'no tx'})")
        if order.status != OrderStatus.FILLED:
            raise SettlementError(f"Order {key} is {order.status.value}, expected FILLED")
        if key in self._in_flight:
            raise SettlementError(f"Settlement for order {key} already in flight")

        recipient = solver_recipient or order.solver_recipient
        if not recipient:
            raise SettlementError(f"Order {key} has no solver recipient")
        if not is_address(recipient):
            raise SettlementError(f"Order {key}: solver recipient {recipient!r} is not an EVM address")

        self._in_flight.add(key)
        try:
            gate = self.registry.get(order.source_chain_id)
            tx_hash = await self._submit_with_retry(key, gate, recipient)
            await self.ledger.mark_settled(key, settle_tx_hash=tx_hash)
            logger.info(f"[settler] Order {key} SETTLED in {tx_hash}")
            return tx_hash
        except SettlementError:
            raise
        except FuelStackException as e:
            logger.error(f"[settler] Settlement of order {key} failed: {e}")
            raise SettlementError(f"Settlement of order {key} failed: {e}") from e
        finally:
            self._in_flight.discard(key)

    async def _submit_with_retry(self, key: OrderKey, gate, recipient: str) -> str:
        attempt = 0
        while True:
            attempt += 1
            try:
                logger.info(
                    f"[settler] Settling order {key} on chain {gate.chain_id} "
                    f"(attempt {attempt}) to {recipient}"
                )
                tx_hash = await gate.settle(key.order_id, recipient)
                await gate.client.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)
                return tx_hash
            except FuelStackException as e:
                delay = self.retry_policy.next_delay(attempt, e)
                if delay is None:
                    logger.error(
                        f"[settler] Settlement of order {key} failed after "
                        f"{attempt} attempt(s); order stays FILLED: {e}"
                    )
                    raise SettlementError(f"Settlement of order {key} failed: {e}") from e
                logger.warning(f"[settler] Settlement of order {key} failed, retrying in {delay}s: {e}")
                await self._sleep(delay)

    async def settle_stuck(self) -> List[str]:
        """
        Retry every FILLED order with a recorded solver recipient.

        Operator path for orders left FILLED by an earlier failed
        settlement. Failures are logged and the sweep continues.
        """
        settled = []
        for order in await self.ledger.list_orders(OrderStatus.FILLED):
            if not order.solver_recipient:
                logger.warning(f"[settler] Order {order.key} FILLED without solver recipient, skipping")
                continue
            try:
                settled.append(await self.settle(order.key))
            except SettlementError as e:
                logger.error(f"[settler] {e}")
        return settled
