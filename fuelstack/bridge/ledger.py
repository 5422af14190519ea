"""
FuelStack Order Ledger

Authoritative store of orders seen by the keeper.

Properties:
  - Keyed by OrderKey(source_chain_id, order_id)
  - Idempotent insert: re-delivered OrderOpened events never duplicate or
    overwrite a record
  - Monotonic lifecycle: OPENED -> FILLED -> SETTLED, OPENED -> REFUNDED
  - Writes are serialized through one asyncio.Lock; a status change is a
    single check-and-set, so two fills for the same order cannot both win
  - Records are never deleted

Persistence is delegated to an OrderStore. InMemoryOrderStore is the
default; SQLiteOrderStore (sqlite_store.py) survives restarts.
"""

import asyncio
import time
from typing import Dict, List, Optional

from rich.console import Console
from rich.table import Table

from ..exceptions import (
    InvalidTransitionError,
    OrderConflictError,
    OrderNotFoundError,
)
from ..logger import get_logger
from .converter import format_amount, origin_decimals, token_kind
from .types import Order, OrderKey, OrderStatus, can_transition

logger = get_logger(__name__)

# Fields a status transition may set; everything else is fixed at insert.
TRANSITION_FIELDS = ("fill_tx_hash", "settle_tx_hash", "solver_recipient")


# ══════════════════════════════════════════════════════════════════════
#  STORES
# ══════════════════════════════════════════════════════════════════════

class OrderStore:
    """Persistence interface used by OrderLedger."""

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get(self, key: OrderKey) -> Optional[Order]:
        raise NotImplementedError

    async def put(self, order: Order) -> None:
        raise NotImplementedError

    async def find_by_order_id(self, order_id: int) -> List[Order]:
        raise NotImplementedError

    async def all(self) -> List[Order]:
        raise NotImplementedError


class InMemoryOrderStore(OrderStore):
    """Dict-backed store. State is lost when the process exits."""

    def __init__(self):
        self._orders: Dict[OrderKey, Order] = {}

    async def get(self, key: OrderKey) -> Optional[Order]:
        order = self._orders.get(key)
        return order.copy() if order else None

    async def put(self, order: Order) -> None:
        self._orders[order.key] = order.copy()

    async def find_by_order_id(self, order_id: int) -> List[Order]:
        return [
            o.copy() for k, o in sorted(self._orders.items())
            if k.order_id == order_id
        ]

    async def all(self) -> List[Order]:
        return [o.copy() for _, o in sorted(self._orders.items())]


# ══════════════════════════════════════════════════════════════════════
#  LEDGER
# ══════════════════════════════════════════════════════════════════════

class OrderLedger:
    """
    Order lifecycle state machine over an OrderStore.

    Every public read returns a copy; callers never hold a reference into
    the store.
    """

    def __init__(self, store: Optional[OrderStore] = None, strict: bool = False):
        self.store = store or InMemoryOrderStore()
        self.strict = strict
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        await self.store.open()

    async def close(self) -> None:
        await self.store.close()

    # ── Insert ────────────────────────────────────────────────────────

    async def insert(self, order: Order) -> Order:
        """
        Insert an OPENED order.

        If the key already exists the stored record is returned untouched.
        Differing data is logged as a conflict (or raised as
        OrderConflictError when the ledger is strict).
        """
        async with self._lock:
            existing = await self.store.get(order.key)
            if existing is not None:
                if existing.same_terms(order):
                    logger.debug(f"[ledger] Order {order.key} already stored, ignoring duplicate")
                    return existing
                message = (
                    f"[ledger] Conflicting data for order {order.key} "
                    f"(stored status {existing.status.value}); keeping stored record"
                )
                if self.strict:
                    raise OrderConflictError(message)
                logger.warning(message)
                return existing

            record = order.copy()
            record.status = OrderStatus.OPENED
            await self.store.put(record)
            logger.info(
                f"[ledger] Order {record.key} OPENED: "
                f"{record.amount_out} out to {record.recipient}, deadline {record.fill_deadline}"
            )
            return record.copy()

    # ── Reads ─────────────────────────────────────────────────────────

    async def get(self, key: OrderKey) -> Optional[Order]:
        return await self.store.get(key)

    async def require(self, key: OrderKey) -> Order:
        order = await self.store.get(key)
        if order is None:
            raise OrderNotFoundError(f"Order {key} not found")
        return order

    async def find_by_order_id(self, order_id: int) -> List[Order]:
        """All records with this order id, across origin chains."""
        return await self.store.find_by_order_id(order_id)

    async def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        orders = await self.store.all()
        if status is None:
            return orders
        return [o for o in orders if o.status == status]

    async def count_by_status(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in OrderStatus}
        for order in await self.store.all():
            counts[order.status.value] += 1
        return counts

    # ── Transitions ───────────────────────────────────────────────────

    async def transition(self, key: OrderKey, new_status: OrderStatus, **fields) -> Order:
        """
        Move an order to `new_status` atomically.

        Raises:
            OrderNotFoundError: unknown key
            InvalidTransitionError: the lifecycle does not allow the move,
                or `fields` names something other than TRANSITION_FIELDS
        """
        rejected = sorted(set(fields) - set(TRANSITION_FIELDS))
        if rejected:
            raise InvalidTransitionError(
                f"Order {key}: fields {', '.join(rejected)} cannot change on transition"
            )

        async with self._lock:
            order = await self.store.get(key)
            if order is None:
                raise OrderNotFoundError(f"Order {key} not found")
            if not can_transition(order.status, new_status):
                raise InvalidTransitionError(
                    f"Order {key}: {order.status.value} -> {new_status.value} not allowed"
                )

            previous = order.status
            order.status = new_status
            now = time.time()
            if new_status == OrderStatus.FILLED:
                order.filled_at = now
            elif new_status == OrderStatus.SETTLED:
                order.settled_at = now
            for name, value in fields.items():
                if value is not None:
                    setattr(order, name, value)

            await self.store.put(order)
            logger.info(f"[ledger] Order {key} {previous.value} -> {new_status.value}")
            return order.copy()

    async def mark_filled(
        self,
        key: OrderKey,
        fill_tx_hash: Optional[str] = None,
        solver_recipient: Optional[str] = None,
    ) -> Order:
        return await self.transition(
            key, OrderStatus.FILLED,
            fill_tx_hash=fill_tx_hash, solver_recipient=solver_recipient,
        )

    async def mark_settled(self, key: OrderKey, settle_tx_hash: Optional[str] = None) -> Order:
        return await self.transition(key, OrderStatus.SETTLED, settle_tx_hash=settle_tx_hash)

    async def mark_refunded(self, key: OrderKey) -> Order:
        """Operator-only: the refund itself happens outside the keeper."""
        return await self.transition(key, OrderStatus.REFUNDED)

    # ── Operator view ─────────────────────────────────────────────────

    async def render(self) -> Table:
        table = Table(title="Order Ledger")
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Status")
        table.add_column("Amount out", justify="right")
        table.add_column("Recipient", overflow="fold")
        table.add_column("Deadline", justify="right")
        table.add_column("Settle tx", overflow="fold")

        styles = {
            OrderStatus.OPENED: "yellow",
            OrderStatus.FILLED: "blue",
            OrderStatus.SETTLED: "green",
            OrderStatus.REFUNDED: "red",
        }
        for order in await self.store.all():
            kind = token_kind(order.token_out)
            table.add_row(
                str(order.key),
                f"[{styles[order.status]}]{order.status.value}[/]",
                format_amount(order.amount_out, origin_decimals(kind)),
                order.recipient,
                str(order.fill_deadline),
                order.settle_tx_hash or "-",
            )
        return table

    async def dump(self, console: Optional[Console] = None) -> None:
        """Print every record as a table."""
        console = console or Console()
        console.print(await self.render())
