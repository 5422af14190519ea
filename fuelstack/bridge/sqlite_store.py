"""
SQLite order store for the keeper.

Lets the ledger survive restarts so FILLED orders whose settlement failed
can be retried with `fuelstack-keeper settle-stuck`.
"""
import os
from typing import List, Optional

import aiosqlite

from ..logger import get_logger
from .ledger import OrderStore
from .types import Order, OrderKey, OrderStatus

logger = get_logger(__name__)


# Amounts and deadlines are uint256 on the origin chain; stored as decimal TEXT.
SCHEMA = """
CREATE TABLE IF NOT EXISTS orders (
    source_chain_id INTEGER NOT NULL,
    order_id TEXT NOT NULL,
    sender TEXT NOT NULL,
    token_in TEXT NOT NULL,
    amount_in TEXT NOT NULL,
    token_out TEXT NOT NULL,
    amount_out TEXT NOT NULL,
    recipient TEXT NOT NULL,
    fill_deadline TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at REAL,
    filled_at REAL,
    settled_at REAL,
    open_tx_hash TEXT DEFAULT '',
    fill_tx_hash TEXT DEFAULT '',
    settle_tx_hash TEXT DEFAULT '',
    solver_recipient TEXT DEFAULT '',
    PRIMARY KEY (source_chain_id, order_id)
);

CREATE INDEX IF NOT EXISTS idx_orders_order_id ON orders(order_id);
CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
"""

COLUMNS = (
    "source_chain_id", "order_id", "sender", "token_in", "amount_in",
    "token_out", "amount_out", "recipient", "fill_deadline", "status",
    "created_at", "filled_at", "settled_at", "open_tx_hash",
    "fill_tx_hash", "settle_tx_hash", "solver_recipient",
)


class SQLiteOrderStore(OrderStore):
    """aiosqlite-backed OrderStore"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.connection: Optional[aiosqlite.Connection] = None

    async def open(self) -> None:
        if self.connection is not None:
            return
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.connection = await aiosqlite.connect(self.db_path)
        self.connection.row_factory = aiosqlite.Row
        await self.connection.execute("PRAGMA journal_mode=WAL")
        await self.connection.execute("PRAGMA synchronous=NORMAL")
        await self.connection.executescript(SCHEMA)
        await self.connection.commit()
        logger.info(f"SQLite order store initialized: {self.db_path}")

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    def _conn(self) -> aiosqlite.Connection:
        if self.connection is None:
            raise RuntimeError("SQLiteOrderStore is not open")
        return self.connection

    @staticmethod
    def _row_to_order(row) -> Order:
        return Order(
            order_id=int(row["order_id"]),
            sender=row["sender"],
            token_in=row["token_in"],
            amount_in=int(row["amount_in"]),
            token_out=row["token_out"],
            amount_out=int(row["amount_out"]),
            recipient=row["recipient"],
            fill_deadline=int(row["fill_deadline"]),
            source_chain_id=int(row["source_chain_id"]),
            status=OrderStatus(row["status"]),
            created_at=row["created_at"] or 0.0,
            filled_at=row["filled_at"],
            settled_at=row["settled_at"],
            open_tx_hash=row["open_tx_hash"] or "",
            fill_tx_hash=row["fill_tx_hash"] or "",
            settle_tx_hash=row["settle_tx_hash"] or "",
            solver_recipient=row["solver_recipient"] or "",
        )

    async def get(self, key: OrderKey) -> Optional[Order]:
        cursor = await self._conn().execute(
            "SELECT * FROM orders WHERE source_chain_id = ? AND order_id = ?",
            (key.source_chain_id, str(key.order_id)),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return self._row_to_order(row) if row else None

    async def put(self, order: Order) -> None:
        values = (
            order.source_chain_id, str(order.order_id), order.sender,
            order.token_in, str(order.amount_in), order.token_out,
            str(order.amount_out), order.recipient, str(order.fill_deadline),
            order.status.value, order.created_at, order.filled_at,
            order.settled_at, order.open_tx_hash, order.fill_tx_hash,
            order.settle_tx_hash, order.solver_recipient,
        )
        placeholders = ", ".join("?" for _ in COLUMNS)
        await self._conn().execute(
            f"INSERT OR REPLACE INTO orders ({', '.join(COLUMNS)}) VALUES ({placeholders})",
            values,
        )
        await self._conn().commit()

    async def find_by_order_id(self, order_id: int) -> List[Order]:
        cursor = await self._conn().execute(
            "SELECT * FROM orders WHERE order_id = ? ORDER BY source_chain_id",
            (str(order_id),),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [self._row_to_order(r) for r in rows]

    async def all(self) -> List[Order]:
        cursor = await self._conn().execute("SELECT * FROM orders")
        rows = await cursor.fetchall()
        await cursor.close()
        orders = [self._row_to_order(r) for r in rows]
        return sorted(orders, key=lambda o: o.key)
