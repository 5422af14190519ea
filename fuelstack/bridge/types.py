"""
FuelStack Bridge Types

Core data structures of the intent bridge.

Defines:
  - OrderStatus lifecycle enum and the bytes32 status sentinels
  - TokenKind (native destination asset vs. pegged fungible asset)
  - OrderKey, the (source chain, order id) primary key
  - Order, the ledger's only entity
  - Decoded event structs: OrderOpenedEvent, EvmFillEvent, StacksFillEvent
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from ..constants import (
    STATUS_FILLED,
    STATUS_OPENED,
    STATUS_REFUNDED,
    STATUS_SETTLED,
    ZERO_ADDRESS,
)


# ══════════════════════════════════════════════════════════════════════
#  ORDER STATUS
# ══════════════════════════════════════════════════════════════════════

class OrderStatus(str, Enum):
    """Lifecycle status of an order."""
    OPENED   = STATUS_OPENED
    FILLED   = STATUS_FILLED
    SETTLED  = STATUS_SETTLED
    REFUNDED = STATUS_REFUNDED

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.SETTLED, OrderStatus.REFUNDED)


# Allowed transitions. REFUNDED is reachable only by external action.
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.OPENED:   frozenset({OrderStatus.FILLED, OrderStatus.REFUNDED}),
    OrderStatus.FILLED:   frozenset({OrderStatus.SETTLED}),
    OrderStatus.SETTLED:  frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def status_sentinel(label: str) -> bytes:
    """
    On-chain bytes32 encoding of a status label.

    The gate contracts store `bytes32("OPENED")`: the ASCII label
    right-padded with zero bytes.
    """
    raw = label.encode("ascii")
    if len(raw) > 32:
        raise ValueError(f"Status label too long: {label!r}")
    return raw.ljust(32, b"\x00")


def status_from_sentinel(value: bytes) -> Optional[OrderStatus]:
    """Decode a bytes32 status. Unknown or empty sentinels return None."""
    if isinstance(value, str):
        value = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    label = bytes(value).rstrip(b"\x00")
    try:
        return OrderStatus(label.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        return None


# ══════════════════════════════════════════════════════════════════════
#  TOKEN KIND
# ══════════════════════════════════════════════════════════════════════

class TokenKind(str, Enum):
    """
    Binary token model of this bridge version: the destination chain's
    native asset, or the BTC-pegged fungible asset.
    """
    NATIVE = "native"
    PEGGED = "pegged"


# ══════════════════════════════════════════════════════════════════════
#  ORDER
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, order=True)
class OrderKey:
    """Primary key of an order: order ids are only unique per origin chain."""
    source_chain_id: int
    order_id: int

    def __str__(self) -> str:
        return f"{self.source_chain_id}:{self.order_id}"


IMMUTABLE_FIELDS = (
    "sender",
    "token_in",
    "amount_in",
    "token_out",
    "amount_out",
    "recipient",
    "fill_deadline",
    "source_chain_id",
)


@dataclass
class Order:
    """
    One intent-bridge order as stored by the ledger.

    Attributes:
        order_id: Order id assigned by the open gate
        sender: Origin-chain address that locked the input
        token_in: Origin-chain input token address
        amount_in: Input amount in origin base units
        token_out: Zero address for the native destination asset, else the pegged asset
        amount_out: Output amount in ORIGIN-chain decimals; converted, never mutated
        recipient: Destination recipient exactly as the open gate stored it
        fill_deadline: Absolute UNIX timestamp (origin-chain clock)
        source_chain_id: Chain id of the origin chain
        status: Lifecycle status
        created_at / filled_at / settled_at: Process-local timestamps
    """
    order_id: int
    sender: str
    token_in: str
    amount_in: int
    token_out: str
    amount_out: int
    recipient: str
    fill_deadline: int
    source_chain_id: int
    status: OrderStatus = OrderStatus.OPENED
    created_at: float = 0.0
    filled_at: Optional[float] = None
    settled_at: Optional[float] = None
    open_tx_hash: str = ""
    fill_tx_hash: str = ""
    settle_tx_hash: str = ""
    solver_recipient: str = ""

    def __post_init__(self):
        if self.order_id < 0:
            raise ValueError("order_id must be non-negative")
        if self.amount_in < 0 or self.amount_out < 0:
            raise ValueError("amounts must be non-negative")
        if not isinstance(self.status, OrderStatus):
            self.status = OrderStatus(self.status)
        if self.created_at == 0.0:
            self.created_at = time.time()

    @property
    def key(self) -> OrderKey:
        return OrderKey(self.source_chain_id, self.order_id)

    @property
    def is_native_out(self) -> bool:
        return self.token_out.lower() == ZERO_ADDRESS

    def same_terms(self, other: "Order") -> bool:
        """True if every immutable field matches (addresses case-insensitively)."""
        for name in IMMUTABLE_FIELDS:
            a, b = getattr(self, name), getattr(other, name)
            if isinstance(a, str) and isinstance(b, str):
                if a.lower() != b.lower():
                    return False
            elif a != b:
                return False
        return self.order_id == other.order_id

    def copy(self) -> "Order":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": str(self.order_id),
            "sender": self.sender,
            "token_in": self.token_in,
            "amount_in": str(self.amount_in),
            "token_out": self.token_out,
            "amount_out": str(self.amount_out),
            "recipient": self.recipient,
            "fill_deadline": self.fill_deadline,
            "source_chain_id": self.source_chain_id,
            "status": self.status.value,
            "created_at": self.created_at,
            "filled_at": self.filled_at,
            "settled_at": self.settled_at,
            "open_tx_hash": self.open_tx_hash,
            "fill_tx_hash": self.fill_tx_hash,
            "settle_tx_hash": self.settle_tx_hash,
            "solver_recipient": self.solver_recipient,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Order":
        return cls(
            order_id=int(d["order_id"]),
            sender=d["sender"],
            token_in=d["token_in"],
            amount_in=int(d["amount_in"]),
            token_out=d["token_out"],
            amount_out=int(d["amount_out"]),
            recipient=d["recipient"],
            fill_deadline=int(d["fill_deadline"]),
            source_chain_id=int(d["source_chain_id"]),
            status=OrderStatus(d.get("status", OrderStatus.OPENED.value)),
            created_at=d.get("created_at") or 0.0,
            filled_at=d.get("filled_at"),
            settled_at=d.get("settled_at"),
            open_tx_hash=d.get("open_tx_hash", ""),
            fill_tx_hash=d.get("fill_tx_hash", ""),
            settle_tx_hash=d.get("settle_tx_hash", ""),
            solver_recipient=d.get("solver_recipient", ""),
        )


# ══════════════════════════════════════════════════════════════════════
#  DECODED EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class OrderOpenedEvent:
    """Open gate `OrderOpened` log, decoded and type-checked."""
    order_id: int
    sender: str
    token_in: str
    amount_in: int
    token_out: str
    amount_out: int
    recipient: str
    fill_deadline: int
    source_chain_id: int
    tx_hash: str = ""
    block_number: int = 0
    log_index: int = 0

    def to_order(self, fallback_chain_id: Optional[int] = None) -> Order:
        """
        Build the OPENED ledger record for this event.

        Older open gates do not stamp the chain id (it decodes as 0); the
        listener's configured chain id is used instead.
        """
        chain_id = self.source_chain_id or (fallback_chain_id or 0)
        return Order(
            order_id=self.order_id,
            sender=self.sender,
            token_in=self.token_in,
            amount_in=self.amount_in,
            token_out=self.token_out,
            amount_out=self.amount_out,
            recipient=self.recipient,
            fill_deadline=self.fill_deadline,
            source_chain_id=chain_id,
            open_tx_hash=self.tx_hash,
        )


@dataclass(frozen=True)
class EvmFillEvent:
    """EVM fill gate `OrderFilled` log."""
    order_id: int
    solver: str
    token_out: str
    amount_out: int
    recipient: str
    solver_origin_address: str
    fill_deadline: int
    source_chain_id: int
    tx_hash: str = ""
    block_number: int = 0
    log_index: int = 0


@dataclass(frozen=True)
class StacksFillEvent:
    """
    Stacks fill gate print event.

    `token_out` is symbolic ("native" for fill-native, the asset contract
    for fill-token). `source_chain_id` is None when the print tuple omits it.
    """
    order_id: int
    amount_out: int
    solver_origin_address: str
    recipient: str
    token_out: str
    source_chain_id: Optional[int] = None
    tx_id: str = ""
    event_index: int = 0

    @property
    def event_id(self) -> str:
        return f"{self.tx_id}-{self.event_index}"


@dataclass
class FillOutcome:
    """Result of one solver fill attempt."""
    order_id: int
    filled: bool
    reason: str = ""
    tx_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
