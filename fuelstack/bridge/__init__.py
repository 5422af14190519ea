"""
FuelStack Intent Bridge Core

Provides:
  - types: Order, OrderKey, OrderStatus, TokenKind, decoded event structs
  - converter: origin <-> destination amount conversion
  - events: EVM log decoding
  - ledger: OrderLedger over a pluggable OrderStore
  - sqlite_store: persistent SQLiteOrderStore
  - validator: FillValidator
  - settler: Settler and retry policies
"""

from .types import (
    EvmFillEvent,
    FillOutcome,
    Order,
    OrderKey,
    OrderOpenedEvent,
    OrderStatus,
    StacksFillEvent,
    TokenKind,
    status_from_sentinel,
    status_sentinel,
)

from .converter import (
    expected_destination_amount,
    is_native_token,
    to_destination_amount,
    to_origin_amount,
)

from .ledger import (
    InMemoryOrderStore,
    OrderLedger,
    OrderStore,
)

from .validator import (
    FillValidator,
    RejectReason,
    ValidationResult,
)

__all__ = [
    # types
    "EvmFillEvent",
    "FillOutcome",
    "Order",
    "OrderKey",
    "OrderOpenedEvent",
    "OrderStatus",
    "StacksFillEvent",
    "TokenKind",
    "status_from_sentinel",
    "status_sentinel",
    # converter
    "expected_destination_amount",
    "is_native_token",
    "to_destination_amount",
    "to_origin_amount",
    # ledger
    "InMemoryOrderStore",
    "OrderLedger",
    "OrderStore",
    # validator
    "FillValidator",
    "RejectReason",
    "ValidationResult",
]
