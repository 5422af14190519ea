"""
FuelStack Fill Validator

Decides whether an observed destination fill satisfies a stored order.

Checks run in a fixed order and stop at the first failure:

    1. order exists               ORDER_NOT_FOUND / AMBIGUOUS_ORDER
    2. status is OPENED           WRONG_STATUS
    3. token matches              TOKEN_MISMATCH
    4. amount matches exactly     AMOUNT_MISMATCH
    5. recipient matches (EVM)    RECIPIENT_MISMATCH
    6. now <= fill_deadline       DEADLINE_EXCEEDED

A rejection is a returned decision, never an exception, and leaves the
order OPENED.

Stacks fills skip the recipient check: the fill gate prints the recipient
principal but the keeper does not compare it to the order. A solver can
therefore be settled for a Stacks fill delivered to another principal.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from ..exceptions import InvalidTransitionError
from ..logger import get_logger
from .converter import expected_destination_amount, stacks_token_kind, token_kind
from .ledger import OrderLedger
from .types import EvmFillEvent, Order, OrderKey, OrderStatus, StacksFillEvent

logger = get_logger(__name__)


class RejectReason(str, Enum):
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    AMBIGUOUS_ORDER = "AMBIGUOUS_ORDER"
    WRONG_STATUS = "WRONG_STATUS"
    TOKEN_MISMATCH = "TOKEN_MISMATCH"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    RECIPIENT_MISMATCH = "RECIPIENT_MISMATCH"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"


@dataclass
class ValidationResult:
    accepted: bool
    reason: Optional[RejectReason] = None
    detail: str = ""
    order: Optional[Order] = None

    @classmethod
    def ok(cls, order: Order) -> "ValidationResult":
        return cls(True, None, "", order)

    @classmethod
    def reject(cls, reason: RejectReason, detail: str, order: Optional[Order] = None) -> "ValidationResult":
        return cls(False, reason, detail, order)


FillEvent = Union[EvmFillEvent, StacksFillEvent]


class FillValidator:
    """
    Validates fills against the ledger.

    Args:
        ledger: The order ledger
        clock: Returns the current UNIX time; injectable for tests
    """

    def __init__(self, ledger: OrderLedger, clock: Callable[[], float] = time.time):
        self.ledger = ledger
        self.clock = clock

    # ── Lookup ────────────────────────────────────────────────────────

    async def _resolve(self, order_id: int, source_chain_id: Optional[int]):
        if source_chain_id:
            order = await self.ledger.get(OrderKey(source_chain_id, order_id))
            if order is None:
                return None, ValidationResult.reject(
                    RejectReason.ORDER_NOT_FOUND,
                    f"no order {source_chain_id}:{order_id}",
                )
            return order, None

        candidates = await self.ledger.find_by_order_id(order_id)
        if not candidates:
            return None, ValidationResult.reject(
                RejectReason.ORDER_NOT_FOUND, f"no order with id {order_id}"
            )
        if len(candidates) > 1:
            chains = ", ".join(str(o.source_chain_id) for o in candidates)
            return None, ValidationResult.reject(
                RejectReason.AMBIGUOUS_ORDER,
                f"order id {order_id} exists on chains {chains}",
            )
        return candidates[0], None

    def _check_status(self, order: Order) -> Optional[ValidationResult]:
        if order.status != OrderStatus.OPENED:
            return ValidationResult.reject(
                RejectReason.WRONG_STATUS, f"status is {order.status.value}", order
            )
        return None

    def _check_amount(self, order: Order, amount: int, expected: int) -> Optional[ValidationResult]:
        if amount != expected:
            return ValidationResult.reject(
                RejectReason.AMOUNT_MISMATCH,
                f"expected {expected}, got {amount}",
                order,
            )
        return None

    def _check_deadline(self, order: Order) -> Optional[ValidationResult]:
        now = int(self.clock())
        if now > order.fill_deadline:
            return ValidationResult.reject(
                RejectReason.DEADLINE_EXCEEDED,
                f"now {now} > deadline {order.fill_deadline}",
                order,
            )
        return None

    # ── EVM ───────────────────────────────────────────────────────────

    async def validate_evm_fill(self, event: EvmFillEvent) -> ValidationResult:
        order, rejection = await self._resolve(event.order_id, event.source_chain_id)
        if rejection:
            return self._log(event.order_id, rejection)

        result = self._check_status(order)
        if result is None and event.token_out.lower() != order.token_out.lower():
            result = ValidationResult.reject(
                RejectReason.TOKEN_MISMATCH,
                f"expected {order.token_out}, got {event.token_out}",
                order,
            )
        if result is None:
            # same decimals on both EVM chains
            result = self._check_amount(order, event.amount_out, order.amount_out)
        if result is None and event.recipient.lower() != order.recipient.lower():
            result = ValidationResult.reject(
                RejectReason.RECIPIENT_MISMATCH,
                f"expected {order.recipient}, got {event.recipient}",
                order,
            )
        if result is None:
            result = self._check_deadline(order)
        return self._log(event.order_id, result or ValidationResult.ok(order))

    # ── Stacks ────────────────────────────────────────────────────────

    async def validate_stacks_fill(self, event: StacksFillEvent) -> ValidationResult:
        order, rejection = await self._resolve(event.order_id, event.source_chain_id)
        if rejection:
            return self._log(event.order_id, rejection)

        result = self._check_status(order)
        if result is None:
            expected_kind = token_kind(order.token_out)
            actual_kind = stacks_token_kind(event.token_out)
            if expected_kind != actual_kind:
                result = ValidationResult.reject(
                    RejectReason.TOKEN_MISMATCH,
                    f"expected {expected_kind.value}, got {event.token_out}",
                    order,
                )
        if result is None:
            result = self._check_amount(
                order,
                event.amount_out,
                expected_destination_amount(order),
            )
        # recipient intentionally not compared for Stacks fills
        if result is None:
            result = self._check_deadline(order)
        return self._log(event.order_id, result or ValidationResult.ok(order))

    async def validate(self, event: FillEvent) -> ValidationResult:
        if isinstance(event, StacksFillEvent):
            return await self.validate_stacks_fill(event)
        return await self.validate_evm_fill(event)

    # ── Accept ────────────────────────────────────────────────────────

    async def accept(
        self,
        event: FillEvent,
        solver_recipient: Optional[str] = None,
    ) -> ValidationResult:
        """
        Validate `event` and move its order to FILLED.

        The transition is a ledger check-and-set; when two fills for the
        same order race, the loser is reported as WRONG_STATUS.
        """
        result = await self.validate(event)
        if not result.accepted:
            return result

        tx_id = getattr(event, "tx_hash", None) or getattr(event, "tx_id", None)
        try:
            order = await self.ledger.mark_filled(
                result.order.key,
                fill_tx_hash=tx_id,
                solver_recipient=solver_recipient,
            )
        except InvalidTransitionError as e:
            return self._log(
                event.order_id,
                ValidationResult.reject(RejectReason.WRONG_STATUS, str(e), result.order),
            )
        return ValidationResult.ok(order)

    def _log(self, order_id: int, result: ValidationResult) -> ValidationResult:
        if result.accepted:
            logger.info(f"[validator] Fill for order {result.order.key} accepted")
        else:
            label = str(result.order.key) if result.order else str(order_id)
            logger.warning(
                f"[validator] Fill for order {label} rejected: "
                f"{result.reason.value} ({result.detail})"
            )
        return result
