"""
FuelStack Order Filler

Fills OPENED orders on the destination chain with the solver's own funds.

fill_order(order_id) walks the same decision path for both destinations:

    1. read orders(orderId) on the origin open gate (zero sender = missing)
    2. orderStatus must be OPENED
    3. deadline not passed
    4. destination not already filled (re-checked right before submitting)
    5. balance / allowance sufficient (approving if needed on EVM)
    6. submit the fill and wait for confirmation

It never raises: every outcome, including RPC failures, is a FillOutcome,
so the solver process keeps running.
"""

import time
from enum import Enum
from typing import Callable, Optional

from eth_utils import is_address

from ..bridge.converter import (
    destination_decimals,
    expected_destination_amount,
    format_amount,
    stacks_token_symbol,
    token_kind,
)
from ..bridge.types import FillOutcome, Order, OrderStatus
from ..chains.evm import FillGateContract, OpenGateContract
from ..config.loader import StacksConfig
from ..constants import STACKS_DEFAULT_FEE, STACKS_TX_TIMEOUT
from ..exceptions import DecodeError, FuelStackException
from ..logger import get_logger
from ..stacks.api import HiroClient
from ..stacks.c32 import is_valid_principal
from ..stacks.clarity import contract_principal_cv, principal_cv, string_ascii_cv, uint_cv
from ..stacks.events import decode_fill_event, is_contract_log
from ..stacks.transactions import (
    FungiblePostCondition,
    StacksKey,
    StxPostCondition,
    make_contract_call,
    network_by_name,
)

logger = get_logger(__name__)


class FillReason(str, Enum):
    FILLED = "FILLED"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    NOT_OPEN = "NOT_OPEN"
    DEADLINE_PASSED = "DEADLINE_PASSED"
    ALREADY_FILLED = "ALREADY_FILLED"
    INVALID_RECIPIENT = "INVALID_RECIPIENT"
    ZERO_AMOUNT = "ZERO_AMOUNT"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    FAILED = "FAILED"


class _Refusal(Exception):
    def __init__(self, reason: FillReason, detail: str = ""):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


class OrderFiller:
    """Shared decision path; subclasses implement the destination side."""

    destination = "destination"

    def __init__(self, open_gate: OpenGateContract, clock: Callable[[], float] = time.time):
        self.open_gate = open_gate
        self.clock = clock

    async def fill_order(self, order_id: int) -> FillOutcome:
        try:
            tx_id = await self._fill(order_id)
        except _Refusal as r:
            logger.info(f"[solver] Order {order_id} not filled: {r.reason.value} {r.detail}".rstrip())
            return FillOutcome(order_id, False, r.reason.value, details={"detail": r.detail})
        except FuelStackException as e:
            logger.error(f"[solver] Fill of order {order_id} failed: {e}")
            return FillOutcome(order_id, False, FillReason.FAILED.value, details={"detail": str(e)})
        except Exception as e:
            logger.error(f"[solver] Unexpected error filling order {order_id}: {e!r}")
            return FillOutcome(order_id, False, FillReason.FAILED.value, details={"detail": repr(e)})

        logger.info(f"[solver] Order {order_id} FILLED on {self.destination}: {tx_id}")
        return FillOutcome(order_id, True, FillReason.FILLED.value, tx_id=tx_id)

    async def _fill(self, order_id: int) -> str:
        order = await self.open_gate.get_order(order_id)
        if order is None:
            raise _Refusal(FillReason.ORDER_NOT_FOUND)

        status = await self.open_gate.order_status(order_id)
        if status != OrderStatus.OPENED:
            raise _Refusal(FillReason.NOT_OPEN, f"origin status {status.value if status else 'unknown'}")

        now = int(self.clock())
        if now > order.fill_deadline:
            raise _Refusal(FillReason.DEADLINE_PASSED, f"now {now} > {order.fill_deadline}")

        if await self.already_filled(order):
            raise _Refusal(FillReason.ALREADY_FILLED)

        await self.check_funds(order)
        # check_funds may have waited on an approve receipt
        if await self.already_filled(order):
            raise _Refusal(FillReason.ALREADY_FILLED, "filled while preparing")
        tx_id = await self.submit(order)
        await self.confirm(tx_id)
        return tx_id

    async def already_filled(self, order: Order) -> bool:
        raise NotImplementedError

    async def check_funds(self, order: Order) -> None:
        """Raise _Refusal when the solver cannot cover the fill."""
        raise NotImplementedError

    async def submit(self, order: Order) -> str:
        raise NotImplementedError

    async def confirm(self, tx_id: str) -> None:
        raise NotImplementedError


class EvmOrderFiller(OrderFiller):
    """Fills through the EVM fill gate; amounts are used unchanged."""

    destination = "evm"

    def __init__(
        self,
        open_gate: OpenGateContract,
        fill_gate: FillGateContract,
        solver_origin_address: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(open_gate, clock)
        self.fill_gate = fill_gate
        self.client = fill_gate.client
        self.solver_origin_address = solver_origin_address or self.client.address

    async def already_filled(self, order: Order) -> bool:
        return await self.fill_gate.order_status(order.order_id) == OrderStatus.FILLED

    async def check_funds(self, order: Order) -> None:
        if not is_address(order.recipient):
            raise _Refusal(FillReason.INVALID_RECIPIENT, f"{order.recipient!r} is not an EVM address")

        solver = self.client.address
        if order.is_native_out:
            balance = await self.client.get_balance(solver)
            if balance < order.amount_out:
                raise _Refusal(FillReason.INSUFFICIENT_BALANCE, f"native {balance} < {order.amount_out}")
            return

        balance = await self.client.erc20_balance(order.token_out, solver)
        if balance < order.amount_out:
            raise _Refusal(FillReason.INSUFFICIENT_BALANCE, f"token {balance} < {order.amount_out}")
        allowance = await self.client.erc20_allowance(order.token_out, solver, self.fill_gate.address)
        if allowance < order.amount_out:
            logger.info(f"[solver] Approving {order.amount_out} of {order.token_out} for the fill gate")
            await self.client.erc20_approve(order.token_out, self.fill_gate.address, order.amount_out)

    async def submit(self, order: Order) -> str:
        return await self.fill_gate.fill(order, order.recipient, self.solver_origin_address)

    async def confirm(self, tx_id: str) -> None:
        await self.client.wait_for_receipt(tx_id)


class StacksOrderFiller(OrderFiller):
    """
    Fills through the Stacks fill gate (fill-native / fill-token) with a
    deny-mode post-condition capping the transfer at the fill amount.
    """

    destination = "stacks"

    def __init__(
        self,
        open_gate: OpenGateContract,
        hiro: HiroClient,
        config: StacksConfig,
        key: StacksKey,
        solver_origin_address: str,
        stacks_recipient_address: str = "",
        fee: int = STACKS_DEFAULT_FEE,
        confirm_timeout: float = STACKS_TX_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(open_gate, clock)
        self.hiro = hiro
        self.config = config
        self.key = key
        self.network = network_by_name(config.network)
        self.sender = key.address(self.network)
        self.solver_origin_address = solver_origin_address
        self.stacks_recipient_address = stacks_recipient_address
        self.fee = fee
        self.confirm_timeout = confirm_timeout

    def resolve_recipient(self, order: Order) -> str:
        """The order's recipient if it is a Stacks principal, else the configured fallback."""
        if is_valid_principal(order.recipient, testnet=self.network.is_testnet):
            return order.recipient
        if self.stacks_recipient_address:
            logger.warning(
                f"[solver] Order {order.order_id} recipient {order.recipient!r} is not a Stacks "
                f"principal, delivering to {self.stacks_recipient_address}"
            )
            return self.stacks_recipient_address
        raise _Refusal(FillReason.INVALID_RECIPIENT, f"{order.recipient!r} is not a Stacks principal")

    async def already_filled(self, order: Order) -> bool:
        """
        Look for this order in the latest page of fill-gate events.

        The fill gate has no read-only status function, so this is a best
        effort check over `event_limit` events. A fill older than the page
        is still caught on chain: the contract rejects a second fill of the
        same order (err u100) and fill_order reports FAILED.
        """
        events = await self.hiro.get_contract_events(self.config.fill_gate_contract_id, self.config.event_limit)
        for raw in events:
            if not is_contract_log(raw, self.config.fill_gate_contract_id):
                continue
            try:
                event = decode_fill_event(raw)
            except DecodeError:
                continue
            if event.order_id != order.order_id:
                continue
            if event.source_chain_id in (None, order.source_chain_id):
                return True
        return False

    async def check_funds(self, order: Order) -> None:
        amount = expected_destination_amount(order)
        if amount == 0:
            raise _Refusal(FillReason.ZERO_AMOUNT, f"{order.amount_out} converts to 0")
        self.resolve_recipient(order)

        kind = token_kind(order.token_out)
        symbol = stacks_token_symbol(kind)
        stx_balance = await self.hiro.get_stx_balance(self.sender)
        logger.info(
            f"[solver] Order {order.order_id}: filling "
            f"{format_amount(amount, destination_decimals(kind), symbol)} from {self.sender}"
        )

        if order.is_native_out:
            required = amount + self.fee
            if stx_balance < required:
                raise _Refusal(FillReason.INSUFFICIENT_BALANCE, f"STX {stx_balance} < {required}")
            return

        if stx_balance < self.fee:
            raise _Refusal(FillReason.INSUFFICIENT_BALANCE, f"STX {stx_balance} < fee {self.fee}")
        token_balance = await self.hiro.get_fungible_balance(self.sender, self.config.sbtc_asset_identifier)
        if token_balance < amount:
            raise _Refusal(FillReason.INSUFFICIENT_BALANCE, f"{symbol} {token_balance} < {amount}")

    def build_transaction(self, order: Order, nonce: int):
        amount = expected_destination_amount(order)
        recipient = self.resolve_recipient(order)
        common_tail = [
            uint_cv(amount),
            principal_cv(recipient),
            string_ascii_cv(self.solver_origin_address),
            uint_cv(order.fill_deadline),
            uint_cv(order.source_chain_id),
        ]
        if order.is_native_out:
            function_name = "fill-native"
            args = [uint_cv(order.order_id)] + common_tail
            post_condition = StxPostCondition(self.sender, amount)
        else:
            function_name = "fill-token"
            args = [
                uint_cv(order.order_id),
                contract_principal_cv(self.config.sbtc_address, self.config.sbtc_name),
            ] + common_tail
            post_condition = FungiblePostCondition(
                self.sender,
                self.config.sbtc_contract_id,
                amount,
                asset_name=self.config.sbtc_asset_name,
            )

        return make_contract_call(
            key=self.key,
            network=self.network,
            contract_address=self.config.fill_gate_address,
            contract_name=self.config.fill_gate_name,
            function_name=function_name,
            args=args,
            nonce=nonce,
            fee=self.fee,
            post_conditions=[post_condition],
        )

    async def submit(self, order: Order) -> str:
        nonce = await self.hiro.get_nonce(self.sender)
        tx = self.build_transaction(order, nonce)
        txid = await self.hiro.broadcast(tx.serialize())
        logger.info(f"[solver] Order {order.order_id}: broadcast {tx.payload.function_name} {txid}")
        return txid

    async def confirm(self, tx_id: str) -> None:
        await self.hiro.wait_for_tx(tx_id, timeout=self.confirm_timeout)
