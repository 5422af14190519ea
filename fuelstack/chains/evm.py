"""
EVM chain access for the keeper and the solver.

  - EvmChainClient: one JSON-RPC endpoint plus an optional signing account
  - OpenGateContract / FillGateContract: typed wrappers over the gate ABIs
  - EvmLogWatcher: eth_getLogs poll loop with a block cursor

Every RPC failure surfaces as ChainError so listener loops can treat them
uniformly as transient.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from eth_account import Account
from eth_utils import to_checksum_address
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from ..bridge.types import Order, OrderStatus, status_from_sentinel
from ..constants import (
    CONNECTION_TIMEOUT,
    EVM_MAX_BLOCK_RANGE,
    EVM_POLL_INTERVAL,
    EVM_RETRY_DELAY,
    RECEIPT_TIMEOUT,
    ZERO_ADDRESS,
)
from ..exceptions import ChainError, DecodeError, TransactionFailedError
from ..logger import get_logger
from .abis import ERC20_ABI, FILL_GATE_ABI, OPEN_GATE_ABI

logger = get_logger(__name__)


class EvmChainClient:
    """
    Async web3 client for one EVM chain.

    Transactions from the client's account are serialized through a lock so
    nonces are never reused.
    """

    def __init__(
        self,
        chain_id: int,
        rpc_url: str,
        name: str = "",
        private_key: Optional[str] = None,
        web3: Optional[AsyncWeb3] = None,
        timeout: float = CONNECTION_TIMEOUT,
    ):
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.name = name or f"chain-{chain_id}"
        self.w3 = web3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        )
        self.account = Account.from_key(private_key) if private_key else None
        self._tx_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"EvmChainClient({self.name}, chain_id={self.chain_id})"

    @property
    def address(self) -> Optional[str]:
        return self.account.address if self.account else None

    async def _rpc(self, what: str, awaitable: Awaitable) -> Any:
        try:
            return await awaitable
        except ChainError:
            raise
        except Exception as e:
            raise ChainError(f"{self.name}: {what} failed: {e}") from e

    async def close(self) -> None:
        provider = self.w3.provider
        if hasattr(provider, "disconnect"):
            await provider.disconnect()

    # ── Reads ─────────────────────────────────────────────────────────

    async def verify_chain_id(self) -> None:
        remote = await self._rpc("eth_chainId", self.w3.eth.chain_id)
        if int(remote) != self.chain_id:
            raise ChainError(
                f"{self.name}: RPC reports chain id {remote}, expected {self.chain_id}"
            )

    async def block_number(self) -> int:
        return int(await self._rpc("eth_blockNumber", self.w3.eth.block_number))

    async def get_logs(self, address: str, topics: List[bytes], from_block: int, to_block: int) -> List[Any]:
        params = {
            "address": to_checksum_address(address),
            "topics": ["0x" + t.hex() for t in topics],
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        return list(await self._rpc("eth_getLogs", self.w3.eth.get_logs(params)))

    async def get_balance(self, address: str) -> int:
        return int(await self._rpc(
            "eth_getBalance", self.w3.eth.get_balance(to_checksum_address(address))
        ))

    def contract(self, address: str, abi: List[Dict[str, Any]]):
        return self.w3.eth.contract(address=to_checksum_address(address), abi=abi)

    async def call(self, fn, what: str) -> Any:
        return await self._rpc(what, fn.call())

    # ── ERC20 ─────────────────────────────────────────────────────────

    async def erc20_balance(self, token: str, owner: str) -> int:
        erc20 = self.contract(token, ERC20_ABI)
        return int(await self.call(erc20.functions.balanceOf(to_checksum_address(owner)), "balanceOf"))

    async def erc20_allowance(self, token: str, owner: str, spender: str) -> int:
        erc20 = self.contract(token, ERC20_ABI)
        fn = erc20.functions.allowance(to_checksum_address(owner), to_checksum_address(spender))
        return int(await self.call(fn, "allowance"))

    async def erc20_approve(self, token: str, spender: str, amount: int) -> str:
        erc20 = self.contract(token, ERC20_ABI)
        tx_hash = await self.send_transaction(
            erc20.functions.approve(to_checksum_address(spender), amount), "approve"
        )
        await self.wait_for_receipt(tx_hash)
        return tx_hash

    # ── Writes ────────────────────────────────────────────────────────

    async def send_transaction(self, fn, what: str, value: int = 0) -> str:
        """Build, sign and broadcast a contract call. Returns the 0x tx hash."""
        if self.account is None:
            raise ChainError(f"{self.name}: no signing key configured for {what}")

        async with self._tx_lock:
            nonce = await self._rpc(
                "eth_getTransactionCount",
                self.w3.eth.get_transaction_count(self.account.address, "pending"),
            )
            tx = await self._rpc(what, fn.build_transaction({
                "from": self.account.address,
                "nonce": nonce,
                "value": value,
                "chainId": self.chain_id,
            }))
            signed = self.account.sign_transaction(tx)
            tx_hash = await self._rpc(
                "eth_sendRawTransaction", self.w3.eth.send_raw_transaction(signed.raw_transaction)
            )

        tx_hex = "0x" + bytes(tx_hash).hex()
        logger.info(f"[{self.name}] {what} submitted: {tx_hex}")
        return tx_hex

    async def wait_for_receipt(self, tx_hash: str, timeout: float = RECEIPT_TIMEOUT) -> Dict[str, Any]:
        """
        Wait until `tx_hash` is mined.

        Raises:
            TransactionFailedError: reverted (status 0) or not mined within `timeout`
        """
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise TransactionFailedError(f"{self.name}: {tx_hash} not mined within {timeout}s") from e
        except Exception as e:
            raise ChainError(f"{self.name}: receipt lookup for {tx_hash} failed: {e}") from e

        if receipt["status"] != 1:
            raise TransactionFailedError(f"{self.name}: {tx_hash} reverted")
        return receipt


class OpenGateContract:
    """Origin-chain open gate: order reads and oracle settlement."""

    def __init__(self, client: EvmChainClient, address: str):
        self.client = client
        self.address = to_checksum_address(address)
        self.contract = client.contract(address, OPEN_GATE_ABI)

    @property
    def chain_id(self) -> int:
        return self.client.chain_id

    async def get_order(self, order_id: int) -> Optional[Order]:
        """Read `orders(orderId)`. A zero sender means the order does not exist."""
        values = await self.client.call(self.contract.functions.orders(order_id), "orders")
        try:
            sender, token_in, amount_in, token_out, amount_out, recipient, deadline, chain_id = values
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Unexpected orders() result: {values!r}") from e
        if sender.lower() == ZERO_ADDRESS:
            return None
        return Order(
            order_id=order_id,
            sender=sender,
            token_in=token_in,
            amount_in=int(amount_in),
            token_out=token_out,
            amount_out=int(amount_out),
            recipient=recipient,
            fill_deadline=int(deadline),
            source_chain_id=int(chain_id) or self.chain_id,
        )

    async def order_status(self, order_id: int) -> Optional[OrderStatus]:
        raw = await self.client.call(self.contract.functions.orderStatus(order_id), "orderStatus")
        return status_from_sentinel(raw)

    async def settle(self, order_id: int, solver_recipient: str) -> str:
        fn = self.contract.functions.settle(order_id, to_checksum_address(solver_recipient))
        return await self.client.send_transaction(fn, f"settle({order_id})")


class FillGateContract:
    """EVM destination fill gate."""

    def __init__(self, client: EvmChainClient, address: str):
        self.client = client
        self.address = to_checksum_address(address)
        self.contract = client.contract(address, FILL_GATE_ABI)

    async def order_status(self, order_id: int) -> Optional[OrderStatus]:
        raw = await self.client.call(self.contract.functions.orderStatus(order_id), "orderStatus")
        return status_from_sentinel(raw)

    async def fill(self, order: Order, recipient: str, solver_origin_address: str) -> str:
        fn = self.contract.functions.fill(
            order.order_id,
            to_checksum_address(order.token_out),
            order.amount_out,
            to_checksum_address(recipient),
            to_checksum_address(solver_origin_address),
            order.fill_deadline,
            order.source_chain_id,
        )
        value = order.amount_out if order.is_native_out else 0
        return await self.client.send_transaction(fn, f"fill({order.order_id})", value=value)


class EvmLogWatcher:
    """
    Polls eth_getLogs for one contract/topic and hands decoded events to a
    handler, in (block_number, log_index) order.

    The cursor starts at `start_block`, or at the current safe head when
    unset. Only blocks at least `confirmations` deep are read. A failed
    range is retried after `retry_delay` without moving the cursor.
    """

    def __init__(
        self,
        client: EvmChainClient,
        address: str,
        topic: bytes,
        decoder: Callable[[Any], Any],
        handler: Callable[[Any], Awaitable[None]],
        name: str = "",
        start_block: Optional[int] = None,
        confirmations: int = 0,
        poll_interval: float = EVM_POLL_INTERVAL,
        retry_delay: float = EVM_RETRY_DELAY,
        max_block_range: int = EVM_MAX_BLOCK_RANGE,
    ):
        if max_block_range < 1:
            raise ValueError("max_block_range must be >= 1")
        self.client = client
        self.address = address
        self.topic = topic
        self.decoder = decoder
        self.handler = handler
        self.name = name or f"watch-{client.name}"
        self.start_block = start_block
        self.confirmations = confirmations
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay
        self.max_block_range = max_block_range

        self.next_block: Optional[int] = None
        self._stop = asyncio.Event()

    async def poll_once(self) -> int:
        """Process every confirmed log past the cursor. Returns events handled."""
        head = await self.client.block_number()
        safe_head = head - self.confirmations
        if self.next_block is None:
            self.next_block = self.start_block if self.start_block is not None else max(safe_head, 0)
            logger.info(f"[{self.name}] Watching {self.address} from block {self.next_block}")

        handled = 0
        while self.next_block <= safe_head:
            to_block = min(safe_head, self.next_block + self.max_block_range - 1)
            logs = await self.client.get_logs(self.address, [self.topic], self.next_block, to_block)
            for log in sorted(logs, key=lambda l: (int(l["blockNumber"]), int(l["logIndex"]))):
                try:
                    event = self.decoder(log)
                except DecodeError as e:
                    logger.warning(f"[{self.name}] Skipping malformed log: {e}")
                    continue
                try:
                    await self.handler(event)
                    handled += 1
                except Exception as e:
                    logger.error(f"[{self.name}] Handler failed for order {getattr(event, 'order_id', '?')}: {e}")
            self.next_block = to_block + 1
        return handled

    async def run(self) -> None:
        self._stop.clear()
        while not self._stop.is_set():
            delay = self.poll_interval
            try:
                await self.poll_once()
            except ChainError as e:
                logger.warning(f"[{self.name}] RPC error, retrying in {self.retry_delay}s: {e}")
                delay = self.retry_delay
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stop.set()
