"""
Test suite for the keeper: log watching, order ingestion, the fill
pipeline and the manager lifecycle

Covers the end-to-end flow: an order opened for 100 USDC asking for
1 native unit (10^18 origin units) is filled on Stacks with exactly
1000000 micro-STX and moves OPENED -> FILLED -> SETTLED.
"""

import asyncio
import io
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from rich.console import Console

from fuelstack.bridge.events import decode_order_opened
from fuelstack.bridge.settler import Settler
from fuelstack.bridge.types import OrderKey, OrderStatus, StacksFillEvent
from fuelstack.bridge.validator import FillValidator, RejectReason
from fuelstack.chains.abis import ORDER_OPENED_TOPIC
from fuelstack.chains.evm import EvmLogWatcher
from fuelstack.chains.registry import ChainRegistry
from fuelstack.config.loader import ARBITRUM_SEPOLIA, EvmChainConfig, KeeperConfig, StacksConfig
from fuelstack.constants import ZERO_ADDRESS
from fuelstack.exceptions import ChainError, TransactionFailedError
from fuelstack.keeper.listeners import OpenGateListener
from fuelstack.keeper.manager import KeeperManager
from fuelstack.keeper.pipeline import FillProcessor
from fuelstack.stacks.api import HiroClient
from fuelstack.stacks.c32 import TESTNET_P2PKH, c32_address

from conftest import NOW, ORIGIN_CHAIN_ID, SOLVER_ORIGIN, STACKS_RECIPIENT, opened_log

SETTLE_TX = "0x" + "5e" * 32


def mock_client(head: int = 0, logs=None):
    client = MagicMock()
    client.name = "mock"
    client.chain_id = ORIGIN_CHAIN_ID
    client.block_number = AsyncMock(return_value=head)
    client.get_logs = AsyncMock(return_value=logs or [])
    client.wait_for_receipt = AsyncMock(return_value={"status": 1})
    client.close = AsyncMock()
    return client


class MockGate:
    def __init__(self, client=None):
        self.client = client or mock_client()
        self.chain_id = ORIGIN_CHAIN_ID
        self.address = ARBITRUM_SEPOLIA.gate_address
        self.settle = AsyncMock(return_value=SETTLE_TX)


def origin_chain(**overrides) -> EvmChainConfig:
    return EvmChainConfig.from_dict(overrides, ARBITRUM_SEPOLIA)


def stacks_fill(amount_out: int = 1_000_000, order_id: int = 1) -> StacksFillEvent:
    return StacksFillEvent(
        order_id=order_id,
        amount_out=amount_out,
        solver_origin_address=SOLVER_ORIGIN,
        recipient=STACKS_RECIPIENT,
        token_out="native",
        source_chain_id=ORIGIN_CHAIN_ID,
        tx_id="0xfeed",
    )


# ============================================================================
#  LOG WATCHER
# ============================================================================

@pytest.mark.asyncio
class TestEvmLogWatcher:

    def watcher(self, client, handler, **kwargs):
        return EvmLogWatcher(
            client=client,
            address=ARBITRUM_SEPOLIA.gate_address,
            topic=ORDER_OPENED_TOPIC,
            decoder=decode_order_opened,
            handler=handler,
            **kwargs,
        )

    async def test_block_ranges(self):
        client = mock_client(head=25)
        watcher = self.watcher(client, AsyncMock(), start_block=0, max_block_range=10)
        await watcher.poll_once()
        ranges = [(c.args[2], c.args[3]) for c in client.get_logs.await_args_list]
        assert ranges == [(0, 9), (10, 19), (20, 25)]
        assert watcher.next_block == 26

    async def test_confirmations(self):
        client = mock_client(head=25)
        watcher = self.watcher(client, AsyncMock(), start_block=18, confirmations=5)
        await watcher.poll_once()
        client.get_logs.assert_awaited_once()
        assert client.get_logs.await_args.args[2:] == (18, 20)

    async def test_default_start_is_safe_head(self):
        client = mock_client(head=500)
        watcher = self.watcher(client, AsyncMock())
        await watcher.poll_once()
        assert client.get_logs.await_args.args[2:] == (500, 500)

    async def test_logs_sorted_and_malformed_skipped(self):
        broken = opened_log(order_id=9, block_number=101)
        broken["data"] = b"\x00"
        client = mock_client(head=101, logs=[
            opened_log(order_id=3, block_number=101, log_index=1),
            broken,
            opened_log(order_id=2, block_number=101, log_index=0),
            opened_log(order_id=1, block_number=100, log_index=5),
        ])
        seen = []

        async def handler(event):
            seen.append(event.order_id)

        watcher = self.watcher(client, handler, start_block=100)
        assert await watcher.poll_once() == 3
        assert seen == [1, 2, 3]

    async def test_rpc_failure_keeps_cursor(self):
        client = mock_client(head=10)
        client.get_logs.side_effect = ChainError("boom")
        watcher = self.watcher(client, AsyncMock(), start_block=5)
        with pytest.raises(ChainError):
            await watcher.poll_once()
        assert watcher.next_block == 5


# ============================================================================
#  OPEN GATE LISTENER
# ============================================================================

@pytest.mark.asyncio
class TestOpenGateListener:

    async def test_ingest_is_idempotent(self, ledger):
        logs = [opened_log(order_id=1), opened_log(order_id=2, log_index=1), opened_log(order_id=1)]
        client = mock_client(head=100, logs=logs)
        listener = OpenGateListener(origin_chain(start_block=100), client, ledger)

        await listener.watcher.poll_once()
        await ledger.mark_filled(OrderKey(ORIGIN_CHAIN_ID, 1))

        # reconnect replay from the same block
        listener.watcher.next_block = 100
        await listener.watcher.poll_once()

        orders = await ledger.list_orders()
        assert [o.order_id for o in orders] == [1, 2]
        assert orders[0].status == OrderStatus.FILLED
        assert orders[1].status == OrderStatus.OPENED

    async def test_missing_chain_id_uses_listener_chain(self, ledger):
        client = mock_client(head=100, logs=[opened_log(source_chain_id=0)])
        listener = OpenGateListener(origin_chain(start_block=100), client, ledger)
        await listener.watcher.poll_once()
        assert await ledger.get(OrderKey(ORIGIN_CHAIN_ID, 1)) is not None

    async def test_start_stop(self, ledger):
        listener = OpenGateListener(origin_chain(poll_interval=0.01), mock_client(), ledger)
        listener.start()
        await asyncio.sleep(0.02)
        assert listener.running
        await listener.stop()
        assert not listener.running


# ============================================================================
#  FILL PIPELINE
# ============================================================================

@pytest.fixture
def gate():
    return MockGate()


@pytest.fixture
def processor(ledger, clock, gate):
    registry = ChainRegistry()
    registry.register(gate)
    return FillProcessor(FillValidator(ledger, clock=clock), Settler(ledger, registry))


@pytest.mark.asyncio
class TestEndToEnd:

    async def ingest(self, ledger):
        log = opened_log(
            amount_in=100_000000,
            token_out=ZERO_ADDRESS,
            amount_out=1_000_000_000_000_000_000,
            fill_deadline=NOW + 86400,
        )
        listener = OpenGateListener(origin_chain(start_block=100), mock_client(head=100, logs=[log]), ledger)
        await listener.watcher.poll_once()
        return await ledger.require(OrderKey(ORIGIN_CHAIN_ID, 1))

    async def test_opened_filled_settled(self, ledger, processor, gate):
        order = await self.ingest(ledger)
        assert order.status == OrderStatus.OPENED

        result = await processor.handle_fill(stacks_fill(amount_out=1_000_000))
        assert result.accepted

        stored = await ledger.require(order.key)
        assert stored.status == OrderStatus.SETTLED
        assert stored.fill_tx_hash == "0xfeed"
        assert stored.settle_tx_hash == SETTLE_TX
        gate.settle.assert_awaited_once_with(1, SOLVER_ORIGIN)
        assert processor.stats.settled == 1

    async def test_wrong_amount_stays_opened(self, ledger, processor, gate):
        order = await self.ingest(ledger)
        result = await processor.handle_fill(stacks_fill(amount_out=999_999))
        assert result.reason is RejectReason.AMOUNT_MISMATCH
        assert (await ledger.require(order.key)).status == OrderStatus.OPENED
        gate.settle.assert_not_awaited()
        assert processor.stats.rejected == 1

    async def test_duplicate_fill_settles_once(self, ledger, processor, gate):
        await self.ingest(ledger)
        await processor.handle_fill(stacks_fill())
        result = await processor.handle_fill(stacks_fill())
        assert result.reason is RejectReason.WRONG_STATUS
        assert gate.settle.await_count == 1

    async def test_settlement_failure_leaves_filled(self, ledger, processor, gate):
        order = await self.ingest(ledger)
        gate.client.wait_for_receipt.side_effect = TransactionFailedError("reverted")
        result = await processor.handle_fill(stacks_fill())
        assert result.accepted
        assert (await ledger.require(order.key)).status == OrderStatus.FILLED
        assert processor.stats.settlement_failures == 1


# ============================================================================
#  MANAGER
# ============================================================================

@pytest.mark.asyncio
class TestKeeperManager:

    async def test_lifecycle(self, ledger):
        gate_address = c32_address(TESTNET_P2PKH, bytes(range(20)))
        config = KeeperConfig(
            origin_chains=[origin_chain(poll_interval=0.01)],
            stacks=StacksConfig(fill_gate_address=gate_address, sbtc_address=gate_address, poll_interval=0.01),
        )
        gate = MockGate()
        registry = ChainRegistry()
        registry.register(gate)
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"results": []}))
        hiro = HiroClient("https://api.testnet.example", client=httpx.AsyncClient(transport=transport))
        output = io.StringIO()

        manager = KeeperManager(
            config,
            ledger=ledger,
            registry=registry,
            hiro=hiro,
            console=Console(file=output),
        )
        assert len(manager.listeners) == 2

        stop_event = asyncio.Event()
        task = asyncio.create_task(manager.run(stop_event))
        await asyncio.sleep(0.05)
        assert all(listener.running for listener in manager.listeners)

        stop_event.set()
        await task
        assert not any(listener.running for listener in manager.listeners)
        gate.client.close.assert_awaited()
        assert "Order Ledger" in output.getvalue()
