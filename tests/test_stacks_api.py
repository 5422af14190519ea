"""
Test suite for the Hiro API client and the Stacks fill gate listener

HTTP is served by httpx.MockTransport; no network access.
"""

import json

import httpx
import pytest

from fuelstack.config.loader import StacksConfig
from fuelstack.exceptions import ChainError, TransactionFailedError
from fuelstack.keeper.listeners import StacksFillGateListener
from fuelstack.stacks.api import HiroClient
from fuelstack.stacks.c32 import TESTNET_P2PKH, c32_address

from conftest import SOLVER_ORIGIN, STACKS_RECIPIENT

API = "https://api.testnet.example"
GATE = c32_address(TESTNET_P2PKH, bytes(range(20)))
CONFIG = StacksConfig(api_url=API, fill_gate_address=GATE, sbtc_address=GATE)


def fill_event(order_id: int, tx: str, index: int = 0, amount: int = 5_000_000, contract_id: str = None) -> dict:
    return {
        "event_index": index,
        "event_type": "smart_contract_log",
        "tx_id": tx,
        "contract_log": {
            "contract_id": contract_id or CONFIG.fill_gate_contract_id,
            "topic": "print",
            "value": {
                "hex": "0x",
                "repr": (
                    f"(tuple (amount-out u{amount}) (order-id u{order_id}) "
                    f"(recipient '{STACKS_RECIPIENT}) (solver-origin-address \"{SOLVER_ORIGIN}\") "
                    f"(source-chain-id u421614) (token-out \"native\"))"
                ),
            },
        },
    }


class MockHiro:
    """Serves a mutable list of events, newest first."""

    def __init__(self):
        self.events = []
        self.fail = False
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"limit": 20, "offset": 0, "results": list(self.events)})

    def client(self) -> HiroClient:
        return HiroClient(API, client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))


def api_with(handler) -> HiroClient:
    return HiroClient(API, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


# ============================================================================
#  HIRO CLIENT
# ============================================================================

@pytest.mark.asyncio
class TestHiroClient:

    async def test_contract_events(self):
        hiro = MockHiro()
        hiro.events = [fill_event(1, "0x01")]
        events = await hiro.client().get_contract_events(CONFIG.fill_gate_contract_id, 5)
        assert len(events) == 1
        request = hiro.requests[0]
        assert request.url.path == f"/extended/v1/contract/{CONFIG.fill_gate_contract_id}/events"
        assert request.url.params["limit"] == "5"

    async def test_http_error_is_chain_error(self):
        hiro = MockHiro()
        hiro.fail = True
        with pytest.raises(ChainError):
            await hiro.client().get_contract_events(CONFIG.fill_gate_contract_id)

    async def test_account_hex_balance(self):
        api = api_with(lambda r: httpx.Response(200, json={"balance": "0x0f4240", "nonce": 3}))
        assert await api.get_account(STACKS_RECIPIENT) == (1_000_000, 3)
        assert await api.get_nonce(STACKS_RECIPIENT) == 3

    async def test_fungible_balance_exact_and_prefix(self):
        tokens = {f"{CONFIG.sbtc_contract_id}::sbtc-token": {"balance": "250"}}
        api = api_with(lambda r: httpx.Response(200, json={"fungible_tokens": tokens}))
        assert await api.get_fungible_balance(STACKS_RECIPIENT, f"{CONFIG.sbtc_contract_id}::sbtc-token") == 250
        assert await api.get_fungible_balance(STACKS_RECIPIENT, CONFIG.sbtc_asset_identifier) == 250
        assert await api.get_fungible_balance(STACKS_RECIPIENT, f"{GATE}.other::x") == 0

    async def test_broadcast_returns_txid(self):
        def handler(request):
            assert request.headers["content-type"] == "application/octet-stream"
            return httpx.Response(200, text=json.dumps("0x" + "ab" * 32))

        assert await api_with(handler).broadcast(b"\x00") == "ab" * 32

    async def test_broadcast_rejection(self):
        body = {"error": "transaction rejected", "reason": "NotEnoughFunds", "reason_data": {}}
        api = api_with(lambda r: httpx.Response(400, json=body))
        with pytest.raises(TransactionFailedError, match="NotEnoughFunds"):
            await api.broadcast(b"\x00")

    async def test_tx_status_pending_on_404(self):
        api = api_with(lambda r: httpx.Response(404, json={"error": "not found"}))
        assert await api.get_tx_status("ab" * 32) == "pending"

    async def test_wait_for_tx_success(self):
        statuses = iter(["pending", "success"])
        api = api_with(lambda r: httpx.Response(200, json={"tx_status": next(statuses)}))
        assert await api.wait_for_tx("ab" * 32, timeout=5, poll_interval=0) == "success"

    async def test_wait_for_tx_aborted(self):
        api = api_with(lambda r: httpx.Response(200, json={"tx_status": "abort_by_post_condition"}))
        with pytest.raises(TransactionFailedError, match="abort_by_post_condition"):
            await api.wait_for_tx("ab" * 32, timeout=5, poll_interval=0)

    async def test_wait_for_tx_timeout(self):
        api = api_with(lambda r: httpx.Response(200, json={"tx_status": "pending"}))
        with pytest.raises(TransactionFailedError, match="not confirmed"):
            await api.wait_for_tx("ab" * 32, timeout=0, poll_interval=0)


# ============================================================================
#  STACKS FILL GATE LISTENER
# ============================================================================

class Recorder:
    def __init__(self, fail_on=()):
        self.events = []
        self.fail_on = set(fail_on)

    async def __call__(self, event):
        if event.order_id in self.fail_on:
            raise RuntimeError("handler exploded")
        self.events.append(event)


@pytest.mark.asyncio
class TestStacksFillGateListener:

    async def test_processes_oldest_first(self):
        hiro = MockHiro()
        hiro.events = [fill_event(3, "0x03"), fill_event(2, "0x02"), fill_event(1, "0x01")]
        handler = Recorder()
        listener = StacksFillGateListener(CONFIG, hiro.client(), handler)

        assert await listener.poll_once() == 3
        assert [e.order_id for e in handler.events] == [1, 2, 3]
        assert listener.last_event_id == "0x03-0"

    async def test_cursor_stops_reprocessing(self):
        hiro = MockHiro()
        hiro.events = [fill_event(1, "0x01")]
        handler = Recorder()
        listener = StacksFillGateListener(CONFIG, hiro.client(), handler)
        await listener.poll_once()

        hiro.events = [fill_event(2, "0x02"), fill_event(1, "0x01")]
        assert await listener.poll_once() == 1
        assert [e.order_id for e in handler.events] == [1, 2]
        assert await listener.poll_once() == 0

    async def test_same_tx_multiple_events(self):
        hiro = MockHiro()
        hiro.events = [fill_event(2, "0x0a", index=1), fill_event(1, "0x0a", index=0)]
        handler = Recorder()
        listener = StacksFillGateListener(CONFIG, hiro.client(), handler)
        assert await listener.poll_once() == 2
        assert listener.last_event_id == "0x0a-1"

    async def test_seen_events_not_redelivered_when_cursor_rolls_off(self):
        hiro = MockHiro()
        hiro.events = [fill_event(1, "0x01")]
        handler = Recorder()
        listener = StacksFillGateListener(CONFIG, hiro.client(), handler)
        await listener.poll_once()

        # cursor event fell off the page; page still holds an already handled event
        listener.last_event_id = "0xgone-0"
        hiro.events = [fill_event(2, "0x02"), fill_event(1, "0x01")]
        await listener.poll_once()
        assert [e.order_id for e in handler.events] == [1, 2]

    async def test_failed_fetch_keeps_cursor(self):
        hiro = MockHiro()
        hiro.events = [fill_event(1, "0x01")]
        listener = StacksFillGateListener(CONFIG, hiro.client(), Recorder())
        await listener.poll_once()

        hiro.fail = True
        with pytest.raises(ChainError):
            await listener.poll_once()
        assert listener.last_event_id == "0x01-0"

    async def test_other_contracts_and_garbage_skipped(self):
        hiro = MockHiro()
        garbage = fill_event(9, "0x09")
        garbage["contract_log"]["value"]["repr"] = "(tuple (order-id"
        hiro.events = [
            fill_event(3, "0x03"),
            garbage,
            fill_event(2, "0x02", contract_id=f"{GATE}.other"),
            {"event_index": 0, "event_type": "stx_asset", "tx_id": "0x00"},
        ]
        handler = Recorder()
        listener = StacksFillGateListener(CONFIG, hiro.client(), handler)
        assert await listener.poll_once() == 1
        assert [e.order_id for e in handler.events] == [3]

    async def test_handler_failure_does_not_stop_poll(self):
        hiro = MockHiro()
        hiro.events = [fill_event(2, "0x02"), fill_event(1, "0x01")]
        handler = Recorder(fail_on={1})
        listener = StacksFillGateListener(CONFIG, hiro.client(), handler)
        assert await listener.poll_once() == 1
        assert [e.order_id for e in handler.events] == [2]
        assert listener.last_event_id == "0x02-0"

    async def test_latest_cursor_skips_history(self):
        hiro = MockHiro()
        hiro.events = [fill_event(1, "0x01")]
        config = StacksConfig(api_url=API, fill_gate_address=GATE, initial_cursor="latest")
        handler = Recorder()
        listener = StacksFillGateListener(config, hiro.client(), handler)

        assert await listener.poll_once() == 0
        hiro.events = [fill_event(2, "0x02"), fill_event(1, "0x01")]
        assert await listener.poll_once() == 1
        assert [e.order_id for e in handler.events] == [2]

    async def test_empty_page(self):
        listener = StacksFillGateListener(CONFIG, MockHiro().client(), Recorder())
        assert await listener.poll_once() == 0
        assert listener.last_event_id is None
