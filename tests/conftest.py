"""Shared fixtures for the FuelStack test suite."""

import pytest
from eth_abi import encode
from eth_utils import to_checksum_address

from fuelstack.bridge.ledger import OrderLedger
from fuelstack.bridge.types import Order
from fuelstack.chains.abis import (
    ORDER_FILLED_DATA_TYPES,
    ORDER_FILLED_TOPIC,
    ORDER_OPENED_DATA_TYPES,
    ORDER_OPENED_TOPIC,
)
from fuelstack.constants import ZERO_ADDRESS
from fuelstack.stacks.c32 import TESTNET_P2PKH, c32_address

ORIGIN_CHAIN_ID = 421614
OTHER_CHAIN_ID = 11155111
NOW = 1_700_000_000

SENDER = to_checksum_address("0x7e5f4552091a69125d5dfcb7b8c2659029395bdf")
USDC = to_checksum_address("0x75faf114eafb1bdbe2f0316df893fd58ce46aa4d")
SBTC_EVM = to_checksum_address("0x3449353c85500ee971ee64b193d15ef39bf01f04")
EVM_RECIPIENT = to_checksum_address("0x2b5ad5c4795c026514f8317c7a215e218dccd6cf")
SOLVER_ORIGIN = to_checksum_address("0x6813eb9362372eef6200f3b1dbc3f819671cba69")
STACKS_RECIPIENT = c32_address(TESTNET_P2PKH, bytes.fromhex("6d78de7b0625dfbfc16c3a8a5735f6dc3dc3f2ce"))


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_order(
    order_id: int = 1,
    source_chain_id: int = ORIGIN_CHAIN_ID,
    token_out: str = ZERO_ADDRESS,
    amount_out: int = 5_000_000_000_000_000_000,
    recipient: str = STACKS_RECIPIENT,
    fill_deadline: int = NOW + 86400,
    **kwargs,
) -> Order:
    return Order(
        order_id=order_id,
        sender=kwargs.pop("sender", SENDER),
        token_in=kwargs.pop("token_in", USDC),
        amount_in=kwargs.pop("amount_in", 100_000000),
        token_out=token_out,
        amount_out=amount_out,
        recipient=recipient,
        fill_deadline=fill_deadline,
        source_chain_id=source_chain_id,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger():
    return OrderLedger()


def _address_topic(address: str) -> bytes:
    return bytes(12) + bytes.fromhex(address[2:])


def opened_log(
    order_id: int = 1,
    sender: str = SENDER,
    token_in: str = USDC,
    amount_in: int = 100_000000,
    token_out: str = ZERO_ADDRESS,
    amount_out: int = 1_000_000_000_000_000_000,
    recipient: str = STACKS_RECIPIENT,
    fill_deadline: int = NOW + 86400,
    source_chain_id: int = ORIGIN_CHAIN_ID,
    block_number: int = 100,
    log_index: int = 0,
) -> dict:
    """A raw OrderOpened log as eth_getLogs returns it."""
    data = encode(
        ORDER_OPENED_DATA_TYPES,
        [amount_in, token_out, amount_out, recipient, fill_deadline, source_chain_id],
    )
    return {
        "topics": [
            ORDER_OPENED_TOPIC,
            order_id.to_bytes(32, "big"),
            _address_topic(sender),
            _address_topic(token_in),
        ],
        "data": data,
        "blockNumber": block_number,
        "logIndex": log_index,
        "transactionHash": bytes([order_id % 256]) * 32,
    }


def filled_log(
    order_id: int = 1,
    solver: str = "0x1111111111111111111111111111111111111111",
    token_out: str = SBTC_EVM,
    amount_out: int = 150_000_000,
    recipient: str = EVM_RECIPIENT,
    solver_origin: str = SOLVER_ORIGIN,
    fill_deadline: int = NOW + 86400,
    source_chain_id: int = ORIGIN_CHAIN_ID,
    block_number: int = 200,
    log_index: int = 0,
) -> dict:
    """A raw OrderFilled log from the EVM fill gate."""
    data = encode(
        ORDER_FILLED_DATA_TYPES,
        [token_out, amount_out, recipient, solver_origin, fill_deadline, source_chain_id],
    )
    return {
        "topics": [ORDER_FILLED_TOPIC, order_id.to_bytes(32, "big"), _address_topic(solver)],
        "data": "0x" + data.hex(),
        "blockNumber": hex(block_number),
        "logIndex": hex(log_index),
        "transactionHash": "0x" + "ee" * 32,
    }
