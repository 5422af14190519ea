"""
Decoding of raw EVM logs into typed bridge events.

Logs arrive either as web3 AttributeDicts or as plain dicts carrying the
JSON-RPC fields (topics, data, blockNumber, logIndex, transactionHash).
Anything that does not decode to the fixed gate ABI raises DecodeError.
"""

from typing import Any, List, Mapping

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from ..chains.abis import (
    ORDER_FILLED_DATA_TYPES,
    ORDER_FILLED_TOPIC,
    ORDER_OPENED_DATA_TYPES,
    ORDER_OPENED_TOPIC,
)
from ..exceptions import DecodeError
from .types import EvmFillEvent, OrderOpenedEvent


def to_bytes(value: Any) -> bytes:
    """HexBytes / bytes / 0x-hex string to bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            return bytes.fromhex(text)
        except ValueError as e:
            raise DecodeError(f"Invalid hex value: {value!r}") from e
    raise DecodeError(f"Expected bytes or hex string, got {type(value).__name__}")


def to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise DecodeError("Expected integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith("0x") else int(value)
        except ValueError as e:
            raise DecodeError(f"Invalid integer: {value!r}") from e
    if value is None:
        return 0
    raise DecodeError(f"Expected integer, got {type(value).__name__}")


def _topics(log: Mapping[str, Any], expected_topic: bytes, count: int) -> List[bytes]:
    try:
        topics = [to_bytes(t) for t in log["topics"]]
    except KeyError as e:
        raise DecodeError("Log has no topics") from e
    if len(topics) != count:
        raise DecodeError(f"Expected {count} topics, got {len(topics)}")
    if topics[0] != expected_topic:
        raise DecodeError(f"Unexpected event topic 0x{topics[0].hex()}")
    for t in topics[1:]:
        if len(t) != 32:
            raise DecodeError("Indexed topic is not 32 bytes")
    return topics


def _topic_address(topic: bytes) -> str:
    if any(topic[:12]):
        raise DecodeError("Indexed address topic has non-zero high bytes")
    return to_checksum_address(topic[12:])


def _position(log: Mapping[str, Any]) -> dict:
    tx_hash = log.get("transactionHash")
    return {
        "tx_hash": "0x" + to_bytes(tx_hash).hex() if tx_hash is not None else "",
        "block_number": to_int(log.get("blockNumber")),
        "log_index": to_int(log.get("logIndex")),
    }


def _decode_data(types: List[str], log: Mapping[str, Any]) -> tuple:
    try:
        return decode(types, to_bytes(log.get("data", b"")))
    except (DecodingError, ValueError, TypeError, OverflowError) as e:
        raise DecodeError(f"Malformed log data: {e}") from e


def decode_order_opened(log: Mapping[str, Any]) -> OrderOpenedEvent:
    """Decode an open gate OrderOpened log."""
    topics = _topics(log, ORDER_OPENED_TOPIC, 4)
    amount_in, token_out, amount_out, recipient, fill_deadline, source_chain_id = (
        _decode_data(ORDER_OPENED_DATA_TYPES, log)
    )
    return OrderOpenedEvent(
        order_id=int.from_bytes(topics[1], "big"),
        sender=_topic_address(topics[2]),
        token_in=_topic_address(topics[3]),
        amount_in=amount_in,
        token_out=to_checksum_address(token_out),
        amount_out=amount_out,
        recipient=recipient,
        fill_deadline=fill_deadline,
        source_chain_id=source_chain_id,
        **_position(log),
    )


def decode_order_filled(log: Mapping[str, Any]) -> EvmFillEvent:
    """Decode an EVM fill gate OrderFilled log."""
    topics = _topics(log, ORDER_FILLED_TOPIC, 3)
    token_out, amount_out, recipient, solver_origin, fill_deadline, source_chain_id = (
        _decode_data(ORDER_FILLED_DATA_TYPES, log)
    )
    return EvmFillEvent(
        order_id=int.from_bytes(topics[1], "big"),
        solver=_topic_address(topics[2]),
        token_out=to_checksum_address(token_out),
        amount_out=amount_out,
        recipient=to_checksum_address(recipient),
        solver_origin_address=to_checksum_address(solver_origin),
        fill_deadline=fill_deadline,
        source_chain_id=source_chain_id,
        **_position(log),
    )
