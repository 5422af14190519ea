"""
Decoding of Stacks fill gate print events, as returned by the Hiro
contract events endpoint:

    {
      "event_index": 0,
      "event_type": "smart_contract_log",
      "tx_id": "0x...",
      "contract_log": {
        "contract_id": "ST3P...fill-gate",
        "topic": "print",
        "value": {"hex": "0x...", "repr": "(tuple (amount-out u3000) ...)"}
      }
    }
"""

from typing import Any, Dict, Optional

from ..bridge.types import StacksFillEvent
from ..exceptions import DecodeError
from .clarity import ClarityType, ClarityValue, parse_repr

SMART_CONTRACT_LOG = "smart_contract_log"


def event_id(raw: Dict[str, Any]) -> str:
    """Composite cursor id "{tx_id}-{event_index}"."""
    return f"{raw.get('tx_id')}-{raw.get('event_index')}"


def is_contract_log(raw: Dict[str, Any], contract_id: str) -> bool:
    if raw.get("event_type") != SMART_CONTRACT_LOG:
        return False
    log = raw.get("contract_log") or {}
    return log.get("contract_id") == contract_id


def _field(data: Dict[str, ClarityValue], name: str) -> ClarityValue:
    try:
        return data[name]
    except KeyError:
        raise DecodeError(f"Fill event is missing {name!r}") from None


def _uint(data: Dict[str, ClarityValue], name: str) -> int:
    cv = _field(data, name)
    if cv.type != ClarityType.UINT:
        raise DecodeError(f"{name!r} must be a uint, got {cv.type.name}")
    return cv.value


def _text(data: Dict[str, ClarityValue], name: str) -> str:
    """String, principal or ascii/utf8 text field."""
    cv = _field(data, name)
    if cv.type in (
        ClarityType.STRING_ASCII,
        ClarityType.STRING_UTF8,
        ClarityType.STANDARD_PRINCIPAL,
        ClarityType.CONTRACT_PRINCIPAL,
    ):
        return cv.value
    raise DecodeError(f"{name!r} must be a string or principal, got {cv.type.name}")


def decode_fill_event(raw: Dict[str, Any]) -> StacksFillEvent:
    """
    Decode one smart_contract_log event into a StacksFillEvent.

    `source-chain-id` is optional; older fill gates do not print it.
    """
    try:
        repr_text = raw["contract_log"]["value"]["repr"]
    except (KeyError, TypeError):
        raise DecodeError("Event has no contract_log.value.repr") from None

    cv = parse_repr(repr_text)
    if cv.type != ClarityType.TUPLE:
        raise DecodeError(f"Fill event payload must be a tuple, got {cv.type.name}")
    data = cv.value

    source_chain_id: Optional[int] = None
    if "source-chain-id" in data:
        source_chain_id = _uint(data, "source-chain-id")

    try:
        event_index = int(raw.get("event_index", 0))
    except (TypeError, ValueError):
        raise DecodeError(f"Invalid event_index {raw.get('event_index')!r}") from None

    return StacksFillEvent(
        order_id=_uint(data, "order-id"),
        amount_out=_uint(data, "amount-out"),
        solver_origin_address=_text(data, "solver-origin-address"),
        recipient=_text(data, "recipient"),
        token_out=_text(data, "token-out"),
        source_chain_id=source_chain_id,
        tx_id=str(raw.get("tx_id", "")),
        event_index=event_index,
    )
