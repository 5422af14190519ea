"""
Amount / unit conversion between the origin (EVM) and destination (Stacks)
numeric models.

All amounts are base-unit Python ints. Native amounts move from 18 to 6
decimals by floor division: the remainder is dropped exactly as the fill
gate's on-chain rounding drops it. The pegged asset has 8 decimals on both
chains and passes through unchanged.
"""

from typing import Union

from ..constants import (
    EVM_NATIVE_DECIMALS,
    NATIVE_SYMBOL,
    PEGGED_SYMBOL,
    SBTC_DECIMALS,
    STACKS_NATIVE_DECIMALS,
    STACKS_NATIVE_TOKEN_TAG,
    ZERO_ADDRESS,
)
from .types import Order, TokenKind

NATIVE_SCALE = 10 ** (EVM_NATIVE_DECIMALS - STACKS_NATIVE_DECIMALS)


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"amount must be an int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError("amount must be non-negative")
    return amount


def to_destination_amount(origin_amount: int, is_native: bool) -> int:
    """
    Convert an origin-chain amount to destination base units.

    >>> to_destination_amount(5_000_000_000_000_000_000, True)
    5000000
    >>> to_destination_amount(150_000_000, False)
    150000000
    """
    _check_amount(origin_amount)
    if is_native:
        return origin_amount // NATIVE_SCALE
    return origin_amount


def to_origin_amount(destination_amount: int, is_native: bool) -> int:
    """Inverse scaling, for display. Truncated digits are not recovered."""
    _check_amount(destination_amount)
    if is_native:
        return destination_amount * NATIVE_SCALE
    return destination_amount


def expected_destination_amount(order: Order) -> int:
    """The exact amount a destination fill of `order` must carry."""
    return to_destination_amount(order.amount_out, is_native_token(order.token_out))


def is_native_token(address: str) -> bool:
    return (address or "").lower() == ZERO_ADDRESS


def token_kind(address: str) -> TokenKind:
    return TokenKind.NATIVE if is_native_token(address) else TokenKind.PEGGED


def stacks_token_symbol(kind: TokenKind) -> str:
    return NATIVE_SYMBOL if kind is TokenKind.NATIVE else PEGGED_SYMBOL


def stacks_token_kind(token: str) -> TokenKind:
    """
    Token kind of a Stacks fill.

    fill-native prints the tag "native"; fill-token prints the asset. The
    symbols themselves are accepted too.
    """
    if token in (STACKS_NATIVE_TOKEN_TAG, NATIVE_SYMBOL):
        return TokenKind.NATIVE
    return TokenKind.PEGGED


def destination_decimals(kind: TokenKind) -> int:
    return STACKS_NATIVE_DECIMALS if kind is TokenKind.NATIVE else SBTC_DECIMALS


def origin_decimals(kind: TokenKind) -> int:
    return EVM_NATIVE_DECIMALS if kind is TokenKind.NATIVE else SBTC_DECIMALS


def format_amount(amount: Union[int, str], decimals: int, symbol: str = "") -> str:
    """
    Exact decimal rendering of a base-unit amount, trailing zeros trimmed.

    >>> format_amount(1_500_000, 6, "STX")
    '1.5 STX'
    """
    amount = int(amount)
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10 ** decimals)
    text = f"{sign}{whole}"
    if decimals and frac:
        text += "." + str(frac).rjust(decimals, "0").rstrip("0")
    return f"{text} {symbol}".rstrip()
