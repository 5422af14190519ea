"""
Test suite for FuelStack amount conversion and status sentinels
"""

import pytest

from fuelstack.bridge.converter import (
    NATIVE_SCALE,
    expected_destination_amount,
    format_amount,
    is_native_token,
    stacks_token_kind,
    to_destination_amount,
    to_origin_amount,
    token_kind,
)
from fuelstack.bridge.types import (
    OrderStatus,
    TokenKind,
    can_transition,
    status_from_sentinel,
    status_sentinel,
)
from fuelstack.constants import ZERO_ADDRESS

from conftest import SBTC_EVM, make_order


class TestNativeScaling:

    def test_scale_is_twelve_decimals(self):
        assert NATIVE_SCALE == 10 ** 12

    def test_whole_units(self):
        assert to_destination_amount(5_000_000_000_000_000_000, True) == 5_000_000
        assert to_destination_amount(1_000_000_000_000_000_000, True) == 1_000_000

    def test_remainder_is_truncated(self):
        assert to_destination_amount(1_999_999_999_999, True) == 1
        assert to_destination_amount(999_999_999_999, True) == 0

    def test_zero(self):
        assert to_destination_amount(0, True) == 0

    def test_to_origin_does_not_recover_truncation(self):
        origin = 1_500_000_000_000_123
        back = to_origin_amount(to_destination_amount(origin, True), True)
        assert back == 1_500_000_000_000_000
        assert back <= origin


class TestPeggedPassthrough:

    def test_pegged_unchanged(self):
        assert to_destination_amount(150_000_000, False) == 150_000_000
        assert to_origin_amount(150_000_000, False) == 150_000_000


class TestAmountValidation:

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            to_destination_amount(-1, True)

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            to_destination_amount(1.5, True)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            to_destination_amount(True, False)

    def test_huge_values_exact(self):
        value = 2 ** 256 - 1
        assert to_destination_amount(value, True) == value // 10 ** 12


class TestTokenKind:

    def test_zero_address_is_native(self):
        assert is_native_token(ZERO_ADDRESS)
        assert token_kind(ZERO_ADDRESS) is TokenKind.NATIVE

    def test_token_is_pegged(self):
        assert not is_native_token(SBTC_EVM)
        assert token_kind(SBTC_EVM) is TokenKind.PEGGED

    def test_stacks_token_tags(self):
        assert stacks_token_kind("native") is TokenKind.NATIVE
        assert stacks_token_kind("STX") is TokenKind.NATIVE
        assert stacks_token_kind("ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM.mock-sbtc") is TokenKind.PEGGED

    def test_expected_destination_amount(self):
        assert expected_destination_amount(make_order()) == 5_000_000
        pegged = make_order(token_out=SBTC_EVM, amount_out=150_000_000)
        assert expected_destination_amount(pegged) == 150_000_000


class TestFormatAmount:

    def test_trailing_zeros_trimmed(self):
        assert format_amount(1_500_000, 6, "STX") == "1.5 STX"

    def test_whole(self):
        assert format_amount(2 * 10 ** 8, 8, "sBTC") == "2 sBTC"

    def test_small_fraction(self):
        assert format_amount(1, 6) == "0.000001"


class TestStatusSentinel:

    def test_padded_ascii(self):
        sentinel = status_sentinel("OPENED")
        assert len(sentinel) == 32
        assert sentinel.startswith(b"OPENED")
        assert sentinel[6:] == b"\x00" * 26

    def test_roundtrip_every_status(self):
        for status in OrderStatus:
            assert status_from_sentinel(status_sentinel(status.value)) is status

    def test_hex_string_input(self):
        hex_value = "0x" + status_sentinel("FILLED").hex()
        assert status_from_sentinel(hex_value) is OrderStatus.FILLED

    def test_empty_is_unknown(self):
        assert status_from_sentinel(b"\x00" * 32) is None

    def test_garbage_is_unknown(self):
        assert status_from_sentinel(b"\xff" * 32) is None

    def test_label_too_long(self):
        with pytest.raises(ValueError):
            status_sentinel("X" * 33)


class TestTransitions:

    def test_allowed(self):
        assert can_transition(OrderStatus.OPENED, OrderStatus.FILLED)
        assert can_transition(OrderStatus.FILLED, OrderStatus.SETTLED)
        assert can_transition(OrderStatus.OPENED, OrderStatus.REFUNDED)

    def test_never_backwards(self):
        assert not can_transition(OrderStatus.FILLED, OrderStatus.OPENED)
        assert not can_transition(OrderStatus.SETTLED, OrderStatus.FILLED)
        assert not can_transition(OrderStatus.OPENED, OrderStatus.SETTLED)
        assert not can_transition(OrderStatus.FILLED, OrderStatus.REFUNDED)

    def test_terminal(self):
        assert OrderStatus.SETTLED.is_terminal
        assert OrderStatus.REFUNDED.is_terminal
        assert not OrderStatus.FILLED.is_terminal
