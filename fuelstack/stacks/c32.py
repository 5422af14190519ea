"""
c32check encoding of Stacks addresses.

A Stacks address is "S" + c32(version) + c32(hash160 || checksum), where
the checksum is the first 4 bytes of sha256(sha256(version || hash160)).
"""

import hashlib
import re
from typing import Optional, Tuple

from Crypto.Hash import RIPEMD160

from ..exceptions import DecodeError

C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

# Address versions
MAINNET_P2PKH = 22   # SP...
MAINNET_P2SH = 20    # SM...
TESTNET_P2PKH = 26   # ST...
TESTNET_P2SH = 21    # SN...

ADDRESS_VERSIONS = (MAINNET_P2PKH, MAINNET_P2SH, TESTNET_P2PKH, TESTNET_P2SH)

CONTRACT_NAME_RE = re.compile(r"^[a-zA-Z]([a-zA-Z0-9]|[-_])*$")
MAX_CONTRACT_NAME_LENGTH = 128


def _normalize(text: str) -> str:
    return text.upper().replace("O", "0").replace("L", "1").replace("I", "1")


def c32_encode(data: bytes) -> str:
    """Big-endian base-32 with one leading '0' per leading zero byte."""
    value = int.from_bytes(data, "big")
    chars = []
    while value > 0:
        value, rem = divmod(value, 32)
        chars.append(C32_ALPHABET[rem])
    leading = len(data) - len(data.lstrip(b"\x00"))
    return "0" * leading + "".join(reversed(chars))


def c32_decode(text: str) -> bytes:
    text = _normalize(text)
    value = 0
    for ch in text:
        idx = C32_ALPHABET.find(ch)
        if idx < 0:
            raise DecodeError(f"Invalid c32 character {ch!r}")
        value = value * 32 + idx
    leading = len(text) - len(text.lstrip("0"))
    body = value.to_bytes((value.bit_length() + 7) // 8, "big") if value else b""
    return b"\x00" * leading + body


def _checksum(version: int, payload: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(bytes([version]) + payload).digest()).digest()[:4]


def hash160(data: bytes) -> bytes:
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def c32_address(version: int, hash_bytes: bytes) -> str:
    """
    >>> c32_address(22, bytes.fromhex("a46ff88886c2ef9762d970b4d2c63678835bd39d"))
    'SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7'
    """
    if not 0 <= version < 32:
        raise ValueError(f"Invalid address version {version}")
    if len(hash_bytes) != 20:
        raise ValueError("hash160 must be 20 bytes")
    return "S" + C32_ALPHABET[version] + c32_encode(hash_bytes + _checksum(version, hash_bytes))


def c32_address_decode(address: str) -> Tuple[int, bytes]:
    """Returns (version, hash160). Raises DecodeError on bad format or checksum."""
    if len(address) < 5 or address[0] != "S":
        raise DecodeError(f"Not a Stacks address: {address!r}")
    version_char = _normalize(address[1])
    version = C32_ALPHABET.find(version_char)
    if version < 0:
        raise DecodeError(f"Invalid address version character in {address!r}")

    data = c32_decode(address[2:])
    if len(data) < 4:
        raise DecodeError(f"Address too short: {address!r}")
    payload, checksum = data[:-4], data[-4:]
    if len(payload) != 20:
        raise DecodeError(f"Address hash is {len(payload)} bytes: {address!r}")
    if _checksum(version, payload) != checksum:
        raise DecodeError(f"Bad address checksum: {address!r}")
    return version, payload


def parse_principal(principal: str) -> Tuple[int, bytes, Optional[str]]:
    """
    Split a standard ("SP...") or contract ("SP....name") principal.

    Returns (version, hash160, contract_name or None).
    """
    address, _, name = principal.partition(".")
    version, hash_bytes = c32_address_decode(address)
    if "." in principal:
        if not name or len(name) > MAX_CONTRACT_NAME_LENGTH or not CONTRACT_NAME_RE.match(name):
            raise DecodeError(f"Invalid contract name in {principal!r}")
        return version, hash_bytes, name
    return version, hash_bytes, None


def is_valid_principal(value: str, testnet: Optional[bool] = None) -> bool:
    """True for a well-formed standard principal, optionally of the given network."""
    if not isinstance(value, str) or "." in value:
        return False
    try:
        version, _ = c32_address_decode(value)
    except DecodeError:
        return False
    if version not in ADDRESS_VERSIONS:
        return False
    if testnet is None:
        return True
    return (version in (TESTNET_P2PKH, TESTNET_P2SH)) == testnet
