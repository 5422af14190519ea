"""
Stacks contract-call transactions (SIP-005 wire format), single-sig P2PKH.

Layout:
    version | chain_id | auth | anchor_mode | post_condition_mode
    | post_conditions | payload

Signing:
    sighash = sha512/256(tx with auth cleared)
    presign = sha512/256(sighash || auth_type || fee || nonce)
    signature = recoverable secp256k1 over presign, encoded v || r || s
    txid = sha512/256(signed tx)
"""

import struct
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import List, Tuple, Union

from Crypto.Hash import SHA512
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from ..exceptions import DecodeError
from .c32 import MAINNET_P2PKH, TESTNET_P2PKH, c32_address, hash160, parse_principal
from .clarity import ClarityValue, serialize_cv

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

AUTH_TYPE_STANDARD = 0x04
HASH_MODE_P2PKH = 0x00
KEY_ENCODING_COMPRESSED = 0x00
ANCHOR_MODE_ANY = 0x03
PAYLOAD_CONTRACT_CALL = 0x02

POST_CONDITION_STX = 0x00
POST_CONDITION_FUNGIBLE = 0x01
POST_CONDITION_PRINCIPAL_STANDARD = 0x02
POST_CONDITION_PRINCIPAL_CONTRACT = 0x03

EMPTY_SIGNATURE = b"\x00" * 65


def sha512_256(data: bytes) -> bytes:
    return SHA512.new(data, truncate="256").digest()


class PostConditionMode(IntEnum):
    ALLOW = 0x01
    DENY = 0x02


class ConditionCode(IntEnum):
    EQ = 0x01
    GT = 0x02
    GTE = 0x03
    LT = 0x04
    LTE = 0x05


@dataclass(frozen=True)
class StacksNetwork:
    name: str
    tx_version: int
    chain_id: int
    address_version: int

    @property
    def is_testnet(self) -> bool:
        return self.address_version == TESTNET_P2PKH


TESTNET = StacksNetwork("testnet", 0x80, 0x80000000, TESTNET_P2PKH)
MAINNET = StacksNetwork("mainnet", 0x00, 0x00000001, MAINNET_P2PKH)


def network_by_name(name: str) -> StacksNetwork:
    if name == "mainnet":
        return MAINNET
    if name == "testnet":
        return TESTNET
    raise ValueError(f"Unknown Stacks network {name!r}")


# ══════════════════════════════════════════════════════════════════════
#  KEYS
# ══════════════════════════════════════════════════════════════════════

class StacksKey:
    """
    secp256k1 signing key in Stacks form: 32 bytes of hex, optionally with
    the trailing 01 compression flag.
    """

    def __init__(self, private_key: str):
        text = private_key[2:] if private_key.startswith("0x") else private_key
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise DecodeError("Stacks private key is not hex") from e
        if len(raw) == 33 and raw[-1] == 0x01:
            raw = raw[:32]
        if len(raw) != 32:
            raise DecodeError("Stacks private key must be 32 bytes (or 33 with 01 suffix)")
        try:
            self._key = keys.PrivateKey(raw)
        except ValidationError as e:
            raise DecodeError(f"Invalid Stacks private key: {e}") from e

    @property
    def public_key(self) -> bytes:
        return self._key.public_key.to_compressed_bytes()

    @property
    def hash160(self) -> bytes:
        return hash160(self.public_key)

    def address(self, network: StacksNetwork) -> str:
        return c32_address(network.address_version, self.hash160)

    def sign(self, digest: bytes) -> bytes:
        """Recoverable low-S signature over a 32-byte digest, as v || r || s."""
        sig = self._key.sign_msg_hash(digest)
        v, r, s = sig.v, sig.r, sig.s
        if s > SECP256K1_N // 2:
            s = SECP256K1_N - s
            v ^= 1
        return bytes([v]) + r.to_bytes(32, "big") + s.to_bytes(32, "big")


# ══════════════════════════════════════════════════════════════════════
#  POST-CONDITIONS & PAYLOAD
# ══════════════════════════════════════════════════════════════════════

def _lp_name(name: str) -> bytes:
    raw = name.encode("ascii")
    if len(raw) > 128:
        raise ValueError(f"Name too long: {name!r}")
    return bytes([len(raw)]) + raw


def _post_condition_principal(principal: str) -> bytes:
    version, hash_bytes, name = parse_principal(principal)
    if name is None:
        return bytes([POST_CONDITION_PRINCIPAL_STANDARD, version]) + hash_bytes
    return bytes([POST_CONDITION_PRINCIPAL_CONTRACT, version]) + hash_bytes + _lp_name(name)


@dataclass(frozen=True)
class StxPostCondition:
    principal: str
    amount: int
    code: ConditionCode = ConditionCode.LTE

    def serialize(self) -> bytes:
        return (
            bytes([POST_CONDITION_STX])
            + _post_condition_principal(self.principal)
            + bytes([self.code])
            + struct.pack(">Q", self.amount)
        )


@dataclass(frozen=True)
class FungiblePostCondition:
    """`asset_contract` is "ADDR.contract"; the asset name defaults to the contract name."""
    principal: str
    asset_contract: str
    amount: int
    asset_name: str = ""
    code: ConditionCode = ConditionCode.LTE

    def serialize(self) -> bytes:
        version, hash_bytes, contract_name = parse_principal(self.asset_contract)
        if contract_name is None:
            raise ValueError(f"Asset must be a contract principal: {self.asset_contract}")
        return (
            bytes([POST_CONDITION_FUNGIBLE])
            + _post_condition_principal(self.principal)
            + bytes([version]) + hash_bytes
            + _lp_name(contract_name)
            + _lp_name(self.asset_name or contract_name)
            + bytes([self.code])
            + struct.pack(">Q", self.amount)
        )


PostCondition = Union[StxPostCondition, FungiblePostCondition]


@dataclass(frozen=True)
class ContractCallPayload:
    contract_address: str
    contract_name: str
    function_name: str
    args: Tuple[ClarityValue, ...] = ()

    def serialize(self) -> bytes:
        version, hash_bytes, _ = parse_principal(self.contract_address)
        out = bytes([PAYLOAD_CONTRACT_CALL, version]) + hash_bytes
        out += _lp_name(self.contract_name) + _lp_name(self.function_name)
        out += struct.pack(">I", len(self.args))
        return out + b"".join(serialize_cv(a) for a in self.args)


# ══════════════════════════════════════════════════════════════════════
#  TRANSACTION
# ══════════════════════════════════════════════════════════════════════

@dataclass
class StacksTransaction:
    network: StacksNetwork
    signer: bytes
    nonce: int
    fee: int
    payload: ContractCallPayload
    post_conditions: List[PostCondition] = field(default_factory=list)
    post_condition_mode: PostConditionMode = PostConditionMode.DENY
    signature: bytes = EMPTY_SIGNATURE

    def serialize(self) -> bytes:
        out = bytes([self.network.tx_version]) + struct.pack(">I", self.network.chain_id)
        out += bytes([AUTH_TYPE_STANDARD, HASH_MODE_P2PKH]) + self.signer
        out += struct.pack(">QQ", self.nonce, self.fee)
        out += bytes([KEY_ENCODING_COMPRESSED]) + self.signature
        out += bytes([ANCHOR_MODE_ANY, self.post_condition_mode])
        out += struct.pack(">I", len(self.post_conditions))
        out += b"".join(pc.serialize() for pc in self.post_conditions)
        return out + self.payload.serialize()

    def initial_sighash(self) -> bytes:
        cleared = replace(self, nonce=0, fee=0, signature=EMPTY_SIGNATURE)
        return sha512_256(cleared.serialize())

    def presign_hash(self) -> bytes:
        return sha512_256(
            self.initial_sighash()
            + bytes([AUTH_TYPE_STANDARD])
            + struct.pack(">QQ", self.fee, self.nonce)
        )

    def sign(self, key: StacksKey) -> None:
        if key.hash160 != self.signer:
            raise ValueError("Key does not match the transaction signer")
        self.signature = key.sign(self.presign_hash())

    def txid(self) -> str:
        return sha512_256(self.serialize()).hex()

    def recover_signer(self) -> bytes:
        """hash160 of the compressed public key that produced the signature."""
        v, r, s = self.signature[0], self.signature[1:33], self.signature[33:]
        try:
            sig = keys.Signature(vrs=(v, int.from_bytes(r, "big"), int.from_bytes(s, "big")))
            public_key = sig.recover_public_key_from_msg_hash(self.presign_hash())
        except (BadSignature, ValidationError) as e:
            raise DecodeError(f"Unrecoverable signature: {e}") from e
        return hash160(public_key.to_compressed_bytes())


def make_contract_call(
    key: StacksKey,
    network: StacksNetwork,
    contract_address: str,
    contract_name: str,
    function_name: str,
    args: List[ClarityValue],
    nonce: int,
    fee: int,
    post_conditions: List[PostCondition] = (),
    post_condition_mode: PostConditionMode = PostConditionMode.DENY,
) -> StacksTransaction:
    """Build and sign a contract-call transaction."""
    tx = StacksTransaction(
        network=network,
        signer=key.hash160,
        nonce=nonce,
        fee=fee,
        payload=ContractCallPayload(contract_address, contract_name, function_name, tuple(args)),
        post_conditions=list(post_conditions),
        post_condition_mode=post_condition_mode,
    )
    tx.sign(key)
    return tx
