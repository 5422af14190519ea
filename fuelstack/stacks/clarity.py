"""
Clarity values: wire serialization and the textual repr printed by the
Hiro API for contract log events.

    (tuple (amount-out u3000) (order-id u19) (recipient 'ST1...) (token-out "native"))

`parse_repr` is a strict tokenizer + recursive descent parser; anything it
does not understand raises DecodeError.
"""

import re
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Sequence, Tuple

from ..exceptions import DecodeError
from .c32 import c32_address, parse_principal

UINT_MAX = 2 ** 128 - 1
INT_MIN = -(2 ** 127)
INT_MAX = 2 ** 127 - 1


class ClarityType(IntEnum):
    INT = 0x00
    UINT = 0x01
    BUFFER = 0x02
    TRUE = 0x03
    FALSE = 0x04
    STANDARD_PRINCIPAL = 0x05
    CONTRACT_PRINCIPAL = 0x06
    OK = 0x07
    ERR = 0x08
    NONE = 0x09
    SOME = 0x0A
    LIST = 0x0B
    TUPLE = 0x0C
    STRING_ASCII = 0x0D
    STRING_UTF8 = 0x0E


@dataclass(frozen=True)
class ClarityValue:
    """
    A typed Clarity value.

    `value` holds: int for INT/UINT, bytes for BUFFER, bool for TRUE/FALSE,
    the principal string for principals, the inner ClarityValue for
    OK/ERR/SOME, None for NONE, a tuple of values for LIST, a dict for
    TUPLE and str for the string types.
    """
    type: ClarityType
    value: Any = None

    def to_python(self) -> Any:
        """Plain Python view: optionals unwrap to the value or None."""
        t = self.type
        if t in (ClarityType.OK, ClarityType.ERR, ClarityType.SOME):
            return self.value.to_python()
        if t == ClarityType.LIST:
            return [v.to_python() for v in self.value]
        if t == ClarityType.TUPLE:
            return {k: v.to_python() for k, v in self.value.items()}
        return self.value


# ══════════════════════════════════════════════════════════════════════
#  CONSTRUCTORS
# ══════════════════════════════════════════════════════════════════════

def uint_cv(value: int) -> ClarityValue:
    if not 0 <= value <= UINT_MAX:
        raise ValueError(f"uint out of range: {value}")
    return ClarityValue(ClarityType.UINT, int(value))


def int_cv(value: int) -> ClarityValue:
    if not INT_MIN <= value <= INT_MAX:
        raise ValueError(f"int out of range: {value}")
    return ClarityValue(ClarityType.INT, int(value))


def bool_cv(value: bool) -> ClarityValue:
    return ClarityValue(ClarityType.TRUE if value else ClarityType.FALSE, bool(value))


def buffer_cv(value: bytes) -> ClarityValue:
    return ClarityValue(ClarityType.BUFFER, bytes(value))


def string_ascii_cv(value: str) -> ClarityValue:
    try:
        value.encode("ascii")
    except UnicodeEncodeError as e:
        raise ValueError(f"Not an ASCII string: {value!r}") from e
    return ClarityValue(ClarityType.STRING_ASCII, value)


def string_utf8_cv(value: str) -> ClarityValue:
    return ClarityValue(ClarityType.STRING_UTF8, value)


def principal_cv(principal: str) -> ClarityValue:
    """Standard or contract principal; validated against c32check."""
    _, _, name = parse_principal(principal)
    if name is None:
        return ClarityValue(ClarityType.STANDARD_PRINCIPAL, principal)
    return ClarityValue(ClarityType.CONTRACT_PRINCIPAL, principal)


def contract_principal_cv(address: str, name: str) -> ClarityValue:
    return principal_cv(f"{address}.{name}")


def none_cv() -> ClarityValue:
    return ClarityValue(ClarityType.NONE, None)


def some_cv(inner: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.SOME, inner)


def ok_cv(inner: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.OK, inner)


def err_cv(inner: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.ERR, inner)


def list_cv(items: Sequence[ClarityValue]) -> ClarityValue:
    return ClarityValue(ClarityType.LIST, tuple(items))


def tuple_cv(data: Dict[str, ClarityValue]) -> ClarityValue:
    return ClarityValue(ClarityType.TUPLE, dict(data))


# ══════════════════════════════════════════════════════════════════════
#  WIRE SERIALIZATION
# ══════════════════════════════════════════════════════════════════════

def _lp(data: bytes, width: str = ">I") -> bytes:
    return struct.pack(width, len(data)) + data


def serialize_principal_body(principal: str) -> bytes:
    version, hash_bytes, name = parse_principal(principal)
    body = bytes([version]) + hash_bytes
    if name is not None:
        body += _lp(name.encode("ascii"), ">B")
    return body


def serialize_cv(cv: ClarityValue) -> bytes:
    t = cv.type
    prefix = bytes([t])
    if t == ClarityType.INT:
        return prefix + cv.value.to_bytes(16, "big", signed=True)
    if t == ClarityType.UINT:
        return prefix + cv.value.to_bytes(16, "big")
    if t == ClarityType.BUFFER:
        return prefix + _lp(cv.value)
    if t in (ClarityType.TRUE, ClarityType.FALSE, ClarityType.NONE):
        return prefix
    if t in (ClarityType.STANDARD_PRINCIPAL, ClarityType.CONTRACT_PRINCIPAL):
        return prefix + serialize_principal_body(cv.value)
    if t in (ClarityType.OK, ClarityType.ERR, ClarityType.SOME):
        return prefix + serialize_cv(cv.value)
    if t == ClarityType.LIST:
        return prefix + struct.pack(">I", len(cv.value)) + b"".join(serialize_cv(v) for v in cv.value)
    if t == ClarityType.TUPLE:
        out = prefix + struct.pack(">I", len(cv.value))
        for key in sorted(cv.value, key=lambda k: k.encode("ascii")):
            out += _lp(key.encode("ascii"), ">B") + serialize_cv(cv.value[key])
        return out
    if t == ClarityType.STRING_ASCII:
        return prefix + _lp(cv.value.encode("ascii"))
    if t == ClarityType.STRING_UTF8:
        return prefix + _lp(cv.value.encode("utf-8"))
    raise ValueError(f"Unknown Clarity type {t}")


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise DecodeError("Truncated Clarity value")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return struct.unpack(">I", self.take(4))[0]


def _read_principal(reader: _Reader, contract: bool) -> str:
    version = reader.u8()
    address = c32_address(version, reader.take(20))
    if not contract:
        return address
    name = reader.take(reader.u8())
    try:
        return f"{address}.{name.decode('ascii')}"
    except UnicodeDecodeError as e:
        raise DecodeError("Non-ASCII contract name") from e


def _read_cv(reader: _Reader) -> ClarityValue:
    tag = reader.u8()
    try:
        t = ClarityType(tag)
    except ValueError:
        raise DecodeError(f"Unknown Clarity type id 0x{tag:02x}") from None

    if t == ClarityType.INT:
        return ClarityValue(t, int.from_bytes(reader.take(16), "big", signed=True))
    if t == ClarityType.UINT:
        return ClarityValue(t, int.from_bytes(reader.take(16), "big"))
    if t == ClarityType.BUFFER:
        return ClarityValue(t, reader.take(reader.u32()))
    if t == ClarityType.TRUE:
        return ClarityValue(t, True)
    if t == ClarityType.FALSE:
        return ClarityValue(t, False)
    if t == ClarityType.NONE:
        return ClarityValue(t, None)
    if t in (ClarityType.STANDARD_PRINCIPAL, ClarityType.CONTRACT_PRINCIPAL):
        return ClarityValue(t, _read_principal(reader, t == ClarityType.CONTRACT_PRINCIPAL))
    if t in (ClarityType.OK, ClarityType.ERR, ClarityType.SOME):
        return ClarityValue(t, _read_cv(reader))
    if t == ClarityType.LIST:
        return ClarityValue(t, tuple(_read_cv(reader) for _ in range(reader.u32())))
    if t == ClarityType.TUPLE:
        data = {}
        for _ in range(reader.u32()):
            key = reader.take(reader.u8()).decode("ascii", errors="strict")
            data[key] = _read_cv(reader)
        return ClarityValue(t, data)
    raw = reader.take(reader.u32())
    try:
        text = raw.decode("ascii" if t == ClarityType.STRING_ASCII else "utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid {t.name} bytes") from e
    return ClarityValue(t, text)


def deserialize_cv(data) -> ClarityValue:
    """Decode one serialized value (bytes or 0x-hex, as read-only calls return)."""
    if isinstance(data, str):
        try:
            data = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        except ValueError as e:
            raise DecodeError("Invalid hex for Clarity value") from e
    reader = _Reader(bytes(data))
    try:
        cv = _read_cv(reader)
    except UnicodeDecodeError as e:
        raise DecodeError("Invalid tuple key") from e
    if reader.pos != len(reader.data):
        raise DecodeError("Trailing bytes after Clarity value")
    return cv


# ══════════════════════════════════════════════════════════════════════
#  REPR PARSER
# ══════════════════════════════════════════════════════════════════════

_END = r"(?=[\s()]|$)"

_TOKEN_RE = re.compile(
    rf"""
      (?P<ws>\s+)
    | (?P<lparen>\()
    | (?P<rparen>\))
    | (?P<utf8>u"(?:[^"\\]|\\.)*")
    | (?P<ascii>"(?:[^"\\]|\\.)*")
    | (?P<hex>0x[0-9a-fA-F]*){_END}
    | (?P<uint>u[0-9]+){_END}
    | (?P<int>-?[0-9]+){_END}
    | (?P<principal>'[0-9A-Za-z]+(?:\.[a-zA-Z][a-zA-Z0-9_\-]*)?){_END}
    | (?P<symbol>[a-zA-Z][a-zA-Z0-9_\-!?]*){_END}
    """,
    re.VERBOSE,
)

_SIMPLE_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "t": "\t", "r": "\r", "0": "\0"}


def _tokenize(text: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise DecodeError(f"Unexpected character {text[pos]!r} at {pos} in Clarity repr")
        kind = m.lastgroup
        if kind != "ws":
            tokens.append((kind, m.group(kind)))
        pos = m.end()
    return tokens


def _unescape(body: str, utf8: bool) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= len(body):
            raise DecodeError("Dangling escape in string literal")
        nxt = body[i + 1]
        if nxt in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[nxt])
            i += 2
        elif utf8 and nxt == "u" and body[i + 2:i + 3] == "{":
            close = body.find("}", i + 3)
            if close < 0:
                raise DecodeError("Unterminated unicode escape")
            try:
                out.append(chr(int(body[i + 3:close], 16)))
            except ValueError as e:
                raise DecodeError(f"Invalid unicode escape {body[i:close + 1]!r}") from e
            i = close + 1
        else:
            raise DecodeError(f"Unknown escape \\{nxt}")
    return "".join(out)


class _ReprParser:
    def __init__(self, tokens: List[Tuple[str, str]]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Tuple[str, str]:
        if self.pos >= len(self.tokens):
            raise DecodeError("Unexpected end of Clarity repr")
        return self.tokens[self.pos]

    def next(self) -> Tuple[str, str]:
        tok = self.peek()
        self.pos += 1
        return tok

    def expect(self, kind: str) -> str:
        got_kind, text = self.next()
        if got_kind != kind:
            raise DecodeError(f"Expected {kind}, got {text!r}")
        return text

    def value(self) -> ClarityValue:
        kind, text = self.next()
        if kind == "uint":
            n = int(text[1:])
            if n > UINT_MAX:
                raise DecodeError(f"uint out of range: {text}")
            return ClarityValue(ClarityType.UINT, n)
        if kind == "int":
            n = int(text)
            if not INT_MIN <= n <= INT_MAX:
                raise DecodeError(f"int out of range: {text}")
            return ClarityValue(ClarityType.INT, n)
        if kind == "hex":
            try:
                return ClarityValue(ClarityType.BUFFER, bytes.fromhex(text[2:]))
            except ValueError as e:
                raise DecodeError(f"Invalid buffer literal {text!r}") from e
        if kind == "ascii":
            s = _unescape(text[1:-1], utf8=False)
            if any(ord(c) > 127 for c in s):
                raise DecodeError("Non-ASCII character in string-ascii")
            return ClarityValue(ClarityType.STRING_ASCII, s)
        if kind == "utf8":
            return ClarityValue(ClarityType.STRING_UTF8, _unescape(text[2:-1], utf8=True))
        if kind == "principal":
            return principal_cv(text[1:])
        if kind == "symbol":
            if text == "true":
                return ClarityValue(ClarityType.TRUE, True)
            if text == "false":
                return ClarityValue(ClarityType.FALSE, False)
            if text == "none":
                return ClarityValue(ClarityType.NONE, None)
            raise DecodeError(f"Unexpected symbol {text!r}")
        if kind == "lparen":
            return self.form()
        raise DecodeError(f"Unexpected token {text!r}")

    def form(self) -> ClarityValue:
        head = self.expect("symbol")
        if head in ("some", "ok", "err"):
            inner = self.value()
            self.expect("rparen")
            t = {"some": ClarityType.SOME, "ok": ClarityType.OK, "err": ClarityType.ERR}[head]
            return ClarityValue(t, inner)
        if head == "list":
            items = []
            while self.peek()[0] != "rparen":
                items.append(self.value())
            self.next()
            return ClarityValue(ClarityType.LIST, tuple(items))
        if head == "tuple":
            data: Dict[str, ClarityValue] = {}
            while self.peek()[0] != "rparen":
                self.expect("lparen")
                key = self.expect("symbol")
                if key in data:
                    raise DecodeError(f"Duplicate tuple key {key!r}")
                data[key] = self.value()
                self.expect("rparen")
            self.next()
            return ClarityValue(ClarityType.TUPLE, data)
        raise DecodeError(f"Unknown form {head!r}")


def parse_repr(text: str) -> ClarityValue:
    """Parse one Clarity value from its repr string."""
    if not isinstance(text, str):
        raise DecodeError(f"Clarity repr must be a string, got {type(text).__name__}")
    parser = _ReprParser(_tokenize(text))
    cv = parser.value()
    if parser.pos != len(parser.tokens):
        raise DecodeError("Trailing tokens after Clarity value")
    return cv
