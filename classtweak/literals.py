"""
Enum constructor literals

`params` lines may pass enum constructor arguments inline as literals. Each
token is parsed against the declared parameter type and kept as a
TypedConstant, so the writer can print it back and the transform engine
knows how to push it.

Accepted forms:
    boolean     true | false
    char        'c' | number
    integral    decimal | 0x<hex> | 0b<binary>
    float       anything float() accepts, optional f/F/d/D suffix
    String      "quoted"
    object      null
Boxed parameter types take the literal of their primitive.
"""

from __future__ import annotations

import math
import re
import struct
from dataclasses import dataclass
from typing import Any, Sequence

from classtweak.descriptors import BOXED


class ConstantParseError(ValueError):
    """A literal token does not fit its parameter type."""


@dataclass(frozen=True)
class TypedConstant:
    """A literal and the parameter type it is passed as."""
    descriptor: str
    value: Any

    @property
    def sort(self) -> str:
        """Primitive descriptor for boxed types, the descriptor otherwise."""
        return BOXED.get(self.descriptor, self.descriptor)

    @property
    def is_boxed(self) -> bool:
        return self.descriptor in BOXED


_DECIMAL = re.compile(r"[+-]?[0-9]+")
_HEX = re.compile(r"[0-9a-fA-F]+")
_BINARY = re.compile(r"[01]+")

_BOUNDS = {
    "B": (-0x80, 0x7F, "Byte"),
    "S": (-0x8000, 0x7FFF, "Short"),
    "C": (0, 0xFFFF, "Char"),
    "I": (-0x80000000, 0x7FFFFFFF, "Integer"),
    "J": (-0x8000000000000000, 0x7FFFFFFFFFFFFFFF, "Long"),
}


def is_constant(token: str) -> bool:
    """True when `token` has the shape of a literal rather than an owner name."""
    if token in ("true", "false", "null"):
        return True
    if not token:
        return False
    if "0" <= token[0] <= "9":
        return True
    if len(token) >= 2 and token[0] == "-" and "0" <= token[1] <= "9":
        return True
    return token[0] in "\"'"


def _format_list(items: Sequence[str]) -> str:
    return "[" + ", ".join(items) + "]"


def parse_constants(types: Sequence[str], tokens: Sequence[str]) -> tuple[TypedConstant, ...]:
    """Parse `tokens` positionally against parameter `types`."""
    if len(types) != len(tokens):
        raise ConstantParseError(
            f"Unexpected token size of ({_format_list(tokens)}) "
            f"for type ({_format_list(types)})"
        )
    return tuple(parse_constant(token, t) for token, t in zip(tokens, types))


def parse_constant(token: str, descriptor: str) -> TypedConstant:
    sort = BOXED.get(descriptor, descriptor)
    if token == "null" and descriptor.startswith("L"):
        return TypedConstant(descriptor, None)

    if sort == "Z":
        if token == "true":
            return TypedConstant(descriptor, True)
        if token == "false":
            return TypedConstant(descriptor, False)
        raise ConstantParseError(f"Expected true or false, got ({token})")
    if sort in _BOUNDS:
        return TypedConstant(descriptor, _parse_integral(token, sort))
    if sort in ("F", "D"):
        return TypedConstant(descriptor, _parse_float(token, sort))
    if sort == "Ljava/lang/String;":
        if len(token) >= 2 and token[0] == '"' and token[-1] == '"':
            return TypedConstant(descriptor, token[1:-1])
        raise ConstantParseError(f"Expected quoted string, got ({token})")
    raise ConstantParseError(f"Unsupported constant type ({descriptor})")


def _parse_integral(token: str, sort: str) -> int:
    if len(token) == 3 and token[0] == "'" and token[2] == "'":
        value = ord(token[1])
    elif token[:2] in ("0x", "0X") and _HEX.fullmatch(token[2:]):
        value = int(token[2:], 16)
    elif token[:2] in ("0b", "0B") and _BINARY.fullmatch(token[2:]):
        value = int(token[2:], 2)
    elif _DECIMAL.fullmatch(token):
        value = int(token, 10)
    else:
        raise ConstantParseError(f"Failed to parse number ({token})")

    low, high, label = _BOUNDS[sort]
    if not low <= value <= high:
        raise ConstantParseError(f"{label} out of bounds ({token})")
    return value


def to_float32(value: float) -> float:
    """Round a double to the nearest float32."""
    try:
        return struct.unpack(">f", struct.pack(">f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _parse_float(token: str, sort: str) -> float:
    text = token[:-1] if token[-1:] in ("f", "F", "d", "D") else token
    try:
        value = float(text)
    except ValueError:
        raise ConstantParseError(f"Failed to parse number ({token})") from None
    return to_float32(value) if sort == "F" else value


# ============================================================
# Formatting
# ============================================================

def format_constant(constant: TypedConstant) -> str:
    """Inverse of parse_constant: print a literal the reader accepts."""
    value = constant.value
    sort = constant.sort
    if value is None:
        return "null"
    if sort == "Z":
        return "true" if value else "false"
    if sort == "C":
        ch = chr(value)
        if 32 < value < 127 and ch != "'":
            return f"'{ch}'"
        return str(value)
    if sort in _BOUNDS:
        return str(value)
    if sort == "F":
        return _shortest_float32(value)
    if sort == "D":
        return repr(value)
    return f'"{value}"'


def _shortest_float32(value: float) -> str:
    if math.isnan(value) or math.isinf(value):
        return repr(value)
    for digits in range(1, 10):
        text = f"{value:.{digits}g}"
        if to_float32(float(text)) == value:
            return text
    return repr(value)
