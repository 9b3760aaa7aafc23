"""
JVM descriptors and member identity

Field and method descriptors are handled as plain strings. This module
splits them into parameter types, sizes them in operand-stack slots, and
rewrites the class names they mention.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class EntryKey:
    """Identity of a class member: owner, name and descriptor."""
    owner: str
    name: str
    descriptor: str

    def __str__(self) -> str:
        return f"{self.owner}.{self.name}{self.descriptor}"


PRIMITIVES = frozenset("ZCBSIJFD")

# Boxed types and the primitive each one unboxes to
BOXED = {
    "Ljava/lang/Boolean;": "Z",
    "Ljava/lang/Character;": "C",
    "Ljava/lang/Byte;": "B",
    "Ljava/lang/Short;": "S",
    "Ljava/lang/Integer;": "I",
    "Ljava/lang/Long;": "J",
    "Ljava/lang/Float;": "F",
    "Ljava/lang/Double;": "D",
}

BOX_OWNERS = {prim: desc[1:-1] for desc, prim in BOXED.items()}


def read_field_type(desc: str, pos: int = 0) -> tuple[str, int]:
    """Read one field type starting at `pos`. Returns (type, end position)."""
    start = pos
    while pos < len(desc) and desc[pos] == "[":
        pos += 1
    if pos >= len(desc):
        raise ValueError(f"Invalid descriptor: {desc}")
    c = desc[pos]
    if c in PRIMITIVES:
        return desc[start:pos + 1], pos + 1
    if c == "L":
        end = desc.find(";", pos)
        if end <= pos + 1:
            raise ValueError(f"Invalid descriptor: {desc}")
        return desc[start:end + 1], end + 1
    raise ValueError(f"Invalid descriptor: {desc}")


def is_field_descriptor(desc: str) -> bool:
    try:
        _, end = read_field_type(desc)
    except ValueError:
        return False
    return end == len(desc)


def argument_types(desc: str) -> list[str]:
    """Parameter types of a method descriptor, in order."""
    if not desc.startswith("("):
        raise ValueError(f"Invalid method descriptor: {desc}")
    types = []
    pos = 1
    while pos < len(desc) and desc[pos] != ")":
        t, pos = read_field_type(desc, pos)
        types.append(t)
    if pos >= len(desc):
        raise ValueError(f"Invalid method descriptor: {desc}")
    ret = desc[pos + 1:]
    if ret != "V" and not is_field_descriptor(ret):
        raise ValueError(f"Invalid method descriptor: {desc}")
    return types


def return_type(desc: str) -> str:
    return desc[desc.index(")") + 1:]


def type_size(t: str) -> int:
    """Operand stack slots taken by a value of type `t`."""
    if t in ("J", "D"):
        return 2
    if t == "V":
        return 0
    return 1


def arguments_size(desc: str) -> int:
    return sum(type_size(t) for t in argument_types(desc))


def internal_name(t: str) -> str:
    """Internal name of a type: `a/b/C` for objects, the descriptor otherwise."""
    if t.startswith("L") and t.endswith(";"):
        return t[1:-1]
    return t


def map_type(desc: str, mapper: Callable[[str], str]) -> str:
    """Rewrite every class name inside a field or method descriptor."""
    out = []
    pos = 0
    while pos < len(desc):
        c = desc[pos]
        if c == "L":
            end = desc.index(";", pos)
            out.append("L" + mapper(desc[pos + 1:end]) + ";")
            pos = end + 1
        else:
            out.append(c)
            pos += 1
    return "".join(out)
