"""
Structured class attributes

Readers and writers for the handful of attributes the transform engine has
to look inside: Signature, InnerClasses, NestHost, NestMembers,
PermittedSubclasses, EnclosingMethod and (Runtime*)Annotations.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any, Optional

from classtweak.classfile.pool import ConstantPool
from classtweak.errors import ClassFormatError


# ============================================================
# Simple attributes
# ============================================================

def read_signature(data: bytes, pool: ConstantPool) -> str:
    return pool.utf8(struct.unpack(">H", data)[0])


def write_signature(signature: str, pool: ConstantPool) -> bytes:
    return struct.pack(">H", pool.add_utf8(signature))


def read_class_list(data: bytes, pool: ConstantPool) -> list[str]:
    """NestMembers and PermittedSubclasses share this layout."""
    (count,) = struct.unpack_from(">H", data, 0)
    return [pool.class_name(i) for i in struct.unpack_from(f">{count}H", data, 2)]


def write_class_list(names: list[str], pool: ConstantPool) -> bytes:
    indices = [pool.add_class(n) for n in names]
    return struct.pack(f">H{len(indices)}H", len(indices), *indices)


def write_nest_host(host: str, pool: ConstantPool) -> bytes:
    return struct.pack(">H", pool.add_class(host))


def write_enclosing_method(owner: str, pool: ConstantPool,
                           name: Optional[str] = None, descriptor: Optional[str] = None) -> bytes:
    method = pool.add_name_and_type(name, descriptor) if name is not None else 0
    return struct.pack(">HH", pool.add_class(owner), method)


# ============================================================
# InnerClasses
# ============================================================

@dataclass
class InnerClassEntry:
    inner_name: str
    outer_name: Optional[str]
    simple_name: Optional[str]
    access_flags: int


def read_inner_classes(data: bytes, pool: ConstantPool) -> list[InnerClassEntry]:
    (count,) = struct.unpack_from(">H", data, 0)
    entries = []
    for i in range(count):
        inner, outer, name, flags = struct.unpack_from(">HHHH", data, 2 + 8 * i)
        entries.append(InnerClassEntry(
            pool.class_name(inner),
            pool.class_name(outer) if outer else None,
            pool.utf8(name) if name else None,
            flags,
        ))
    return entries


def write_inner_classes(entries: list[InnerClassEntry], pool: ConstantPool) -> bytes:
    out = bytearray(struct.pack(">H", len(entries)))
    for e in entries:
        out += struct.pack(
            ">HHHH",
            pool.add_class(e.inner_name),
            pool.add_class(e.outer_name) if e.outer_name else 0,
            pool.add_utf8(e.simple_name) if e.simple_name else 0,
            e.access_flags,
        )
    return bytes(out)


# ============================================================
# Annotations
# ============================================================

@dataclass
class Annotation:
    """An annotation with element values resolved to Python values.

    Constants become int/float/bool/str, enum values (type, name) tuples,
    class values their descriptor, arrays lists, nested annotations
    Annotation instances.
    """
    descriptor: str
    values: dict[str, Any] = field(default_factory=dict)


def read_annotations(data: bytes, pool: ConstantPool) -> list[Annotation]:
    try:
        (count,) = struct.unpack_from(">H", data, 0)
        pos = 2
        annotations = []
        for _ in range(count):
            annotation, pos = _read_annotation(data, pos, pool)
            annotations.append(annotation)
        return annotations
    except struct.error as e:
        raise ClassFormatError(f"Truncated annotations: {e}") from e


def _read_annotation(data: bytes, pos: int, pool: ConstantPool) -> tuple[Annotation, int]:
    type_index, pair_count = struct.unpack_from(">HH", data, pos)
    pos += 4
    annotation = Annotation(pool.utf8(type_index))
    for _ in range(pair_count):
        (name_index,) = struct.unpack_from(">H", data, pos)
        value, pos = _read_element(data, pos + 2, pool)
        annotation.values[pool.utf8(name_index)] = value
    return annotation, pos


def _read_element(data: bytes, pos: int, pool: ConstantPool) -> tuple[Any, int]:
    tag = chr(data[pos])
    pos += 1
    if tag == "s":
        return pool.utf8(struct.unpack_from(">H", data, pos)[0]), pos + 2
    if tag in "BCIJSFD":
        return pool.loadable(struct.unpack_from(">H", data, pos)[0]), pos + 2
    if tag == "Z":
        return bool(pool.loadable(struct.unpack_from(">H", data, pos)[0])), pos + 2
    if tag == "e":
        type_index, const_index = struct.unpack_from(">HH", data, pos)
        return (pool.utf8(type_index), pool.utf8(const_index)), pos + 4
    if tag == "c":
        return pool.utf8(struct.unpack_from(">H", data, pos)[0]), pos + 2
    if tag == "@":
        return _read_annotation(data, pos, pool)
    if tag == "[":
        (count,) = struct.unpack_from(">H", data, pos)
        pos += 2
        values = []
        for _ in range(count):
            value, pos = _read_element(data, pos, pool)
            values.append(value)
        return values, pos
    raise ClassFormatError(f"Unknown annotation element tag {tag!r}")


def write_annotations(annotations: list[Annotation], pool: ConstantPool) -> bytes:
    """Serialise annotations whose values are str, bool or int."""
    out = bytearray(struct.pack(">H", len(annotations)))
    for annotation in annotations:
        out += struct.pack(">HH", pool.add_utf8(annotation.descriptor), len(annotation.values))
        for name, value in annotation.values.items():
            out += struct.pack(">H", pool.add_utf8(name))
            if isinstance(value, str):
                out += struct.pack(">cH", b"s", pool.add_utf8(value))
            elif isinstance(value, bool):
                out += struct.pack(">cH", b"Z", pool.add_integer(int(value)))
            elif isinstance(value, int):
                out += struct.pack(">cH", b"I", pool.add_integer(value))
            else:
                raise TypeError(f"Unsupported annotation value {value!r}")
    return bytes(out)
