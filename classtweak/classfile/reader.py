"""
Class file reader

Parses the class file container (JVMS chapter 4) with a KaitaiStream.
Method bodies and other attributes are kept raw; see classtweak.classfile.code
for instruction decoding.
"""

from __future__ import annotations

import io

from kaitaistruct import KaitaiStream

from classtweak.classfile.pool import TAGS, WIDE_ENTRIES, ConstantPool
from classtweak.classfile.structure import (
    Attribute, ClassFile, FieldInfo, MethodInfo,
)
from classtweak.errors import ClassFormatError

MAGIC = 0xCAFEBABE


def read_class(data: bytes) -> ClassFile:
    """Parse a compiled class. Raises ClassFormatError on malformed input."""
    stream = KaitaiStream(io.BytesIO(data))
    try:
        class_file = _read(stream)
    except EOFError as e:
        raise ClassFormatError(f"Truncated class file: {e}") from e
    if not stream.is_eof():
        raise ClassFormatError("Trailing bytes after class file")
    return class_file


def _read(stream: KaitaiStream) -> ClassFile:
    magic = stream.read_u4be()
    if magic != MAGIC:
        raise ClassFormatError(f"Bad magic 0x{magic:08X}")
    minor = stream.read_u2be()
    major = stream.read_u2be()
    pool = _read_pool(stream)

    access = stream.read_u2be()
    name = pool.class_name(stream.read_u2be())
    super_index = stream.read_u2be()
    super_name = pool.class_name(super_index) if super_index else None
    interfaces = [pool.class_name(stream.read_u2be()) for _ in range(stream.read_u2be())]

    fields = [FieldInfo(*_read_member(stream, pool)) for _ in range(stream.read_u2be())]
    methods = [MethodInfo(*_read_member(stream, pool)) for _ in range(stream.read_u2be())]
    attributes = _read_attributes(stream, pool)

    return ClassFile(minor, major, pool, access, name, super_name,
                     interfaces, fields, methods, attributes)


def _read_pool(stream: KaitaiStream) -> ConstantPool:
    count = stream.read_u2be()
    entries: list = [None]
    while len(entries) < count:
        tag = stream.read_u1()
        kind = TAGS.get(tag)
        if kind is None:
            raise ClassFormatError(f"Unknown constant pool tag {tag} at index {len(entries)}")
        if kind == "Utf8":
            entry = (kind, stream.read_bytes(stream.read_u2be()))
        elif kind == "Integer":
            entry = (kind, stream.read_s4be())
        elif kind == "Float":
            entry = (kind, stream.read_u4be())
        elif kind == "Long":
            entry = (kind, stream.read_s8be())
        elif kind == "Double":
            entry = (kind, stream.read_u8be())
        elif kind == "MethodHandle":
            entry = (kind, stream.read_u1(), stream.read_u2be())
        elif kind in ("Class", "String", "MethodType", "Module", "Package"):
            entry = (kind, stream.read_u2be())
        else:
            entry = (kind, stream.read_u2be(), stream.read_u2be())
        entries.append(entry)
        if kind in WIDE_ENTRIES:
            entries.append(None)
    if len(entries) != count:
        raise ClassFormatError("Constant pool count splits a wide entry")
    return ConstantPool(entries)


def _read_member(stream: KaitaiStream, pool: ConstantPool):
    access = stream.read_u2be()
    name = pool.utf8(stream.read_u2be())
    descriptor = pool.utf8(stream.read_u2be())
    return access, name, descriptor, _read_attributes(stream, pool)


def _read_attributes(stream: KaitaiStream, pool: ConstantPool) -> list[Attribute]:
    attributes = []
    for _ in range(stream.read_u2be()):
        name = pool.utf8(stream.read_u2be())
        length = stream.read_u4be()
        attributes.append(Attribute(name, stream.read_bytes(length)))
    return attributes
