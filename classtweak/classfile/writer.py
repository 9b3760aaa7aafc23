"""
Class file writer

Serialises a ClassFile with struct. The body is laid out first because
resolving names may append to the constant pool; the pool is written last
into its place after the header.
"""

from __future__ import annotations

import struct

from classtweak.classfile.pool import TAG_CODES, ConstantPool
from classtweak.classfile.reader import MAGIC
from classtweak.classfile.structure import Attribute, ClassFile, MemberInfo


def write_class(class_file: ClassFile) -> bytes:
    pool = class_file.pool
    body = bytearray()
    body += struct.pack(
        ">HHH",
        class_file.access_flags,
        pool.add_class(class_file.name),
        pool.add_class(class_file.super_name) if class_file.super_name else 0,
    )
    body += struct.pack(">H", len(class_file.interfaces))
    for interface in class_file.interfaces:
        body += struct.pack(">H", pool.add_class(interface))

    for members in (class_file.fields, class_file.methods):
        body += struct.pack(">H", len(members))
        for member in members:
            body += _member(member, pool)
    body += write_attributes(class_file.attributes, pool)

    head = struct.pack(">IHH", MAGIC, class_file.minor_version, class_file.major_version)
    return head + _pool(pool) + bytes(body)


def _member(member: MemberInfo, pool: ConstantPool) -> bytes:
    return struct.pack(
        ">HHH", member.access_flags, pool.add_utf8(member.name), pool.add_utf8(member.descriptor)
    ) + write_attributes(member.attributes, pool)


def write_attributes(attributes: list[Attribute], pool: ConstantPool) -> bytes:
    out = bytearray(struct.pack(">H", len(attributes)))
    for attribute in attributes:
        out += struct.pack(">HI", pool.add_utf8(attribute.name), len(attribute.data))
        out += attribute.data
    return bytes(out)


def _pool(pool: ConstantPool) -> bytes:
    out = bytearray(struct.pack(">H", len(pool.entries)))
    for entry in pool.entries[1:]:
        if entry is None:
            continue
        kind = entry[0]
        out.append(TAG_CODES[kind])
        if kind == "Utf8":
            out += struct.pack(">H", len(entry[1])) + entry[1]
        elif kind == "Integer":
            out += struct.pack(">i", entry[1])
        elif kind == "Float":
            out += struct.pack(">I", entry[1])
        elif kind == "Long":
            out += struct.pack(">q", entry[1])
        elif kind == "Double":
            out += struct.pack(">Q", entry[1])
        elif kind == "MethodHandle":
            out += struct.pack(">BH", entry[1], entry[2])
        else:
            out += struct.pack(f">{len(entry) - 1}H", *entry[1:])
    return bytes(out)
