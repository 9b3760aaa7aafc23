"""
In-memory class file

Names and descriptors are resolved to strings; attribute bodies stay as raw
bytes until someone asks for them. Writing a ClassFile that nobody touched
reproduces the input byte for byte.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from classtweak.classfile.flags import ACC_ENUM, ACC_INTERFACE
from classtweak.classfile.pool import ConstantPool


@dataclass
class Attribute:
    name: str
    data: bytes


def find_attribute(attributes: list[Attribute], name: str) -> Optional[Attribute]:
    for attribute in attributes:
        if attribute.name == name:
            return attribute
    return None


def set_attribute(attributes: list[Attribute], name: str, data: bytes) -> None:
    """Replace an attribute's body in place, or append a new one."""
    existing = find_attribute(attributes, name)
    if existing is not None:
        existing.data = data
    else:
        attributes.append(Attribute(name, data))


def remove_attribute(attributes: list[Attribute], name: str) -> bool:
    before = len(attributes)
    attributes[:] = [a for a in attributes if a.name != name]
    return len(attributes) != before


@dataclass
class MemberInfo:
    access_flags: int
    name: str
    descriptor: str
    attributes: list[Attribute] = field(default_factory=list)

    def attribute(self, name: str) -> Optional[Attribute]:
        return find_attribute(self.attributes, name)


class FieldInfo(MemberInfo):
    pass


class MethodInfo(MemberInfo):
    pass


@dataclass
class ClassFile:
    minor_version: int
    major_version: int
    pool: ConstantPool
    access_flags: int
    name: str
    super_name: Optional[str]
    interfaces: list[str] = field(default_factory=list)
    fields: list[FieldInfo] = field(default_factory=list)
    methods: list[MethodInfo] = field(default_factory=list)
    attributes: list[Attribute] = field(default_factory=list)

    @property
    def is_interface(self) -> bool:
        return bool(self.access_flags & ACC_INTERFACE)

    @property
    def is_enum(self) -> bool:
        return bool(self.access_flags & ACC_ENUM)

    def attribute(self, name: str) -> Optional[Attribute]:
        return find_attribute(self.attributes, name)

    def find_method(self, name: str, descriptor: str) -> Optional[MethodInfo]:
        for method in self.methods:
            if method.name == name and method.descriptor == descriptor:
                return method
        return None

    def find_field(self, name: str, descriptor: str) -> Optional[FieldInfo]:
        for f in self.fields:
            if f.name == name and f.descriptor == descriptor:
                return f
        return None

    def methods_named(self, name: str) -> list[MethodInfo]:
        return [m for m in self.methods if m.name == name]
