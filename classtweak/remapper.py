"""
Name remapping

A Remapper translates class names, member names and descriptors from one
naming namespace to another. The base class is the identity mapping;
SimpleRemapper looks names up in a flat dict keyed the way ASM's
SimpleRemapper keys them:

    "a/B"              -> class name
    "a/B.field"        -> field name
    "a/B.method(I)V"   -> method name
"""

from __future__ import annotations

from typing import Mapping

from classtweak.descriptors import map_type


class Remapper:

    def map(self, internal_name: str) -> str:
        return internal_name

    def map_field_name(self, owner: str, name: str, descriptor: str) -> str:
        return name

    def map_method_name(self, owner: str, name: str, descriptor: str) -> str:
        return name

    def map_desc(self, descriptor: str) -> str:
        return map_type(descriptor, self.map)

    def map_method_desc(self, descriptor: str) -> str:
        return map_type(descriptor, self.map)


class SimpleRemapper(Remapper):

    def __init__(self, mapping: Mapping[str, str]):
        self.mapping = dict(mapping)

    def map(self, internal_name: str) -> str:
        return self.mapping.get(internal_name, internal_name)

    def map_field_name(self, owner: str, name: str, descriptor: str) -> str:
        return self.mapping.get(f"{owner}.{name}", name)

    def map_method_name(self, owner: str, name: str, descriptor: str) -> str:
        return self.mapping.get(f"{owner}.{name}{descriptor}", name)
