"""
Visitor decorators

Wrappers that sit between a reader and its final consumer:

    forward(a, b, ...)                    broadcast every event
    remap(delegate, remapper, from, to)   translate names between namespaces
    transitive_only(delegate)             keep only transitive- rules

Each wrapper honours the sentinel protocol: when nothing downstream wants a
class or enum, it returns NO_ACCESS_WIDENER / NO_ENUM_EXTENSION.
"""

from __future__ import annotations

from typing import Sequence

from classtweak.access import AccessType
from classtweak.errors import ModelError
from classtweak.literals import TypedConstant
from classtweak.remapper import Remapper
from classtweak.visitor import (
    NO_ACCESS_WIDENER, NO_ENUM_EXTENSION,
    AccessWidenerVisitor, ClassTweakerVisitor, EnumExtensionVisitor,
)


# ============================================================
# Fan-out
# ============================================================

class ForwardingVisitor(ClassTweakerVisitor):
    """Sends every event to each of `visitors`, in order."""

    def __init__(self, *visitors: ClassTweakerVisitor):
        self.visitors = list(visitors)

    def visit_header(self, namespace: str) -> None:
        for visitor in self.visitors:
            visitor.visit_header(namespace)

    def visit_access_widener(self, owner: str) -> AccessWidenerVisitor:
        delegates = [v.visit_access_widener(owner) for v in self.visitors]
        delegates = [d for d in delegates if d is not NO_ACCESS_WIDENER]
        if not delegates:
            return NO_ACCESS_WIDENER
        return _ForwardingAccessWidener(delegates)

    def visit_enum(self, owner: str, name: str, constructor_descriptor: str,
                   id: str, transitive: bool) -> EnumExtensionVisitor:
        delegates = [v.visit_enum(owner, name, constructor_descriptor, id, transitive)
                     for v in self.visitors]
        delegates = [d for d in delegates if d is not NO_ENUM_EXTENSION]
        if not delegates:
            return NO_ENUM_EXTENSION
        return _ForwardingEnumExtension(delegates)

    def visit_injected_interface(self, owner: str, interface_name: str, transitive: bool) -> None:
        for visitor in self.visitors:
            visitor.visit_injected_interface(owner, interface_name, transitive)


class _ForwardingAccessWidener(AccessWidenerVisitor):

    def __init__(self, delegates: list[AccessWidenerVisitor]):
        self.delegates = delegates

    def visit_class(self, access: AccessType, transitive: bool) -> None:
        for d in self.delegates:
            d.visit_class(access, transitive)

    def visit_method(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        for d in self.delegates:
            d.visit_method(name, descriptor, access, transitive)

    def visit_field(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        for d in self.delegates:
            d.visit_field(name, descriptor, access, transitive)


class _ForwardingEnumExtension(EnumExtensionVisitor):

    def __init__(self, delegates: list[EnumExtensionVisitor]):
        self.delegates = delegates

    def visit_parameter_list(self, owner: str, name: str, descriptor: str) -> None:
        for d in self.delegates:
            d.visit_parameter_list(owner, name, descriptor)

    def visit_parameter_constants(self, constants: Sequence[TypedConstant]) -> None:
        for d in self.delegates:
            d.visit_parameter_constants(constants)

    def visit_override(self, method_name: str, owner: str, name: str, descriptor: str) -> None:
        for d in self.delegates:
            d.visit_override(method_name, owner, name, descriptor)

    def visit_end(self) -> None:
        for d in self.delegates:
            d.visit_end()


# ============================================================
# Remapping
# ============================================================

class RemappingVisitor(ClassTweakerVisitor):
    """Translates names from `from_namespace` into `to_namespace`."""

    def __init__(self, delegate: ClassTweakerVisitor, remapper: Remapper,
                 from_namespace: str, to_namespace: str):
        self.delegate = delegate
        self.remapper = remapper
        self.from_namespace = from_namespace
        self.to_namespace = to_namespace

    def visit_header(self, namespace: str) -> None:
        if namespace != self.from_namespace:
            raise ModelError(
                f"Cannot remap access widener from namespace '{namespace}'. "
                f"Expected: '{self.from_namespace}'"
            )
        self.delegate.visit_header(self.to_namespace)

    def visit_access_widener(self, owner: str) -> AccessWidenerVisitor:
        visitor = self.delegate.visit_access_widener(self.remapper.map(owner))
        if visitor is NO_ACCESS_WIDENER:
            return NO_ACCESS_WIDENER
        return _RemappingAccessWidener(visitor, self.remapper, owner)

    def visit_enum(self, owner: str, name: str, constructor_descriptor: str,
                   id: str, transitive: bool) -> EnumExtensionVisitor:
        visitor = self.delegate.visit_enum(
            self.remapper.map(owner), name,
            self.remapper.map_method_desc(constructor_descriptor), id, transitive,
        )
        if visitor is NO_ENUM_EXTENSION:
            return NO_ENUM_EXTENSION
        return _RemappingEnumExtension(visitor, self.remapper, owner)

    def visit_injected_interface(self, owner: str, interface_name: str, transitive: bool) -> None:
        self.delegate.visit_injected_interface(
            self.remapper.map(owner), self.remapper.map(interface_name), transitive
        )


class _RemappingAccessWidener(AccessWidenerVisitor):

    def __init__(self, delegate: AccessWidenerVisitor, remapper: Remapper, owner: str):
        self.delegate = delegate
        self.remapper = remapper
        self.owner = owner

    def visit_class(self, access: AccessType, transitive: bool) -> None:
        self.delegate.visit_class(access, transitive)

    def visit_method(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        self.delegate.visit_method(
            self.remapper.map_method_name(self.owner, name, descriptor),
            self.remapper.map_method_desc(descriptor),
            access, transitive,
        )

    def visit_field(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        self.delegate.visit_field(
            self.remapper.map_field_name(self.owner, name, descriptor),
            self.remapper.map_desc(descriptor),
            access, transitive,
        )


class _RemappingEnumExtension(EnumExtensionVisitor):

    def __init__(self, delegate: EnumExtensionVisitor, remapper: Remapper, enum_owner: str):
        self.delegate = delegate
        self.remapper = remapper
        self.enum_owner = enum_owner

    def visit_parameter_list(self, owner: str, name: str, descriptor: str) -> None:
        self.delegate.visit_parameter_list(
            self.remapper.map(owner),
            self.remapper.map_field_name(owner, name, descriptor),
            self.remapper.map_desc(descriptor),
        )

    def visit_parameter_constants(self, constants: Sequence[TypedConstant]) -> None:
        self.delegate.visit_parameter_constants(constants)

    def visit_override(self, method_name: str, owner: str, name: str, descriptor: str) -> None:
        self.delegate.visit_override(
            self.remapper.map_method_name(self.enum_owner, method_name, descriptor),
            self.remapper.map(owner),
            self.remapper.map_method_name(owner, name, descriptor),
            self.remapper.map_method_desc(descriptor),
        )

    def visit_end(self) -> None:
        self.delegate.visit_end()


# ============================================================
# Transitive filter
# ============================================================

class TransitiveOnlyFilter(ClassTweakerVisitor):
    """Passes on only the rules marked transitive-."""

    def __init__(self, delegate: ClassTweakerVisitor):
        self.delegate = delegate

    def visit_header(self, namespace: str) -> None:
        self.delegate.visit_header(namespace)

    def visit_access_widener(self, owner: str) -> AccessWidenerVisitor:
        visitor = self.delegate.visit_access_widener(owner)
        if visitor is NO_ACCESS_WIDENER:
            return NO_ACCESS_WIDENER
        return _TransitiveAccessWidener(visitor)

    def visit_enum(self, owner: str, name: str, constructor_descriptor: str,
                   id: str, transitive: bool) -> EnumExtensionVisitor:
        if not transitive:
            return NO_ENUM_EXTENSION
        return self.delegate.visit_enum(owner, name, constructor_descriptor, id, transitive)

    def visit_injected_interface(self, owner: str, interface_name: str, transitive: bool) -> None:
        if transitive:
            self.delegate.visit_injected_interface(owner, interface_name, transitive)


class _TransitiveAccessWidener(AccessWidenerVisitor):

    def __init__(self, delegate: AccessWidenerVisitor):
        self.delegate = delegate

    def visit_class(self, access: AccessType, transitive: bool) -> None:
        if transitive:
            self.delegate.visit_class(access, transitive)

    def visit_method(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        if transitive:
            self.delegate.visit_method(name, descriptor, access, transitive)

    def visit_field(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        if transitive:
            self.delegate.visit_field(name, descriptor, access, transitive)


# ============================================================
# Factories
# ============================================================

def forward(*visitors: ClassTweakerVisitor) -> ClassTweakerVisitor:
    return ForwardingVisitor(*visitors)


def remap(delegate: ClassTweakerVisitor, remapper: Remapper,
          from_namespace: str, to_namespace: str) -> ClassTweakerVisitor:
    return RemappingVisitor(delegate, remapper, from_namespace, to_namespace)


def transitive_only(delegate: ClassTweakerVisitor) -> ClassTweakerVisitor:
    return TransitiveOnlyFilter(delegate)
