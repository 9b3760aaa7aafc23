"""
Visitor protocol

Rule text is never materialised as an AST. The reader emits events into a
ClassTweakerVisitor, and the model, writer, validator and decorators are all
visitors. Each capability has its own interface with no-op defaults.
A visitor that is not interested in a class or enum returns the matching
sentinel (NO_ACCESS_WIDENER / NO_ENUM_EXTENSION) instead of None.
"""

from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from classtweak.access import AccessType
    from classtweak.literals import TypedConstant


class AccessWidenerVisitor:
    """Receives access rules for one class."""

    def visit_class(self, access: AccessType, transitive: bool) -> None:
        pass

    def visit_method(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        pass

    def visit_field(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        pass


class EnumExtensionVisitor:
    """Receives the continuation lines of one extend-enum rule."""

    def visit_parameter_list(self, owner: str, name: str, descriptor: str) -> None:
        pass

    def visit_parameter_constants(self, constants: Sequence[TypedConstant]) -> None:
        pass

    def visit_override(self, method_name: str, owner: str, name: str, descriptor: str) -> None:
        pass

    def visit_end(self) -> None:
        pass


class ClassTweakerVisitor:
    """Top-level visitor for a whole rule source."""

    def visit_header(self, namespace: str) -> None:
        pass

    def visit_access_widener(self, owner: str) -> AccessWidenerVisitor:
        return NO_ACCESS_WIDENER

    def visit_enum(self, owner: str, name: str, constructor_descriptor: str,
                   id: str, transitive: bool) -> EnumExtensionVisitor:
        return NO_ENUM_EXTENSION

    def visit_injected_interface(self, owner: str, interface_name: str, transitive: bool) -> None:
        pass


NO_ACCESS_WIDENER = AccessWidenerVisitor()
NO_ENUM_EXTENSION = EnumExtensionVisitor()
