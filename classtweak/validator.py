"""
Rule validation

Checks every class, member and constructor a rule set names against a
SymbolEnvironment before anything is transformed. The validator is a
visitor: attach it to a reader with forward(), or replay a finished model
through validate().
"""

from __future__ import annotations

from typing import Sequence

from classtweak.access import AccessType
from classtweak.descriptors import argument_types
from classtweak.environment import SymbolEnvironment
from classtweak.errors import ValidationError
from classtweak.literals import TypedConstant
from classtweak.model import ClassTweaker
from classtweak.visitor import (
    AccessWidenerVisitor, ClassTweakerVisitor, EnumExtensionVisitor,
)


class ClassTweakerValidatingVisitor(ClassTweakerVisitor):

    def __init__(self, environment: SymbolEnvironment):
        self.environment = environment

    def visit_access_widener(self, owner: str) -> AccessWidenerVisitor:
        return _AccessValidator(self.environment, owner)

    def visit_enum(self, owner: str, name: str, constructor_descriptor: str,
                   id: str, transitive: bool) -> EnumExtensionVisitor:
        if self.environment.get_class(owner) is None:
            raise ValidationError(f"Could not find target class ({owner})")
        if self.environment.get_method(owner, "<init>", constructor_descriptor) is None:
            raise ValidationError(
                f"Could not find target constructor (<init>{constructor_descriptor}) in class ({owner})"
            )
        return _EnumValidator(self.environment, owner, constructor_descriptor)

    def visit_injected_interface(self, owner: str, interface_name: str, transitive: bool) -> None:
        if self.environment.get_class(owner) is None:
            raise ValidationError(f"Could not find target class ({owner})")
        symbol = self.environment.get_class(interface_name)
        if symbol is None:
            raise ValidationError(f"Could not find interface ({interface_name})")
        if not symbol.is_interface:
            raise ValidationError(f"({interface_name}) is not an interface")


class _AccessValidator(AccessWidenerVisitor):

    def __init__(self, environment: SymbolEnvironment, owner: str):
        self.environment = environment
        self.owner = owner

    def visit_class(self, access: AccessType, transitive: bool) -> None:
        if self.environment.get_class(self.owner) is None:
            raise ValidationError(f"Could not find class ({self.owner})")

    def visit_method(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        if self.environment.get_method(self.owner, name, descriptor) is None:
            raise ValidationError(f"Could not find method ({name}{descriptor}) in class ({self.owner})")

    def visit_field(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        if self.environment.get_field(self.owner, name, descriptor) is None:
            raise ValidationError(f"Could not find field ({name}{descriptor}) in class ({self.owner})")


class _EnumValidator(EnumExtensionVisitor):

    def __init__(self, environment: SymbolEnvironment, owner: str, constructor_descriptor: str):
        self.environment = environment
        self.owner = owner
        self.constructor_descriptor = constructor_descriptor
        self.takes_parameters = len(argument_types(constructor_descriptor)) > 2
        self.visited_parameters = False

    def _visit_parameters(self) -> None:
        if self.visited_parameters:
            raise ValidationError("Enum parameters have already been visited")
        if not self.takes_parameters:
            raise ValidationError(
                f"Did not expect parameters for enum constructor ({self.constructor_descriptor})"
            )
        self.visited_parameters = True

    def visit_parameter_list(self, owner: str, name: str, descriptor: str) -> None:
        self._visit_parameters()
        # getstatic and invokestatic resolve through supertypes
        if self.environment.resolve_field(owner, name, descriptor) is None:
            raise ValidationError(f"Could not find field ({name}{descriptor}) in class ({owner})")

    def visit_parameter_constants(self, constants: Sequence[TypedConstant]) -> None:
        self._visit_parameters()

    def visit_override(self, method_name: str, owner: str, name: str, descriptor: str) -> None:
        if self.environment.resolve_method(owner, name, descriptor) is None:
            raise ValidationError(f"Could not find method ({name}{descriptor}) in class ({owner})")
        # The generated body overrides a method the enum itself declares
        if self.environment.get_method(self.owner, method_name, descriptor) is None:
            raise ValidationError(f"Could not find method ({method_name}{descriptor}) in class ({self.owner})")

    def visit_end(self) -> None:
        if self.takes_parameters and not self.visited_parameters:
            raise ValidationError(
                f"Expected parameters for enum constructor ({self.constructor_descriptor})"
            )


def validate(model: ClassTweaker, environment: SymbolEnvironment) -> None:
    """Raise ValidationError on the first rule the environment cannot satisfy."""
    model.accept(ClassTweakerValidatingVisitor(environment))
