"""
Rule text writer

A visitor that prints the events it receives in canonical form: one rule per
tab-separated line, enum continuation lines indented by a tab.
"""

from __future__ import annotations

from typing import Optional, Sequence

from classtweak.access import AccessType
from classtweak.errors import ModelError
from classtweak.literals import TypedConstant, format_constant
from classtweak.reader import AW_V1, AW_V2, CT_V1, LEGACY_MAGIC, MAGIC
from classtweak.visitor import (
    AccessWidenerVisitor, ClassTweakerVisitor, EnumExtensionVisitor,
)


class ClassTweakerWriter(ClassTweakerVisitor):
    """Collects visitor events into rule text of a fixed format version."""

    def __init__(self, version: int = CT_V1):
        if version not in (AW_V1, AW_V2, CT_V1):
            raise ValueError(f"Unknown format version: {version}")
        self.version = version
        self._namespace: Optional[str] = None
        self._lines: list[str] = []

    def visit_header(self, namespace: str) -> None:
        if self._namespace is not None and self._namespace != namespace:
            raise ModelError(
                f"Cannot write different namespaces to the same file ({self._namespace} != {namespace})"
            )
        self._namespace = namespace

    def visit_access_widener(self, owner: str) -> AccessWidenerVisitor:
        return _AccessLineWriter(self, owner)

    def visit_enum(self, owner: str, name: str, constructor_descriptor: str,
                   id: str, transitive: bool) -> EnumExtensionVisitor:
        self._require(CT_V1, "enum extension")
        self._emit(f"extend-enum\t{owner}\t{name}\t{constructor_descriptor}", transitive)
        return _EnumLineWriter(self)

    def visit_injected_interface(self, owner: str, interface_name: str, transitive: bool) -> None:
        self._require(CT_V1, "interface injection")
        self._emit(f"inject-interface\t{owner}\t{interface_name}", transitive)

    def write_string(self) -> str:
        if self._namespace is None:
            raise ModelError("No namespace set. visit_header wasn't called.")
        if self.version >= CT_V1:
            header = f"{MAGIC}\tv{self.version - AW_V2}\t{self._namespace}\n"
        else:
            header = f"{LEGACY_MAGIC}\tv{self.version}\t{self._namespace}\n"
        return header + "".join(line + "\n" for line in self._lines)

    def _require(self, version: int, feature: str) -> None:
        if self.version < version:
            raise ModelError(f"Cannot write {feature} rule in version {self.version}")

    def _emit(self, line: str, transitive: bool) -> None:
        if transitive:
            self._require(AW_V2, "transitive")
            line = "transitive-" + line
        self._lines.append(line)

    def _emit_continuation(self, line: str) -> None:
        self._lines.append("\t" + line)


class _AccessLineWriter(AccessWidenerVisitor):

    def __init__(self, writer: ClassTweakerWriter, owner: str):
        self.writer = writer
        self.owner = owner

    def visit_class(self, access: AccessType, transitive: bool) -> None:
        self.writer._emit(f"{access}\tclass\t{self.owner}", transitive)

    def visit_method(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        self.writer._emit(f"{access}\tmethod\t{self.owner}\t{name}\t{descriptor}", transitive)

    def visit_field(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        self.writer._emit(f"{access}\tfield\t{self.owner}\t{name}\t{descriptor}", transitive)


class _EnumLineWriter(EnumExtensionVisitor):

    def __init__(self, writer: ClassTweakerWriter):
        self.writer = writer

    def visit_parameter_list(self, owner: str, name: str, descriptor: str) -> None:
        self.writer._emit_continuation(f"params\t{owner}\t{name}\t{descriptor}")

    def visit_parameter_constants(self, constants: Sequence[TypedConstant]) -> None:
        literals = "\t".join(format_constant(c) for c in constants)
        self.writer._emit_continuation(f"params\t{literals}")

    def visit_override(self, method_name: str, owner: str, name: str, descriptor: str) -> None:
        self.writer._emit_continuation(f"override\t{method_name}\t{owner}\t{name}\t{descriptor}")
