"""
Rule text reader

Parses the line-oriented rule grammar and emits visitor events. Three
format versions exist:

    accessWidener v1 <ns>   access rules, any whitespace delimits
    accessWidener v2 <ns>   + transitive- prefix, only space/tab delimit
    classTweaker  v1 <ns>   + extend-enum and inject-interface

Usage:
    model = ClassTweaker()
    ClassTweakerReader(model).read(text, source_id="mymod")
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from classtweak.access import AccessType
from classtweak.descriptors import argument_types, internal_name
from classtweak.errors import FormatError, ModelError
from classtweak.literals import ConstantParseError, is_constant, parse_constants
from classtweak.visitor import (
    ClassTweakerVisitor, EnumExtensionVisitor,
)

logger = logging.getLogger(__name__)

AW_V1 = 1
AW_V2 = 2
CT_V1 = 3

LEGACY_MAGIC = "accessWidener"
MAGIC = "classTweaker"

_V1_DELIMITER = re.compile(r"[ \t\n\x0b\f\r]+")
_V2_DELIMITER = re.compile(r"[ \t]+")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_PARAM_TOKEN = re.compile(r"""[^\s"']+|"([^"]*)"|'([^']*)'""")
_TRIM = "".join(chr(c) for c in range(33))

_TRANSITIVE_PREFIX = "transitive-"
_ENUM_KEYWORD = "extend-enum"
_INTERFACE_KEYWORD = "inject-interface"

_HEADER_USAGE = "Invalid access widener file header. Expected: 'classTweaker <version> <namespace>'"
_ENUM_USAGE = "Expected (extend-enum <className> <name> <desc>) got ({})"
_PARAMS_USAGE = "Expected (<tab> params <owner> <name> <desc>) got ({})"
_OVERRIDE_USAGE = "Expected (override <targetMethodName> <owner> <name> <desc>) got ({})"
_INTERFACE_USAGE = "Expected (inject-interface <className> <interfaceName>) got ({})"


@dataclass(frozen=True)
class Header:
    version: int
    namespace: str


def _split(pattern: re.Pattern, line: str) -> list[str]:
    """Split keeping a leading empty token but dropping trailing ones."""
    tokens = pattern.split(line)
    while tokens and tokens[-1] == "":
        tokens.pop()
    return tokens


def _lines(content: Union[str, bytes], source_id: Optional[str] = None) -> list[str]:
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            line = content.count(b"\n", 0, e.start) + 1
            raise FormatError(f"Invalid UTF-8 byte at offset {e.start}", line, source_id) from e
    lines = _LINE_BREAK.split(content)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _parse_header(line: Optional[str], source_id: Optional[str] = None) -> Header:
    if line is None:
        raise FormatError(_HEADER_USAGE, 1, source_id)
    parts = _split(_V1_DELIMITER, line)
    if len(parts) != 3:
        raise FormatError(_HEADER_USAGE, 1, source_id)
    magic, version, namespace = parts
    if magic == LEGACY_MAGIC:
        if version == "v1":
            return Header(AW_V1, namespace)
        if version == "v2":
            return Header(AW_V2, namespace)
        raise FormatError(f"Unsupported access widener format: {version}", 1, source_id)
    if magic == MAGIC:
        if version == "v1":
            return Header(CT_V1, namespace)
        raise FormatError(f"Unsupported class tweaker format: {version}", 1, source_id)
    raise FormatError(_HEADER_USAGE, 1, source_id)


def read_header(content: Union[str, bytes]) -> Header:
    """Parse only the first line of a rule source."""
    lines = _lines(content)
    return _parse_header(lines[0] if lines else None)


def read_version(content: Union[str, bytes]) -> int:
    return read_header(content).version


class ClassTweakerReader:
    """Drives a ClassTweakerVisitor from rule text."""

    def __init__(self, visitor: ClassTweakerVisitor):
        self.visitor = visitor
        self._source_id: Optional[str] = None
        self._line_number = 0
        self._version = AW_V1
        self._enum_args: list[str] = []

    def read(self, content: Union[str, bytes], namespace: Optional[str] = None,
             source_id: str = "unknown") -> None:
        """Read a whole source. Raises FormatError on the first violation.

        `namespace`, when given, must match the header's namespace.
        `source_id` identifies the source in errors and becomes the id of
        every enum extension it declares.
        """
        self._source_id = source_id
        lines = _lines(content, source_id)
        header = _parse_header(lines[0] if lines else None, source_id)
        if namespace is not None and header.namespace != namespace:
            raise FormatError(
                f"Namespace ({header.namespace}) does not match current runtime namespace ({namespace})",
                1, source_id,
            )
        self._version = header.version
        logger.debug("Reading %s (version %d, namespace %s)", source_id, header.version, header.namespace)
        self.visitor.visit_header(header.namespace)

        enum_visitor: Optional[EnumExtensionVisitor] = None
        self._line_number = 1
        for raw in lines[1:]:
            self._line_number += 1
            line = raw
            comment = line.find("#")
            if comment >= 0:
                line = line[:comment]
                # v1 files tolerate indented, commented rules
                if self._version <= AW_V1:
                    line = line.strip(_TRIM)
            if not line:
                continue

            if line[0].isspace():
                if enum_visitor is None:
                    raise self._error("Leading whitespace is not allowed")
                self._read_enum_continuation(enum_visitor, line)
                continue

            if enum_visitor is not None:
                self._visit(enum_visitor.visit_end)
                enum_visitor = None

            enum_visitor = self._read_line(line)

        if enum_visitor is not None:
            self._visit(enum_visitor.visit_end)

    # ============================================================
    # Lines
    # ============================================================

    def _read_line(self, line: str) -> Optional[EnumExtensionVisitor]:
        """Handle one top-level rule. Returns the visitor of an opened enum."""
        delimiter = _V1_DELIMITER if self._version < AW_V2 else _V2_DELIMITER
        tokens = _split(delimiter, line)
        keyword = tokens[0]

        transitive = False
        if self._version >= AW_V2 and keyword.startswith(_TRANSITIVE_PREFIX):
            transitive = True
            keyword = keyword[len(_TRANSITIVE_PREFIX):]

        if self._version >= CT_V1:
            if keyword == _ENUM_KEYWORD:
                return self._read_enum(tokens, line, transitive)
            if keyword == _INTERFACE_KEYWORD:
                self._read_interface(tokens, line, transitive)
                return None

        try:
            access = AccessType.parse(keyword)
        except ValueError:
            raise self._error(f"Unknown access type: {keyword}") from None

        if len(tokens) < 2:
            raise self._error(f"Expected <class|field|method> following {tokens[0]}")

        kind = tokens[1]
        if kind == "class":
            if len(tokens) != 3:
                raise self._error(f"Expected (<access> class <className>) got ({line})")
            owner = self._class_name(tokens[2])
            self._visit(lambda: self.visitor.visit_access_widener(owner).visit_class(access, transitive))
        elif kind == "field":
            if len(tokens) != 5:
                raise self._error(
                    f"Expected (<access> field <className> <fieldName> <fieldDesc>) got ({line})"
                )
            owner = self._class_name(tokens[2])
            self._visit(lambda: self.visitor.visit_access_widener(owner).visit_field(
                tokens[3], tokens[4], access, transitive
            ))
        elif kind == "method":
            if len(tokens) != 5:
                raise self._error(
                    f"Expected (<access> method <className> <methodName> <methodDesc>) got ({line})"
                )
            owner = self._class_name(tokens[2])
            self._visit(lambda: self.visitor.visit_access_widener(owner).visit_method(
                tokens[3], tokens[4], access, transitive
            ))
        else:
            raise self._error(f"Unsupported type: '{kind}'")
        return None

    def _read_enum(self, tokens: list[str], line: str, transitive: bool) -> EnumExtensionVisitor:
        if len(tokens) != 4:
            raise self._error(_ENUM_USAGE.format(line))
        owner = self._class_name(tokens[1])
        name = tokens[2]
        descriptor = tokens[3]
        try:
            args = argument_types(descriptor)
        except ValueError as e:
            raise self._error(str(e)) from None
        if len(args) < 2 or internal_name(args[0]) != "java/lang/String" or args[1] != "I":
            raise self._error(f"Invalid enum constructor desc got ({descriptor})")
        self._enum_args = args
        return self._visit(lambda: self.visitor.visit_enum(
            owner, name, descriptor, self._source_id, transitive
        ))

    def _read_enum_continuation(self, enum_visitor: EnumExtensionVisitor, line: str) -> None:
        trimmed = line.strip(_TRIM)
        if trimmed.startswith("params"):
            self._read_params(enum_visitor, trimmed)
        elif trimmed.startswith("override"):
            self._read_override(enum_visitor, trimmed)
        else:
            raise self._error("Expect params or override")

    def _read_params(self, enum_visitor: EnumExtensionVisitor, line: str) -> None:
        tokens = [m.group(0) for m in _PARAM_TOKEN.finditer(line)]
        if len(tokens) < 2 or tokens[0] != "params":
            raise self._error(_PARAMS_USAGE.format(line))
        values = tokens[1:]

        if not is_constant(values[0]):
            if len(values) != 3:
                raise self._error(_PARAMS_USAGE.format(line))
            owner = self._class_name(values[0])
            self._visit(lambda: enum_visitor.visit_parameter_list(owner, values[1], values[2]))
            return

        try:
            constants = parse_constants(self._enum_args[2:], values)
        except ConstantParseError as e:
            raise self._error(f"Failed to parse constants ({e}) on line ({line})") from e
        self._visit(lambda: enum_visitor.visit_parameter_constants(constants))

    def _read_override(self, enum_visitor: EnumExtensionVisitor, line: str) -> None:
        tokens = _split(_V2_DELIMITER, line)
        if len(tokens) != 5 or tokens[0] != "override":
            raise self._error(_OVERRIDE_USAGE.format(line))
        owner = self._class_name(tokens[2])
        self._visit(lambda: enum_visitor.visit_override(tokens[1], owner, tokens[3], tokens[4]))

    def _read_interface(self, tokens: list[str], line: str, transitive: bool) -> None:
        if len(tokens) != 3:
            raise self._error(_INTERFACE_USAGE.format(line))
        owner = self._class_name(tokens[1])
        interface_name = self._class_name(tokens[2])
        self._visit(lambda: self.visitor.visit_injected_interface(owner, interface_name, transitive))

    # ============================================================
    # Helpers
    # ============================================================

    def _class_name(self, name: str) -> str:
        if "." in name:
            raise self._error(f"Class-names must be specified as a/b/C, not a.b.C, but found: {name}")
        return name

    def _visit(self, event):
        """Run a visitor event, attaching the current line to model errors."""
        try:
            return event()
        except ModelError as e:
            raise self._error(str(e)) from e

    def _error(self, message: str) -> FormatError:
        return FormatError(message, self._line_number, self._source_id)
