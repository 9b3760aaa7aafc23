"""
classtweak errors

Every failure raised by the library derives from ClassTweakError so callers
can catch the whole family at one seam. Subclasses mark where the problem was
detected: reading rule text, building the rule model, rewriting bytecode,
validating against a class path, or decoding a class file.
"""

from __future__ import annotations

from typing import Optional


class ClassTweakError(Exception):
    """Base class for all classtweak failures."""


class FormatError(ClassTweakError):
    """Raised when rule text violates the grammar.

    `message` holds the exact violation text; `str()` adds the line number
    and source id.
    """

    def __init__(self, message: str, line: int, source_id: Optional[str] = None):
        self.message = message
        self.line = line
        self.source_id = source_id
        where = f"Line {line}" if source_id is None else f"Line {line} of {source_id}"
        super().__init__(f"{where}: {message}")


class ModelError(ClassTweakError):
    """Raised on semantic violations while accumulating or writing rules."""


class TransformError(ClassTweakError):
    """Raised when a class cannot be rewritten as the rules require."""


class ValidationError(ClassTweakError):
    """Raised when rules reference symbols a class path does not contain."""


class ClassFormatError(ClassTweakError):
    """Raised on malformed class files or unencodable bytecode."""
