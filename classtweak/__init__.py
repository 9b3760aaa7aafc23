"""
classtweak - access widening, enum extension and interface injection for
compiled JVM classes.

Rule text  ->  ClassTweakerReader  ->  ClassTweaker (rule model)
Rule model + class bytes  ->  ClassTransformer  ->  rewritten class bytes
"""

__version__ = "1.0.0"

from classtweak.access import AccessType, ClassAccess, FieldAccess, MethodAccess
from classtweak.decorators import forward, remap, transitive_only
from classtweak.descriptors import EntryKey
from classtweak.environment import ClassPathEnvironment, SymbolEnvironment
from classtweak.errors import (
    ClassFormatError,
    ClassTweakError,
    FormatError,
    ModelError,
    TransformError,
    ValidationError,
)
from classtweak.literals import TypedConstant
from classtweak.model import ClassTweaker, EnumExtension
from classtweak.reader import ClassTweakerReader, read_header, read_version
from classtweak.remapper import Remapper, SimpleRemapper
from classtweak.transform import ClassTransformer
from classtweak.validator import ClassTweakerValidatingVisitor, validate
from classtweak.visitor import (
    NO_ACCESS_WIDENER,
    NO_ENUM_EXTENSION,
    AccessWidenerVisitor,
    ClassTweakerVisitor,
    EnumExtensionVisitor,
)
from classtweak.writer import ClassTweakerWriter

__all__ = [
    "AccessType",
    "ClassAccess",
    "FieldAccess",
    "MethodAccess",
    "forward",
    "remap",
    "transitive_only",
    "EntryKey",
    "ClassPathEnvironment",
    "SymbolEnvironment",
    "ClassFormatError",
    "ClassTweakError",
    "FormatError",
    "ModelError",
    "TransformError",
    "ValidationError",
    "TypedConstant",
    "ClassTweaker",
    "EnumExtension",
    "ClassTweakerReader",
    "read_header",
    "read_version",
    "Remapper",
    "SimpleRemapper",
    "ClassTransformer",
    "ClassTweakerValidatingVisitor",
    "validate",
    "NO_ACCESS_WIDENER",
    "NO_ENUM_EXTENSION",
    "AccessWidenerVisitor",
    "ClassTweakerVisitor",
    "EnumExtensionVisitor",
    "ClassTweakerWriter",
]
