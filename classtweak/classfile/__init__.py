"""
classtweak.classfile: a small JVM class file toolkit

Reading and writing class files, editing method bodies as label-addressed
instruction lists, and the attributes the transform engine rewrites.
"""

from classtweak.classfile.code import (
    CodeAttribute, Insn, Label, decode_code, encode_code, insert_before, replace,
)
from classtweak.classfile.generator import InsnBuilder
from classtweak.classfile.pool import ConstantPool
from classtweak.classfile.reader import read_class
from classtweak.classfile.structure import (
    Attribute, ClassFile, FieldInfo, MethodInfo,
)
from classtweak.classfile.writer import write_class

__all__ = [
    "Attribute", "ClassFile", "CodeAttribute", "ConstantPool", "FieldInfo",
    "Insn", "InsnBuilder", "Label", "MethodInfo", "decode_code", "encode_code",
    "insert_before", "read_class", "replace", "write_class",
]
