"""
Enum initializer shapes

javac has compiled the enum values array two ways:

    legacy (< Java 15)   <clinit>:  ...constants...  iconst N; anewarray E;
                                    dup; iconst 0; getstatic E.A; aastore; ...
                                    putstatic E.$VALUES
    values-method        $values(): iconst N; anewarray E; ...; areturn
                         <clinit>:  ...constants...  invokestatic E.$values;
                                    putstatic E.$VALUES

An EnumShape bundles the lookups that differ between the two. It is chosen
once per class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from classtweak.classfile import opcodes as op
from classtweak.classfile.code import CodeAttribute, Insn, previous_insn
from classtweak.classfile.flags import V15
from classtweak.classfile.structure import ClassFile
from classtweak.descriptors import arguments_size
from classtweak.errors import TransformError
from classtweak.model import EnumExtension


@dataclass(frozen=True)
class EnumShape:
    name: str
    # Method that builds the values array
    array_method: str
    # (array method code, class) -> (size push, size)
    locate_size_site: Callable[[CodeAttribute, ClassFile], tuple[Insn, int]]
    # (array method code, class) -> instruction to insert array stores before
    locate_population_site: Callable[[CodeAttribute, ClassFile], Insn]
    # (<clinit> code, class) -> instruction to insert constant construction before
    locate_init_site: Callable[[CodeAttribute, ClassFile], Insn]
    # (original max stack, injected extensions) -> new max stack
    compute_max_stack: Callable[[int, Iterable[EnumExtension]], int]


def pushed_int(insn: Optional[Insn]) -> Optional[int]:
    """The int an iconst/bipush/sipush pushes, or None for anything else."""
    if insn is None:
        return None
    if op.ICONST_M1 <= insn.opcode <= op.ICONST_5:
        return insn.opcode - op.ICONST_0
    if insn.opcode in (op.BIPUSH, op.SIPUSH):
        return insn.operand
    return None


def _size_site(code: CodeAttribute, class_file: ClassFile) -> tuple[Insn, int]:
    pool = class_file.pool
    for insn in code.insns():
        if insn.opcode == op.ANEWARRAY and pool.class_name(insn.operand) == class_file.name:
            push = previous_insn(code.instructions, insn)
            size = pushed_int(push)
            if size is None:
                raise TransformError(f"Unrecognized enum array size pattern in {class_file.name}")
            return push, size
    raise TransformError(f"Could not find the values array of enum {class_file.name}")


def _values_store(code: CodeAttribute, class_file: ClassFile) -> Insn:
    for insn in code.insns():
        if insn.opcode == op.PUTSTATIC:
            owner, name, _ = class_file.pool.member_ref(insn.operand)
            if owner == class_file.name and name == "$VALUES":
                return insn
    raise TransformError(f"Could not find $VALUES store in enum {class_file.name}")


def _values_return(code: CodeAttribute, class_file: ClassFile) -> Insn:
    found = None
    for insn in code.insns():
        if insn.opcode == op.ARETURN:
            found = insn
    if found is None:
        raise TransformError(f"Could not find $values return in enum {class_file.name}")
    return found


def _values_call(code: CodeAttribute, class_file: ClassFile) -> Insn:
    for insn in code.insns():
        if insn.opcode == op.INVOKESTATIC:
            owner, name, _ = class_file.pool.member_ref(insn.operand)
            if owner == class_file.name and name == "$values":
                return insn
    raise TransformError(f"Could not find $values call in enum {class_file.name}")


def _legacy_init_site(code: CodeAttribute, class_file: ClassFile) -> Insn:
    return _size_site(code, class_file)[0]


def max_stack(original: int, extensions: Iterable[EnumExtension]) -> int:
    # new, dup, name, ordinal and every constructor argument
    return max([original] + [4 + arguments_size(e.constructor_descriptor) for e in extensions])


LEGACY = EnumShape(
    name="legacy",
    array_method="<clinit>",
    locate_size_site=_size_site,
    locate_population_site=_values_store,
    locate_init_site=_legacy_init_site,
    compute_max_stack=max_stack,
)

VALUES_METHOD = EnumShape(
    name="values-method",
    array_method="$values",
    locate_size_site=_size_site,
    locate_population_site=_values_return,
    locate_init_site=_values_call,
    compute_max_stack=max_stack,
)


def select_shape(class_file: ClassFile) -> EnumShape:
    """Pick by class version; compilers that never emit $values stay legacy."""
    if class_file.major_version >= V15 and class_file.find_method("$values", values_descriptor(class_file)):
        return VALUES_METHOD
    return LEGACY


def values_descriptor(class_file: ClassFile) -> str:
    return f"()[L{class_file.name};"
