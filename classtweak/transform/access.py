"""
Access flag rewriting

Applies the widened access states of a class, its members and any nested
classes listed in its InnerClasses table.
"""

from __future__ import annotations

from classtweak.classfile import opcodes as op
from classtweak.classfile.attributes import read_inner_classes, write_inner_classes
from classtweak.classfile.code import decode_code, encode_code
from classtweak.classfile.structure import ClassFile, remove_attribute, set_attribute
from classtweak.model import ClassTweaker


def widen_access(class_file: ClassFile, model: ClassTweaker) -> bool:
    """Rewrite flags in place. Returns True when anything changed."""
    rules = model.get_class_rules(class_file.name)
    owner_flags = class_file.access_flags
    changed = False

    flags = rules.class_access.apply(owner_flags, class_file.name, owner_flags)
    if flags != class_file.access_flags:
        class_file.access_flags = flags
        changed = True

    changed |= _widen_inner_classes(class_file, model, owner_flags)

    if rules.class_access.is_extendable:
        changed |= remove_attribute(class_file.attributes, "PermittedSubclasses")

    for f in class_file.fields:
        state = rules.field_access(f.name, f.descriptor)
        flags = state.apply(f.access_flags, f.name, owner_flags)
        if flags != f.access_flags:
            f.access_flags = flags
            changed = True

    widened = set()
    for method in class_file.methods:
        state = rules.method_access(method.name, method.descriptor)
        if state.is_changed:
            widened.add((method.name, method.descriptor))
        flags = state.apply(method.access_flags, method.name, owner_flags)
        if flags != method.access_flags:
            method.access_flags = flags
            changed = True

    if widened and not class_file.is_interface:
        changed |= _devirtualize_calls(class_file, widened)
    return changed


def _widen_inner_classes(class_file: ClassFile, model: ClassTweaker, owner_flags: int) -> bool:
    attribute = class_file.attribute("InnerClasses")
    if attribute is None:
        return False
    entries = read_inner_classes(attribute.data, class_file.pool)
    changed = False
    for entry in entries:
        state = model.get_class_rules(entry.inner_name).class_access
        flags = state.apply(entry.access_flags, entry.inner_name, owner_flags)
        if flags != entry.access_flags:
            entry.access_flags = flags
            changed = True
    if changed:
        attribute.data = write_inner_classes(entries, class_file.pool)
    return changed


def _devirtualize_calls(class_file: ClassFile, widened: set[tuple[str, str]]) -> bool:
    """invokespecial on a no longer private method must dispatch virtually."""
    pool = class_file.pool
    changed = False
    for method in class_file.methods:
        attribute = method.attribute("Code")
        if attribute is None:
            continue
        code = decode_code(attribute.data, pool)
        rewritten = False
        for insn in code.insns():
            if insn.opcode != op.INVOKESPECIAL:
                continue
            owner, name, descriptor = pool.member_ref(insn.operand)
            if owner == class_file.name and name != "<init>" and (name, descriptor) in widened:
                insn.opcode = op.INVOKEVIRTUAL
                rewritten = True
        if rewritten:
            set_attribute(method.attributes, "Code", encode_code(code, pool))
            changed = True
    return changed
