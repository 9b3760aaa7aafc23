"""
Instruction builder

Appends instructions to a list while interning the constants they
reference, choosing the shortest push encodings the way javac does.

    gen = InsnBuilder(pool)
    gen.new("a/B").dup().push_string("X").push_int(3)
    gen.invoke_special("a/B", "<init>", "(Ljava/lang/String;I)V")
    insert_before(code.instructions, anchor, gen.instructions)
"""

from __future__ import annotations

from typing import Optional

from classtweak.classfile import opcodes as op
from classtweak.classfile.code import Insn, Node
from classtweak.classfile.pool import ConstantPool
from classtweak.descriptors import (
    BOX_OWNERS, argument_types, internal_name, type_size,
)

# Unboxing: (boxed owner, method, descriptor) per primitive
_UNBOX = {
    "Z": ("java/lang/Boolean", "booleanValue", "()Z"),
    "C": ("java/lang/Character", "charValue", "()C"),
    "B": ("java/lang/Number", "intValue", "()I"),
    "S": ("java/lang/Number", "intValue", "()I"),
    "I": ("java/lang/Number", "intValue", "()I"),
    "J": ("java/lang/Number", "longValue", "()J"),
    "F": ("java/lang/Number", "floatValue", "()F"),
    "D": ("java/lang/Number", "doubleValue", "()D"),
}


class InsnBuilder:

    def __init__(self, pool: ConstantPool):
        self.pool = pool
        self.instructions: list[Node] = []

    def insn(self, opcode: int, operand=None, extra=None) -> InsnBuilder:
        self.instructions.append(Insn(opcode, operand, extra))
        return self

    def dup(self) -> InsnBuilder:
        return self.insn(op.DUP)

    # --- Constants ---

    def push_int(self, value: int) -> InsnBuilder:
        if -1 <= value <= 5:
            return self.insn(op.ICONST_0 + value)
        if -128 <= value <= 127:
            return self.insn(op.BIPUSH, value)
        if -32768 <= value <= 32767:
            return self.insn(op.SIPUSH, value)
        return self.insn(op.LDC, self.pool.add_integer(value))

    def push_long(self, value: int) -> InsnBuilder:
        if value in (0, 1):
            return self.insn(op.LCONST_0 + value)
        return self.insn(op.LDC2_W, self.pool.add_long(value))

    def push_float(self, value: float) -> InsnBuilder:
        if value in (0.0, 1.0, 2.0) and str(value)[0] != "-":
            return self.insn(op.FCONST_0 + int(value))
        return self.insn(op.LDC, self.pool.add_float(value))

    def push_double(self, value: float) -> InsnBuilder:
        if value in (0.0, 1.0) and str(value)[0] != "-":
            return self.insn(op.DCONST_0 + int(value))
        return self.insn(op.LDC2_W, self.pool.add_double(value))

    def push_string(self, value: Optional[str]) -> InsnBuilder:
        if value is None:
            return self.insn(op.ACONST_NULL)
        return self.insn(op.LDC, self.pool.add_string(value))

    def push_null(self) -> InsnBuilder:
        return self.insn(op.ACONST_NULL)

    # --- Types and members ---

    def new(self, class_name: str) -> InsnBuilder:
        return self.insn(op.NEW, self.pool.add_class(class_name))

    def anew_array(self, class_name: str) -> InsnBuilder:
        return self.insn(op.ANEWARRAY, self.pool.add_class(class_name))

    def check_cast(self, type_name: str) -> InsnBuilder:
        return self.insn(op.CHECKCAST, self.pool.add_class(type_name))

    def get_static(self, owner: str, name: str, descriptor: str) -> InsnBuilder:
        return self.insn(op.GETSTATIC, self.pool.add_field_ref(owner, name, descriptor))

    def put_static(self, owner: str, name: str, descriptor: str) -> InsnBuilder:
        return self.insn(op.PUTSTATIC, self.pool.add_field_ref(owner, name, descriptor))

    def invoke_special(self, owner: str, name: str, descriptor: str) -> InsnBuilder:
        return self.insn(op.INVOKESPECIAL, self.pool.add_method_ref(owner, name, descriptor))

    def invoke_static(self, owner: str, name: str, descriptor: str, interface: bool = False) -> InsnBuilder:
        return self.insn(op.INVOKESTATIC, self.pool.add_method_ref(owner, name, descriptor, interface))

    def invoke_virtual(self, owner: str, name: str, descriptor: str) -> InsnBuilder:
        return self.insn(op.INVOKEVIRTUAL, self.pool.add_method_ref(owner, name, descriptor))

    def invoke_interface(self, owner: str, name: str, descriptor: str) -> InsnBuilder:
        count = 1 + sum(type_size(t) for t in argument_types(descriptor))
        return self.insn(op.INVOKEINTERFACE, self.pool.add_method_ref(owner, name, descriptor, True), count)

    # --- Boxing ---

    def box(self, primitive: str) -> InsnBuilder:
        """Primitive on the stack -> its wrapper via valueOf."""
        owner = BOX_OWNERS[primitive]
        return self.invoke_static(owner, "valueOf", f"({primitive})L{owner};")

    def unbox(self, descriptor: str) -> InsnBuilder:
        """Object on the stack -> value of `descriptor`."""
        if descriptor in _UNBOX:
            owner, method, method_desc = _UNBOX[descriptor]
            return self.check_cast(owner).invoke_virtual(owner, method, method_desc)
        if descriptor != "Ljava/lang/Object;":
            self.check_cast(internal_name(descriptor))
        return self

    # --- Locals and returns ---

    def load_this(self) -> InsnBuilder:
        return self.insn(op.ALOAD_0)

    def load_args(self, descriptor: str, first_slot: int = 1) -> InsnBuilder:
        slot = first_slot
        for t in argument_types(descriptor):
            self.insn(op.LOADS.get(t, op.ALOAD), slot)
            slot += type_size(t)
        return self

    def return_value(self, descriptor: str) -> InsnBuilder:
        return self.insn(op.RETURNS.get(descriptor, op.ARETURN))
