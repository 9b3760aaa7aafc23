"""
A symbolic interpreter for straight-line static initializers.

Runs <clinit> of a parsed class just far enough to see which objects get
constructed and stored where. Only the instructions javac and the enum
transform emit for enum initialization are understood; anything else
raises NotImplementedError so a test notices.

    statics = run_static_init(class_bytes, externals={"a/B.LIST": [1, "x"]})
    [c.name for c in statics["test/E.$VALUES"]]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from classtweak.classfile import decode_code, read_class
from classtweak.classfile import opcodes as op
from classtweak.classfile.structure import ClassFile, MethodInfo
from classtweak.descriptors import argument_types, return_type


@dataclass(eq=False)
class Instance:
    """An object created by `new`; `args` are its constructor arguments."""
    class_name: str
    constructor: Optional[str] = None
    args: list = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.args[0]

    @property
    def ordinal(self) -> int:
        return self.args[1]

    def __repr__(self) -> str:
        return f"Instance({self.class_name}, {self.args!r})"


def run_static_init(class_bytes: bytes, externals: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Execute <clinit>. Returns every static field it wrote, as "owner.name"."""
    class_file = read_class(class_bytes)
    statics = dict(externals or {})
    before = set(statics)
    _execute(class_file, class_file.find_method("<clinit>", "()V"), statics, [])
    return {k: v for k, v in statics.items() if k not in before}


def enum_values(class_bytes: bytes, externals: Optional[dict[str, Any]] = None) -> list[Instance]:
    """The $VALUES array an enum's initializer builds."""
    class_file = read_class(class_bytes)
    return run_static_init(class_bytes, externals)[f"{class_file.name}.$VALUES"]


def _execute(cf: ClassFile, method: MethodInfo, statics: dict[str, Any], args: list) -> Any:
    pool = cf.pool
    code = decode_code(method.attribute("Code").data, pool)
    stack: list = []

    def pop_args(descriptor: str) -> list:
        count = len(argument_types(descriptor))
        if not count:
            return []
        values = stack[-count:]
        del stack[-count:]
        return values

    for insn in code.insns():
        o = insn.opcode
        if o == op.NEW:
            stack.append(Instance(pool.class_name(insn.operand)))
        elif o == op.DUP:
            stack.append(stack[-1])
        elif o in (op.LDC, op.LDC_W, op.LDC2_W):
            stack.append(pool.loadable(insn.operand))
        elif op.ICONST_M1 <= o <= op.ICONST_5:
            stack.append(o - op.ICONST_0)
        elif o in (op.LCONST_0, op.LCONST_1):
            stack.append(o - op.LCONST_0)
        elif op.FCONST_0 <= o <= op.FCONST_2:
            stack.append(float(o - op.FCONST_0))
        elif o in (op.DCONST_0, op.DCONST_1):
            stack.append(float(o - op.DCONST_0))
        elif o in (op.BIPUSH, op.SIPUSH):
            stack.append(insn.operand)
        elif o == op.ACONST_NULL:
            stack.append(None)
        elif o == op.INVOKESPECIAL:
            owner, name, descriptor = pool.member_ref(insn.operand)
            call_args = pop_args(descriptor)
            target = stack.pop()
            target.constructor = f"{owner}.{name}{descriptor}"
            target.args = call_args
        elif o == op.INVOKESTATIC:
            owner, name, descriptor = pool.member_ref(insn.operand)
            call_args = pop_args(descriptor)
            if owner == cf.name:
                result = _execute(cf, cf.find_method(name, descriptor), statics, call_args)
            else:
                # Boxing through valueOf keeps the Python value
                result = call_args[0]
            if return_type(descriptor) != "V":
                stack.append(result)
        elif o == op.INVOKEINTERFACE:
            owner, name, descriptor = pool.member_ref(insn.operand)
            if (owner, name) != ("java/util/List", "get"):
                raise NotImplementedError(f"{owner}.{name}")
            index = stack.pop()
            values = stack.pop()
            stack.append(values[index])
        elif o == op.INVOKEVIRTUAL:
            # Unboxing (intValue() and friends) keeps the Python value
            pool.member_ref(insn.operand)
        elif o == op.CHECKCAST:
            pass
        elif o == op.GETSTATIC:
            owner, name, _ = pool.member_ref(insn.operand)
            stack.append(statics[f"{owner}.{name}"])
        elif o == op.PUTSTATIC:
            owner, name, _ = pool.member_ref(insn.operand)
            statics[f"{owner}.{name}"] = stack.pop()
        elif o == op.ANEWARRAY:
            stack.append([None] * stack.pop())
        elif o == op.AASTORE:
            value = stack.pop()
            index = stack.pop()
            array = stack.pop()
            array[index] = value
        elif o == op.ARETURN:
            return stack.pop()
        elif o == op.RETURN:
            return None
        else:
            raise NotImplementedError(f"opcode 0x{o:02X}")
    raise AssertionError(f"{method.name} fell off the end of its code")
