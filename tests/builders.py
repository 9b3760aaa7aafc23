"""
Class file builders for tests.

Produces the same instruction shapes javac emits for enums and small
classes, using the library's own InsnBuilder so no compiler is needed.
"""

from __future__ import annotations

from typing import Optional, Sequence

from classtweak.classfile import (
    Attribute, ClassFile, CodeAttribute, ConstantPool, FieldInfo, InsnBuilder,
    MethodInfo, encode_code, write_class,
)
from classtweak.classfile import opcodes as op
from classtweak.classfile.attributes import (
    InnerClassEntry, write_class_list, write_inner_classes, write_nest_host, write_signature,
)
from classtweak.classfile.flags import (
    ACC_ABSTRACT, ACC_ENUM, ACC_FINAL, ACC_INTERFACE, ACC_PRIVATE, ACC_PUBLIC, ACC_STATIC,
    ACC_SUPER, ACC_SYNTHETIC, V1_8, V15,
)
from classtweak.descriptors import argument_types, arguments_size, return_type

ENUM_CONSTRUCTOR = "(Ljava/lang/String;I)V"


# ============================================================================
# Method bodies
# ============================================================================

def push_default(gen: InsnBuilder, t: str) -> InsnBuilder:
    """Push the zero value of type `t`."""
    if t in ("Z", "C", "B", "S", "I"):
        return gen.push_int(0)
    if t == "J":
        return gen.push_long(0)
    if t == "F":
        return gen.push_float(0.0)
    if t == "D":
        return gen.push_double(0.0)
    return gen.push_null()


def code_method(pool: ConstantPool, access: int, name: str, descriptor: str,
                gen: InsnBuilder, max_stack: int, max_locals: Optional[int] = None) -> MethodInfo:
    if max_locals is None:
        max_locals = arguments_size(descriptor) + (0 if access & ACC_STATIC else 1)
    code = CodeAttribute(max_stack, max_locals, gen.instructions)
    return MethodInfo(access, name, descriptor, [Attribute("Code", encode_code(code, pool))])


def default_method(pool: ConstantPool, access: int, name: str, descriptor: str) -> MethodInfo:
    """A method that returns the zero value of its return type."""
    if access & ACC_ABSTRACT:
        return MethodInfo(access, name, descriptor)
    returns = return_type(descriptor)
    gen = InsnBuilder(pool)
    if returns != "V":
        push_default(gen, returns)
    gen.return_value(returns)
    return code_method(pool, access, name, descriptor, gen, 2)


# ============================================================================
# Enums
# ============================================================================

def build_enum(name: str = "test/SimpleEnum",
               constants: Sequence[str] = ("ONE", "TWO"),
               major: int = V1_8,
               constructor: str = ENUM_CONSTRUCTOR,
               methods: Sequence[tuple[int, str, str]] = (),
               final: bool = True,
               nest_host: Optional[str] = None) -> bytes:
    """An enum laid out the way javac compiles it for `major`.

    Existing constants pass zero values for any constructor parameters
    beyond the name and ordinal. Java 15+ builds the values array in a
    synthetic $values() method, older versions inline it in <clinit>.
    `nest_host` marks the enum as nested in that class.
    """
    pool = ConstantPool()
    desc = f"L{name};"
    array_desc = f"[L{name};"

    fields = [FieldInfo(ACC_PUBLIC | ACC_STATIC | ACC_FINAL | ACC_ENUM, c, desc) for c in constants]
    fields.append(FieldInfo(ACC_PRIVATE | ACC_STATIC | ACC_FINAL | ACC_SYNTHETIC, "$VALUES", array_desc))

    methods_out = []
    gen = InsnBuilder(pool).get_static(name, "$VALUES", array_desc)
    gen.invoke_virtual(array_desc, "clone", "()Ljava/lang/Object;").check_cast(array_desc)
    gen.insn(op.ARETURN)
    methods_out.append(code_method(pool, ACC_PUBLIC | ACC_STATIC, "values", f"()[L{name};", gen, 1))

    gen = InsnBuilder(pool).load_this().insn(op.ALOAD, 1).insn(op.ILOAD, 2)
    gen.invoke_special("java/lang/Enum", "<init>", ENUM_CONSTRUCTOR).insn(op.RETURN)
    methods_out.append(code_method(pool, ACC_PRIVATE, "<init>", constructor, gen, 3))

    for access, method_name, method_desc in methods:
        methods_out.append(default_method(pool, access, method_name, method_desc))

    def populate(g: InsnBuilder) -> None:
        g.push_int(len(constants)).anew_array(name)
        for i, c in enumerate(constants):
            g.dup().push_int(i).get_static(name, c, desc).insn(op.AASTORE)

    clinit = InsnBuilder(pool)
    for i, c in enumerate(constants):
        clinit.new(name).dup().push_string(c).push_int(i)
        for t in argument_types(constructor)[2:]:
            push_default(clinit, t)
        clinit.invoke_special(name, "<init>", constructor).put_static(name, c, desc)
    if major >= V15:
        values = InsnBuilder(pool)
        populate(values)
        values.insn(op.ARETURN)
        methods_out.append(code_method(pool, ACC_PRIVATE | ACC_STATIC | ACC_SYNTHETIC,
                                       "$values", f"()[L{name};", values, 4))
        clinit.invoke_static(name, "$values", f"()[L{name};")
    else:
        populate(clinit)
    clinit.put_static(name, "$VALUES", array_desc).insn(op.RETURN)
    methods_out.append(code_method(pool, ACC_STATIC, "<clinit>", "()V", clinit,
                                   max(4, 2 + arguments_size(constructor))))

    access = ACC_PUBLIC | ACC_SUPER | ACC_ENUM | (ACC_FINAL if final else 0)
    attributes = [Attribute("Signature", write_signature(f"Ljava/lang/Enum<L{name};>;", pool))]
    if nest_host is not None:
        attributes.append(Attribute("NestHost", write_nest_host(nest_host, pool)))
    return write_class(ClassFile(0, major, pool, access, name, "java/lang/Enum",
                                 [], fields, methods_out, attributes))


# ============================================================================
# Plain classes
# ============================================================================

def build_class(name: str,
                access: int = ACC_PUBLIC | ACC_SUPER,
                super_name: str = "java/lang/Object",
                interfaces: Sequence[str] = (),
                fields: Sequence[tuple[int, str, str]] = (),
                methods: Sequence[tuple[int, str, str]] = (),
                calls: Sequence[tuple[str, str]] = (),
                signature: Optional[str] = None,
                inner_classes: Sequence[tuple[str, int]] = (),
                permitted: Sequence[str] = (),
                major: int = V1_8) -> bytes:
    """A class with default-bodied members.

    `calls` adds one `()V` method per (caller, callee) pair that invokes the
    private `()V` method `callee` on `this` with invokespecial.
    `inner_classes` lists (nested class name, flags) InnerClasses entries.
    """
    pool = ConstantPool()
    methods_out = []
    if not access & ACC_INTERFACE:
        gen = InsnBuilder(pool).load_this()
        gen.invoke_special(super_name, "<init>", "()V").insn(op.RETURN)
        methods_out.append(code_method(pool, ACC_PUBLIC, "<init>", "()V", gen, 1))
    for method_access, method_name, method_desc in methods:
        methods_out.append(default_method(pool, method_access, method_name, method_desc))
    for caller, callee in calls:
        gen = InsnBuilder(pool).load_this()
        gen.invoke_special(name, callee, "()V").insn(op.RETURN)
        methods_out.append(code_method(pool, ACC_PUBLIC, caller, "()V", gen, 1))

    fields_out = [FieldInfo(a, n, d) for a, n, d in fields]

    attributes = []
    if signature is not None:
        attributes.append(Attribute("Signature", write_signature(signature, pool)))
    if inner_classes:
        entries = [InnerClassEntry(inner, name, inner.rsplit("$", 1)[-1], flags)
                   for inner, flags in inner_classes]
        attributes.append(Attribute("InnerClasses", write_inner_classes(entries, pool)))
    if permitted:
        attributes.append(Attribute("PermittedSubclasses", write_class_list(list(permitted), pool)))

    return write_class(ClassFile(0, major, pool, access, name, super_name,
                                 list(interfaces), fields_out, methods_out, attributes))


def build_interface(name: str, methods: Sequence[tuple[int, str, str]] = (), **kwargs) -> bytes:
    return build_class(name, access=ACC_PUBLIC | ACC_INTERFACE | ACC_ABSTRACT, methods=methods, **kwargs)
