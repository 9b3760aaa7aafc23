"""
Enum constant injection

Adds constants to a compiled enum by patching its static initializer in
place rather than regenerating it:

1. Bump the values-array size push by the number of new constants.
2. In <clinit>, before the array is built, construct each new constant
   (new, dup, name, ordinal, arguments, invokespecial <init>) and store it
   into a new public static final enum field.
3. Before the array is stored or returned, append one element store per
   new constant.

Every injected field carries an invisible marker annotation with the id of
the rule source and a structural hash of the extension. A second run over
already-patched bytes finds the markers and skips those constants.

Constants with method overrides are instances of a generated subclass
whose methods delegate to static methods named by the rules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from classtweak.access import make_protected
from classtweak.classfile import opcodes as op
from classtweak.classfile.attributes import (
    Annotation, InnerClassEntry,
    read_annotations, read_class_list, read_inner_classes,
    write_annotations, write_class_list, write_enclosing_method,
    write_inner_classes, write_nest_host,
)
from classtweak.classfile.code import (
    CodeAttribute, decode_code, encode_code, insert_before, replace,
)
from classtweak.classfile.flags import (
    ACC_ENUM, ACC_FINAL, ACC_PRIVATE, ACC_PROTECTED, ACC_PUBLIC, ACC_STATIC,
    ACC_SUPER, V11, V17,
)
from classtweak.classfile.generator import InsnBuilder
from classtweak.classfile.pool import ConstantPool
from classtweak.classfile.structure import (
    Attribute, ClassFile, FieldInfo, MethodInfo, set_attribute,
)
from classtweak.classfile.writer import write_class
from classtweak.descriptors import (
    argument_types, arguments_size, internal_name, return_type, type_size,
)
from classtweak.errors import TransformError
from classtweak.literals import TypedConstant
from classtweak.model import (
    ConstantParameters, EnumExtension, ListParameters, string_hash,
)
from classtweak.transform.shapes import select_shape, values_descriptor

logger = logging.getLogger(__name__)

MARKER_DESCRIPTOR = "Lclasstweak/Extended;"
CONSTANT_FLAGS = ACC_PUBLIC | ACC_STATIC | ACC_FINAL | ACC_ENUM
SUBCLASS_FLAGS = ACC_FINAL | ACC_SUPER | ACC_ENUM
INNER_CLASS_FLAGS = ACC_FINAL | ACC_ENUM


@dataclass
class GeneratedClass:
    name: str
    data: bytes


def subclass_name(owner: str, extension: EnumExtension) -> str:
    """Deterministic name of the class backing an overriding constant."""
    return f"{owner}${extension.id}${string_hash(extension.name)}"


class EnumExtender:
    """Injects the given extensions into one enum class."""

    def __init__(self, class_file: ClassFile, extensions: dict[str, EnumExtension],
                 can_generate: bool = True):
        self.class_file = class_file
        self.extensions = extensions
        self.can_generate = can_generate
        self.generated: list[GeneratedClass] = []

    def apply(self) -> bool:
        """Rewrite the class in memory. Returns True when anything changed."""
        cf = self.class_file
        changed = False

        if any(e.overrides for e in self.extensions.values()):
            changed |= self._open_for_subclasses()

        pending = self._pending()
        if not pending:
            return changed

        for extension in pending:
            self._check(extension)

        self._inject(pending)
        for extension in pending:
            if extension.overrides:
                self._add_subclass(extension)
        logger.debug("Injected %d constant(s) into %s", len(pending), cf.name)
        return True

    # ============================================================
    # Preconditions
    # ============================================================

    def _open_for_subclasses(self) -> bool:
        cf = self.class_file
        before = cf.access_flags
        cf.access_flags &= ~ACC_FINAL
        changed = before != cf.access_flags
        if not self._nestmates:
            # Without nestmates the subclass cannot reach a private constructor
            for method in cf.methods_named("<init>"):
                flags = make_protected(method.access_flags)
                changed |= flags != method.access_flags
                method.access_flags = flags
        return changed

    @property
    def _nestmates(self) -> bool:
        """True when generated subclasses can join the enum's own nest.

        A nested enum belongs to its outer class's nest, and that class is not
        rewritten here, so its subclasses fall back to package access.
        """
        cf = self.class_file
        return cf.major_version >= V11 and cf.attribute("NestHost") is None

    def _pending(self) -> list[EnumExtension]:
        """Extensions not yet present, after checking those that are."""
        cf = self.class_file
        applied = set()
        for f in cf.fields:
            extension = self.extensions.get(f.name)
            if extension is None or not f.access_flags & ACC_ENUM:
                continue
            marker = self._marker(f)
            if marker is None:
                raise TransformError(f"Enum ({cf.name}) already declares constant ({f.name})")
            existing_id = marker.values.get("id")
            if existing_id is None:
                raise TransformError(f"Incomplete enum addition marker on ({cf.name}.{f.name})")
            if existing_id != extension.id:
                raise TransformError(
                    f"Enum addition from ({extension.id}) clashes with ({existing_id}) "
                    f"in enum ({cf.name}) for entry ({f.name})"
                )
            if marker.values.get("hashCode") != extension.structural_hash():
                raise TransformError(f"Previously applied enum addition from ({extension.id}) does not match")
            applied.add(f.name)
        return [e for e in self.extensions.values() if e.name not in applied]

    def _marker(self, f: FieldInfo) -> Optional[Annotation]:
        attribute = f.attribute("RuntimeInvisibleAnnotations")
        if attribute is None:
            return None
        for annotation in read_annotations(attribute.data, self.class_file.pool):
            if annotation.descriptor == MARKER_DESCRIPTOR:
                return annotation
        return None

    def _check(self, extension: EnumExtension) -> None:
        cf = self.class_file
        descriptor = extension.constructor_descriptor
        if cf.find_method("<init>", descriptor) is None:
            raise TransformError(f"Could not find constructor with desc: {descriptor}")

        extra = argument_types(descriptor)[2:]
        if extra and extension.parameters is None:
            expected = ",".join(internal_name(t) for t in extra)
            raise TransformError(f"No parameters provided for enum constructor, expected: [{expected}]")
        if isinstance(extension.parameters, ConstantParameters) \
                and len(extension.parameters.constants) != len(extra):
            raise TransformError(
                f"Expected {len(extra)} constructor arguments for ({extension.name}), "
                f"got {len(extension.parameters.constants)}"
            )

        for override in extension.overrides:
            if cf.find_method(override.method_name, override.static_method.descriptor) is None:
                raise TransformError(
                    f"Unable to find method ({override.method_name}{override.static_method.descriptor}) "
                    f"to override within enum from ({extension.id})"
                )
        if extension.overrides and not self.can_generate:
            raise TransformError("Cannot generate enum inner class as generated class sink is None")

    # ============================================================
    # Initializer patching
    # ============================================================

    def _inject(self, pending: list[EnumExtension]) -> None:
        cf = self.class_file
        pool = cf.pool
        shape = select_shape(cf)
        constant_desc = f"L{cf.name};"

        clinit_method = cf.find_method("<clinit>", "()V")
        if clinit_method is None:
            raise TransformError(f"Enum {cf.name} has no static initializer")
        clinit = _decode(clinit_method, pool)
        if shape.array_method == "<clinit>":
            array_method, array_code = clinit_method, clinit
        else:
            array_method = cf.find_method(shape.array_method, values_descriptor(cf))
            array_code = _decode(array_method, pool)

        size_push, size = shape.locate_size_site(array_code, cf)
        init_site = shape.locate_init_site(clinit, cf)
        population_site = shape.locate_population_site(array_code, cf)
        ordinal = self._count_constants(clinit, init_site)

        gen = InsnBuilder(pool)
        for i, extension in enumerate(pending):
            target = subclass_name(cf.name, extension) if extension.overrides else cf.name
            gen.new(target).dup().push_string(extension.name).push_int(ordinal + i)
            self._push_arguments(gen, extension)
            gen.invoke_special(target, "<init>", extension.constructor_descriptor)
            gen.put_static(cf.name, extension.name, constant_desc)
        insert_before(clinit.instructions, init_site, gen.instructions)

        replace(array_code.instructions, size_push,
                InsnBuilder(pool).push_int(size + len(pending)).instructions)

        gen = InsnBuilder(pool)
        for i, extension in enumerate(pending):
            gen.dup().push_int(size + i).get_static(cf.name, extension.name, constant_desc)
            gen.insn(op.AASTORE)
        insert_before(array_code.instructions, population_site, gen.instructions)

        clinit.max_stack = shape.compute_max_stack(clinit.max_stack, pending)
        set_attribute(clinit_method.attributes, "Code", encode_code(clinit, pool))
        if array_code is not clinit:
            array_code.max_stack = shape.compute_max_stack(array_code.max_stack, pending)
            set_attribute(array_method.attributes, "Code", encode_code(array_code, pool))

        fields = [self._constant_field(e, constant_desc) for e in pending]
        at = next((i for i, f in enumerate(cf.fields) if not f.access_flags & ACC_ENUM), len(cf.fields))
        cf.fields[at:at] = fields

    def _count_constants(self, clinit: CodeAttribute, init_site) -> int:
        """Enum constants stored before `init_site`: the next free ordinal."""
        cf = self.class_file
        constant_fields = {f.name for f in cf.fields if f.access_flags & ACC_ENUM}
        count = 0
        for insn in clinit.insns():
            if insn is init_site:
                break
            if insn.opcode == op.PUTSTATIC:
                owner, name, _ = cf.pool.member_ref(insn.operand)
                if owner == cf.name and name in constant_fields:
                    count += 1
        return count

    def _push_arguments(self, gen: InsnBuilder, extension: EnumExtension) -> None:
        extra = argument_types(extension.constructor_descriptor)[2:]
        parameters = extension.parameters
        if isinstance(parameters, ListParameters):
            key = parameters.list_field
            for i, t in enumerate(extra):
                gen.get_static(key.owner, key.name, key.descriptor).push_int(i)
                gen.invoke_interface("java/util/List", "get", "(I)Ljava/lang/Object;")
                gen.unbox(t)
        elif isinstance(parameters, ConstantParameters):
            for constant in parameters.constants:
                _push_constant(gen, constant)

    def _constant_field(self, extension: EnumExtension, descriptor: str) -> FieldInfo:
        marker = Annotation(MARKER_DESCRIPTOR, {
            "id": extension.id,
            "hashCode": extension.structural_hash(),
        })
        data = write_annotations([marker], self.class_file.pool)
        return FieldInfo(CONSTANT_FLAGS, extension.name, descriptor,
                         [Attribute("RuntimeInvisibleAnnotations", data)])

    # ============================================================
    # Subclasses for overriding constants
    # ============================================================

    def _add_subclass(self, extension: EnumExtension) -> None:
        cf = self.class_file
        name = subclass_name(cf.name, extension)
        self.generated.append(GeneratedClass(name, self._generate_subclass(name, extension)))

        pool = cf.pool
        entry = InnerClassEntry(name, None, None, INNER_CLASS_FLAGS)
        existing = cf.attribute("InnerClasses")
        entries = read_inner_classes(existing.data, pool) if existing else []
        set_attribute(cf.attributes, "InnerClasses", write_inner_classes(entries + [entry], pool))

        if self._nestmates:
            _append_class(cf, "NestMembers", name)
        if cf.major_version >= V17:
            _append_class(cf, "PermittedSubclasses", name)

    def _generate_subclass(self, name: str, extension: EnumExtension) -> bytes:
        cf = self.class_file
        pool = ConstantPool()
        descriptor = extension.constructor_descriptor

        attributes = []
        if self._nestmates:
            attributes.append(Attribute("NestHost", write_nest_host(cf.name, pool)))
        attributes.append(Attribute("EnclosingMethod", write_enclosing_method(cf.name, pool)))
        attributes.append(Attribute("InnerClasses", write_inner_classes(
            [InnerClassEntry(name, None, None, INNER_CLASS_FLAGS)], pool
        )))

        gen = InsnBuilder(pool).load_this().load_args(descriptor)
        gen.invoke_special(cf.name, "<init>", descriptor).insn(op.RETURN)
        size = 1 + arguments_size(descriptor)
        constructor_access = ACC_PRIVATE if self._nestmates else 0
        methods = [_method(constructor_access, "<init>", descriptor,
                           CodeAttribute(size, size, gen.instructions), pool)]

        for override in extension.overrides:
            target = override.static_method
            returns = return_type(target.descriptor)
            gen = InsnBuilder(pool).load_args(target.descriptor)
            gen.invoke_static(target.owner, target.name, target.descriptor)
            gen.return_value(returns)
            args = arguments_size(target.descriptor)
            overridden = cf.find_method(override.method_name, target.descriptor)
            access = overridden.access_flags & (ACC_PUBLIC | ACC_PROTECTED)
            methods.append(_method(access, override.method_name, target.descriptor,
                                   CodeAttribute(max(args, type_size(returns)), 1 + args, gen.instructions),
                                   pool))

        generated = ClassFile(cf.minor_version, cf.major_version, pool, SUBCLASS_FLAGS,
                              name, cf.name, [], [], methods, attributes)
        return write_class(generated)


def _decode(method: MethodInfo, pool: ConstantPool) -> CodeAttribute:
    attribute = method.attribute("Code")
    if attribute is None:
        raise TransformError(f"Method {method.name}{method.descriptor} has no code")
    return decode_code(attribute.data, pool)


def _method(access: int, name: str, descriptor: str, code: CodeAttribute, pool: ConstantPool) -> MethodInfo:
    return MethodInfo(access, name, descriptor, [Attribute("Code", encode_code(code, pool))])


def _append_class(cf: ClassFile, attribute_name: str, class_name: str) -> None:
    existing = cf.attribute(attribute_name)
    names = read_class_list(existing.data, cf.pool) if existing else []
    if class_name not in names:
        names.append(class_name)
    set_attribute(cf.attributes, attribute_name, write_class_list(names, cf.pool))


def _push_constant(gen: InsnBuilder, constant: TypedConstant) -> None:
    sort = constant.sort
    value = constant.value
    if value is None:
        gen.push_null()
        return
    if sort in ("Z", "C", "B", "S", "I"):
        gen.push_int(int(value))
    elif sort == "J":
        gen.push_long(value)
    elif sort == "F":
        gen.push_float(value)
    elif sort == "D":
        gen.push_double(value)
    else:
        gen.push_string(value)
    if constant.is_boxed:
        gen.box(sort)
