"""
Rule model

ClassTweaker accumulates visitor events into per-class rule sets:
- access states for the class and each of its fields and methods
- enum extensions, sorted by constant name per enum
- injected interfaces, in declaration order

It also tracks the set of target classes. A class is a target when it
carries rules or lexically encloses one that does, because the enclosing
class's InnerClasses table mirrors the nested class's access flags.

Once built, the model is read-only input to the transform engine and the
validator. `accept()` replays it into any other visitor.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence, Union

from classtweak.access import AccessType, ClassAccess, FieldAccess, MethodAccess
from classtweak.descriptors import EntryKey
from classtweak.errors import ModelError
from classtweak.literals import TypedConstant
from classtweak.visitor import (
    AccessWidenerVisitor, ClassTweakerVisitor, EnumExtensionVisitor,
)


# ============================================================
# Stable hashing
# ============================================================

_MASK32 = 0xFFFFFFFF


def _signed32(h: int) -> int:
    h &= _MASK32
    return h - 0x100000000 if h & 0x80000000 else h


def string_hash(s: str) -> int:
    """Java's String.hashCode: 31-polynomial over UTF-16 code units."""
    data = s.encode("utf-16-be", "surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        h = (31 * h + ((data[i] << 8) | data[i + 1])) & _MASK32
    return _signed32(h)


def combine_hash(values: Iterable[int]) -> int:
    h = 1
    for v in values:
        h = (31 * h + v) & _MASK32
    return _signed32(h)


def _long_hash(v: int) -> int:
    v &= 0xFFFFFFFFFFFFFFFF
    return _signed32(v ^ (v >> 32))


def _value_hash(value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1231 if value else 1237
    if isinstance(value, int):
        return _long_hash(value)
    if isinstance(value, float):
        return _long_hash(struct.unpack(">q", struct.pack(">d", value))[0])
    return string_hash(str(value))


def _key_hash(key: EntryKey) -> int:
    return combine_hash(string_hash(s) for s in (key.owner, key.name, key.descriptor))


# ============================================================
# Access rules
# ============================================================

@dataclass
class ClassRuleSet(AccessWidenerVisitor):
    """Access states for one class and its members."""
    owner: str
    class_access: ClassAccess = ClassAccess.DEFAULT
    methods: dict[EntryKey, MethodAccess] = field(default_factory=dict)
    fields: dict[EntryKey, FieldAccess] = field(default_factory=dict)
    on_rule: Optional[Callable[[ClassRuleSet], None]] = field(default=None, repr=False, compare=False)

    def visit_class(self, access: AccessType, transitive: bool) -> None:
        self.class_access = self.class_access.merge(access)
        self._added()

    def visit_method(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        key = EntryKey(self.owner, name, descriptor)
        self.methods[key] = self.methods.get(key, MethodAccess.DEFAULT).merge(access)
        # Reaching a member requires reaching its class
        if access is AccessType.ACCESSIBLE:
            self.class_access = self.class_access.make_accessible()
        elif access is AccessType.EXTENDABLE:
            self.class_access = self.class_access.make_extendable()
        self._added()

    def visit_field(self, name: str, descriptor: str, access: AccessType, transitive: bool) -> None:
        key = EntryKey(self.owner, name, descriptor)
        self.fields[key] = self.fields.get(key, FieldAccess.DEFAULT).merge(access)
        if access is AccessType.ACCESSIBLE:
            self.class_access = self.class_access.make_accessible()
        self._added()

    def _added(self) -> None:
        if self.on_rule is not None:
            self.on_rule(self)

    def method_access(self, name: str, descriptor: str) -> MethodAccess:
        return self.methods.get(EntryKey(self.owner, name, descriptor), MethodAccess.DEFAULT)

    def field_access(self, name: str, descriptor: str) -> FieldAccess:
        return self.fields.get(EntryKey(self.owner, name, descriptor), FieldAccess.DEFAULT)

    @property
    def is_empty(self) -> bool:
        return not (self.class_access.is_changed or self.methods or self.fields)

    def accept(self, visitor: AccessWidenerVisitor) -> None:
        """Replay the merged states as individual access events."""
        for access in _expand(self.class_access):
            visitor.visit_class(access, False)
        for key, state in self.methods.items():
            for access in _expand(state):
                visitor.visit_method(key.name, key.descriptor, access, False)
        for key, state in self.fields.items():
            for access in _expand(state):
                visitor.visit_field(key.name, key.descriptor, access, False)


def _expand(state) -> list[AccessType]:
    out = []
    if state.is_accessible:
        out.append(AccessType.ACCESSIBLE)
    if state.is_extendable:
        out.append(AccessType.EXTENDABLE)
    if state.is_mutable:
        out.append(AccessType.MUTABLE)
    return out


# ============================================================
# Enum extensions
# ============================================================

@dataclass(frozen=True)
class MethodOverride:
    """Route `method_name` of a generated constant body to a static method."""
    method_name: str
    static_method: EntryKey

    def structural_hash(self) -> int:
        return combine_hash((string_hash(self.method_name), _key_hash(self.static_method)))


@dataclass(frozen=True)
class ListParameters:
    """Constructor arguments read from a static java.util.List field."""
    list_field: EntryKey

    def structural_hash(self) -> int:
        return _key_hash(self.list_field)


@dataclass(frozen=True)
class ConstantParameters:
    """Constructor arguments given inline as literals."""
    constants: tuple[TypedConstant, ...]

    def structural_hash(self) -> int:
        return combine_hash(
            combine_hash((string_hash(c.descriptor), _value_hash(c.value)))
            for c in self.constants
        )


ParameterSource = Union[ListParameters, ConstantParameters]


@dataclass
class EnumExtension(EnumExtensionVisitor):
    """One synthetic enum constant to inject into `owner`."""
    owner: str
    name: str
    constructor_descriptor: str
    id: str
    parameters: Optional[ParameterSource] = None
    overrides: list[MethodOverride] = field(default_factory=list)

    def visit_parameter_list(self, owner: str, name: str, descriptor: str) -> None:
        self._set_parameters(ListParameters(EntryKey(owner, name, descriptor)))

    def visit_parameter_constants(self, constants: Sequence[TypedConstant]) -> None:
        self._set_parameters(ConstantParameters(tuple(constants)))

    def visit_override(self, method_name: str, owner: str, name: str, descriptor: str) -> None:
        self.overrides.append(MethodOverride(method_name, EntryKey(owner, name, descriptor)))

    def _set_parameters(self, parameters: ParameterSource) -> None:
        if self.parameters is not None:
            raise ModelError("Target enum already has constructor parameters")
        self.parameters = parameters

    def structural_hash(self) -> int:
        """Deterministic across processes; stored in injected constants."""
        return combine_hash((
            string_hash(self.name),
            string_hash(self.constructor_descriptor),
            self.parameters.structural_hash() if self.parameters is not None else 0,
            combine_hash(o.structural_hash() for o in self.overrides),
        ))

    def accept(self, visitor: EnumExtensionVisitor) -> None:
        if isinstance(self.parameters, ListParameters):
            key = self.parameters.list_field
            visitor.visit_parameter_list(key.owner, key.name, key.descriptor)
        elif isinstance(self.parameters, ConstantParameters):
            visitor.visit_parameter_constants(self.parameters.constants)
        for override in self.overrides:
            key = override.static_method
            visitor.visit_override(override.method_name, key.owner, key.name, key.descriptor)
        visitor.visit_end()


@dataclass(frozen=True)
class InjectedInterface:
    interface_name: str


# ============================================================
# The model
# ============================================================

GeneratedClassSink = Callable[[str, bytes], None]


class ClassTweaker(ClassTweakerVisitor):
    """Accumulated rules from one or more sources sharing a namespace."""

    def __init__(self) -> None:
        self._namespace: Optional[str] = None
        self._rules: dict[str, ClassRuleSet] = {}
        self._pending: dict[str, ClassRuleSet] = {}
        self._enums: dict[str, dict[str, EnumExtension]] = {}
        self._interfaces: dict[str, dict[InjectedInterface, None]] = {}
        self._classes: dict[str, None] = {}
        self._targets: dict[str, None] = {}

    # --- Visitor side ---

    def visit_header(self, namespace: str) -> None:
        if self._namespace is not None and self._namespace != namespace:
            raise ModelError(f"Namespace mismatch, expected {self._namespace} got {namespace}")
        self._namespace = namespace

    def visit_access_widener(self, owner: str) -> ClassRuleSet:
        rules = self._rules.get(owner)
        if rules is None:
            rules = self._pending.get(owner)
        if rules is None:
            rules = self._pending[owner] = ClassRuleSet(owner, on_rule=self._commit_rules)
        return rules

    def _commit_rules(self, rules: ClassRuleSet) -> None:
        # Only owners with at least one merged rule become targets
        if self._pending.pop(rules.owner, None) is not None:
            self._rules[rules.owner] = rules
            self._add_target(rules.owner)

    def visit_enum(self, owner: str, name: str, constructor_descriptor: str,
                   id: str, transitive: bool) -> EnumExtension:
        extensions = self._enums.setdefault(owner, {})
        if name in extensions:
            raise ModelError(f"Duplicate enum extension value name ({name}) in enum ({owner})")
        extension = EnumExtension(owner, name, constructor_descriptor, id)
        extensions[name] = extension
        self._add_target(owner)
        return extension

    def visit_injected_interface(self, owner: str, interface_name: str, transitive: bool) -> None:
        interfaces = self._interfaces.setdefault(owner, {})
        injected = InjectedInterface(interface_name)
        if injected in interfaces:
            raise ModelError(f"Duplicate interface injection ({interface_name}) for class ({owner})")
        interfaces[injected] = None
        self._add_target(owner)

    def _add_target(self, owner: str) -> None:
        self._classes[owner] = None
        name = owner.replace("/", ".")
        self._targets[name] = None
        # Enclosing classes hold InnerClasses entries for nested targets
        while "$" in name:
            name = name[:name.rindex("$")]
            self._targets[name] = None

    # --- Queries ---

    @property
    def namespace(self) -> Optional[str]:
        return self._namespace

    @property
    def targets(self) -> set[str]:
        """Dotted names of every class a transform may need to touch."""
        return set(self._targets)

    @property
    def classes(self) -> set[str]:
        """Slash names of every class that carries rules."""
        return set(self._classes)

    def is_target(self, class_name: str) -> bool:
        return class_name.replace("/", ".") in self._targets

    def get_class_rules(self, class_name: str) -> ClassRuleSet:
        """Rules for a class, or an empty rule set that is not registered."""
        name = class_name.replace(".", "/")
        rules = self._rules.get(name)
        return rules if rules is not None else ClassRuleSet(name)

    def all_class_rules(self) -> dict[str, ClassRuleSet]:
        return dict(self._rules)

    def get_enum_extensions(self, class_name: str) -> dict[str, EnumExtension]:
        """Extensions for an enum, sorted by constant name."""
        name = class_name.replace(".", "/")
        return dict(sorted(self._enums.get(name, {}).items()))

    def all_enum_extensions(self) -> dict[str, dict[str, EnumExtension]]:
        return {owner: self.get_enum_extensions(owner) for owner in self._enums}

    def get_injected_interfaces(self, class_name: str) -> tuple[InjectedInterface, ...]:
        return tuple(self._interfaces.get(class_name.replace(".", "/"), ()))

    def all_injected_interfaces(self) -> dict[str, tuple[InjectedInterface, ...]]:
        return {owner: tuple(interfaces) for owner, interfaces in self._interfaces.items()}

    # --- Replay and transform ---

    def accept(self, visitor: ClassTweakerVisitor) -> None:
        """Replay the model: header, access rules, enum extensions, interfaces."""
        if self._namespace is not None:
            visitor.visit_header(self._namespace)
        for owner, rules in self._rules.items():
            rules.accept(visitor.visit_access_widener(owner))
        for owner in self._enums:
            for extension in self.get_enum_extensions(owner).values():
                extension.accept(visitor.visit_enum(
                    owner, extension.name, extension.constructor_descriptor, extension.id, False
                ))
        for owner, interfaces in self._interfaces.items():
            for injected in interfaces:
                visitor.visit_injected_interface(owner, injected.interface_name, False)

    def transform(self, class_bytes: bytes,
                  generated_sink: Optional[GeneratedClassSink] = None) -> bytes:
        """Apply these rules to one compiled class."""
        from classtweak.transform import ClassTransformer
        return ClassTransformer(self).transform(class_bytes, generated_sink)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClassTweaker):
            return NotImplemented
        return (
            self._namespace == other._namespace
            and self._rules == other._rules
            and self._enums == other._enums
            and {k: list(v) for k, v in self._interfaces.items()}
            == {k: list(v) for k, v in other._interfaces.items()}
        )

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"ClassTweaker(namespace={self._namespace!r}, classes={len(self._classes)}, "
            f"enums={sum(len(v) for v in self._enums.values())}, "
            f"interfaces={sum(len(v) for v in self._interfaces.values())})"
        )
