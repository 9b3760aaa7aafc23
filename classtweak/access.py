"""
Access widening lattice

Each target kind (class, method, field) has its own small lattice of
widening states. Merging a request into a state only ever moves up:
merges are monotonic, commutative and idempotent. Each state also knows
how to rewrite raw access flags when a class is transformed.

    ClassAccess:  DEFAULT -> ACCESSIBLE | EXTENDABLE -> ACCESSIBLE_EXTENDABLE
    MethodAccess: DEFAULT -> ACCESSIBLE | EXTENDABLE -> ACCESSIBLE_EXTENDABLE
    FieldAccess:  DEFAULT -> ACCESSIBLE | MUTABLE    -> ACCESSIBLE_MUTABLE
"""

from __future__ import annotations

from enum import Enum

from classtweak.classfile.flags import (
    ACC_FINAL, ACC_INTERFACE, ACC_PRIVATE, ACC_PROTECTED, ACC_PUBLIC, ACC_STATIC,
)
from classtweak.errors import ModelError


class AccessType(Enum):
    """The widening a rule line requests."""
    ACCESSIBLE = "accessible"
    EXTENDABLE = "extendable"
    MUTABLE = "mutable"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, token: str) -> AccessType:
        """Case-insensitive keyword lookup. Raises ValueError when unknown."""
        return cls(token.lower())


# ============================================================
# Flag arithmetic
# ============================================================

def make_public(flags: int) -> int:
    return (flags & ~(ACC_PRIVATE | ACC_PROTECTED)) | ACC_PUBLIC


def make_protected(flags: int) -> int:
    if flags & ACC_PUBLIC:
        return flags
    return (flags & ~ACC_PRIVATE) | ACC_PROTECTED


def make_final_if_private(flags: int, name: str, owner_flags: int) -> int:
    # Constructors, interface members and statics are never virtual
    if name == "<init>" or owner_flags & ACC_INTERFACE or flags & ACC_STATIC:
        return flags
    if flags & ACC_PRIVATE:
        return flags | ACC_FINAL
    return flags


def remove_final(flags: int) -> int:
    return flags & ~ACC_FINAL


# ============================================================
# Lattices
# ============================================================

class _AccessState(Enum):
    """Shared queries and merge dispatch for the three lattices."""

    @property
    def is_accessible(self) -> bool:
        return self.value.startswith("accessible")

    @property
    def is_extendable(self) -> bool:
        return self.value.endswith("extendable")

    @property
    def is_mutable(self) -> bool:
        return self.value.endswith("mutable")

    @property
    def is_changed(self) -> bool:
        return self.value != "default"

    def merge(self, access: AccessType):
        if access is AccessType.ACCESSIBLE:
            return self.make_accessible()
        if access is AccessType.EXTENDABLE:
            return self.make_extendable()
        return self.make_mutable()

    def make_accessible(self):
        raise NotImplementedError

    def make_extendable(self):
        raise NotImplementedError

    def make_mutable(self):
        raise NotImplementedError

    def apply(self, flags: int, name: str, owner_flags: int) -> int:
        raise NotImplementedError


class ClassAccess(_AccessState):
    DEFAULT = "default"
    ACCESSIBLE = "accessible"
    EXTENDABLE = "extendable"
    ACCESSIBLE_EXTENDABLE = "accessible_extendable"

    def make_accessible(self) -> ClassAccess:
        if self.is_extendable:
            return ClassAccess.ACCESSIBLE_EXTENDABLE
        return ClassAccess.ACCESSIBLE

    def make_extendable(self) -> ClassAccess:
        if self.is_accessible:
            return ClassAccess.ACCESSIBLE_EXTENDABLE
        return ClassAccess.EXTENDABLE

    def make_mutable(self) -> ClassAccess:
        raise ModelError("Classes cannot be made mutable")

    def apply(self, flags: int, name: str, owner_flags: int) -> int:
        if self is ClassAccess.ACCESSIBLE:
            return make_public(flags)
        if self.is_extendable:
            return make_public(remove_final(flags))
        return flags


class MethodAccess(_AccessState):
    DEFAULT = "default"
    ACCESSIBLE = "accessible"
    EXTENDABLE = "extendable"
    ACCESSIBLE_EXTENDABLE = "accessible_extendable"

    def make_accessible(self) -> MethodAccess:
        if self.is_extendable:
            return MethodAccess.ACCESSIBLE_EXTENDABLE
        return MethodAccess.ACCESSIBLE

    def make_extendable(self) -> MethodAccess:
        if self.is_accessible:
            return MethodAccess.ACCESSIBLE_EXTENDABLE
        return MethodAccess.EXTENDABLE

    def make_mutable(self) -> MethodAccess:
        raise ModelError("Methods cannot be made mutable")

    def apply(self, flags: int, name: str, owner_flags: int) -> int:
        if self is MethodAccess.ACCESSIBLE:
            return make_public(make_final_if_private(flags, name, owner_flags))
        if self is MethodAccess.EXTENDABLE:
            return make_protected(remove_final(flags))
        if self is MethodAccess.ACCESSIBLE_EXTENDABLE:
            return make_public(remove_final(flags))
        return flags


class FieldAccess(_AccessState):
    DEFAULT = "default"
    ACCESSIBLE = "accessible"
    MUTABLE = "mutable"
    ACCESSIBLE_MUTABLE = "accessible_mutable"

    def make_accessible(self) -> FieldAccess:
        if self.is_mutable:
            return FieldAccess.ACCESSIBLE_MUTABLE
        return FieldAccess.ACCESSIBLE

    def make_extendable(self) -> FieldAccess:
        raise ModelError("Fields cannot be made extendable")

    def make_mutable(self) -> FieldAccess:
        if self.is_accessible:
            return FieldAccess.ACCESSIBLE_MUTABLE
        return FieldAccess.MUTABLE

    def apply(self, flags: int, name: str, owner_flags: int) -> int:
        # Static fields of interfaces must stay final
        keep_final = bool(owner_flags & ACC_INTERFACE and flags & ACC_STATIC)
        if self is FieldAccess.ACCESSIBLE:
            return make_public(flags)
        if self is FieldAccess.MUTABLE:
            return flags if keep_final else remove_final(flags)
        if self is FieldAccess.ACCESSIBLE_MUTABLE:
            return make_public(flags) if keep_final else make_public(remove_final(flags))
        return flags
