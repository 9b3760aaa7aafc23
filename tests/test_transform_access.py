"""
Tests for access flag rewriting on compiled classes.
"""

import pytest

from classtweak.classfile import decode_code, read_class
from classtweak.classfile import opcodes as op
from classtweak.classfile.attributes import read_inner_classes
from classtweak.classfile.flags import (
    ACC_FINAL, ACC_PRIVATE, ACC_PROTECTED, ACC_PUBLIC, ACC_STATIC, ACC_SUPER,
)

from builders import build_class, build_interface


def opcodes_of(class_file, method_name):
    (method,) = class_file.methods_named(method_name)
    code = decode_code(method.attribute("Code").data, class_file.pool)
    return [insn.opcode for insn in code.insns()]


def member_flags(members, name):
    return [m.access_flags for m in members if m.name == name][0]


# =============================================================================
# CLASSES
# =============================================================================

class TestClassAccess:

    def test_accessible_keeps_final(self, tweaker_rules):
        model = tweaker_rules("accessible\tclass\ta/Hidden")
        out = read_class(model.transform(build_class("a/Hidden", access=ACC_SUPER | ACC_FINAL)))
        assert out.access_flags == ACC_PUBLIC | ACC_SUPER | ACC_FINAL

    def test_extendable_removes_final(self, tweaker_rules):
        model = tweaker_rules("extendable\tclass\ta/Hidden")
        out = read_class(model.transform(build_class("a/Hidden", access=ACC_SUPER | ACC_FINAL)))
        assert out.access_flags == ACC_PUBLIC | ACC_SUPER

    def test_extendable_drops_permitted_subclasses(self, tweaker_rules):
        model = tweaker_rules("extendable\tclass\ta/Sealed")
        data = build_class("a/Sealed", access=ACC_PUBLIC | ACC_SUPER, permitted=["a/Only"])
        out = read_class(model.transform(data))
        assert out.attribute("PermittedSubclasses") is None

    def test_accessible_keeps_permitted_subclasses(self, tweaker_rules):
        model = tweaker_rules("accessible\tclass\ta/Sealed")
        data = build_class("a/Sealed", access=ACC_SUPER, permitted=["a/Only"])
        out = read_class(model.transform(data))
        assert out.attribute("PermittedSubclasses") is not None

    def test_nested_class_entry_in_outer(self, tweaker_rules):
        model = tweaker_rules("accessible\tclass\ta/Outer$Inner")
        data = build_class("a/Outer", inner_classes=[("a/Outer$Inner", ACC_PRIVATE | ACC_STATIC),
                                                     ("a/Outer$Other", ACC_PRIVATE)])
        assert model.is_target("a/Outer")
        out = read_class(model.transform(data))
        entries = {e.inner_name: e.access_flags for e in read_inner_classes(out.attribute("InnerClasses").data, out.pool)}
        assert entries == {"a/Outer$Inner": ACC_PUBLIC | ACC_STATIC, "a/Outer$Other": ACC_PRIVATE}
        assert out.access_flags == ACC_PUBLIC | ACC_SUPER


# =============================================================================
# METHODS
# =============================================================================

class TestMethodAccess:

    @pytest.fixture
    def secretive(self):
        return build_class(
            "a/B",
            methods=[(ACC_PRIVATE, "secret", "()V"), (ACC_PRIVATE | ACC_STATIC, "helper", "()I"),
                     (ACC_PROTECTED | ACC_FINAL, "sealed", "()V")],
            calls=[("callSecret", "secret")],
        )

    def test_accessible_private_method_becomes_public_final(self, tweaker_rules, secretive):
        model = tweaker_rules("accessible\tmethod\ta/B\tsecret\t()V")
        out = read_class(model.transform(secretive))
        assert member_flags(out.methods, "secret") == ACC_PUBLIC | ACC_FINAL
        assert opcodes_of(out, "callSecret") == [op.ALOAD_0, op.INVOKEVIRTUAL, op.RETURN]

    def test_extendable_private_method_becomes_protected(self, tweaker_rules, secretive):
        model = tweaker_rules("extendable\tmethod\ta/B\tsecret\t()V")
        out = read_class(model.transform(secretive))
        assert member_flags(out.methods, "secret") == ACC_PROTECTED
        assert opcodes_of(out, "callSecret") == [op.ALOAD_0, op.INVOKEVIRTUAL, op.RETURN]

    def test_accessible_and_extendable(self, tweaker_rules, secretive):
        model = tweaker_rules("accessible\tmethod\ta/B\tsealed\t()V", "extendable\tmethod\ta/B\tsealed\t()V")
        out = read_class(model.transform(secretive))
        assert member_flags(out.methods, "sealed") == ACC_PUBLIC

    def test_static_method_is_not_made_final(self, tweaker_rules, secretive):
        model = tweaker_rules("accessible\tmethod\ta/B\thelper\t()I")
        out = read_class(model.transform(secretive))
        assert member_flags(out.methods, "helper") == ACC_PUBLIC | ACC_STATIC

    def test_constructor_calls_stay_special(self, tweaker_rules, secretive):
        model = tweaker_rules("accessible\tmethod\ta/B\t<init>\t()V", "accessible\tmethod\ta/B\tsecret\t()V")
        out = read_class(model.transform(secretive))
        assert opcodes_of(out, "<init>") == [op.ALOAD_0, op.INVOKESPECIAL, op.RETURN]

    def test_unwidened_calls_stay_special(self, tweaker_rules, secretive):
        model = tweaker_rules("accessible\tmethod\ta/B\thelper\t()I")
        out = read_class(model.transform(secretive))
        assert opcodes_of(out, "callSecret") == [op.ALOAD_0, op.INVOKESPECIAL, op.RETURN]

    def test_descriptor_must_match(self, tweaker_rules, secretive):
        model = tweaker_rules("accessible\tmethod\ta/B\tsecret\t()I")
        assert model.transform(secretive) is secretive


# =============================================================================
# FIELDS
# =============================================================================

class TestFieldAccess:

    @pytest.fixture
    def holder(self):
        return build_class("a/B", fields=[(ACC_PRIVATE | ACC_FINAL, "x", "I"),
                                          (ACC_PRIVATE | ACC_STATIC | ACC_FINAL, "y", "J")])

    def test_accessible(self, tweaker_rules, holder):
        out = read_class(tweaker_rules("accessible\tfield\ta/B\tx\tI").transform(holder))
        assert member_flags(out.fields, "x") == ACC_PUBLIC | ACC_FINAL

    def test_mutable(self, tweaker_rules, holder):
        out = read_class(tweaker_rules("mutable\tfield\ta/B\ty\tJ").transform(holder))
        assert member_flags(out.fields, "y") == ACC_PRIVATE | ACC_STATIC
        assert member_flags(out.fields, "x") == ACC_PRIVATE | ACC_FINAL

    def test_accessible_and_mutable(self, tweaker_rules, holder):
        model = tweaker_rules("accessible\tfield\ta/B\tx\tI", "mutable\tfield\ta/B\tx\tI")
        out = read_class(model.transform(holder))
        assert member_flags(out.fields, "x") == ACC_PUBLIC

    def test_interface_constants_stay_final(self, tweaker_rules):
        data = build_interface("a/I", fields=[(ACC_PUBLIC | ACC_STATIC | ACC_FINAL, "C", "I")])
        assert tweaker_rules("mutable\tfield\ta/I\tC\tI").transform(data) is data


# =============================================================================
# UNCHANGED CLASSES
# =============================================================================

class TestUnchanged:

    def test_non_target_is_returned_as_is(self, tweaker_rules):
        data = build_class("a/Other")
        assert tweaker_rules("accessible\tclass\ta/B").transform(data) is data

    def test_already_widened_is_returned_as_is(self, tweaker_rules):
        data = build_class("a/B")
        assert tweaker_rules("accessible\tclass\ta/B").transform(data) is data

    def test_empty_model(self, model):
        data = build_class("a/B")
        assert model.transform(data) is data
