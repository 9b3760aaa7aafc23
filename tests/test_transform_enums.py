"""
Tests for enum constant injection.

Transformed classes are checked by running their static initializer in the
symbolic interpreter from jvm.py and inspecting the resulting values array.
"""

import logging
import re

import pytest

from classtweak.classfile import decode_code, read_class
from classtweak.classfile import opcodes as op
from classtweak.classfile.attributes import read_annotations, read_class_list, read_inner_classes
from classtweak.classfile.flags import (
    ACC_ENUM, ACC_FINAL, ACC_PRIVATE, ACC_PROTECTED, ACC_PUBLIC, ACC_STATIC, V1_8, V11, V17,
)
from classtweak.errors import TransformError
from classtweak.model import ClassTweaker
from classtweak.reader import ClassTweakerReader
from classtweak.transform import subclass_name
from classtweak.transform.enums import MARKER_DESCRIPTOR

from builders import build_class, build_enum
from jvm import enum_values, run_static_init

PARAM_CONSTRUCTOR = "(Ljava/lang/String;ILjava/lang/String;I)V"
ENUM = "test/SimpleEnum"


def summary(values):
    return [(v.name, v.ordinal) for v in values]


def rules(*lines, source_id="test"):
    model = ClassTweaker()
    ClassTweakerReader(model).read("classTweaker\tv1\tnamed\n" + "\n".join(lines) + "\n", source_id=source_id)
    return model


# =============================================================================
# CONSTANT INJECTION
# =============================================================================

@pytest.mark.parametrize("major", [V1_8, V17], ids=["legacy", "values-method"])
class TestInjection:

    def test_single_constant(self, major):
        model = rules(f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V")
        values = enum_values(model.transform(build_enum(major=major)))
        assert summary(values) == [("ONE", 0), ("TWO", 1), ("THREE", 2)]
        assert all(v.class_name == ENUM for v in values)

    def test_constants_are_added_in_name_order(self, major):
        model = rules(
            f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V",
            f"extend-enum\t{ENUM}\tFOUR\t(Ljava/lang/String;I)V",
        )
        out = model.transform(build_enum(major=major))
        assert summary(enum_values(out)) == [("ONE", 0), ("TWO", 1), ("FOUR", 2), ("THREE", 3)]
        assert [f.name for f in read_class(out).fields] == ["ONE", "TWO", "FOUR", "THREE", "$VALUES"]

    def test_constant_fields_are_stored(self, major):
        model = rules(f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V")
        statics = run_static_init(model.transform(build_enum(major=major)))
        assert statics[f"{ENUM}.THREE"] is statics[f"{ENUM}.$VALUES"][2]

    def test_constant_parameters(self, major):
        model = rules(
            f"extend-enum\t{ENUM}\tZ\t{PARAM_CONSTRUCTOR}",
            '\tparams\t"z"\t1000',
        )
        values = enum_values(model.transform(build_enum(major=major, constructor=PARAM_CONSTRUCTOR)))
        assert values[-1].args == ["Z", 2, "z", 1000]
        assert values[-1].constructor == f"{ENUM}.<init>{PARAM_CONSTRUCTOR}"

    def test_list_parameters(self, major):
        model = rules(
            f"extend-enum\t{ENUM}\tZ\t{PARAM_CONSTRUCTOR}",
            "\tparams\ttest/EnumTestConstants\tENUM_PARAMS\tLjava/util/List;",
        )
        out = model.transform(build_enum(major=major, constructor=PARAM_CONSTRUCTOR))
        values = enum_values(out, externals={"test/EnumTestConstants.ENUM_PARAMS": ["listed", 7]})
        assert values[-1].args == ["Z", 2, "listed", 7]

    def test_reapplying_is_a_no_op(self, major):
        model = rules(f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V")
        once = model.transform(build_enum(major=major))
        assert model.transform(once) is once


class TestPrimitiveAndBoxedParameters:

    def test_every_literal_kind(self):
        constructor = "(Ljava/lang/String;IZCJFDLjava/lang/Integer;Ljava/lang/String;)V"
        model = rules(
            f"extend-enum\t{ENUM}\tALL\t{constructor}",
            "\tparams\ttrue\t'c'\t123456789012\t1.5\t2.25\t42\tnull",
        )
        values = enum_values(model.transform(build_enum(constructor=constructor)))
        assert values[-1].args == ["ALL", 2, True, ord("c"), 123456789012, 1.5, 2.25, 42, None]


# =============================================================================
# MARKERS AND CONFLICTS
# =============================================================================

class TestMarkers:

    def test_marker_annotation(self):
        model = rules(f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V", source_id="mymod")
        out = read_class(model.transform(build_enum()))
        field = out.find_field("THREE", f"L{ENUM};")
        assert field.access_flags == ACC_PUBLIC | ACC_STATIC | ACC_FINAL | ACC_ENUM
        (marker,) = read_annotations(field.attribute("RuntimeInvisibleAnnotations").data, out.pool)
        extension = model.get_enum_extensions(ENUM)["THREE"]
        assert marker.descriptor == MARKER_DESCRIPTOR
        assert marker.values == {"id": "mymod", "hashCode": extension.structural_hash()}

    def test_existing_constant(self):
        model = rules(f"extend-enum\t{ENUM}\tONE\t(Ljava/lang/String;I)V")
        with pytest.raises(TransformError, match=re.escape(f"Enum ({ENUM}) already declares constant (ONE)")):
            model.transform(build_enum())

    def test_clash_with_other_source(self):
        once = rules(f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V", source_id="mod_a") \
            .transform(build_enum())
        other = rules(f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V", source_id="mod_b")
        message = f"Enum addition from (mod_b) clashes with (mod_a) in enum ({ENUM}) for entry (THREE)"
        with pytest.raises(TransformError, match=re.escape(message)):
            other.transform(once)

    def test_changed_rule_from_same_source(self):
        constructor = "(Ljava/lang/String;II)V"
        once = rules(f"extend-enum\t{ENUM}\tTHREE\t{constructor}", "\tparams\t1") \
            .transform(build_enum(constructor=constructor))
        changed = rules(f"extend-enum\t{ENUM}\tTHREE\t{constructor}", "\tparams\t2")
        with pytest.raises(TransformError, match=re.escape("Previously applied enum addition from (test) does not match")):
            changed.transform(once)

    def test_partial_reapply_adds_only_new_constants(self):
        once = rules(f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V").transform(build_enum())
        both = rules(
            f"extend-enum\t{ENUM}\tTHREE\t(Ljava/lang/String;I)V",
            f"extend-enum\t{ENUM}\tFOUR\t(Ljava/lang/String;I)V",
        )
        values = enum_values(both.transform(once))
        assert summary(values) == [("ONE", 0), ("TWO", 1), ("THREE", 2), ("FOUR", 3)]


# =============================================================================
# PRECONDITIONS
# =============================================================================

class TestPreconditions:

    def test_missing_constructor(self):
        model = rules(f"extend-enum\t{ENUM}\tX\t(Ljava/lang/String;IZ)V", "\tparams\ttrue")
        with pytest.raises(TransformError, match=re.escape("Could not find constructor with desc: (Ljava/lang/String;IZ)V")):
            model.transform(build_enum())

    def test_missing_parameters(self):
        model = rules(f"extend-enum\t{ENUM}\tX\t{PARAM_CONSTRUCTOR}")
        message = "No parameters provided for enum constructor, expected: [java/lang/String,I]"
        with pytest.raises(TransformError, match=re.escape(message)):
            model.transform(build_enum(constructor=PARAM_CONSTRUCTOR))

    def test_missing_override_target(self):
        model = rules(
            f"extend-enum\t{ENUM}\tX\t(Ljava/lang/String;I)V",
            "\toverride\tmissing\ttest/Constants\tmissing\t(I)Z",
        )
        message = "Unable to find method (missing(I)Z) to override within enum from (test)"
        with pytest.raises(TransformError, match=re.escape(message)):
            model.transform(build_enum(), generated_sink=lambda name, data: None)

    def test_overrides_need_a_sink(self):
        model = rules(
            f"extend-enum\t{ENUM}\tX\t(Ljava/lang/String;I)V",
            "\toverride\thello\ttest/Constants\thello\t(I)Z",
        )
        with pytest.raises(TransformError, match="Cannot generate enum inner class as generated class sink is None"):
            model.transform(build_enum(methods=[(ACC_PUBLIC, "hello", "(I)Z")]))

    def test_non_enum_target_is_skipped(self, caplog):
        data = build_class("a/B")
        model = rules("extend-enum\ta/B\tX\t(Ljava/lang/String;I)V")
        with caplog.at_level(logging.WARNING, logger="classtweak.transform"):
            assert model.transform(data) is data
        assert "a/B is not an enum" in caplog.text


# =============================================================================
# OVERRIDING CONSTANTS
# =============================================================================

class TestOverrides:

    OVERRIDE_RULES = (
        f"extend-enum\t{ENUM}\tADDED\t(Ljava/lang/String;I)V",
        "\toverride\thello\ttest/EnumTestConstants\thello\t(I)Z",
    )

    def transform(self, generated, major):
        model = rules(*self.OVERRIDE_RULES)
        data = build_enum(major=major, methods=[(ACC_PUBLIC, "hello", "(I)Z")])
        extension = model.get_enum_extensions(ENUM)["ADDED"]
        return model, model.transform(data, generated_sink=generated), subclass_name(ENUM, extension)

    def test_subclass_name(self, model):
        extension = model.visit_enum("a/E", "X", "(Ljava/lang/String;I)V", "mod", False)
        assert subclass_name("a/E", extension) == "a/E$mod$88"

    @pytest.mark.parametrize("major", [V1_8, V17])
    def test_constant_is_a_generated_subclass(self, generated, major):
        _, out, name = self.transform(generated, major)
        assert list(generated) == [name]
        values = enum_values(out)
        assert values[-1].class_name == name
        assert values[-1].constructor == f"{name}.<init>(Ljava/lang/String;I)V"
        assert summary(values)[-1] == ("ADDED", 2)

    @pytest.mark.parametrize("major", [V1_8, V17])
    def test_owner_opens_up(self, generated, major):
        _, out, name = self.transform(generated, major)
        owner = read_class(out)
        assert not owner.access_flags & ACC_FINAL
        (constructor,) = owner.methods_named("<init>")
        assert constructor.access_flags == (ACC_PROTECTED if major < V11 else ACC_PRIVATE)
        entries = read_inner_classes(owner.attribute("InnerClasses").data, owner.pool)
        assert [e.inner_name for e in entries] == [name]

    def test_nest_and_permits_on_modern_classes(self, generated):
        _, out, name = self.transform(generated, V17)
        owner = read_class(out)
        assert read_class_list(owner.attribute("NestMembers").data, owner.pool) == [name]
        assert read_class_list(owner.attribute("PermittedSubclasses").data, owner.pool) == [name]
        subclass = read_class(generated[name])
        assert subclass.attribute("NestHost") is not None

    def test_no_nest_attributes_on_legacy_classes(self, generated):
        _, out, name = self.transform(generated, V1_8)
        owner = read_class(out)
        assert owner.attribute("NestMembers") is None
        assert owner.attribute("PermittedSubclasses") is None
        assert read_class(generated[name]).attribute("NestHost") is None

    def test_nested_enum_keeps_package_access(self, generated):
        nested = "test/Outer$Kind"
        model = rules(f"extend-enum\t{nested}\tADDED\t(Ljava/lang/String;I)V", self.OVERRIDE_RULES[1])
        data = build_enum(nested, major=V17, methods=[(ACC_PUBLIC, "hello", "(I)Z")], nest_host="test/Outer")
        out = read_class(model.transform(data, generated_sink=generated))
        name = subclass_name(nested, model.get_enum_extensions(nested)["ADDED"])

        # The outer class owns the nest and is not rewritten
        assert out.attribute("NestHost") is not None
        assert out.attribute("NestMembers") is None
        assert read_class_list(out.attribute("PermittedSubclasses").data, out.pool) == [name]
        (constructor,) = out.methods_named("<init>")
        assert constructor.access_flags == ACC_PROTECTED

        subclass = read_class(generated[name])
        assert subclass.attribute("NestHost") is None
        (constructor,) = subclass.methods_named("<init>")
        assert constructor.access_flags == 0

    def test_generated_subclass_delegates(self, generated):
        _, _, name = self.transform(generated, V17)
        subclass = read_class(generated[name])
        assert subclass.super_name == ENUM
        assert subclass.access_flags & ACC_ENUM
        (hello,) = subclass.methods_named("hello")
        assert hello.descriptor == "(I)Z"
        assert hello.access_flags == ACC_PUBLIC
        code = decode_code(hello.attribute("Code").data, subclass.pool)
        call = [i for i in code.insns() if i.opcode == op.INVOKESTATIC][0]
        assert subclass.pool.member_ref(call.operand) == ("test/EnumTestConstants", "hello", "(I)Z")
        (constructor,) = subclass.methods_named("<init>")
        assert constructor.access_flags == ACC_PRIVATE

    def test_reapplying_generates_nothing(self, generated):
        model, out, _ = self.transform(generated, V17)
        generated.clear()
        assert model.transform(out, generated_sink=generated) is out
        assert generated == {}

    def test_failed_transform_emits_nothing(self, generated):
        model = rules(
            *self.OVERRIDE_RULES,
            f"extend-enum\t{ENUM}\tBROKEN\t(Ljava/lang/String;IZ)V",
            "\tparams\ttrue",
        )
        with pytest.raises(TransformError):
            model.transform(build_enum(methods=[(ACC_PUBLIC, "hello", "(I)Z")]), generated_sink=generated)
        assert generated == {}
