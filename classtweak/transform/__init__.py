"""
classtweak.transform: applying a rule model to compiled classes

    transformer = ClassTransformer(model)
    new_bytes = transformer.transform(class_bytes, generated_sink=store)

Each call parses one class, rewrites it in memory and serialises it only
when all rewrites succeeded. Classes the rules do not touch come back as the
same bytes object. Generated helper classes reach the sink only after
their owner transformed cleanly.
"""

from __future__ import annotations

import logging
from typing import Optional

from classtweak.classfile.reader import read_class
from classtweak.classfile.writer import write_class
from classtweak.model import ClassTweaker, GeneratedClassSink
from classtweak.transform.access import widen_access
from classtweak.transform.enums import EnumExtender, GeneratedClass, subclass_name
from classtweak.transform.interfaces import inject_interfaces

logger = logging.getLogger(__name__)


class ClassTransformer:

    def __init__(self, model: ClassTweaker):
        self.model = model

    def transform(self, class_bytes: bytes,
                  generated_sink: Optional[GeneratedClassSink] = None) -> bytes:
        class_file = read_class(class_bytes)
        name = class_file.name
        if not self.model.is_target(name):
            return class_bytes

        changed = False
        generated: list[GeneratedClass] = []

        interfaces = self.model.get_injected_interfaces(name)
        if interfaces:
            changed |= inject_interfaces(class_file, interfaces)

        extensions = self.model.get_enum_extensions(name)
        if extensions:
            if class_file.is_enum:
                extender = EnumExtender(class_file, extensions, can_generate=generated_sink is not None)
                changed |= extender.apply()
                generated = extender.generated
            else:
                logger.warning("%s is not an enum; skipping %d enum extension(s)", name, len(extensions))

        changed |= widen_access(class_file, self.model)

        if not changed:
            return class_bytes
        result = write_class(class_file)
        for g in generated:
            generated_sink(g.name, g.data)
        logger.debug("Transformed %s (%d generated class(es))", name, len(generated))
        return result


__all__ = ["ClassTransformer", "GeneratedClass", "subclass_name"]
