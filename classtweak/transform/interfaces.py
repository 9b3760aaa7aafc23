"""Interface injection."""

from __future__ import annotations

from typing import Iterable

from classtweak.classfile.attributes import read_signature, write_signature
from classtweak.classfile.structure import ClassFile
from classtweak.model import InjectedInterface


def inject_interfaces(class_file: ClassFile, injected: Iterable[InjectedInterface]) -> bool:
    """Add interfaces in order, skipping ones already declared."""
    changed = False
    names = [i.interface_name for i in injected]
    for name in names:
        if name not in class_file.interfaces:
            class_file.interfaces.append(name)
            changed = True

    attribute = class_file.attribute("Signature")
    if attribute is not None:
        signature = read_signature(attribute.data, class_file.pool)
        updated = signature
        for name in names:
            # Generic superinterfaces appear as La/B<...>;
            if f"L{name};" not in updated and f"L{name}<" not in updated:
                updated += f"L{name};"
        if updated != signature:
            attribute.data = write_signature(updated, class_file.pool)
            changed = True
    return changed
