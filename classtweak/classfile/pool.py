"""
Constant pool

Entries are kept as tagged tuples, the way they appear on disk:

    ('Utf8', raw_bytes)          ('Class', name_index)
    ('Integer', int)             ('String', utf8_index)
    ('Float', raw_bits)          ('Fieldref', class_index, nat_index)
    ('Long', int)                ('Methodref', class_index, nat_index)
    ('Double', raw_bits)         ('InterfaceMethodref', class_index, nat_index)
    ('NameAndType', name_index, descriptor_index)
    ('MethodHandle', kind, ref_index)   ('MethodType', descriptor_index)
    ('Dynamic', bsm_index, nat_index)   ('InvokeDynamic', bsm_index, nat_index)
    ('Module', name_index)              ('Package', name_index)

Index 0 and the slot after every Long/Double hold None. The pool only
grows: existing indices never move, so raw attribute bytes that point into
it stay valid. `add_*` helpers reuse an equal existing entry.
"""

from __future__ import annotations

import struct
from typing import Optional

from classtweak.errors import ClassFormatError

TAGS = {
    1: "Utf8", 3: "Integer", 4: "Float", 5: "Long", 6: "Double", 7: "Class",
    8: "String", 9: "Fieldref", 10: "Methodref", 11: "InterfaceMethodref",
    12: "NameAndType", 15: "MethodHandle", 16: "MethodType", 17: "Dynamic",
    18: "InvokeDynamic", 19: "Module", 20: "Package",
}
TAG_CODES = {name: tag for tag, name in TAGS.items()}

WIDE_ENTRIES = ("Long", "Double")


# ============================================================
# Modified UTF-8
# ============================================================

def decode_mutf8(data: bytes) -> str:
    """Decode the JVM's modified UTF-8 (CESU-8 with 0xC0 0x80 for NUL)."""
    if all(0 < b < 0x80 for b in data):
        return data.decode("ascii")
    units = []
    i = 0
    n = len(data)
    try:
        while i < n:
            b = data[i]
            if b < 0x80:
                units.append(b)
                i += 1
            elif b & 0xE0 == 0xC0:
                units.append(((b & 0x1F) << 6) | (data[i + 1] & 0x3F))
                i += 2
            elif b & 0xF0 == 0xE0:
                units.append(((b & 0x0F) << 12) | ((data[i + 1] & 0x3F) << 6) | (data[i + 2] & 0x3F))
                i += 3
            else:
                raise ClassFormatError(f"Invalid modified UTF-8 byte 0x{b:02x}")
    except IndexError:
        raise ClassFormatError("Truncated modified UTF-8 string") from None
    raw = struct.pack(f">{len(units)}H", *units)
    return raw.decode("utf-16-be", errors="surrogatepass")


def encode_mutf8(s: str) -> bytes:
    raw = s.encode("utf-16-be", errors="surrogatepass")
    out = bytearray()
    for (unit,) in struct.iter_unpack(">H", raw):
        if 0 < unit < 0x80:
            out.append(unit)
        elif unit < 0x800:
            out += bytes((0xC0 | (unit >> 6), 0x80 | (unit & 0x3F)))
        else:
            out += bytes((0xE0 | (unit >> 12), 0x80 | ((unit >> 6) & 0x3F), 0x80 | (unit & 0x3F)))
    return bytes(out)


# ============================================================
# Pool
# ============================================================

class ConstantPool:

    def __init__(self, entries: Optional[list] = None):
        self.entries: list = entries if entries is not None else [None]
        self._index: dict[tuple, int] = {}
        for i, entry in enumerate(self.entries):
            if entry is not None and entry not in self._index:
                self._index[entry] = i

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, index: int) -> tuple:
        if not 0 < index < len(self.entries) or self.entries[index] is None:
            raise ClassFormatError(f"Invalid constant pool index {index}")
        return self.entries[index]

    def _expect(self, index: int, *kinds: str) -> tuple:
        entry = self.get(index)
        if entry[0] not in kinds:
            raise ClassFormatError(
                f"Constant pool entry {index} is {entry[0]}, expected {'/'.join(kinds)}"
            )
        return entry

    # --- Resolution ---

    def utf8(self, index: int) -> str:
        return decode_mutf8(self._expect(index, "Utf8")[1])

    def class_name(self, index: int) -> str:
        return self.utf8(self._expect(index, "Class")[1])

    def string(self, index: int) -> str:
        return self.utf8(self._expect(index, "String")[1])

    def name_and_type(self, index: int) -> tuple[str, str]:
        _, name, desc = self._expect(index, "NameAndType")
        return self.utf8(name), self.utf8(desc)

    def member_ref(self, index: int) -> tuple[str, str, str]:
        """(owner, name, descriptor) of a field or method reference."""
        _, cls, nat = self._expect(index, "Fieldref", "Methodref", "InterfaceMethodref")
        return (self.class_name(cls),) + self.name_and_type(nat)

    def loadable(self, index: int):
        """Python value of an ldc operand: int, float, str, or the raw entry."""
        entry = self.get(index)
        kind = entry[0]
        if kind in ("Integer", "Long"):
            return entry[1]
        if kind == "Float":
            return struct.unpack(">f", struct.pack(">I", entry[1]))[0]
        if kind == "Double":
            return struct.unpack(">d", struct.pack(">Q", entry[1]))[0]
        if kind == "String":
            return self.utf8(entry[1])
        return entry

    # --- Appending ---

    def _add(self, entry: tuple) -> int:
        index = self._index.get(entry)
        if index is not None:
            return index
        index = len(self.entries)
        self.entries.append(entry)
        if entry[0] in WIDE_ENTRIES:
            self.entries.append(None)
        if len(self.entries) > 0xFFFF:
            raise ClassFormatError("Constant pool overflow")
        self._index[entry] = index
        return index

    def add_utf8(self, value: str) -> int:
        return self._add(("Utf8", encode_mutf8(value)))

    def add_class(self, name: str) -> int:
        return self._add(("Class", self.add_utf8(name)))

    def add_string(self, value: str) -> int:
        return self._add(("String", self.add_utf8(value)))

    def add_integer(self, value: int) -> int:
        return self._add(("Integer", value))

    def add_long(self, value: int) -> int:
        return self._add(("Long", value))

    def add_float(self, value: float) -> int:
        return self._add(("Float", struct.unpack(">I", struct.pack(">f", value))[0]))

    def add_double(self, value: float) -> int:
        return self._add(("Double", struct.unpack(">Q", struct.pack(">d", value))[0]))

    def add_name_and_type(self, name: str, descriptor: str) -> int:
        return self._add(("NameAndType", self.add_utf8(name), self.add_utf8(descriptor)))

    def add_field_ref(self, owner: str, name: str, descriptor: str) -> int:
        return self._add(("Fieldref", self.add_class(owner), self.add_name_and_type(name, descriptor)))

    def add_method_ref(self, owner: str, name: str, descriptor: str, interface: bool = False) -> int:
        kind = "InterfaceMethodref" if interface else "Methodref"
        return self._add((kind, self.add_class(owner), self.add_name_and_type(name, descriptor)))
