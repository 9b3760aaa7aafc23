"""
Method bodies

decode_code() turns a Code attribute into an editable instruction list in
which every byte offset is a Label node: branch and switch targets, the
exception table, line numbers, local variable ranges and stack map frames
all point at labels instead of positions. Instructions can then be
inserted or replaced freely; encode_code() lays the list out again and
resolves every label to its new offset.

    code = decode_code(method.attribute("Code").data, pool)
    insert_before(code.instructions, anchor, [Insn(DUP), ...])
    set_attribute(method.attributes, "Code", encode_code(code, pool))

Code attributes other than the line number, local variable and stack map
tables are kept only when the layout did not move.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Union

from classtweak.classfile import opcodes as op
from classtweak.classfile.pool import ConstantPool
from classtweak.classfile.structure import Attribute
from classtweak.errors import ClassFormatError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Label:
    """A position in an instruction list. `origin` is the decoded offset."""
    origin: int = -1
    offset: int = -1


@dataclass(eq=False)
class Insn:
    """One instruction.

    `operand` holds the immediate, local index, constant pool index or
    target Label. `extra` holds the second operand: the iinc increment,
    the invokeinterface count, the multianewarray dimensions, a
    tableswitch (low, [Label]) pair or lookupswitch [(key, Label)] list.
    """
    opcode: int
    operand: Any = None
    extra: Any = None
    wide: bool = False

    def __repr__(self) -> str:
        return f"Insn(0x{self.opcode:02X}, {self.operand!r}, {self.extra!r})"


Node = Union[Label, Insn]


@dataclass(eq=False)
class ExceptionHandler:
    start: Label
    end: Label
    handler: Label
    catch_type: int


@dataclass(eq=False)
class LocalVariable:
    start: Label
    end: Label
    name_index: int
    descriptor_index: int
    index: int


# Stack map frame kinds
SAME = "same"
SAME_LOCALS_1 = "same_locals_1"
CHOP = "chop"
APPEND = "append"
FULL = "full"

ITEM_OBJECT = 7
ITEM_UNINITIALIZED = 8


@dataclass(eq=False)
class Frame:
    """A StackMapTable entry. Verification types are tuples:
    (tag,), (7, class_index) or (8, Label of the `new`)."""
    kind: str
    label: Label
    locals: list = field(default_factory=list)
    stack: list = field(default_factory=list)
    chop: int = 0


@dataclass(eq=False)
class CodeAttribute:
    max_stack: int
    max_locals: int
    instructions: list[Node] = field(default_factory=list)
    handlers: list[ExceptionHandler] = field(default_factory=list)
    line_numbers: list[tuple[Label, int]] = field(default_factory=list)
    local_variables: list[LocalVariable] = field(default_factory=list)
    local_variable_types: list[LocalVariable] = field(default_factory=list)
    frames: Optional[list[Frame]] = None
    attributes: list[Attribute] = field(default_factory=list)
    code_length: int = 0

    def insns(self) -> Iterator[Insn]:
        for node in self.instructions:
            if isinstance(node, Insn):
                yield node


# ============================================================
# Editing
# ============================================================

def index_of(instructions: list[Node], node: Node) -> int:
    for i, candidate in enumerate(instructions):
        if candidate is node:
            return i
    raise ValueError(f"{node!r} is not in the instruction list")


def insert_before(instructions: list[Node], anchor: Node, nodes: list[Node]) -> None:
    i = index_of(instructions, anchor)
    instructions[i:i] = nodes


def replace(instructions: list[Node], old: Node, nodes: list[Node]) -> None:
    i = index_of(instructions, old)
    instructions[i:i + 1] = nodes


def previous_insn(instructions: list[Node], node: Node) -> Optional[Insn]:
    """The closest instruction before `node`, skipping labels."""
    for i in range(index_of(instructions, node) - 1, -1, -1):
        if isinstance(instructions[i], Insn):
            return instructions[i]
    return None


# ============================================================
# Decoding
# ============================================================

class _Labels:

    def __init__(self, boundaries: set[int]):
        self.boundaries = boundaries
        self.by_offset: dict[int, Label] = {}

    def at(self, offset: int) -> Label:
        label = self.by_offset.get(offset)
        if label is None:
            if offset not in self.boundaries:
                raise ClassFormatError(f"Offset {offset} is not an instruction boundary")
            label = self.by_offset[offset] = Label(origin=offset, offset=offset)
        return label


def decode_code(data: bytes, pool: ConstantPool) -> CodeAttribute:
    try:
        return _decode(data, pool)
    except struct.error as e:
        raise ClassFormatError(f"Truncated Code attribute: {e}") from e


def _decode(data: bytes, pool: ConstantPool) -> CodeAttribute:
    max_stack, max_locals, code_length = struct.unpack_from(">HHI", data, 0)
    code = data[8:8 + code_length]
    if len(code) != code_length:
        raise ClassFormatError("Truncated bytecode")
    decoded = _decode_instructions(code)
    labels = _Labels({offset for offset, _ in decoded} | {code_length})

    pos = 8 + code_length
    (handler_count,) = struct.unpack_from(">H", data, pos)
    pos += 2
    handlers = []
    for _ in range(handler_count):
        start, end, handler, catch_type = struct.unpack_from(">HHHH", data, pos)
        pos += 8
        handlers.append(ExceptionHandler(labels.at(start), labels.at(end), labels.at(handler), catch_type))

    result = CodeAttribute(max_stack, max_locals, handlers=handlers, code_length=code_length)
    (attribute_count,) = struct.unpack_from(">H", data, pos)
    pos += 2
    for _ in range(attribute_count):
        name_index, length = struct.unpack_from(">HI", data, pos)
        pos += 6
        name = pool.utf8(name_index)
        body = data[pos:pos + length]
        pos += length
        if name == "LineNumberTable":
            result.line_numbers = _decode_line_numbers(body, labels)
        elif name == "LocalVariableTable":
            result.local_variables = _decode_local_variables(body, labels)
        elif name == "LocalVariableTypeTable":
            result.local_variable_types = _decode_local_variables(body, labels)
        elif name == "StackMapTable":
            result.frames = _decode_frames(body, labels)
        else:
            result.attributes.append(Attribute(name, body))

    # Branch targets become labels
    for offset, insn in decoded:
        kind = op.OPERANDS[insn.opcode]
        if kind in (op.BRANCH, op.BRANCH_W) and not insn.wide:
            insn.operand = labels.at(insn.operand)
        elif kind == op.TABLE:
            low, targets = insn.extra
            insn.operand = labels.at(insn.operand)
            insn.extra = (low, [labels.at(t) for t in targets])
        elif kind == op.LOOKUP:
            insn.operand = labels.at(insn.operand)
            insn.extra = [(key, labels.at(t)) for key, t in insn.extra]

    for offset, insn in decoded:
        label = labels.by_offset.get(offset)
        if label is not None:
            result.instructions.append(label)
        result.instructions.append(insn)
    end = labels.by_offset.get(code_length)
    if end is not None:
        result.instructions.append(end)
    return result


def _decode_instructions(code: bytes) -> list[tuple[int, Insn]]:
    out = []
    pos = 0
    while pos < len(code):
        start = pos
        opcode = code[pos]
        kind = op.OPERANDS.get(opcode)
        if kind is None:
            raise ClassFormatError(f"Unknown opcode 0x{opcode:02X} at {pos}")
        if kind == op.NONE:
            insn = Insn(opcode)
        elif kind == op.BYTE:
            insn = Insn(opcode, struct.unpack_from(">b", code, pos + 1)[0])
        elif kind == op.SHORT:
            insn = Insn(opcode, struct.unpack_from(">h", code, pos + 1)[0])
        elif kind in (op.LOCAL, op.CONST, op.ATYPE):
            insn = Insn(opcode, code[pos + 1])
        elif kind == op.CONST_W:
            insn = Insn(opcode, struct.unpack_from(">H", code, pos + 1)[0])
        elif kind == op.IINC_:
            insn = Insn(opcode, code[pos + 1], struct.unpack_from(">b", code, pos + 2)[0])
        elif kind == op.BRANCH:
            insn = Insn(opcode, start + struct.unpack_from(">h", code, pos + 1)[0])
        elif kind == op.BRANCH_W:
            insn = Insn(opcode, start + struct.unpack_from(">i", code, pos + 1)[0])
        elif kind == op.INTERFACE:
            insn = Insn(opcode, struct.unpack_from(">H", code, pos + 1)[0], code[pos + 3])
        elif kind == op.DYNAMIC:
            insn = Insn(opcode, struct.unpack_from(">H", code, pos + 1)[0])
        elif kind == op.MULTI:
            insn = Insn(opcode, struct.unpack_from(">H", code, pos + 1)[0], code[pos + 3])
        elif kind == op.TABLE:
            p = start + 1 + _padding(start)
            default, low, high = struct.unpack_from(">iii", code, p)
            count = high - low + 1
            offsets = struct.unpack_from(f">{count}i", code, p + 12)
            insn = Insn(opcode, start + default, (low, [start + o for o in offsets]))
            pos = p + 12 + 4 * count
            out.append((start, insn))
            continue
        elif kind == op.LOOKUP:
            p = start + 1 + _padding(start)
            default, count = struct.unpack_from(">ii", code, p)
            pairs = struct.unpack_from(f">{2 * count}i", code, p + 8)
            insn = Insn(opcode, start + default,
                        [(pairs[i], start + pairs[i + 1]) for i in range(0, 2 * count, 2)])
            pos = p + 8 + 8 * count
            out.append((start, insn))
            continue
        else:
            inner = code[pos + 1]
            if inner == op.IINC:
                index, increment = struct.unpack_from(">Hh", code, pos + 2)
                insn = Insn(inner, index, increment, wide=True)
                pos += 6
            else:
                insn = Insn(inner, struct.unpack_from(">H", code, pos + 2)[0], wide=True)
                pos += 4
            out.append((start, insn))
            continue
        pos += op.SIZES[kind]
        out.append((start, insn))
    if pos != len(code):
        raise ClassFormatError("Instruction runs past the end of the code")
    return out


def _padding(offset: int) -> int:
    return (4 - (offset + 1) % 4) % 4


def _decode_line_numbers(body: bytes, labels: _Labels) -> list[tuple[Label, int]]:
    (count,) = struct.unpack_from(">H", body, 0)
    out = []
    for i in range(count):
        start, line = struct.unpack_from(">HH", body, 2 + 4 * i)
        out.append((labels.at(start), line))
    return out


def _decode_local_variables(body: bytes, labels: _Labels) -> list[LocalVariable]:
    (count,) = struct.unpack_from(">H", body, 0)
    out = []
    for i in range(count):
        start, length, name, desc, index = struct.unpack_from(">HHHHH", body, 2 + 10 * i)
        out.append(LocalVariable(labels.at(start), labels.at(start + length), name, desc, index))
    return out


def _decode_frames(body: bytes, labels: _Labels) -> list[Frame]:
    (count,) = struct.unpack_from(">H", body, 0)
    pos = 2
    previous = -1
    frames = []

    def verification_type():
        nonlocal pos
        tag = body[pos]
        pos += 1
        if tag == ITEM_OBJECT:
            (index,) = struct.unpack_from(">H", body, pos)
            pos += 2
            return (tag, index)
        if tag == ITEM_UNINITIALIZED:
            (offset,) = struct.unpack_from(">H", body, pos)
            pos += 2
            return (tag, labels.at(offset))
        return (tag,)

    def u2():
        nonlocal pos
        (value,) = struct.unpack_from(">H", body, pos)
        pos += 2
        return value

    for _ in range(count):
        frame_type = body[pos]
        pos += 1
        locals_: list = []
        stack: list = []
        chop = 0
        if frame_type < 64:
            kind, delta = SAME, frame_type
        elif frame_type < 128:
            kind, delta = SAME_LOCALS_1, frame_type - 64
            stack = [verification_type()]
        elif frame_type < 247:
            raise ClassFormatError(f"Reserved stack map frame type {frame_type}")
        elif frame_type == 247:
            kind, delta = SAME_LOCALS_1, u2()
            stack = [verification_type()]
        elif frame_type < 251:
            kind, delta, chop = CHOP, u2(), 251 - frame_type
        elif frame_type == 251:
            kind, delta = SAME, u2()
        elif frame_type < 255:
            kind, delta = APPEND, u2()
            locals_ = [verification_type() for _ in range(frame_type - 251)]
        else:
            kind, delta = FULL, u2()
            locals_ = [verification_type() for _ in range(u2())]
            stack = [verification_type() for _ in range(u2())]
        offset = previous + delta + 1
        previous = offset
        frames.append(Frame(kind, labels.at(offset), locals_, stack, chop))
    return frames


# ============================================================
# Encoding
# ============================================================

def _is_wide(insn: Insn) -> bool:
    kind = op.OPERANDS[insn.opcode]
    if kind == op.LOCAL:
        return insn.wide or insn.operand > 0xFF
    if kind == op.IINC_:
        return insn.wide or insn.operand > 0xFF or not -128 <= insn.extra <= 127
    return False


def _size(insn: Insn, pos: int) -> int:
    kind = op.OPERANDS[insn.opcode]
    if _is_wide(insn):
        return 6 if kind == op.IINC_ else 4
    if kind == op.CONST and insn.operand > 0xFF:
        return 3
    if kind == op.TABLE:
        return 1 + _padding(pos) + 12 + 4 * len(insn.extra[1])
    if kind == op.LOOKUP:
        return 1 + _padding(pos) + 8 + 8 * len(insn.extra)
    return op.SIZES[kind]


def _branch(target: Label, pos: int, wide: bool = False) -> int:
    if target.offset < 0:
        raise ClassFormatError("Branch to a label that is not in the instruction list")
    delta = target.offset - pos
    if not wide and not -0x8000 <= delta <= 0x7FFF:
        raise ClassFormatError(f"Branch offset {delta} does not fit in 16 bits")
    return delta


def _encode_insn(insn: Insn, pos: int) -> bytes:
    opcode = insn.opcode
    kind = op.OPERANDS[opcode]
    if _is_wide(insn):
        if kind == op.IINC_:
            return struct.pack(">BBHh", op.WIDE, opcode, insn.operand, insn.extra)
        return struct.pack(">BBH", op.WIDE, opcode, insn.operand)
    if kind == op.NONE:
        return bytes((opcode,))
    if kind == op.BYTE:
        return struct.pack(">Bb", opcode, insn.operand)
    if kind == op.SHORT:
        return struct.pack(">Bh", opcode, insn.operand)
    if kind in (op.LOCAL, op.ATYPE):
        return struct.pack(">BB", opcode, insn.operand)
    if kind == op.CONST:
        if insn.operand > 0xFF:
            return struct.pack(">BH", op.LDC_W, insn.operand)
        return struct.pack(">BB", opcode, insn.operand)
    if kind in (op.CONST_W, op.DYNAMIC):
        tail = b"\x00\x00" if kind == op.DYNAMIC else b""
        return struct.pack(">BH", opcode, insn.operand) + tail
    if kind == op.IINC_:
        return struct.pack(">BBb", opcode, insn.operand, insn.extra)
    if kind == op.BRANCH:
        return struct.pack(">Bh", opcode, _branch(insn.operand, pos))
    if kind == op.BRANCH_W:
        return struct.pack(">Bi", opcode, _branch(insn.operand, pos, wide=True))
    if kind == op.INTERFACE:
        return struct.pack(">BHBB", opcode, insn.operand, insn.extra, 0)
    if kind == op.MULTI:
        return struct.pack(">BHB", opcode, insn.operand, insn.extra)

    pad = b"\x00" * _padding(pos)
    default = _branch(insn.operand, pos, wide=True)
    if kind == op.TABLE:
        low, targets = insn.extra
        offsets = [_branch(t, pos, wide=True) for t in targets]
        return (bytes((opcode,)) + pad
                + struct.pack(f">iii{len(offsets)}i", default, low, low + len(offsets) - 1, *offsets))
    pairs = []
    for key, target in insn.extra:
        pairs += [key, _branch(target, pos, wide=True)]
    return (bytes((opcode,)) + pad
            + struct.pack(f">ii{len(pairs)}i", default, len(insn.extra), *pairs))


def encode_code(code: CodeAttribute, pool: ConstantPool) -> bytes:
    """Lay out the instruction list and serialise the whole Code attribute."""
    pos = 0
    for node in code.instructions:
        if isinstance(node, Label):
            node.offset = pos
        else:
            pos += _size(node, pos)
    if not 0 < pos <= 0xFFFF:
        raise ClassFormatError(f"Code length {pos} out of range")

    body = bytearray()
    for node in code.instructions:
        if isinstance(node, Insn):
            body += _encode_insn(node, len(body))

    moved = pos != code.code_length or any(
        node.origin != node.offset for node in code.instructions
        if isinstance(node, Label) and node.origin >= 0
    )

    out = bytearray(struct.pack(">HHI", code.max_stack, code.max_locals, len(body)))
    out += body
    out += struct.pack(">H", len(code.handlers))
    for h in code.handlers:
        out += struct.pack(">HHHH", _resolve(h.start), _resolve(h.end), _resolve(h.handler), h.catch_type)

    attributes: list[tuple[str, bytes]] = []
    if code.line_numbers:
        attributes.append(("LineNumberTable", _encode_line_numbers(code.line_numbers)))
    if code.local_variables:
        attributes.append(("LocalVariableTable", _encode_local_variables(code.local_variables)))
    if code.local_variable_types:
        attributes.append(("LocalVariableTypeTable", _encode_local_variables(code.local_variable_types)))
    if code.frames:
        attributes.append(("StackMapTable", _encode_frames(code.frames)))
    for attribute in code.attributes:
        if moved:
            logger.warning("Dropping %s attribute: code layout changed", attribute.name)
            continue
        attributes.append((attribute.name, attribute.data))

    out += struct.pack(">H", len(attributes))
    for name, data in attributes:
        out += struct.pack(">HI", pool.add_utf8(name), len(data)) + data
    return bytes(out)


def _resolve(label: Label) -> int:
    if label.offset < 0:
        raise ClassFormatError("Label is not in the instruction list")
    return label.offset


def _encode_line_numbers(entries: list[tuple[Label, int]]) -> bytes:
    out = bytearray(struct.pack(">H", len(entries)))
    for label, line in entries:
        out += struct.pack(">HH", _resolve(label), line)
    return bytes(out)


def _encode_local_variables(entries: list[LocalVariable]) -> bytes:
    out = bytearray(struct.pack(">H", len(entries)))
    for v in entries:
        start = _resolve(v.start)
        out += struct.pack(">HHHHH", start, _resolve(v.end) - start, v.name_index, v.descriptor_index, v.index)
    return bytes(out)


def _encode_verification_type(vt: tuple) -> bytes:
    if vt[0] == ITEM_OBJECT:
        return struct.pack(">BH", vt[0], vt[1])
    if vt[0] == ITEM_UNINITIALIZED:
        return struct.pack(">BH", vt[0], _resolve(vt[1]))
    return bytes((vt[0],))


def _encode_frames(frames: list[Frame]) -> bytes:
    out = bytearray(struct.pack(">H", len(frames)))
    previous = -1
    for frame in frames:
        offset = _resolve(frame.label)
        delta = offset - previous - 1
        if delta < 0:
            raise ClassFormatError("Stack map frames out of order")
        previous = offset
        if frame.kind == SAME:
            out += bytes((delta,)) if delta < 64 else struct.pack(">BH", 251, delta)
        elif frame.kind == SAME_LOCALS_1:
            out += bytes((64 + delta,)) if delta < 64 else struct.pack(">BH", 247, delta)
            out += _encode_verification_type(frame.stack[0])
        elif frame.kind == CHOP:
            out += struct.pack(">BH", 251 - frame.chop, delta)
        elif frame.kind == APPEND:
            out += struct.pack(">BH", 251 + len(frame.locals), delta)
            for vt in frame.locals:
                out += _encode_verification_type(vt)
        else:
            out += struct.pack(">BHH", 255, delta, len(frame.locals))
            for vt in frame.locals:
                out += _encode_verification_type(vt)
            out += struct.pack(">H", len(frame.stack))
            for vt in frame.stack:
                out += _encode_verification_type(vt)
    return bytes(out)
