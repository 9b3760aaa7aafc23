"""
JVM opcodes and operand layouts

Only the opcodes the transform engine names are given constants; every
opcode has an entry in OPERANDS describing how its operands are encoded.
"""

NOP = 0x00
ACONST_NULL = 0x01
ICONST_M1 = 0x02
ICONST_0 = 0x03
ICONST_1 = 0x04
ICONST_2 = 0x05
ICONST_3 = 0x06
ICONST_4 = 0x07
ICONST_5 = 0x08
LCONST_0 = 0x09
LCONST_1 = 0x0A
FCONST_0 = 0x0B
FCONST_1 = 0x0C
FCONST_2 = 0x0D
DCONST_0 = 0x0E
DCONST_1 = 0x0F
BIPUSH = 0x10
SIPUSH = 0x11
LDC = 0x12
LDC_W = 0x13
LDC2_W = 0x14
ILOAD = 0x15
LLOAD = 0x16
FLOAD = 0x17
DLOAD = 0x18
ALOAD = 0x19
ILOAD_0 = 0x1A
ALOAD_0 = 0x2A
ISTORE = 0x36
AASTORE = 0x53
POP = 0x57
DUP = 0x59
IINC = 0x84
IFEQ = 0x99
IFNE = 0x9A
IF_ICMPEQ = 0x9F
GOTO = 0xA7
JSR = 0xA8
RET = 0xA9
TABLESWITCH = 0xAA
LOOKUPSWITCH = 0xAB
IRETURN = 0xAC
LRETURN = 0xAD
FRETURN = 0xAE
DRETURN = 0xAF
ARETURN = 0xB0
RETURN = 0xB1
GETSTATIC = 0xB2
PUTSTATIC = 0xB3
GETFIELD = 0xB4
PUTFIELD = 0xB5
INVOKEVIRTUAL = 0xB6
INVOKESPECIAL = 0xB7
INVOKESTATIC = 0xB8
INVOKEINTERFACE = 0xB9
INVOKEDYNAMIC = 0xBA
NEW = 0xBB
NEWARRAY = 0xBC
ANEWARRAY = 0xBD
ARRAYLENGTH = 0xBE
ATHROW = 0xBF
CHECKCAST = 0xC0
INSTANCEOF = 0xC1
WIDE = 0xC4
MULTIANEWARRAY = 0xC5
IFNULL = 0xC6
IFNONNULL = 0xC7
GOTO_W = 0xC8
JSR_W = 0xC9

# Operand layouts
NONE = "none"
BYTE = "byte"            # signed u1 immediate
SHORT = "short"          # signed u2 immediate
LOCAL = "local"          # u1 local index, u2 under wide
CONST = "const"          # u1 constant pool index
CONST_W = "const_w"      # u2 constant pool index
IINC_ = "iinc"           # local index + signed increment
BRANCH = "branch"        # signed u2 offset
BRANCH_W = "branch_w"    # signed u4 offset
INTERFACE = "interface"  # u2 index, u1 count, u1 zero
DYNAMIC = "dynamic"      # u2 index, two zero bytes
ATYPE = "atype"          # u1 primitive array type
MULTI = "multi"          # u2 index, u1 dimensions
TABLE = "table"
LOOKUP = "lookup"
WIDE_ = "wide"

OPERANDS: dict[int, str] = {op: NONE for op in range(0x00, 0xCA)}
OPERANDS[BIPUSH] = BYTE
OPERANDS[SIPUSH] = SHORT
OPERANDS[LDC] = CONST
for _op in (LDC_W, LDC2_W, GETSTATIC, PUTSTATIC, GETFIELD, PUTFIELD,
            INVOKEVIRTUAL, INVOKESPECIAL, INVOKESTATIC, NEW, ANEWARRAY,
            CHECKCAST, INSTANCEOF):
    OPERANDS[_op] = CONST_W
for _op in list(range(ILOAD, ALOAD + 1)) + list(range(ISTORE, ISTORE + 5)) + [RET]:
    OPERANDS[_op] = LOCAL
OPERANDS[IINC] = IINC_
for _op in list(range(IFEQ, JSR + 1)) + [IFNULL, IFNONNULL]:
    OPERANDS[_op] = BRANCH
OPERANDS[GOTO_W] = BRANCH_W
OPERANDS[JSR_W] = BRANCH_W
OPERANDS[INVOKEINTERFACE] = INTERFACE
OPERANDS[INVOKEDYNAMIC] = DYNAMIC
OPERANDS[NEWARRAY] = ATYPE
OPERANDS[MULTIANEWARRAY] = MULTI
OPERANDS[TABLESWITCH] = TABLE
OPERANDS[LOOKUPSWITCH] = LOOKUP
OPERANDS[WIDE] = WIDE_
# 0xCA breakpoint and 0xFE/0xFF impdep never appear in class files

SIZES = {
    NONE: 1, BYTE: 2, SHORT: 3, LOCAL: 2, CONST: 2, CONST_W: 3, IINC_: 3,
    BRANCH: 3, BRANCH_W: 5, INTERFACE: 5, DYNAMIC: 5, ATYPE: 2, MULTI: 4,
}

RETURNS = {
    "V": RETURN, "Z": IRETURN, "C": IRETURN, "B": IRETURN, "S": IRETURN,
    "I": IRETURN, "J": LRETURN, "F": FRETURN, "D": DRETURN,
}

LOADS = {
    "Z": ILOAD, "C": ILOAD, "B": ILOAD, "S": ILOAD, "I": ILOAD,
    "J": LLOAD, "F": FLOAD, "D": DLOAD,
}
