"""Instruction-set constants, register names and field decoding for the RV32I subset."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

MASK32 = 0xFFFFFFFF

#: Encoding of ``addi x0, x0, 0``, used as the pipeline bubble.
NOP_INST = 0x00000013


class Opcode(IntEnum):
    """Major opcodes understood by the simulator."""

    ITYPE_LOAD = 0x03
    ITYPE_ARITH = 0x13
    STYPE = 0x23
    RTYPE = 0x33
    LUI = 0x37
    BTYPE = 0x63
    JALR = 0x67
    JAL = 0x6F


# funct3 values for R-type and I-type arithmetic
ADD_SUB = 0b000
SUB = 0b000
SLT = 0b010
SLL = 0b001
SRL = 0b101
AND = 0b111
OR = 0b110
XOR = 0b100

# funct3 values for loads, stores and branches
LW_SW = 0b010
BEQ = 0b000
BNE = 0b001
BLT = 0b100
BGE = 0b101

# funct7 values for R-type
ADD_F7 = 0x00
SUB_F7 = 0x20

REGISTER_NAMES: tuple[str, ...] = (
    "zero", "ra", "sp", "gp", "tp", "t0", "t1", "t2",
    "s0", "s1", "a0", "a1", "a2", "a3", "a4", "a5",
    "a6", "a7", "s2", "s3", "s4", "s5", "s6", "s7",
    "s8", "s9", "s10", "s11", "t3", "t4", "t5", "t6",
)


def to_signed32(value: int) -> int:
    """Interpret the low 32 bits of ``value`` as a two's-complement integer."""
    value &= MASK32
    return value - (1 << 32) if value & 0x80000000 else value


def to_unsigned32(value: int) -> int:
    """Return the low 32 bits of ``value`` as an unsigned integer."""
    return value & MASK32


def register_name(index: int) -> str:
    """Return the ABI name of register ``index`` (0..31)."""
    if not 0 <= index < len(REGISTER_NAMES):
        raise IndexError(f"register index out of range: {index}")
    return REGISTER_NAMES[index]


@dataclass(frozen=True)
class Fields:
    """Fields decoded from one instruction word.

    ``imm`` is the unsigned 32-bit immediate, or ``None`` for formats that
    carry no immediate decoded at this stage (R-type, LUI, unknown opcodes).
    """

    opcode: int
    funct3: int
    funct7: int
    rd: int
    rs1: int
    rs2: int
    imm: int | None


def _immediate(opcode: int, inst: int) -> int | None:
    if opcode in (Opcode.JALR, Opcode.ITYPE_ARITH, Opcode.ITYPE_LOAD):
        value = to_signed32(inst & 0xFFF00000) >> 20
    elif opcode == Opcode.STYPE:
        value = (to_signed32(inst & 0xFE000000) >> 20) | ((inst & 0x00000F80) >> 7)
    elif opcode == Opcode.BTYPE:
        value = (
            (to_signed32(inst & 0x80000000) >> 19)
            | ((inst & 0x7E000000) >> 20)
            | ((inst & 0x00000F00) >> 7)
            | ((inst & 0x00000080) << 4)
        )
    elif opcode == Opcode.JAL:
        value = (
            (to_signed32(inst & 0x80000000) >> 11)
            | ((inst & 0x7FE00000) >> 20)
            | ((inst & 0x00100000) >> 9)
            | (inst & 0x000FF000)
        )
    else:
        return None
    return to_unsigned32(value)


def decode_fields(inst: int) -> Fields:
    """Split a 32-bit instruction word into its fields."""
    inst = to_unsigned32(inst)
    opcode = inst & 0x7F
    return Fields(
        opcode=opcode,
        funct3=(inst >> 12) & 0x7,
        funct7=(inst >> 25) & 0x7F,
        rd=(inst >> 7) & 0x1F,
        rs1=(inst >> 15) & 0x1F,
        rs2=(inst >> 20) & 0x1F,
        imm=_immediate(opcode, inst),
    )