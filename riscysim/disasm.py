"""Disassembly of instruction words for the pipeline trace, and binary text helpers."""

from __future__ import annotations

from riscysim.isa import Opcode, decode_fields, register_name, to_signed32, to_unsigned32

_RTYPE_NAMES = {
    0b001: "sll",
    0b101: "srl",
    0b111: "and",
    0b110: "or",
    0b100: "xor",
    0b010: "slt",
}

_ITYPE_NAMES = {
    0b000: "addi",
    0b010: "slti",
    0b111: "andi",
    0b110: "ori",
    0b100: "xori",
    0b001: "slli",
    0b101: "srli",
}

_BRANCH_NAMES = {
    0b000: "beq",
    0b001: "bne",
    0b100: "blt",
    0b101: "bge",
}

_FIXED_NAMES = {
    Opcode.JALR: "jalr",
    Opcode.ITYPE_LOAD: "lw",
    Opcode.STYPE: "sw",
    Opcode.JAL: "jal",
    Opcode.LUI: "lui",
}

_INVALID = "INVALID INSTRUCTION"
_PAD_NARROW = " " * 11
_PAD_WIDE = " " * 15


def instruction_name(op: int, funct3: int, funct7: int) -> str:
    """Return the mnemonic for an opcode/funct3/funct7 triple, or "" if unknown."""
    if op == Opcode.RTYPE:
        if funct3 == 0b000:
            return "sub" if funct7 else "add"
        return _RTYPE_NAMES.get(funct3, "")
    if op == Opcode.ITYPE_ARITH:
        return _ITYPE_NAMES.get(funct3, "")
    if op == Opcode.BTYPE:
        return _BRANCH_NAMES.get(funct3, "")
    try:
        return _FIXED_NAMES[Opcode(op)]
    except (ValueError, KeyError):
        return ""


def _render(inst: int, mode: int) -> tuple[str, bool]:
    """Return the disassembled text and whether it uses the wide padding."""
    inst = to_unsigned32(inst)
    fields = decode_fields(inst)
    show_name = bool(mode & 0b01)
    show_dec = bool(mode & 0b10)

    def reg(index: int) -> str:
        return register_name(index) if show_name else f"x{index}"

    def imm(value: int) -> str:
        return str(to_signed32(value)) if show_dec else f"0x{to_unsigned32(value):X}"

    rd, rs1, rs2 = reg(fields.rd), reg(fields.rs1), reg(fields.rs2)
    name = f"{instruction_name(fields.opcode, fields.funct3, fields.funct7):<4}"
    op = fields.opcode

    if op == Opcode.RTYPE:
        return f"{name} {rd}, {rs1}, {rs2}", False
    if op in (Opcode.JALR, Opcode.ITYPE_ARITH):
        return f"{name} {rd}, {rs1}, {imm(fields.imm)}", False
    if op == Opcode.STYPE:
        return f"{name} {rs2}, {imm(fields.imm)}({rs1})", False
    if op == Opcode.ITYPE_LOAD:
        return f"{name} {rd}, {imm(fields.imm)}({rs1})", False
    if op == Opcode.BTYPE:
        return f"{name} {rs1}, {rs2}, {imm(fields.imm)}", False
    if op == Opcode.LUI:
        return f"{name} {rd}, {imm((inst & 0xFFFFF000) >> 12)}", True
    if op == Opcode.JAL:
        return f"{name} {rd}, {imm(fields.imm)}", True
    return _INVALID, True


def format_instruction(inst: int, mode: int = 3) -> str:
    """Disassemble one instruction word.

    Bit 0 of ``mode`` selects ABI register names, bit 1 decimal immediates.
    """
    return _render(inst, mode)[0]


def format_stage(stage: str, inst: int, mode: int = 3, parallel: bool = False) -> str:
    """Format one pipe-trace entry: a padded stage label and the instruction.

    A parallel entry is padded with spaces so another entry can follow on the
    same line; otherwise the entry ends the line.
    """
    text, wide = _render(inst, mode)
    if parallel:
        tail = _PAD_WIDE if wide else _PAD_NARROW
    else:
        tail = "\n"
    return f"{stage:<12} {text}{tail}"


def to_binary(num: int, size: int) -> str:
    """Return the low ``size`` bits of ``num`` as a string of 0s and 1s, MSB first."""
    return "".join("1" if (num >> bit) & 1 else "0" for bit in reversed(range(size)))


def parse_binary(text: str) -> int:
    """Parse a string of 0s and 1s into a signed 32-bit value; anything else gives 0."""
    if not text or any(ch not in "01" for ch in text):
        return 0
    return to_signed32(int(text, 2))