"""Per-stage pipeline latch contents and forwarding signals."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from riscysim.isa import NOP_INST, Opcode, decode_fields


@dataclass
class State:
    """Contents of a pipeline latch: the instruction and everything derived from it."""

    inst: int = 0
    inst_addr: int = 0

    opcode: int = 0
    funct3: int = 0
    funct7: int = 0
    rd: int = 0
    rs1: int = 0
    rs2: int = 0
    imm: int = 0

    mem_buffer: int = 0
    mem_addr: int = 0

    br_addr: int = 0
    link_addr: int = 0
    br_predicted: int = 0

    alu_in1: int = 0
    alu_in2: int = 0
    alu_out: int = 0

    cache_line_hit_way: int = 0

    # 0 for none, 1 for the first load/store unit, 2 for the second
    ld_st_unit: int = 0

    def decode(self) -> None:
        """Fill the decoded fields from ``inst``; the immediate is kept when the format has none."""
        fields = decode_fields(self.inst)
        self.opcode = fields.opcode
        self.funct3 = fields.funct3
        self.funct7 = fields.funct7
        self.rd = fields.rd
        self.rs1 = fields.rs1
        self.rs2 = fields.rs2
        if fields.imm is not None:
            self.imm = fields.imm

    def is_nop(self) -> bool:
        """True when the latch holds the bubble instruction."""
        return self.inst == NOP_INST

    def as_bubble(self) -> State:
        """Return a copy turned into a harmless ``addi x0, x0, 0``."""
        return dataclasses.replace(
            self,
            inst=NOP_INST,
            opcode=Opcode.ITYPE_ARITH,
            imm=0,
            rs1=0,
            rd=0,
        )

    def copy(self) -> State:
        """Return an independent copy of this latch."""
        return dataclasses.replace(self)


def nop_state() -> State:
    """Return a fresh bubble latch."""
    return State(inst=NOP_INST)


@dataclass
class Forward:
    """A result offered by a stage for forwarding: write enable, target register, value."""

    write_enable: bool = False
    register: int = 0
    value: int = 0