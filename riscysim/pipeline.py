"""Five-stage pipeline with split ALU and load/store execution units."""

from __future__ import annotations

from dataclasses import dataclass

from riscysim.cache import CacheMode, make_cache
from riscysim.isa import (
    ADD_SUB,
    AND,
    BEQ,
    BGE,
    BLT,
    BNE,
    OR,
    SLL,
    SLT,
    SRL,
    SUB_F7,
    XOR,
    Opcode,
    to_signed32,
    to_unsigned32,
)
from riscysim.lsu import LoadStoreUnit, MemoryStats
from riscysim.predictor import BranchPredictor, PredictorMode
from riscysim.state import Forward, State, nop_state

NUM_REGISTERS = 32

_MEMORY_OPS = (Opcode.ITYPE_LOAD, Opcode.STYPE)
_WRITES_ALU = (Opcode.RTYPE, Opcode.ITYPE_ARITH, Opcode.LUI)
_JUMPS = (Opcode.JAL, Opcode.JALR)
_READS_RS1 = (
    Opcode.RTYPE,
    Opcode.STYPE,
    Opcode.BTYPE,
    Opcode.ITYPE_LOAD,
    Opcode.ITYPE_ARITH,
    Opcode.JALR,
)
_READS_RS2 = (Opcode.RTYPE, Opcode.STYPE, Opcode.BTYPE)


class PipelineError(RuntimeError):
    """The pipeline reached a state it cannot process."""


@dataclass
class Config:
    """Simulator features that can be switched on."""

    forwarding: bool = False
    ooo: bool = False
    branch_prediction: PredictorMode = PredictorMode.NOT_TAKEN
    dcache: CacheMode = CacheMode.DISABLED

    def __post_init__(self) -> None:
        self.forwarding = bool(self.forwarding)
        self.ooo = bool(self.ooo)
        self.branch_prediction = PredictorMode(self.branch_prediction)
        self.dcache = CacheMode(self.dcache)


def _hits(forward: Forward, register: int) -> bool:
    return bool(forward.write_enable) and forward.register == register


def _alu(state: State) -> int | None:
    a, b = state.alu_in1, state.alu_in2
    funct3 = state.funct3
    if funct3 == ADD_SUB:
        return a - b if state.funct7 == SUB_F7 else a + b
    if funct3 == SLT:
        return int(a < b)
    if funct3 == SLL:
        return a << (b & 0x1F)
    if funct3 == SRL:
        return a >> (b & 0x1F)
    if funct3 == AND:
        return a & b
    if funct3 == OR:
        return a | b
    if funct3 == XOR:
        return a ^ b
    return None


def _branch_taken(state: State) -> bool:
    a, b = state.alu_in1, state.alu_in2
    funct3 = state.funct3
    if funct3 == BEQ:
        return a == b
    if funct3 == BNE:
        return a != b
    if funct3 == BLT:
        return a < b
    if funct3 == BGE:
        return a >= b
    return False


class Pipeline:
    """Fetch, decode, ALU execute, two load/store units and writeback.

    Each ``*_out`` attribute is a latch as it stood at the start of the
    cycle; the matching ``*_out_n`` attribute is its value for the next
    cycle. ``step`` runs all stages once and moves ``*_out_n`` into
    ``*_out``.
    """

    def __init__(self, memory: list[int], config: Config | None = None) -> None:
        self.memory = memory
        self.config = config if config is not None else Config()
        self.registers = [0] * NUM_REGISTERS
        self.pc = 0
        self.pc_n = 0
        self.cycle_pc = 0

        self.predictor = BranchPredictor(self.config.branch_prediction)
        self.cache = make_cache(self.config.dcache)
        self.stats = MemoryStats()
        self.lsu1 = LoadStoreUnit(1, memory, self.cache, self.stats)
        self.lsu2 = LoadStoreUnit(2, memory, self.cache, self.stats)

        self.fetch_out, self.fetch_out_n = nop_state(), nop_state()
        self.decode_out, self.decode_out_n = nop_state(), nop_state()
        self.ex_out, self.ex_out_n = nop_state(), nop_state()
        self.ex_ld_st_out, self.ex_ld_st_out_n = nop_state(), nop_state()
        self.ex_ld_st_2_out, self.ex_ld_st_2_out_n = nop_state(), nop_state()
        self.wb_out, self.wb_out_n = nop_state(), nop_state()
        self.wb_ld_st_out, self.wb_ld_st_out_n = nop_state(), nop_state()
        self.wb_ld_st_2_out, self.wb_ld_st_2_out_n = nop_state(), nop_state()

        self.pipe_stall = False
        self.j_taken = False
        self.br_mispredicted = False

        self.fwd_exe = Forward()
        self.fwd_wb = Forward()
        self.fwd_ld_st_wb = Forward()
        self.fwd_ld_st_2_wb = Forward()

        self.total_branches = 0
        self.correctly_predicted_branches = 0
        self.instruction_counter = 0
        self.cycle = 0

    # ------------------------------------------------------------------ fetch

    def fetch(self) -> State:
        """Fetch the instruction at ``pc`` and choose the next PC."""
        word_index = self.pc // 4
        if not 0 <= word_index < len(self.memory):
            raise PipelineError(f"fetch address out of memory: {self.pc}")
        fetched = self.fetch_out_n.copy()
        fetched.inst = to_unsigned32(self.memory[word_index])
        fetched.inst_addr = self.pc

        if self.j_taken or self.br_mispredicted:
            return nop_state()
        if self.pipe_stall:
            return self.fetch_out.copy()

        if self.predictor.mode in (PredictorMode.ONE_LEVEL, PredictorMode.TWO_LEVEL):
            if self.predictor.lookup(self.pc) and self.predictor.predict(self.pc):
                self.pc_n = self.predictor.target(self.pc)
                fetched.br_predicted = 1
            else:
                self.pc_n = to_unsigned32(self.pc + 4)
                fetched.br_predicted = 0
        else:
            self.pc_n = to_unsigned32(fetched.inst_addr + 4)
        return fetched

    # ----------------------------------------------------------------- decode

    def _stall(self) -> State:
        self.pipe_stall = True
        return nop_state()

    def _source(self, register: int) -> tuple[int, bool] | None:
        """Most recent value of ``register`` and whether it was forwarded; None to stall."""
        value = self.registers[register]
        hazard = False
        if _hits(self.fwd_exe, register):
            value, hazard = self.fwd_exe.value, True
        elif _hits(self.lsu1.forward, register):
            value, hazard = self.lsu1.forward.value, True
            if self.lsu1.busy:
                return None
        elif _hits(self.lsu2.forward, register):
            value, hazard = self.lsu2.forward.value, True
            if self.lsu2.busy:
                return None
        elif _hits(self.fwd_wb, register):
            value, hazard = self.fwd_wb.value, True

        if self.config.ooo:
            if _hits(self.fwd_ld_st_wb, register):
                value, hazard = self.fwd_ld_st_wb.value, True
            if _hits(self.fwd_ld_st_2_wb, register):
                value, hazard = self.fwd_ld_st_2_wb.value, True
        return value, hazard

    def _ooo_blocks(self, state: State) -> bool:
        """True when out-of-order issue of ``state`` must wait this cycle."""
        u1, u2 = self.lsu1, self.lsu2
        op = state.opcode
        is_mem = op in _MEMORY_OPS

        if not is_mem:
            if u1.busy and u1.forward.register == state.rd and u1.forward.write_enable:
                return True
            if u2.busy and u2.forward.register == state.rd and u2.forward.write_enable:
                return True

        if is_mem and u1.busy and u2.busy:
            return True

        if op == Opcode.STYPE:
            if u1.busy and self.ex_ld_st_out_n.opcode in _MEMORY_OPS and u1.cycles >= 1:
                return True
            if u2.busy and self.ex_ld_st_2_out_n.opcode in _MEMORY_OPS and u2.cycles >= 1:
                return True

        if op == Opcode.ITYPE_LOAD:
            if u1.busy and (
                (self.ex_ld_st_out_n.opcode == Opcode.STYPE and u1.cycles == 1)
                or (self.ex_ld_st_out.opcode == Opcode.STYPE and u1.cycles > 1)
            ):
                return True
            if u2.busy and (
                (self.ex_ld_st_2_out_n.opcode == Opcode.STYPE and u2.cycles == 1)
                or (self.ex_ld_st_2_out.opcode == Opcode.STYPE and u2.cycles > 1)
            ):
                return True

        if is_mem:
            if not u1.busy and not u2.busy:
                state.ld_st_unit = 1
            if u1.busy and not u2.busy:
                state.ld_st_unit = 2
            if u2.busy and not u1.busy:
                state.ld_st_unit = 1

        is_terminator = (
            op == Opcode.ITYPE_ARITH and state.rd == 0 and state.rs1 == 0 and state.imm == 1
        )
        return is_terminator and (u1.busy or u2.busy)

    def decode(self) -> State:
        """Decode the fetched instruction, read operands and detect hazards."""
        state = self.fetch_out.copy()
        self.pipe_stall = False
        self.j_taken = False
        if self.br_mispredicted:
            return nop_state()

        state.decode()
        op = state.opcode

        rs1_value = self.registers[state.rs1]
        rs2_value = self.registers[state.rs2]
        raw_hazard = False

        if op in _READS_RS1 and state.rs1 != 0:
            source = self._source(state.rs1)
            if source is None:
                return self._stall()
            rs1_value, hazard = source
            raw_hazard = raw_hazard or hazard

        if op in _READS_RS2 and state.rs2 != 0:
            source = self._source(state.rs2)
            if source is None:
                return self._stall()
            rs2_value, hazard = source
            raw_hazard = raw_hazard or hazard

        if self.config.ooo and self._ooo_blocks(state):
            return self._stall()

        if not self.config.ooo and self.lsu1.busy:
            return self._stall()

        if not self.config.forwarding and raw_hazard:
            return self._stall()

        if op == Opcode.RTYPE:
            state.alu_in1 = to_unsigned32(rs1_value)
            state.alu_in2 = to_unsigned32(rs2_value)
        elif op in (Opcode.JALR, Opcode.ITYPE_ARITH, Opcode.ITYPE_LOAD):
            state.alu_in1 = to_unsigned32(rs1_value)
            state.alu_in2 = state.imm
            if op == Opcode.JALR:
                self.j_taken = True
                state.link_addr = to_unsigned32(state.inst_addr + 4)
                self.pc_n = to_unsigned32(rs1_value + state.imm)
            if op == Opcode.ITYPE_LOAD and not self.config.ooo:
                state.ld_st_unit = 1
        elif op == Opcode.STYPE:
            state.alu_in1 = to_unsigned32(rs1_value)
            state.alu_in2 = state.imm
            state.mem_buffer = to_signed32(rs2_value)
            if not self.config.ooo:
                state.ld_st_unit = 1
        elif op == Opcode.BTYPE:
            state.alu_in1 = to_unsigned32(rs1_value)
            state.alu_in2 = to_unsigned32(rs2_value)
            state.br_addr = to_unsigned32(state.inst_addr + state.imm)
        elif op == Opcode.JAL:
            self.j_taken = True
            state.link_addr = to_unsigned32(state.inst_addr + 4)
            self.pc_n = to_unsigned32(state.inst_addr + state.imm)
        return state

    # ---------------------------------------------------------------- execute

    def _resolve_branch(self, state: State) -> None:
        taken = _branch_taken(state)
        self.total_branches += 1
        if self.predictor.mode in (PredictorMode.ONE_LEVEL, PredictorMode.TWO_LEVEL):
            if taken != bool(state.br_predicted):
                self.br_mispredicted = True
                self.pc_n = state.br_addr if taken else to_unsigned32(state.inst_addr + 4)
            else:
                self.correctly_predicted_branches += 1
            self.predictor.update_target(state.inst_addr, state.br_addr)
            self.predictor.update_direction(taken, state.inst_addr)
        elif taken:
            self.br_mispredicted = True
            self.pc_n = state.br_addr
        else:
            self.correctly_predicted_branches += 1

    def execute(self) -> State:
        """Run the ALU stage on everything that is not a load or store."""
        state = self.decode_out.copy()
        self.fwd_exe = Forward()
        self.br_mispredicted = False

        if state.is_nop() or state.opcode in _MEMORY_OPS:
            return nop_state()

        op = state.opcode
        write_enable = False
        if op in (Opcode.RTYPE, Opcode.ITYPE_ARITH):
            result = _alu(state)
            if result is not None:
                state.alu_out = to_unsigned32(result)
            write_enable = True
        elif op == Opcode.BTYPE:
            self._resolve_branch(state)
        elif op == Opcode.LUI:
            write_enable = True
            state.alu_out = state.inst & 0xFFFFF000
        elif op in _JUMPS:
            write_enable = True

        value = state.link_addr if op in _JUMPS else state.alu_out
        self.fwd_exe = Forward(write_enable=write_enable, register=state.rd, value=value)
        return state

    # -------------------------------------------------------------- writeback

    def _write_register(self, register: int, value: int) -> None:
        self.registers[register] = to_signed32(value)

    def _retire(self, state: State, loads: bool) -> None:
        op = state.opcode
        if op in _WRITES_ALU:
            self.fwd_wb = Forward(write_enable=True, register=state.rd, value=state.alu_out)
            self._write_register(state.rd, state.alu_out)
        elif op == Opcode.ITYPE_LOAD and loads:
            self.fwd_wb = Forward(write_enable=True, register=state.rd, value=state.mem_buffer)
            self._write_register(state.rd, state.mem_buffer)
        elif op in _JUMPS:
            self.fwd_wb = Forward(write_enable=state.rd != 0, register=state.rd)
            if state.rd != 0:
                self._write_register(state.rd, state.link_addr)

    def _retire_load(self, state: State) -> Forward:
        if state.opcode != Opcode.ITYPE_LOAD:
            return Forward()
        self._write_register(state.rd, state.mem_buffer)
        return Forward(write_enable=True, register=state.rd, value=state.mem_buffer)

    def writeback(self) -> None:
        """Commit finished instructions to the register file."""
        self.fwd_wb = Forward()
        alu_valid = not self.ex_out.is_nop()
        mem_valid = not self.ex_ld_st_out.is_nop()

        if not self.config.ooo:
            if mem_valid and alu_valid:
                raise PipelineError(
                    "writeback cannot process valid instructions from both "
                    "execute and execute_ld_st stages"
                )
            if mem_valid:
                chosen = self.ex_ld_st_out.copy()
                if self.lsu1.busy:
                    chosen = chosen.as_bubble()
            else:
                chosen = self.ex_out.copy()
            self.wb_out_n = chosen
            self._retire(chosen, loads=True)
            return

        self.fwd_ld_st_wb = Forward()
        self.fwd_ld_st_2_wb = Forward()

        if mem_valid and self.lsu1.busy:
            source = self.wb_ld_st_out_n if alu_valid else self.ex_ld_st_out
            self.wb_ld_st_out_n = source.as_bubble()
        else:
            self.wb_ld_st_out_n = self.ex_ld_st_out.copy()
        self.wb_out_n = self.ex_out.copy()

        second = self.ex_ld_st_2_out.copy()
        if not second.is_nop() and self.lsu2.busy:
            second = second.as_bubble()
        self.wb_ld_st_2_out_n = second

        self._retire(self.wb_out_n, loads=False)
        self.fwd_ld_st_wb = self._retire_load(self.wb_ld_st_out_n)
        self.fwd_ld_st_2_wb = self._retire_load(self.wb_ld_st_2_out_n)

    # ------------------------------------------------------------------ cycle

    def step(self) -> bool:
        """Simulate one clock cycle; True once register x0 has been written non-zero."""
        self.writeback()
        self.ex_out_n = self.execute()
        update_way = self.ex_ld_st_2_out.cache_line_hit_way
        self.ex_ld_st_out_n = self.lsu1.step(self.decode_out, None, update_way)
        self.ex_ld_st_2_out_n = self.lsu2.step(
            self.decode_out, self.ex_ld_st_out_n.mem_addr, update_way
        )
        self.decode_out_n = self.decode()
        self.fetch_out_n = self.fetch()

        self.cycle += 1
        retired = [self.wb_out_n]
        if self.config.ooo:
            retired += [self.wb_ld_st_out_n, self.wb_ld_st_2_out_n]
        self.instruction_counter += sum(not state.is_nop() for state in retired)

        terminated = self.registers[0] != 0

        self.cycle_pc = self.pc
        self.pc = self.pc_n
        self.decode_out = self.decode_out_n
        self.fetch_out = self.fetch_out_n
        self.ex_out = self.ex_out_n
        self.ex_ld_st_out = self.ex_ld_st_out_n
        self.ex_ld_st_2_out = self.ex_ld_st_2_out_n
        self.wb_out = self.wb_out_n
        self.wb_ld_st_out = self.wb_ld_st_out_n
        self.wb_ld_st_2_out = self.wb_ld_st_2_out_n
        return terminated