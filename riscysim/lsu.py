"""Multi-cycle load/store execution units with optional data cache."""

from __future__ import annotations

from dataclasses import dataclass

from riscysim.cache import DataCache
from riscysim.isa import Opcode, to_unsigned32
from riscysim.state import Forward, State, nop_state

#: Cycles a load or store takes when it goes to main memory.
DMEM_ACCESS_CYCLES = 6
#: Cycles a load or store takes when it hits in the data cache.
DCACHE_ACCESS_CYCLES = 2

_MEMORY_OPS = (Opcode.ITYPE_LOAD, Opcode.STYPE)


@dataclass
class MemoryStats:
    """Data memory access counters shared by the load/store units."""

    accesses: int = 0
    hits: int = 0

    def hit_rate(self) -> float:
        """Cache hit rate in percent; 0.0 when there were no accesses."""
        if not self.accesses:
            return 0.0
        return self.hits / self.accesses * 100


class LoadStoreUnit:
    """One load/store functional unit.

    A load or store allocated to this unit computes its address in the
    first cycle, then keeps the unit busy until its access time has passed;
    the memory access itself happens in the last cycle.

    After each ``step`` the returned latch is kept in ``latch`` and the
    latch from before the step in ``previous``. ``forward`` holds the
    result offered to the decode stage for this cycle.
    """

    def __init__(
        self,
        unit: int,
        memory: list[int],
        cache: DataCache | None = None,
        stats: MemoryStats | None = None,
    ) -> None:
        self.unit = unit
        self.memory = memory
        self.cache = cache
        self.stats = stats if stats is not None else MemoryStats()
        self.busy = False
        self.cycles = 0
        self.access_cycles = 0
        self.forward = Forward()
        self.latch: State = nop_state()
        self.previous: State = nop_state()

    def _commit(self, result: State) -> State:
        self.previous = self.latch
        self.latch = result
        return result

    def step(
        self,
        incoming: State,
        lookup_addr: int | None = None,
        update_way: int = 0,
    ) -> State:
        """Advance the unit by one cycle and return its output latch.

        ``incoming`` is the latch from the decode stage. ``lookup_addr`` is
        the address probed in the cache when a new access starts; it
        defaults to the access's own address. ``update_way`` is the way
        handed to the cache when an access finishes.
        """
        self.forward = Forward()

        if self.busy:
            return self._commit(self._continue(update_way))

        if incoming.opcode in _MEMORY_OPS and incoming.ld_st_unit == self.unit:
            return self._commit(self._start(incoming.copy(), lookup_addr))

        self.busy = False
        return self._commit(nop_state())

    def _continue(self, update_way: int) -> State:
        held = self.latch.copy()
        self.busy = False
        self.cycles += 1
        if self.cycles < self.access_cycles:
            self.busy = True
            if held.opcode == Opcode.ITYPE_LOAD:
                self.forward = Forward(write_enable=True, register=held.rd)
            return held

        self.cycles = 1
        if self.cache is not None:
            self.cache.update(held.mem_addr, update_way)

        if held.opcode == Opcode.ITYPE_LOAD:
            held.mem_buffer = self.memory[held.mem_addr]
            self.forward = Forward(
                write_enable=True, register=held.rd, value=held.mem_buffer
            )
        elif held.opcode == Opcode.STYPE:
            self.memory[held.mem_addr] = held.mem_buffer
        return held

    def _start(self, state: State, lookup_addr: int | None) -> State:
        self.busy = True
        self.cycles = 1
        if state.opcode == Opcode.ITYPE_LOAD:
            self.forward = Forward(write_enable=True, register=state.rd)
        state.mem_addr = to_unsigned32(state.alu_in1 + state.alu_in2)

        if self.cache is None:
            self.access_cycles = DMEM_ACCESS_CYCLES
            return state

        probe = state.mem_addr if lookup_addr is None else lookup_addr
        hit = self.cache.lookup(probe)
        self.stats.accesses += 1
        if hit is not None:
            self.stats.hits += 1
            self.access_cycles = DCACHE_ACCESS_CYCLES
        else:
            self.access_cycles = DMEM_ACCESS_CYCLES
        return state