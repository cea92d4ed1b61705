"""Branch target buffer and two-bit direction predictor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

BTB_SIZE = 32
BHT_SIZE = 32
BHSR_BITS = 5

_INDEX_MASK = 0x1F
_BHSR_MASK = (1 << BHSR_BITS) - 1

# Two-bit predictor states: N = '00', NT = '01', TN = '10', T = '11'
_STRONG_NOT_TAKEN = 0
_STRONG_TAKEN = 3
_FIRST_TAKEN_STATE = 2


class PredictorMode(IntEnum):
    """Which branch predictor is in use."""

    NOT_TAKEN = 0
    ONE_LEVEL = 1
    TWO_LEVEL = 2


@dataclass
class BTBEntry:
    """One entry of the branch target buffer."""

    inst_addr: int = 0
    branch_target: int = 0
    valid: bool = False


class BranchPredictor:
    """Branch target buffer, branch history table and history shift register.

    The one-level predictor indexes both tables with bits 6..2 of the
    instruction address; the two-level predictor indexes them with the
    branch history shift register.
    """

    def __init__(self, mode: PredictorMode | int = PredictorMode.NOT_TAKEN) -> None:
        self.mode = PredictorMode(mode)
        self.btb: list[BTBEntry] = [BTBEntry() for _ in range(BTB_SIZE)]
        self.bht: list[int] = [_STRONG_NOT_TAKEN] * BHT_SIZE
        self.bhsr = 0

    def _index(self, inst_addr: int) -> int | None:
        if self.mode == PredictorMode.ONE_LEVEL:
            return (inst_addr >> 2) & _INDEX_MASK
        if self.mode == PredictorMode.TWO_LEVEL:
            return self.bhsr & _INDEX_MASK
        return None

    def lookup(self, inst_addr: int) -> bool:
        """True when the BTB holds a valid entry for this instruction address."""
        index = self._index(inst_addr)
        if index is None:
            return False
        entry = self.btb[index]
        return entry.valid and entry.inst_addr == inst_addr

    def target(self, inst_addr: int) -> int:
        """Return the branch target stored in the BTB slot for this address."""
        index = self._index(inst_addr)
        if index is None:
            return 0
        return self.btb[index].branch_target

    def update_target(self, inst_addr: int, branch_target: int) -> None:
        """Record a branch and its target in the BTB."""
        index = self._index(inst_addr)
        if index is None:
            return
        self.btb[index] = BTBEntry(inst_addr=inst_addr, branch_target=branch_target, valid=True)

    def predict(self, inst_addr: int) -> bool:
        """Predict the branch direction: True for taken."""
        index = self._index(inst_addr)
        if index is None:
            return False
        return self.bht[index] >= _FIRST_TAKEN_STATE

    def update_direction(self, taken: bool | int, inst_addr: int) -> None:
        """Move the two-bit counter towards the actual outcome and record it in the history."""
        index = self._index(inst_addr)
        if index is None:
            return
        state = self.bht[index]
        if taken:
            state = min(state + 1, _STRONG_TAKEN)
        else:
            state = max(state - 1, _STRONG_NOT_TAKEN)
        self.bht[index] = state
        if self.mode == PredictorMode.TWO_LEVEL:
            self.bhsr = ((self.bhsr << 1) | (1 if taken else 0)) & _BHSR_MASK