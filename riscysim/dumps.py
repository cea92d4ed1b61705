"""Text dumps of registers, memory, branch predictor and data cache state."""

from __future__ import annotations

import math
from collections.abc import Sequence

from riscysim.cache import CacheMode, DataCache
from riscysim.disasm import instruction_name, to_binary
from riscysim.isa import Opcode, register_name, to_unsigned32
from riscysim.predictor import BranchPredictor
from riscysim.program import DATA_START

_INDEX_WIDTH = 4
_NAME_WIDTH = 5
_VALUE_WIDTH = 8
_TAB = 4
_COL_SEP = 2 * _TAB

_REGISTER_BANNER = (
    "---------------------\n"
    "--- Register Dump ---\n"
    "---------------------\n"
)

_MODIFIED_BANNER = (
    "\n----------------------------\n"
    "--- Updated Memory Dump ---\n"
    "----------------------------\n"
)

_BTB_HEADER = (
    "**** Branch Target Buffer Info ****\n"
    "Index   Inst Type   Address   Target Address   Valid\n"
    "-----   ---------   -------   --------------   -----\n"
)

_BHT_HEADER = (
    "\n\n**** Branch History Info ****\n"
    "Bit Pattern   Predictor State\n"
    "-----------   ---------------\n"
)


def _column_end(col: int, columns: int) -> str:
    return "\n" if col == columns - 1 else " " * _COL_SEP


def register_dump(registers: Sequence[int], pc: int, columns: int = 4) -> str:
    """Format the register file in ``columns`` columns, followed by the PC."""
    if columns <= 0:
        raise ValueError("columns must be positive")
    count = len(registers)
    rows = math.ceil(count / columns)
    parts = [_REGISTER_BANNER]

    for col in range(columns):
        parts.append(
            f"{'Index':<{_INDEX_WIDTH + _TAB}}"
            f"{'Name':<{_NAME_WIDTH + _TAB}}"
            f"{'Value':<{_VALUE_WIDTH + 2}}"
        )
        parts.append(_column_end(col, columns))
    for col in range(columns):
        parts.append(
            f"{'-----':<{_INDEX_WIDTH + _TAB}}"
            f"{'----':<{_NAME_WIDTH + _TAB}}"
            f"{'-----':<{_VALUE_WIDTH + 2}}"
        )
        parts.append(_column_end(col, columns))

    gap = " " * (_TAB - 1)
    for row in range(rows):
        for col in range(columns):
            index = row + col * rows
            if index >= count:
                parts.append("\n")
                break
            parts.append(
                f"x{index:<{_INDEX_WIDTH}}{gap}"
                f"{register_name(index):<{_NAME_WIDTH}}{gap}"
                f" 0x{to_unsigned32(registers[index]):0{_VALUE_WIDTH}X}"
            )
            parts.append(_column_end(col, columns))

    parts.append(
        f"{'N/A':<{_INDEX_WIDTH}}{'':{_TAB}}{'pc':<{_NAME_WIDTH}}{'':{_TAB}}"
        f"0x{to_unsigned32(pc):08X}\n"
    )
    return "".join(parts)


def memory_dump(memory: Sequence[int]) -> str:
    """Format every memory word, one per line."""
    return "".join(
        f"Memory[{index}] = 0x{to_unsigned32(value):08X}\n"
        for index, value in enumerate(memory)
    )


def modified_memory_dump(memory: Sequence[int]) -> str:
    """Format the data memory words that hold something other than 0 or -1."""
    lines = (
        f"Memory[{index}] = 0x{to_unsigned32(value):08X}\n"
        for index, value in enumerate(memory)
        if index >= DATA_START and value not in (0, -1)
    )
    return _MODIFIED_BANNER + "".join(lines)


def branch_dump(predictor: BranchPredictor, memory: Sequence[int]) -> str:
    """Format the branch target buffer and the branch history table."""
    parts = [_BTB_HEADER]
    for index, entry in enumerate(predictor.btb):
        kind = ""
        if entry.valid:
            instruction = memory[entry.inst_addr // 4]
            kind = instruction_name(Opcode.BTYPE, (instruction >> 12) & 0x7, 0)
        parts.append(
            f"{index:5d}   {kind:>9}   {entry.inst_addr:7d}   "
            f"{entry.branch_target:14d}   {int(entry.valid):5d}\n"
        )
    parts.append(_BHT_HEADER)
    for index, state in enumerate(predictor.bht):
        parts.append(f"{to_binary(index, 4):>11}   {to_binary(state, 2):>15}\n")
    return "".join(parts)


def cache_dump(cache: DataCache | None) -> str:
    """Format the valid bits, tags and LRU bits of every cache set; "" without a cache."""
    if cache is None:
        return ""
    ways = cache.ways
    parts = [" " * 23]
    parts.extend(f"{'Block':>9} {way}    " for way in range(ways))
    parts.append("\n")
    parts.append("Set No.  LRU b2|b1|b0   " + "Valid  Tag     " * ways + "\n")
    parts.append("-------  ------------   " + "-----  ---     " * ways + "\n")

    for index, cache_set in enumerate(cache.sets):
        if cache.mode == CacheMode.DIRECT_MAPPED:
            lru = "000"
        else:
            lru = to_binary(cache_set.lru_tree, 3)
        parts.append(f"{index:7d}       {lru[0]}  {lru[1]}  {lru[2]}   ")
        parts.extend(
            f"{int(block.valid):5d}  {block.tag:3d}     " for block in cache_set.blocks
        )
        parts.append("\n")
    return "".join(parts)