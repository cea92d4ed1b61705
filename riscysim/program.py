"""Loading a program image of binary text lines into simulator memory."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from riscysim.disasm import parse_binary
from riscysim.isa import NOP_INST

MEMORY_WORDS = 16384
DATA_START = 256

#: Line that ends the text section.
TEXT_END_MARKER = "1" * 32


@dataclass
class Program:
    """A loaded memory image and the words written while loading it.

    ``text`` and ``data`` list ``(word index, value)`` pairs in load order.
    """

    memory: list[int]
    text: list[tuple[int, int]] = field(default_factory=list)
    data: list[tuple[int, int]] = field(default_factory=list)


def new_memory() -> list[int]:
    """Return fresh memory: instruction words set to nop, data words set to -1."""
    return [NOP_INST] * DATA_START + [-1] * (MEMORY_WORDS - DATA_START)


def _strip(line: str) -> str:
    return line.split("\n", 1)[0]


def load_program(lines: Iterable[str]) -> Program:
    """Load text words up to the all-ones marker, then data words from index 256.

    Memory after the last text word (or from index 256 when the marker is
    present) is cleared to zero before the data section is copied in.
    Lines that are not binary load as zero.
    """
    memory = new_memory()
    program = Program(memory=memory)
    source = iter(lines)

    index = 0
    for raw in source:
        line = _strip(raw)
        if line == TEXT_END_MARKER:
            memory[index] = NOP_INST
            index = DATA_START
            break
        if index >= MEMORY_WORDS:
            raise ValueError("program does not fit in memory")
        memory[index] = parse_binary(line)
        program.text.append((index, memory[index]))
        index += 1
    else:
        # no marker: the whole input was text and there is no data section
        memory[index:] = [0] * (MEMORY_WORDS - index)
        return program

    memory[index:] = [0] * (MEMORY_WORDS - index)

    for raw in source:
        if index >= MEMORY_WORDS:
            raise ValueError("program does not fit in memory")
        memory[index] = parse_binary(_strip(raw))
        program.data.append((index, memory[index]))
        index += 1

    return program