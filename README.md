# riscysim

A cycle-level simulator of a small RV32I subset running on a pipelined
processor model. The pipeline has fetch, decode, a single-cycle ALU execute
stage, two multi-cycle load/store units and writeback. Optional features:

- forwarding of results to the decode stage,
- out-of-order completion of loads and stores across the two load/store
  units (without it, only the first unit is used),
- dynamic branch prediction, one-level or two-level, with a 32-entry branch
  target buffer, a table of 32 two-bit counters and a 5-bit history register;
  with it off, branches are predicted not taken,
- a 256-byte data cache with 16-byte lines: direct mapped, 2-way or 4-way
  set associative. A load or store takes 6 cycles, or 2 on a cache hit.

Supported instructions: `add sub slt sll srl and or xor`, the immediate
forms `addi slti sll srli andi ori xori`, `lw`, `sw`, `beq bne blt bge`,
`lui`, `jal` and `jalr`.

## Installing

```
pip install .
```

Install with the `test` extra (`pip install .[test]`) to run the test suite
with pytest.

## Program files

A program is a text file with one 32-bit word per line, written as binary
digits. The instructions come first and are loaded from word 0 of memory. A
line of 32 ones ends the text section; the lines after it are data words,
loaded from word 256 onward. A file without that line has no data section.
A line holding anything other than `0` and `1` loads as zero. Memory holds
16384 words.

The simulation stops when the program writes a non-zero value to register
`x0` (for example `addi zero, zero, 1`), and gives up after 25,000 cycles.

## Running

```
riscysim PROGRAM_FILE FORWARDING_ENABLED OOO_ENABLED DYNAMIC_BP_ENABLED DATA_CACHE_ENABLED
```

| Argument | Values |
|---|---|
| `FORWARDING_ENABLED` | `0` off, `1` on |
| `OOO_ENABLED` | `0` off, `1` on |
| `DYNAMIC_BP_ENABLED` | `0` predict not taken, `1` one-level, `2` two-level |
| `DATA_CACHE_ENABLED` | `0` off, `1` direct mapped, `2` 2-way, `3` 4-way |

For example:

```
riscysim program.txt 1 1 2 3
```

The command prints which features are enabled and the loaded memory image,
then the number of committed instructions, cycles, average CPI, branch
prediction accuracy and cache hit rate, followed by a register dump and the
data words that hold neither 0 nor -1. It exits with status 1 on a wrong
number of arguments, an out-of-range setting, an unreadable program file or
a run that reaches the cycle limit.

It also writes these files into the current directory:

- `pipe_trace.txt`: for every cycle, the instruction in each stage and the
  register file,
- `mdump.txt`: every word of memory,
- `bdump.txt`: the branch target buffer and the branch history table,
- `cdump.txt`: the data cache contents, only when a cache is enabled.

## Using it from Python

```python
from riscysim.pipeline import Config
from riscysim.program import load_program
from riscysim.simulator import Simulator

with open("program.txt") as handle:
    program = load_program(handle)

config = Config(forwarding=True, ooo=True, branch_prediction=2, dcache=3)
simulator = Simulator(program.memory, config)
cycles = simulator.run()
print(simulator.summary())
print(simulator.pipeline.registers)
```

`Simulator.run` raises `SimulationTimeout` after 25,000 cycles; the pipeline
raises `PipelineError` when it cannot proceed. Pass an open text file as the
third argument of `Simulator` to get a pipe trace; `Simulator.trace_mode`
chooses register names (bit 0) and decimal immediates (bit 1) in it.

The modules:

- `riscysim.isa`: opcodes, register names and `decode_fields`,
- `riscysim.disasm`: `format_instruction`, `format_stage`, `to_binary`,
  `parse_binary`,
- `riscysim.program`: `load_program` and `new_memory`,
- `riscysim.predictor`: `BranchPredictor`,
- `riscysim.cache`: `make_cache` and the `DirectMappedCache`, `TwoWayCache`
  and `FourWayCache` classes,
- `riscysim.lsu`: `LoadStoreUnit` and `MemoryStats`,
- `riscysim.pipeline`: `Pipeline`, whose `step` runs one clock cycle,
- `riscysim.dumps`: text dumps of registers, memory, predictor and cache,
- `riscysim.simulator`: `Simulator` and the `main` command.

## What it does not do

There is no assembler: programs must already be encoded as binary words.
Only word loads and stores (`lw`, `sw`) are modelled, the cache tracks tags
and never holds data, and instructions outside the list above are not
executed.