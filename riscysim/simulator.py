"""Cycle loop, pipe trace, statistics and the command-line entry point."""

from __future__ import annotations

import re
import sys
from collections.abc import Sequence
from typing import TextIO

from riscysim.disasm import format_stage
from riscysim.dumps import (
    branch_dump,
    cache_dump,
    memory_dump,
    modified_memory_dump,
    register_dump,
)
from riscysim.isa import to_unsigned32
from riscysim.pipeline import Config, Pipeline, PipelineError
from riscysim.program import Program, load_program

_SEPARATOR = "=" * 129
_USAGE = (
    "usage: simulator PROGRAM_FILE FORWARDING_ENABLED OOO_ENABLED "
    "DYNAMIC_BP_ENABLED DATA_CACHE_ENABLED"
)

_FLAGS = (
    (1, "Pipeline Forwarding",
     "FORWARDING_ENABLED must be either 0 (disabled) or 1 (enabled)."),
    (1, "OOO Execution",
     "OOO_ENABLED must be either 0 (disabled) or 1 (enabled)."),
    (2, "Dynamic Branch Prediction",
     "DYNAMIC_BP_ENABLED must be either 0 (Not Taken Predictor) or 1 "
     "(Single Level Predictor) or 2 (Two Level Predictor)."),
    (3, "Data Cache",
     "DATA_CACHE_ENABLED must be either 0 (disabled) or 1 (Direct Mapped) or 2 "
     "(2-way Set Associative) or 3 (4-way Set Associative)."),
)


class SimulationTimeout(RuntimeError):
    """The program ran for the maximum number of cycles without terminating."""


class Simulator:
    """Runs a pipeline until register x0 is written, optionally writing a pipe trace."""

    MAX_CYCLES = 25000

    def __init__(
        self,
        memory: list[int],
        config: Config | None = None,
        trace: TextIO | None = None,
    ) -> None:
        self.pipeline = Pipeline(memory, config)
        self.trace = trace
        self.trace_mode = 3

    def run(self) -> int:
        """Simulate until termination and return the number of cycles."""
        pipeline = self.pipeline
        while True:
            terminated = pipeline.step()
            if self.trace is not None:
                self.trace.write(self._trace_cycle())
            if pipeline.cycle == self.MAX_CYCLES:
                raise SimulationTimeout(
                    f"simulated {self.MAX_CYCLES} cycles without terminating"
                )
            if terminated:
                return pipeline.cycle

    def _trace_cycle(self) -> str:
        p = self.pipeline
        mode = self.trace_mode
        parts = [
            f"Cycle {p.cycle}, PC {p.cycle_pc}, Next PC {p.pc}\n",
            format_stage("[Fetch]", p.fetch_out_n.inst, mode, False),
            format_stage("[Decode]", p.decode_out_n.inst, mode, False),
            format_stage("[Execute ALU]", p.ex_out_n.inst, mode, True),
            format_stage("   [Execute LD ST]", p.ex_ld_st_out_n.inst, mode, True),
            format_stage("   [Execute LD ST2]", p.ex_ld_st_2_out_n.inst, mode, False),
        ]
        if p.config.ooo:
            parts += [
                format_stage("[Writeback ALU]", p.wb_out_n.inst, mode, True),
                format_stage("[Writeback LD ST]", p.wb_ld_st_out_n.inst, mode, True),
                format_stage("     [Writeback LD ST2]", p.wb_ld_st_2_out_n.inst, mode, False),
            ]
        else:
            parts.append(format_stage("[Writeback]", p.wb_out_n.inst, mode, True))
        parts += [
            "\n",
            register_dump(p.registers, p.cycle_pc, 4),
            "\n",
            _SEPARATOR + "\n",
            "\n",
        ]
        return "".join(parts)

    def summary(self) -> str:
        """Return the end-of-run statistics report."""
        p = self.pipeline
        cpi = p.cycle / p.instruction_counter if p.instruction_counter else float("inf")
        accuracy = (
            p.correctly_predicted_branches / p.total_branches * 100
            if p.total_branches
            else 0.0
        )
        return (
            "\nFinished simulation!\n"
            f"\nTOTAL INSTRUCTIONS COMMITTED: {p.instruction_counter}\n"
            f"TOTAL CYCLES SIMULATED: {p.cycle}\n"
            f"AVERAGE CPI: {cpi:0.3f}\n\n"
            f"TOTAL CONDITIONAL BRANCHES: {p.total_branches}\n"
            f"BRANCHES CORRECTLY PREDICTED: {p.correctly_predicted_branches}\n"
            f"BRANCH PREDICTION ACCURACY: {accuracy:.2f}%\n\n"
            f"TOTAL MEMORY ACCESSES: {p.stats.accesses}\n"
            f"CACHE HITS: {p.stats.hits}\n"
            f"CACHE HIT RATE: {p.stats.hit_rate():.2f}%\n"
        )


def _parse_int(text: str) -> int:
    match = re.match(r"\s*[+-]?\d+", text)
    return int(match.group()) if match else 0


def _initialization_report(program: Program) -> str:
    parts = [
        "Initialized Registers\n\n",
        "Initialized Memory\n\n",
        "Initialized Data Cache\n\n",
        "Initialized BTB, BHT, and BHSR.\n\n",
        "----------------------\n--- Section: .text ---\n----------------------\n",
    ]
    parts += [f"memory[{i}] = 0x{to_unsigned32(v):08x}\n" for i, v in program.text]
    parts.append("\n")
    parts.append("----------------------\n--- Section: .data ---\n----------------------\n")
    parts += [f"memory[{i}] = 0x{to_unsigned32(v):08x}\n" for i, v in program.data]
    parts.append(
        "====================================\n"
        "=== END SIMULATOR INITIALIZATION ===\n"
        "===================================="
    )
    return "".join(parts)


def main(argv: Sequence[str] | None = None) -> int:
    """Run a program file: PROGRAM_FILE FORWARDING OOO BRANCH_PREDICTION DATA_CACHE."""
    args = list(sys.argv[1:] if argv is None else argv)
    out = sys.stdout
    if len(args) != 5:
        print("[ERROR] incorrect number of arguments.", file=sys.stderr)
        print(_USAGE)
        return 1

    path, *flag_texts = args
    values = []
    for text, (limit, label, message) in zip(flag_texts, _FLAGS):
        value = _parse_int(text)
        if not 0 <= value <= limit:
            print(f"[ERROR] {message}", file=sys.stderr)
            return 1
        print(f"{label}: {'Enabled' if value else 'Disabled'}")
        values.append(value)

    config = Config(
        forwarding=values[0],
        ooo=values[1],
        branch_prediction=values[2],
        dcache=values[3],
    )

    out.write(
        "======================================\n"
        "=== BEGIN SIMULATOR INITIALIZATION ===\n"
        "======================================\n"
    )
    try:
        with open(path, encoding="ascii", errors="replace") as handle:
            program = load_program(handle)
    except OSError:
        print("[ERROR] opening input file. Aborting.", file=sys.stderr)
        return 1
    out.write(_initialization_report(program))
    out.write("\n\n\nSimulating...\n")

    with open("pipe_trace.txt", "w", encoding="ascii") as trace:
        simulator = Simulator(program.memory, config, trace)
        try:
            simulator.run()
        except SimulationTimeout:
            print(
                "\n[WARNING] Simulation has simulated 25,000 cycles without "
                "terminating. Something might be wrong. Terminating.",
                file=sys.stderr,
            )
            return 1
        except PipelineError as error:
            print(f"ERROR: {error}")
            return 1

    pipeline = simulator.pipeline
    out.write(simulator.summary())
    out.write("\n")
    out.write(register_dump(pipeline.registers, pipeline.pc, 4))
    out.write(modified_memory_dump(pipeline.memory))

    with open("mdump.txt", "w", encoding="ascii") as handle:
        handle.write(memory_dump(pipeline.memory))
    with open("bdump.txt", "w", encoding="ascii") as handle:
        handle.write(branch_dump(pipeline.predictor, pipeline.memory))
    if pipeline.cache is not None:
        with open("cdump.txt", "w", encoding="ascii") as handle:
            handle.write(cache_dump(pipeline.cache))
    return 0


if __name__ == "__main__":
    sys.exit(main())