import io

import pytest

from riscysim.pipeline import Config
from riscysim.program import MEMORY_WORDS, load_program
from riscysim.simulator import SimulationTimeout, Simulator, main

TERMINATE = 0x00100013  # addi x0, x0, 1
ADDI_X1_5 = 0x00500093  # addi x1, x0, 5
ADDI_X2_300 = 0x12C00113  # addi x2, x0, 300
SW_X1_X2 = 0x00112023  # sw x1, 0(x2)
LW_X3_X2 = 0x00012183  # lw x3, 0(x2)
LW_X3_256 = 0x10002183  # lw x3, 256(x0)
ADDI_X1_3 = 0x00300093  # addi x1, x0, 3
ADDI_X1_M1 = 0xFFF08093  # addi x1, x1, -1
BNE_BACK = 0xFE009EE3  # bne x1, x0, -4
JAL_SELF = 0x0000006F  # jal x0, 0


def _lines(words, data=()):
    text = [f"{w & 0xFFFFFFFF:032b}\n" for w in words]
    tail = [f"{d & 0xFFFFFFFF:032b}\n" for d in data]
    return text + ["1" * 32 + "\n"] + tail


def _simulator(words, data=(), trace=None, **config):
    program = load_program(_lines(words, data))
    return Simulator(program.memory, Config(**config), trace)


def test_simple_program_terminates():
    sim = _simulator([ADDI_X1_5, TERMINATE])
    cycles = sim.run()
    p = sim.pipeline
    assert p.registers[1] == 5
    assert p.registers[0] != 0
    assert cycles == p.cycle
    assert p.instruction_counter >= 2
    assert p.cycle >= p.instruction_counter


@pytest.mark.parametrize("forwarding", [0, 1])
@pytest.mark.parametrize("ooo", [0, 1])
@pytest.mark.parametrize("dcache", [0, 1, 3])
def test_store_then_load(forwarding, ooo, dcache):
    sim = _simulator(
        [ADDI_X1_5, ADDI_X2_300, SW_X1_X2, LW_X3_X2, TERMINATE],
        forwarding=forwarding,
        ooo=ooo,
        dcache=dcache,
    )
    sim.run()
    p = sim.pipeline
    assert p.memory[300] == 5
    assert p.registers[3] == 5
    assert p.registers[2] == 300
    if dcache:
        assert p.stats.accesses >= 2
        assert p.stats.hits <= p.stats.accesses
    else:
        assert p.stats.accesses == 0


def test_load_from_data_section():
    sim = _simulator([LW_X3_256, TERMINATE], data=[42])
    sim.run()
    assert sim.pipeline.registers[3] == 42


@pytest.mark.parametrize("prediction", [0, 1, 2])
def test_loop_counts_branches(prediction):
    sim = _simulator(
        [ADDI_X1_3, ADDI_X1_M1, BNE_BACK, TERMINATE],
        forwarding=1,
        branch_prediction=prediction,
    )
    sim.run()
    p = sim.pipeline
    assert p.registers[1] == 0
    assert p.total_branches == 3
    assert 0 <= p.correctly_predicted_branches <= p.total_branches


def test_forwarding_does_not_change_results():
    results = []
    for forwarding in (0, 1):
        sim = _simulator([ADDI_X1_3, ADDI_X1_M1, BNE_BACK, TERMINATE], forwarding=forwarding)
        sim.run()
        results.append((sim.pipeline.registers[1], sim.pipeline.cycle))
    assert results[0][0] == results[1][0]
    assert results[1][1] <= results[0][1]


def test_summary_reports_counters():
    sim = _simulator([ADDI_X1_5, TERMINATE])
    sim.run()
    p = sim.pipeline
    text = sim.summary()
    assert text.startswith("\nFinished simulation!\n")
    assert f"TOTAL INSTRUCTIONS COMMITTED: {p.instruction_counter}\n" in text
    assert f"TOTAL CYCLES SIMULATED: {p.cycle}\n" in text
    assert f"AVERAGE CPI: {p.cycle / p.instruction_counter:0.3f}" in text
    assert "BRANCH PREDICTION ACCURACY: 0.00%" in text
    assert "CACHE HIT RATE: 0.00%" in text


def test_trace_records_every_cycle():
    trace = io.StringIO()
    sim = _simulator([ADDI_X1_5, TERMINATE], trace=trace)
    cycles = sim.run()
    text = trace.getvalue()
    assert text.startswith("Cycle 1, PC 0, Next PC 4\n")
    assert "[Fetch]      addi ra, zero, 5\n" in text
    assert text.count("Cycle ") == cycles
    assert text.count("--- Register Dump ---") == cycles


def test_trace_ooo_shows_second_writeback():
    trace = io.StringIO()
    sim = _simulator([ADDI_X1_5, TERMINATE], trace=trace, ooo=1)
    cycles = sim.run()
    assert trace.getvalue().count("[Writeback LD ST2]") == cycles


def test_endless_loop_times_out():
    sim = _simulator([JAL_SELF])
    with pytest.raises(SimulationTimeout):
        sim.run()
    assert sim.pipeline.cycle == Simulator.MAX_CYCLES


def _write_program(tmp_path, words):
    path = tmp_path / "program.txt"
    path.write_text("".join(_lines(words)))
    return path


def test_main_runs_and_writes_dumps(tmp_path, monkeypatch, capsys):
    path = _write_program(tmp_path, [ADDI_X1_5, ADDI_X2_300, SW_X1_X2, TERMINATE])
    monkeypatch.chdir(tmp_path)
    assert main([str(path), "1", "0", "1", "3"]) == 0
    out = capsys.readouterr().out
    assert "Pipeline Forwarding: Enabled" in out
    assert "OOO Execution: Disabled" in out
    assert "memory[0] = 0x00500093" in out
    assert "Memory[300] = 0x00000005" in out
    assert len((tmp_path / "mdump.txt").read_text().splitlines()) == MEMORY_WORDS
    assert (tmp_path / "bdump.txt").read_text().startswith("**** Branch Target Buffer Info ****")
    assert (tmp_path / "cdump.txt").exists()
    assert (tmp_path / "pipe_trace.txt").read_text().startswith("Cycle 1, PC 0")


def test_main_without_cache_skips_cache_dump(tmp_path, monkeypatch):
    path = _write_program(tmp_path, [ADDI_X1_5, TERMINATE])
    monkeypatch.chdir(tmp_path)
    assert main([str(path), "0", "0", "0", "0"]) == 0
    assert not (tmp_path / "cdump.txt").exists()


def test_main_wrong_argument_count(capsys):
    assert main([]) == 1
    captured = capsys.readouterr()
    assert "incorrect number of arguments" in captured.err
    assert captured.out.startswith("usage: simulator")


@pytest.mark.parametrize(
    "flags, name",
    [
        (["2", "0", "0", "0"], "FORWARDING_ENABLED"),
        (["0", "2", "0", "0"], "OOO_ENABLED"),
        (["0", "0", "3", "0"], "DYNAMIC_BP_ENABLED"),
        (["0", "0", "0", "4"], "DATA_CACHE_ENABLED"),
    ],
)
def test_main_rejects_out_of_range_flags(tmp_path, capsys, flags, name):
    path = _write_program(tmp_path, [TERMINATE])
    assert main([str(path), *flags]) == 1
    assert name in capsys.readouterr().err


def test_main_missing_file(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main([str(tmp_path / "absent.txt"), "0", "0", "0", "0"]) == 1
    assert "opening input file" in capsys.readouterr().err