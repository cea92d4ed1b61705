import pytest

from riscysim.cache import CacheMode
from riscysim.isa import to_signed32
from riscysim.pipeline import Config, Pipeline, PipelineError
from riscysim.predictor import PredictorMode
from riscysim.program import new_memory
from riscysim.state import State


def i_type(op, rd, funct3, rs1, imm):
    return ((imm & 0xFFF) << 20) | (rs1 << 15) | (funct3 << 12) | (rd << 7) | op


def addi(rd, rs1, imm):
    return i_type(0x13, rd, 0, rs1, imm)


def lw(rd, rs1, imm):
    return i_type(0x03, rd, 2, rs1, imm)


def r_type(funct7, rs2, rs1, funct3, rd):
    return (funct7 << 25) | (rs2 << 20) | (rs1 << 15) | (funct3 << 12) | (rd << 7) | 0x33


def sw(rs2, rs1, imm):
    return (
        (((imm >> 5) & 0x7F) << 25)
        | (rs2 << 20)
        | (rs1 << 15)
        | (2 << 12)
        | ((imm & 0x1F) << 7)
        | 0x23
    )


def b_type(funct3, rs1, rs2, imm):
    return (
        (((imm >> 12) & 1) << 31)
        | (((imm >> 5) & 0x3F) << 25)
        | (rs2 << 20)
        | (rs1 << 15)
        | (funct3 << 12)
        | (((imm >> 1) & 0xF) << 8)
        | (((imm >> 11) & 1) << 7)
        | 0x63
    )


def jal(rd, imm):
    return (
        (((imm >> 20) & 1) << 31)
        | (((imm >> 1) & 0x3FF) << 21)
        | (((imm >> 11) & 1) << 20)
        | (((imm >> 12) & 0xFF) << 12)
        | (rd << 7)
        | 0x6F
    )


def lui(rd, imm20):
    return (imm20 << 12) | (rd << 7) | 0x37


HALT = addi(0, 0, 1)


def build(program, **config):
    memory = new_memory()
    memory[: len(program)] = program
    return Pipeline(memory, Config(**config))


def run(pipeline, limit=1000):
    for _ in range(limit):
        if pipeline.step():
            return pipeline.cycle
    raise RuntimeError("program did not terminate")


@pytest.mark.parametrize("forwarding", [False, True])
def test_dependent_addi_chain(forwarding):
    p = build([addi(1, 0, 5), addi(2, 1, 7), HALT], forwarding=forwarding)
    run(p)
    assert p.registers[1] == 5
    assert p.registers[2] == 5 + 7
    assert p.registers[0] == 1


def test_forwarding_saves_cycles():
    program = [addi(1, 0, 5), addi(2, 1, 7), addi(3, 2, 1), HALT]
    slow = build(program, forwarding=False)
    fast = build(program, forwarding=True)
    assert run(fast) < run(slow)
    assert fast.registers[:4] == slow.registers[:4]


def test_instruction_counter_counts_committed():
    program = [addi(1, 0, 5), HALT]
    p = build(program, forwarding=True)
    run(p)
    assert p.instruction_counter == len(program)


@pytest.mark.parametrize("ooo", [False, True])
@pytest.mark.parametrize("dcache", list(CacheMode))
def test_store_then_load(ooo, dcache):
    p = build(
        [addi(1, 0, 42), sw(1, 0, 300), lw(2, 0, 300), HALT],
        forwarding=True,
        ooo=ooo,
        dcache=dcache,
    )
    run(p)
    assert p.memory[300] == 42
    assert p.registers[2] == 42
    if dcache == CacheMode.DISABLED:
        assert p.stats.accesses == 0
    else:
        assert p.stats.accesses == 2
        assert p.stats.hits <= p.stats.accesses


def test_ooo_overlaps_independent_work():
    program = [lw(2, 0, 300), addi(3, 0, 9), addi(4, 0, 8), HALT]
    in_order = build(program, forwarding=True, ooo=False)
    in_order.memory[300] = 77
    out_of_order = build(program, forwarding=True, ooo=True)
    out_of_order.memory[300] = 77
    assert run(out_of_order) < run(in_order)
    assert out_of_order.registers[2:5] == in_order.registers[2:5] == [77, 9, 8]


@pytest.mark.parametrize("mode", list(PredictorMode))
def test_taken_branch_skips_instruction(mode):
    program = [addi(1, 0, 1), b_type(0, 0, 0, 8), addi(2, 0, 9), addi(3, 0, 4), HALT]
    p = build(program, forwarding=True, branch_prediction=mode)
    run(p)
    assert p.registers[2] == 0
    assert p.registers[3] == 4
    assert p.total_branches == 1
    assert p.correctly_predicted_branches == 0


@pytest.mark.parametrize("mode", list(PredictorMode))
def test_countdown_loop(mode):
    program = [addi(1, 0, 3), addi(1, 1, -1), b_type(1, 1, 0, -4), HALT]
    p = build(program, forwarding=True, branch_prediction=mode)
    run(p)
    assert p.registers[1] == 0
    assert p.total_branches == 3
    assert 0 <= p.correctly_predicted_branches <= p.total_branches


def test_one_level_predictor_learns_branch():
    program = [addi(1, 0, 3), addi(1, 1, -1), b_type(1, 1, 0, -4), HALT]
    p = build(program, forwarding=True, branch_prediction=PredictorMode.ONE_LEVEL)
    run(p)
    assert p.predictor.lookup(8) is True
    assert p.predictor.target(8) == 4


def test_jal_links_and_jumps():
    p = build([jal(1, 8), addi(2, 0, 7), HALT], forwarding=True)
    run(p)
    assert p.registers[1] == 4
    assert p.registers[2] == 0


def test_lui_loads_upper_bits():
    p = build([lui(5, 0x12345), HALT], forwarding=True)
    run(p)
    assert p.registers[5] == to_signed32(0x12345 << 12)


def test_slt_compares_unsigned():
    program = [addi(1, 0, -1), addi(2, 0, 1), r_type(0, 2, 1, 2, 3), HALT]
    p = build(program, forwarding=True)
    run(p)
    assert p.registers[1] == -1
    assert p.registers[3] == 0


def test_sub_rtype():
    program = [addi(1, 0, 10), addi(2, 0, 3), r_type(0x20, 2, 1, 0, 3), HALT]
    p = build(program, forwarding=True)
    run(p)
    assert p.registers[3] == 10 - 3


def test_execute_offers_forward():
    p = build([])
    p.decode_out = State(inst=addi(6, 0, 11))
    p.decode_out.decode()
    p.decode_out.alu_in2 = p.decode_out.imm
    result = p.execute()
    assert result.alu_out == 11
    assert p.fwd_exe.write_enable is True
    assert p.fwd_exe.register == 6
    assert p.fwd_exe.value == 11


def test_execute_skips_memory_ops():
    p = build([])
    p.decode_out = State(inst=lw(2, 0, 4))
    p.decode_out.decode()
    result = p.execute()
    assert result.is_nop()
    assert p.fwd_exe.write_enable is False


def test_writeback_rejects_two_valid_sources_in_order():
    p = build([])
    p.ex_out = State(inst=addi(1, 0, 1))
    p.ex_ld_st_out = State(inst=lw(2, 0, 4))
    with pytest.raises(PipelineError):
        p.writeback()


def test_step_reports_termination_only_at_end():
    p = build([addi(1, 0, 5), HALT], forwarding=True)
    results = []
    while not results or not results[-1]:
        results.append(p.step())
    assert results[-1] is True
    assert not any(results[:-1])
    assert p.cycle == len(results)


def test_config_converts_and_validates():
    config = Config(forwarding=1, branch_prediction=2, dcache=3)
    assert config.forwarding is True
    assert config.branch_prediction is PredictorMode.TWO_LEVEL
    assert config.dcache is CacheMode.FOUR_WAY
    with pytest.raises(ValueError):
        Config(branch_prediction=3)
    with pytest.raises(ValueError):
        Config(dcache=4)


def test_fetch_out_of_memory_raises():
    p = build([])
    p.pc = len(p.memory) * 4
    with pytest.raises(PipelineError):
        p.fetch()