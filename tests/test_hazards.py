"""Tests for the hazard detection and forwarding unit."""

import pytest
from pipesim.hazards import detect_load_use_hazard, resolve_forwarding, source_registers
from pipesim.isa import derive_control_signals
from pipesim.latches import EXMEMLatch, IDEXLatch, MEMWBLatch
from pipesim.parser import parse_program


def decode(text: str):
    result = parse_program(text)
    assert result.ok, result.errors
    return result.instructions[0]


def id_ex_for(text: str, rs_value: int = 0, rt_value: int = 0) -> IDEXLatch:
    instr = decode(text)
    return IDEXLatch(
        instruction=instr,
        rs_value=rs_value,
        rt_value=rt_value,
        dest_reg=instr.dest_reg,
        immediate=instr.immediate,
        branch_target=instr.branch_target,
        control=derive_control_signals(instr),
    )


def ex_mem_for(text: str, alu_result: int) -> EXMEMLatch:
    instr = decode(text)
    return EXMEMLatch(
        instruction=instr,
        alu_result=alu_result,
        dest_reg=instr.dest_reg,
        control=derive_control_signals(instr),
    )


def mem_wb_for(text: str, write_data: int) -> MEMWBLatch:
    instr = decode(text)
    return MEMWBLatch(
        instruction=instr,
        write_data=write_data,
        dest_reg=instr.dest_reg,
        control=derive_control_signals(instr),
    )


class TestControlSignals:
    """Control signal derivation."""

    def test_r_type(self):
        """R-type writes a register through the ALU."""
        control = derive_control_signals(decode("SUB R1, R2, R3"))
        assert control.reg_write and not control.mem_read and not control.mem_write
        assert control.alu_op == "SUB"
        assert not control.use_immediate

    def test_load(self):
        """LW reads memory into a register."""
        control = derive_control_signals(decode("LW R1, 0(R2)"))
        assert control.reg_write and control.mem_read and control.mem_to_reg
        assert control.use_immediate
        assert control.alu_op == "ADD"

    def test_store(self):
        """SW writes memory and no register."""
        control = derive_control_signals(decode("SW R1, 0(R2)"))
        assert control.mem_write and not control.reg_write

    def test_branch(self):
        """BEQ compares with SUB and writes nothing."""
        control = derive_control_signals(decode("BEQ R1, R2, 0"))
        assert control.is_branch and not control.reg_write
        assert control.alu_op == "SUB"

    def test_nop(self):
        """NOP produces the bubble control word."""
        assert derive_control_signals(decode("NOP")).is_nop


class TestSourceRegisters:
    """Registers read by each instruction format."""

    @pytest.mark.parametrize("text, expected", [
        ("ADD R1, R2, R3", (2, 3)),
        ("LW R1, 0(R2)", (2,)),
        ("SW R1, 0(R2)", (2, 1)),
        ("BEQ R4, R5, 0", (4, 5)),
        ("NOP", ()),
    ])
    def test_sources(self, text, expected):
        """Each format reads the expected registers."""
        assert source_registers(decode(text)) == expected


class TestLoadUseDetection:
    """Load-use hazard detection."""

    def test_dependent_after_load_stalls(self):
        """A consumer of the loaded register stalls."""
        assert detect_load_use_hazard(decode("ADD R3, R1, R4"), id_ex_for("LW R1, 0(R2)"))

    def test_store_data_dependency_stalls(self):
        """Store data counts as a source."""
        assert detect_load_use_hazard(decode("SW R1, 0(R5)"), id_ex_for("LW R1, 0(R2)"))

    def test_independent_after_load(self):
        """Unrelated registers do not stall."""
        assert not detect_load_use_hazard(decode("ADD R3, R5, R4"), id_ex_for("LW R1, 0(R2)"))

    def test_alu_producer_does_not_stall(self):
        """Only loads cause stalls."""
        assert not detect_load_use_hazard(decode("ADD R3, R1, R4"), id_ex_for("ADD R1, R2, R2"))

    def test_load_into_r0_never_stalls(self):
        """Loads into R0 are ignored."""
        assert not detect_load_use_hazard(decode("ADD R3, R0, R0"), id_ex_for("LW R0, 0(R2)"))

    def test_bubble_never_stalls(self):
        """An empty ID/EX never stalls."""
        assert not detect_load_use_hazard(decode("ADD R3, R1, R4"), IDEXLatch())


class TestForwarding:
    """Forwarding unit."""

    def test_no_forwarding_without_producers(self):
        """Decoded values pass through untouched."""
        result = resolve_forwarding(id_ex_for("ADD R3, R1, R2", 4, 5), EXMEMLatch(), MEMWBLatch())
        assert (result.rs_value, result.rt_value) == (4, 5)
        assert result.forward_count == 0

    def test_forward_from_ex_mem(self):
        """The EX/MEM result feeds operand A."""
        result = resolve_forwarding(
            id_ex_for("SUB R4, R1, R5", 0, 1),
            ex_mem_for("ADD R1, R2, R3", 9),
            MEMWBLatch(),
        )
        assert result.rs_value == 9
        assert result.rt_value == 1
        assert result.sources.a_from == "EX/MEM"
        assert result.sources.b_from is None

    def test_forward_from_mem_wb(self):
        """The MEM/WB value feeds operand B."""
        result = resolve_forwarding(
            id_ex_for("SUB R4, R5, R1", 2, 0),
            EXMEMLatch(),
            mem_wb_for("ADD R1, R2, R3", 7),
        )
        assert result.rt_value == 7
        assert result.sources.b_from == "MEM/WB"

    def test_ex_mem_preferred_over_mem_wb(self):
        """The newer producer wins."""
        result = resolve_forwarding(
            id_ex_for("ADD R4, R1, R1"),
            ex_mem_for("ADD R1, R2, R3", 20),
            mem_wb_for("ADD R1, R5, R5", 10),
        )
        assert (result.rs_value, result.rt_value) == (20, 20)
        assert result.forward_count == 2
        assert [record.operand for record in result.records] == ["A", "B"]

    def test_load_in_ex_mem_is_not_forwarded(self):
        """A load has no value until it leaves MEM."""
        result = resolve_forwarding(
            id_ex_for("ADD R4, R1, R5", 3, 0),
            ex_mem_for("LW R1, 0(R2)", 100),
            MEMWBLatch(),
        )
        assert result.rs_value == 3
        assert result.forward_count == 0

    def test_load_in_mem_wb_is_forwarded(self):
        """Loaded data is forwarded from MEM/WB."""
        result = resolve_forwarding(
            id_ex_for("ADD R4, R1, R5"),
            EXMEMLatch(),
            mem_wb_for("LW R1, 0(R2)", 55),
        )
        assert result.rs_value == 55
        assert result.sources.a_from == "MEM/WB"

    def test_register_zero_never_forwarded(self):
        """R0 is never a forwarding target."""
        result = resolve_forwarding(
            id_ex_for("ADD R4, R0, R0"),
            ex_mem_for("ADD R0, R2, R3", 9),
            mem_wb_for("ADD R0, R2, R3", 9),
        )
        assert (result.rs_value, result.rt_value) == (0, 0)
        assert result.forward_count == 0

    def test_store_without_write_is_not_forwarded(self):
        """Stores produce no register value."""
        result = resolve_forwarding(
            id_ex_for("ADD R4, R1, R1"),
            ex_mem_for("SW R1, 0(R2)", 8),
            MEMWBLatch(),
        )
        assert result.forward_count == 0
