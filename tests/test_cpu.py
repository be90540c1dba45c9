"""Tests for the CPU module."""

import pytest
from pipesim.cpu import CPU, PipelineStats
from pipesim.isa import NUM_REGISTERS


class TestCPU:
    """CPU module tests."""

    def test_default_initialization(self):
        """CPU initializes with zeros."""
        cpu = CPU()
        assert cpu.pc == 0
        assert cpu.registers == (0,) * NUM_REGISTERS
        assert cpu.halted is False
        assert cpu.stats == PipelineStats()
        assert cpu.memory.size == 1024

    def test_write_register(self):
        """Written values read back."""
        cpu = CPU()
        cpu.write_register(5, 42)
        assert cpu.read_register(5) == 42

    def test_register_zero_ignores_writes(self):
        """Writes to R0 are discarded."""
        cpu = CPU()
        cpu.write_register(0, 123)
        assert cpu.read_register(0) == 0

    @pytest.mark.parametrize("reg", [-1, -32, NUM_REGISTERS, 40])
    def test_write_register_out_of_range(self, reg):
        """Out-of-range register indices raise instead of wrapping."""
        cpu = CPU()
        with pytest.raises(ValueError):
            cpu.write_register(reg, 7)
        assert cpu.registers == (0,) * NUM_REGISTERS

    def test_register_normalization(self):
        """Registers hold signed 32-bit values."""
        cpu = CPU()
        cpu.write_register(1, 2**31)
        assert cpu.read_register(1) == -(2**31)
        cpu.write_register(1, -1)
        assert cpu.read_register(1) == -1

    def test_registers_are_copy_on_write(self):
        """Writes replace the register tuple."""
        cpu = CPU()
        before = cpu.registers
        cpu.write_register(3, 9)
        assert before[3] == 0
        assert cpu.registers is not before

    def test_get_state(self):
        """Get state returns correct dict."""
        cpu = CPU(memory_size=4)
        cpu.pc = 8
        cpu.write_register(2, 7)
        state = cpu.get_state()
        assert state["pc"] == 8
        assert state["registers"][2] == 7
        assert state["halted"] is False

    def test_clone_is_independent(self):
        """A clone shares nothing mutable."""
        cpu = CPU(memory_size=4)
        cpu.write_register(1, 1)
        cpu.stats.cycle_count = 3
        copy = cpu.clone()
        copy.write_register(1, 2)
        copy.memory.write(0, 5)
        copy.stats.cycle_count = 10
        assert cpu.read_register(1) == 1
        assert cpu.memory.read(0) == 0
        assert cpu.stats.cycle_count == 3

    def test_reset(self):
        """Reset returns CPU to initial state."""
        cpu = CPU(memory_size=8)
        cpu.pc = 40
        cpu.write_register(4, 4)
        cpu.memory.write(0, 1)
        cpu.halted = True
        cpu.stats.stall_count = 2
        cpu.reset()
        assert cpu.pc == 0
        assert cpu.read_register(4) == 0
        assert cpu.memory.read(0) == 0
        assert cpu.memory.size == 8
        assert cpu.halted is False
        assert cpu.stats.stall_count == 0


class TestPipelineStats:
    """Derived statistics."""

    def test_cpi_without_completions(self):
        """CPI falls back to the cycle count."""
        stats = PipelineStats(cycle_count=4)
        assert stats.cpi == 4

    def test_cpi(self):
        """CPI is cycles per completed instruction."""
        stats = PipelineStats(cycle_count=9, instructions_completed=3)
        assert stats.cpi == pytest.approx(3.0)

    def test_branch_accuracy_without_branches(self):
        """No branches means perfect accuracy."""
        assert PipelineStats().branch_accuracy == 100

    def test_branch_accuracy(self):
        """Accuracy is the percentage predicted correctly."""
        stats = PipelineStats(branch_count=4, branch_mispredictions=1)
        assert stats.branch_accuracy == pytest.approx(75.0)
