"""CPU state model for the pipeline simulator."""

from dataclasses import dataclass, replace
from typing import Optional
from .isa import NUM_REGISTERS, to_signed32
from .memory import Memory


@dataclass
class PipelineStats:
    """Cumulative pipeline counters."""
    cycle_count: int = 0
    instructions_completed: int = 0
    stall_count: int = 0
    forward_count: int = 0
    branch_count: int = 0
    branch_mispredictions: int = 0

    @property
    def cpi(self) -> float:
        if self.instructions_completed > 0:
            return self.cycle_count / self.instructions_completed
        return float(self.cycle_count)

    @property
    def branch_accuracy(self) -> float:
        if self.branch_count > 0:
            return (self.branch_count - self.branch_mispredictions) / self.branch_count * 100
        return 100.0

    def copy(self) -> "PipelineStats":
        return replace(self)


class CPU:
    """Architectural state: pc, register file, data memory, halt flag and stats.

    Registers are an immutable tuple replaced on every write. R0 ignores
    writes.
    """

    def __init__(self, memory_size: Optional[int] = None):
        self.pc: int = 0
        self.registers: tuple[int, ...] = (0,) * NUM_REGISTERS
        self.memory = Memory(memory_size) if memory_size is not None else Memory()
        self.halted: bool = False
        self.stats = PipelineStats()

    def read_register(self, reg: int) -> int:
        return self.registers[reg]

    def write_register(self, reg: int, value: int) -> None:
        """Write a normalized value; writes to R0 are discarded."""
        if not 0 <= reg < NUM_REGISTERS:
            raise ValueError(f"Register index out of range: {reg}")
        if reg == 0:
            return
        registers = list(self.registers)
        registers[reg] = to_signed32(value)
        self.registers = tuple(registers)

    def get_state(self) -> dict:
        """Get current architectural state as dictionary."""
        return {
            "pc": self.pc,
            "registers": list(self.registers),
            "halted": self.halted,
        }

    def clone(self) -> "CPU":
        """Independent copy; register and memory tuples are shared, stats copied."""
        copy = CPU.__new__(CPU)
        copy.pc = self.pc
        copy.registers = self.registers
        copy.memory = self.memory.clone()
        copy.halted = self.halted
        copy.stats = self.stats.copy()
        return copy

    def reset(self) -> None:
        """Reset CPU to initial state."""
        self.pc = 0
        self.registers = (0,) * NUM_REGISTERS
        self.memory = Memory(self.memory.size)
        self.halted = False
        self.stats = PipelineStats()
