"""Inter-stage pipeline registers.

Each latch is a frozen value. A latch with no instruction, or one whose
control signals mark a NOP, is a bubble.
"""

from dataclasses import dataclass, field
from typing import Optional
from .isa import ControlSignals, Instruction, NOP_CONTROL


@dataclass(frozen=True)
class IFIDLatch:
    instruction: Optional[Instruction] = None
    pc: int = 0

    @property
    def is_bubble(self) -> bool:
        return self.instruction is None or self.instruction.opcode == "NOP"


@dataclass(frozen=True)
class IDEXLatch:
    instruction: Optional[Instruction] = None
    pc: int = 0
    rs_value: int = 0
    rt_value: int = 0
    dest_reg: Optional[int] = None
    immediate: Optional[int] = None
    branch_target: Optional[int] = None
    control: ControlSignals = NOP_CONTROL

    @property
    def is_bubble(self) -> bool:
        return self.instruction is None or self.control.is_nop


@dataclass(frozen=True)
class EXMEMLatch:
    instruction: Optional[Instruction] = None
    pc: int = 0
    alu_result: int = 0
    write_data: int = 0  # store data for SW
    dest_reg: Optional[int] = None
    control: ControlSignals = NOP_CONTROL
    branch_taken: bool = False
    branch_target: Optional[int] = None

    @property
    def is_bubble(self) -> bool:
        return self.instruction is None or self.control.is_nop


@dataclass(frozen=True)
class MEMWBLatch:
    instruction: Optional[Instruction] = None
    pc: int = 0
    write_data: int = 0  # value to write back
    dest_reg: Optional[int] = None
    control: ControlSignals = NOP_CONTROL

    @property
    def is_bubble(self) -> bool:
        return self.instruction is None or self.control.is_nop


@dataclass(frozen=True)
class PipelineRegisters:
    if_id: IFIDLatch = field(default_factory=IFIDLatch)
    id_ex: IDEXLatch = field(default_factory=IDEXLatch)
    ex_mem: EXMEMLatch = field(default_factory=EXMEMLatch)
    mem_wb: MEMWBLatch = field(default_factory=MEMWBLatch)

    def is_drained(self) -> bool:
        """True when every latch holds a bubble."""
        return (
            self.if_id.is_bubble
            and self.id_ex.is_bubble
            and self.ex_mem.is_bubble
            and self.mem_wb.is_bubble
        )
