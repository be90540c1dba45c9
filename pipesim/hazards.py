"""Hazard detection and forwarding unit.

Data hazards (RAW) are handled with a one-cycle stall for load-use pairs and
operand forwarding from EX/MEM and MEM/WB for everything else. Control
hazards use a fixed predict-not-taken policy resolved in EX; the engine
squashes the two wrong-path instructions. Structural and WAR/WAW hazards are
not modelled.
"""

from dataclasses import dataclass, field
from typing import Optional
from .isa import Instruction, R_TYPE_OPCODES
from .latches import EXMEMLatch, IDEXLatch, MEMWBLatch
from .snapshot import FROM_EX_MEM, FROM_MEM_WB, ForwardingInfo


@dataclass(frozen=True)
class ForwardRecord:
    """A single applied forward: which operand, from where, for which register."""
    operand: str  # "A" or "B"
    source: str
    reg: int


@dataclass
class ForwardingResult:
    rs_value: int
    rt_value: int
    records: list[ForwardRecord] = field(default_factory=list)

    @property
    def forward_count(self) -> int:
        return len(self.records)

    @property
    def sources(self) -> ForwardingInfo:
        a_from = next((r.source for r in self.records if r.operand == "A"), None)
        b_from = next((r.source for r in self.records if r.operand == "B"), None)
        return ForwardingInfo(a_from=a_from, b_from=b_from)


def source_registers(instr: Instruction) -> tuple[int, ...]:
    """Registers read by an instruction, in operand order."""
    if instr.opcode == "LW":
        candidates = (instr.rs,)
    elif instr.opcode in R_TYPE_OPCODES or instr.opcode in ("SW", "BEQ"):
        candidates = (instr.rs, instr.rt)
    else:
        candidates = ()
    return tuple(reg for reg in candidates if reg is not None)


def detect_load_use_hazard(instr: Instruction, id_ex: IDEXLatch) -> bool:
    """True when ``instr`` reads the register a load in ID/EX is producing."""
    if id_ex.is_bubble or not id_ex.control.mem_read:
        return False
    if id_ex.dest_reg is None or id_ex.dest_reg == 0:
        return False
    return id_ex.dest_reg in source_registers(instr)


def resolve_forwarding(
    id_ex: IDEXLatch,
    ex_mem: EXMEMLatch,
    mem_wb: MEMWBLatch,
) -> ForwardingResult:
    """Pick the freshest value for each operand of the instruction in EX.

    EX/MEM wins over MEM/WB. A load still in EX/MEM has no value yet, so it
    is only forwarded once it reaches MEM/WB.
    """
    result = ForwardingResult(rs_value=id_ex.rs_value, rt_value=id_ex.rt_value)
    if id_ex.is_bubble:
        return result

    def forward(reg: Optional[int], current: int, operand: str) -> int:
        if reg is None or reg == 0:
            return current
        if (
            not ex_mem.is_bubble
            and ex_mem.control.reg_write
            and ex_mem.dest_reg == reg
            and not ex_mem.control.mem_to_reg
        ):
            result.records.append(ForwardRecord(operand, FROM_EX_MEM, reg))
            return ex_mem.alu_result
        if (
            not mem_wb.is_bubble
            and mem_wb.control.reg_write
            and mem_wb.dest_reg == reg
        ):
            result.records.append(ForwardRecord(operand, FROM_MEM_WB, reg))
            return mem_wb.write_data
        return current

    result.rs_value = forward(id_ex.instruction.rs, result.rs_value, "A")
    result.rt_value = forward(id_ex.instruction.rt, result.rt_value, "B")
    return result
