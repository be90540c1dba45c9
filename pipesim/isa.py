"""Instruction set model for the five-stage pipeline simulator."""

from dataclasses import dataclass
from typing import Optional


NUM_REGISTERS = 32
MEMORY_SIZE = 1024  # words
WORD_BITS = 32

_WORD_MASK = (1 << WORD_BITS) - 1
_WORD_MAX = (1 << (WORD_BITS - 1)) - 1

# Valid opcodes
VALID_OPCODES = {
    "ADD",
    "SUB",
    "AND",
    "OR",
    "LW",
    "SW",
    "BEQ",
    "NOP",
}

# Register-register ALU instructions: rd, rs, rt
R_TYPE_OPCODES = {"ADD", "SUB", "AND", "OR"}

# Memory instructions: rt, offset(base)
MEMORY_OPCODES = {"LW", "SW"}


def to_signed32(value: int) -> int:
    """Normalize value to a signed 32-bit word (two's complement wraparound)."""
    value = value & _WORD_MASK
    if value > _WORD_MAX:
        value -= 1 << WORD_BITS
    return value


@dataclass(frozen=True)
class Instruction:
    """Decoded instruction.

    Register and immediate fields are None when they do not apply to the
    opcode; see the parser for which fields each format fills in.
    """
    opcode: str
    pc: int
    raw: str
    rd: Optional[int] = None
    rs: Optional[int] = None
    rt: Optional[int] = None
    dest_reg: Optional[int] = None
    immediate: Optional[int] = None
    branch_target: Optional[int] = None
    line: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "opcode": self.opcode,
            "pc": self.pc,
            "raw": self.raw,
            "rd": self.rd,
            "rs": self.rs,
            "rt": self.rt,
            "dest_reg": self.dest_reg,
            "immediate": self.immediate,
            "branch_target": self.branch_target,
            "line": self.line,
        }


@dataclass(frozen=True)
class ControlSignals:
    """Control lines produced by decode and carried down the pipeline."""
    reg_write: bool = False
    mem_read: bool = False
    mem_write: bool = False
    mem_to_reg: bool = False
    is_branch: bool = False
    alu_op: str = "ADD"
    use_immediate: bool = False
    is_nop: bool = False


NOP_CONTROL = ControlSignals(is_nop=True)


def derive_control_signals(instr: Instruction) -> ControlSignals:
    """Derive control signals from the opcode. Only decode calls this."""
    opcode = instr.opcode
    if opcode in R_TYPE_OPCODES:
        return ControlSignals(reg_write=True, alu_op=opcode)
    if opcode == "LW":
        return ControlSignals(
            reg_write=True,
            mem_read=True,
            mem_to_reg=True,
            alu_op="ADD",
            use_immediate=True,
        )
    if opcode == "SW":
        return ControlSignals(mem_write=True, alu_op="ADD", use_immediate=True)
    if opcode == "BEQ":
        return ControlSignals(is_branch=True, alu_op="SUB")
    return NOP_CONTROL


def format_register(reg: Optional[int]) -> Optional[str]:
    if reg is None:
        return None
    return f"R{reg}"
