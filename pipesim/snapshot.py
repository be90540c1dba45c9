"""Immutable views of engine state handed to callers."""

from dataclasses import dataclass, field
from typing import Optional
from .cpu import CPU, PipelineStats
from .isa import Instruction
from .latches import PipelineRegisters


STAGE_NAMES = ("IF", "ID", "EX", "MEM", "WB")

# Hazard event types
STALL = "STALL"
FORWARD = "FORWARD"
FLUSH = "FLUSH"

# Forwarding sources
FROM_EX_MEM = "EX/MEM"
FROM_MEM_WB = "MEM/WB"


@dataclass(frozen=True)
class HazardInfo:
    """Per-stage annotation shown next to a stage ("stall" or "forward")."""
    type: str
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return {"type": self.type, "description": self.description}


@dataclass(frozen=True)
class HazardEvent:
    """One entry of a cycle's hazard log."""
    type: str
    cycle: int
    reason: Optional[str] = None
    reg: Optional[str] = None
    source: Optional[str] = None
    target: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "cycle": self.cycle,
            "reason": self.reason,
            "reg": self.reg,
            "from": self.source,
            "to": self.target,
        }


@dataclass(frozen=True)
class ForwardingInfo:
    """Which latch supplied operand A (rs) and operand B (rt), if any."""
    a_from: Optional[str] = None
    b_from: Optional[str] = None

    def to_dict(self) -> dict:
        return {"a_from": self.a_from, "b_from": self.b_from}


@dataclass(frozen=True)
class StageView:
    stage: str
    instruction: Optional[str] = None
    hazard: Optional[HazardInfo] = None

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "instruction": self.instruction,
            "hazard": self.hazard.to_dict() if self.hazard else None,
        }


@dataclass(frozen=True)
class StatsView:
    """Counters plus the derived CPI and branch accuracy."""
    cycle_count: int
    instructions_completed: int
    stall_count: int
    forward_count: int
    branch_count: int
    branch_mispredictions: int
    cpi: float
    branch_accuracy: float

    @classmethod
    def from_stats(cls, stats: PipelineStats) -> "StatsView":
        return cls(
            cycle_count=stats.cycle_count,
            instructions_completed=stats.instructions_completed,
            stall_count=stats.stall_count,
            forward_count=stats.forward_count,
            branch_count=stats.branch_count,
            branch_mispredictions=stats.branch_mispredictions,
            cpi=stats.cpi,
            branch_accuracy=stats.branch_accuracy,
        )

    def to_dict(self) -> dict:
        return {
            "cycle_count": self.cycle_count,
            "instructions_completed": self.instructions_completed,
            "stall_count": self.stall_count,
            "forward_count": self.forward_count,
            "branch_count": self.branch_count,
            "branch_mispredictions": self.branch_mispredictions,
            "cpi": self.cpi,
            "branch_accuracy": self.branch_accuracy,
        }


@dataclass(frozen=True)
class Snapshot:
    """Everything a renderer needs to draw one cycle."""
    cycle: int
    halted: bool
    stages: tuple[StageView, ...]
    registers: tuple[int, ...]
    memory: tuple[int, ...]
    stats: StatsView
    stalled_this_cycle: bool = False
    flushed_this_cycle: bool = False
    forwarding: ForwardingInfo = field(default_factory=ForwardingInfo)
    hazard_events: tuple[HazardEvent, ...] = ()

    def stage(self, name: str) -> StageView:
        for view in self.stages:
            if view.stage == name:
                return view
        raise KeyError(name)

    def to_dict(self) -> dict:
        return {
            "cycle": self.cycle,
            "halted": self.halted,
            "stages": {view.stage: view.to_dict() for view in self.stages},
            "registers": list(self.registers),
            "memory": list(self.memory),
            "stats": self.stats.to_dict(),
            "stalled_this_cycle": self.stalled_this_cycle,
            "flushed_this_cycle": self.flushed_this_cycle,
            "forwarding": self.forwarding.to_dict(),
            "hazard_events": [event.to_dict() for event in self.hazard_events],
        }


@dataclass(frozen=True)
class CycleLog:
    """Annotations produced by the most recent cycle."""
    stage_hazards: tuple[tuple[str, HazardInfo], ...] = ()
    stalled: bool = False
    flushed: bool = False
    forwarding: ForwardingInfo = field(default_factory=ForwardingInfo)
    events: tuple[HazardEvent, ...] = ()


@dataclass(frozen=True)
class EngineState:
    """Exported engine state used for step-back.

    ``cpu`` is a private clone owned by the holder of this state; the engine
    clones it again on restore.
    """
    cpu: CPU
    pipeline: PipelineRegisters
    current_fetch: Optional[Instruction] = None
    cycle_log: CycleLog = field(default_factory=CycleLog)
