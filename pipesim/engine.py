"""Cycle-accurate five-stage pipeline engine.

Every call to ``PipelineEngine.step`` is one clock edge. Each stage reads
the latches as they stood at the end of the previous cycle, and all four
next-cycle latches are built before any of them is committed.
"""

import logging
import operator
from dataclasses import dataclass, field
from typing import Callable, Optional
from .cpu import CPU
from .hazards import ForwardRecord, detect_load_use_hazard, resolve_forwarding
from .isa import (
    MEMORY_SIZE,
    Instruction,
    derive_control_signals,
    format_register,
    to_signed32,
)
from .latches import EXMEMLatch, IDEXLatch, IFIDLatch, MEMWBLatch, PipelineRegisters
from .parser import ParseResult, parse_program
from .snapshot import (
    FLUSH,
    FORWARD,
    STAGE_NAMES,
    STALL,
    CycleLog,
    EngineState,
    ForwardingInfo,
    HazardEvent,
    HazardInfo,
    Snapshot,
    StageView,
    StatsView,
)


logger = logging.getLogger(__name__)


@dataclass
class SimulationOptions:
    """Engine construction options."""
    memory_size: int = MEMORY_SIZE

    def __post_init__(self):
        if self.memory_size < 1:
            raise ValueError(f"memory_size must be positive, got {self.memory_size}")


# ALU operation dispatch table
ALU_OPERATIONS: dict[str, Callable[[int, int], int]] = {
    "ADD": operator.add,
    "SUB": operator.sub,
    "AND": operator.and_,
    "OR": operator.or_,
}


@dataclass
class _ExecuteResult:
    next_ex_mem: EXMEMLatch
    branch_taken: bool = False
    branch_target: Optional[int] = None
    forwarding: ForwardingInfo = field(default_factory=ForwardingInfo)
    forwards_applied: int = 0


@dataclass
class _DecodeResult:
    next_id_ex: IDEXLatch
    stalled: bool = False


@dataclass
class _FetchResult:
    next_if_id: IFIDLatch
    next_pc: int


class PipelineEngine:
    """Five-stage in-order pipeline with load-use stalls, forwarding and
    predict-not-taken branches.

    The engine is the only writer of its live state. ``export_state`` and
    ``restore_state`` clone, so exported states can be kept in a history
    stack without aliasing.
    """

    def __init__(self, options: Optional[SimulationOptions] = None):
        self.options = options or SimulationOptions()
        self._program: tuple[Instruction, ...] = ()
        self._cpu = CPU(self.options.memory_size)
        self._pipeline = PipelineRegisters()
        self._current_fetch: Optional[Instruction] = None
        self._clear_cycle_log()
        self._cpu.halted = True

    @property
    def program(self) -> tuple[Instruction, ...]:
        return self._program

    @property
    def halted(self) -> bool:
        return self._cpu.halted

    def load_program(self, instructions: list[Instruction]) -> None:
        """Install a decoded program and reset all state."""
        self._program = tuple(instructions)
        self.reset()
        logger.info("Loaded program with %d instructions", len(self._program))

    def load_program_from_source(self, source: str) -> ParseResult:
        """Parse ``source`` and load it only if it assembled without errors."""
        result = parse_program(source)
        if result.errors:
            logger.warning(
                "Rejected program with %d parse error(s); engine state unchanged",
                len(result.errors),
            )
        else:
            self.load_program(result.instructions)
        return result

    def reset(self, clear_program: bool = False) -> None:
        if clear_program:
            self._program = ()
        self._cpu = CPU(self.options.memory_size)
        self._pipeline = PipelineRegisters()
        self._current_fetch = None
        self._clear_cycle_log()
        self._cpu.halted = len(self._program) == 0
        logger.debug("Engine reset (clear_program=%s)", clear_program)

    def get_snapshot(self) -> Snapshot:
        return self._build_snapshot()

    def export_state(self) -> EngineState:
        return EngineState(
            cpu=self._cpu.clone(),
            pipeline=self._pipeline,
            current_fetch=self._current_fetch,
            cycle_log=CycleLog(
                stage_hazards=tuple(self._stage_hazards.items()),
                stalled=self._stalled,
                flushed=self._flushed,
                forwarding=self._forwarding,
                events=tuple(self._events),
            ),
        )

    def restore_state(self, state: EngineState) -> None:
        self._cpu = state.cpu.clone()
        self._pipeline = state.pipeline
        self._current_fetch = state.current_fetch
        log = state.cycle_log
        self._stage_hazards = dict(log.stage_hazards)
        self._stalled = log.stalled
        self._flushed = log.flushed
        self._forwarding = log.forwarding
        self._events = list(log.events)

    def step(self) -> Snapshot:
        """Advance one clock edge and return the resulting snapshot."""
        if self._cpu.halted:
            return self._build_snapshot()

        self._clear_cycle_log()
        previous = self._pipeline

        # 1. Write back (previous MEM/WB)
        self._write_back(previous.mem_wb)

        # 2. Memory (previous EX/MEM)
        next_mem_wb = self._memory_access(previous.ex_mem)

        # 3. Execute (previous ID/EX, forwarding from previous EX/MEM and MEM/WB)
        execute = self._execute(previous.id_ex, previous.ex_mem, previous.mem_wb)

        # 4. Decode (previous IF/ID, load-use check against previous ID/EX)
        decode = self._decode(previous.if_id, previous.id_ex)

        # 5. Fetch (frozen while decode is stalled)
        fetch = self._fetch(previous.if_id, decode.stalled)

        next_if_id = fetch.next_if_id
        next_id_ex = decode.next_id_ex

        # 6. Taken branch squashes the two wrong-path instructions
        if execute.branch_taken:
            next_if_id = IFIDLatch()
            next_id_ex = IDEXLatch()
            self._current_fetch = None
            self._record_flush("branch-taken")
            self._stage_hazards["IF"] = HazardInfo("stall", "Flushed due to taken branch")
            if execute.branch_target is not None:
                self._cpu.pc = execute.branch_target
            logger.debug("Branch taken, pc -> %s", self._cpu.pc)
        else:
            self._cpu.pc = fetch.next_pc

        self._pipeline = PipelineRegisters(
            if_id=next_if_id,
            id_ex=next_id_ex,
            ex_mem=execute.next_ex_mem,
            mem_wb=next_mem_wb,
        )

        # 7. Statistics
        stats = self._cpu.stats
        stats.cycle_count += 1
        if execute.forwards_applied > 0:
            stats.forward_count += execute.forwards_applied
            summary = ", ".join(
                f"{operand}<-{source}"
                for operand, source in (("A", execute.forwarding.a_from), ("B", execute.forwarding.b_from))
                if source
            )
            self._stage_hazards["EX"] = HazardInfo("forward", f"Forwarding applied ({summary})")
        self._forwarding = execute.forwarding

        # 8. Halt once the program is exhausted and the pipeline has drained
        if self._pipeline.is_drained() and self._cpu.pc // 4 >= len(self._program):
            self._cpu.halted = True
            self._current_fetch = None
            logger.info(
                "Pipeline halted after %d cycles (%d instructions completed)",
                stats.cycle_count,
                stats.instructions_completed,
            )

        return self._build_snapshot()

    # -- stages ------------------------------------------------------------

    def _write_back(self, mem_wb: MEMWBLatch) -> None:
        if mem_wb.is_bubble:
            return
        self._cpu.stats.instructions_completed += 1
        if not mem_wb.control.reg_write or mem_wb.dest_reg is None:
            return
        self._cpu.write_register(mem_wb.dest_reg, mem_wb.write_data)

    def _memory_access(self, ex_mem: EXMEMLatch) -> MEMWBLatch:
        if ex_mem.is_bubble:
            return MEMWBLatch()

        loaded = 0
        if ex_mem.control.mem_read:
            loaded = self._cpu.memory.read(ex_mem.alu_result)
        if ex_mem.control.mem_write:
            self._cpu.memory.write(ex_mem.alu_result, ex_mem.write_data)

        return MEMWBLatch(
            instruction=ex_mem.instruction,
            pc=ex_mem.pc,
            write_data=loaded if ex_mem.control.mem_to_reg else ex_mem.alu_result,
            dest_reg=ex_mem.dest_reg,
            control=ex_mem.control,
        )

    def _execute(
        self,
        id_ex: IDEXLatch,
        ex_mem: EXMEMLatch,
        mem_wb: MEMWBLatch,
    ) -> _ExecuteResult:
        if id_ex.is_bubble:
            return _ExecuteResult(next_ex_mem=EXMEMLatch())

        forwarding = resolve_forwarding(id_ex, ex_mem, mem_wb)
        for record in forwarding.records:
            self._record_forward(record)

        control = id_ex.control
        operand_a = forwarding.rs_value
        if control.use_immediate:
            operand_b = id_ex.immediate if id_ex.immediate is not None else 0
        else:
            operand_b = forwarding.rt_value

        alu_result = to_signed32(ALU_OPERATIONS[control.alu_op](operand_a, operand_b))

        branch_taken = False
        if control.is_branch:
            branch_taken = operand_a == operand_b
            self._cpu.stats.branch_count += 1
            if branch_taken:
                self._cpu.stats.branch_mispredictions += 1

        return _ExecuteResult(
            next_ex_mem=EXMEMLatch(
                instruction=id_ex.instruction,
                pc=id_ex.pc,
                alu_result=alu_result,
                write_data=forwarding.rt_value,
                dest_reg=id_ex.dest_reg,
                control=control,
                branch_taken=branch_taken,
                branch_target=id_ex.branch_target,
            ),
            branch_taken=branch_taken,
            branch_target=id_ex.branch_target,
            forwarding=forwarding.sources,
            forwards_applied=forwarding.forward_count,
        )

    def _decode(self, if_id: IFIDLatch, id_ex: IDEXLatch) -> _DecodeResult:
        if if_id.is_bubble:
            return _DecodeResult(next_id_ex=IDEXLatch())

        instr = if_id.instruction
        if detect_load_use_hazard(instr, id_ex):
            reg = format_register(id_ex.dest_reg)
            self._cpu.stats.stall_count += 1
            self._stage_hazards["ID"] = HazardInfo("stall", f"Load-use hazard on {reg}")
            self._record_stall("load-use", reg)
            logger.debug("Load-use stall on %s at pc=%d", reg, if_id.pc)
            return _DecodeResult(next_id_ex=IDEXLatch(), stalled=True)

        control = derive_control_signals(instr)
        rs_value = self._cpu.read_register(instr.rs) if instr.rs is not None else 0
        rt_value = self._cpu.read_register(instr.rt) if instr.rt is not None else 0

        return _DecodeResult(
            next_id_ex=IDEXLatch(
                instruction=instr,
                pc=if_id.pc,
                rs_value=rs_value,
                rt_value=rt_value,
                dest_reg=instr.dest_reg,
                immediate=instr.immediate,
                branch_target=instr.branch_target,
                control=control,
            )
        )

    def _fetch(self, if_id: IFIDLatch, stalled: bool) -> _FetchResult:
        if stalled:
            # Re-present the same instruction to decode next cycle
            return _FetchResult(next_if_id=if_id, next_pc=self._cpu.pc)

        fetch_pc = self._cpu.pc
        instr = self._instruction_at(fetch_pc)
        self._current_fetch = instr
        return _FetchResult(
            next_if_id=IFIDLatch(instruction=instr, pc=fetch_pc),
            next_pc=fetch_pc + 4,
        )

    def _instruction_at(self, pc: int) -> Optional[Instruction]:
        if pc < 0 or pc % 4 != 0:
            return None
        index = pc // 4
        if index >= len(self._program):
            return None
        return self._program[index]

    # -- event log ---------------------------------------------------------

    def _clear_cycle_log(self) -> None:
        self._stage_hazards: dict[str, HazardInfo] = {}
        self._stalled = False
        self._flushed = False
        self._forwarding = ForwardingInfo()
        self._events: list[HazardEvent] = []

    def _event_cycle(self) -> int:
        return self._cpu.stats.cycle_count + 1

    def _record_stall(self, reason: str, reg: Optional[str]) -> None:
        self._stalled = True
        self._events.append(HazardEvent(STALL, self._event_cycle(), reason=reason, reg=reg))

    def _record_forward(self, record: ForwardRecord) -> None:
        self._events.append(HazardEvent(
            FORWARD,
            self._event_cycle(),
            reason=f"operand-{record.operand}",
            reg=format_register(record.reg),
            source=record.source,
            target="EX",
        ))
        logger.debug("Forward %s from %s (operand %s)", format_register(record.reg), record.source, record.operand)

    def _record_flush(self, reason: str) -> None:
        self._flushed = True
        self._events.append(HazardEvent(FLUSH, self._event_cycle(), reason=reason))

    # -- snapshot ----------------------------------------------------------

    def _build_snapshot(self) -> Snapshot:
        pipeline = self._pipeline
        in_flight = {
            "IF": self._current_fetch,
            "ID": pipeline.if_id.instruction,
            "EX": pipeline.id_ex.instruction,
            "MEM": pipeline.ex_mem.instruction,
            "WB": pipeline.mem_wb.instruction,
        }
        stages = tuple(
            StageView(
                stage=name,
                instruction=_display_text(in_flight[name]),
                hazard=self._stage_hazards.get(name),
            )
            for name in STAGE_NAMES
        )
        return Snapshot(
            cycle=self._cpu.stats.cycle_count,
            halted=self._cpu.halted,
            stages=stages,
            registers=self._cpu.registers,
            memory=self._cpu.memory.words,
            stats=StatsView.from_stats(self._cpu.stats),
            stalled_this_cycle=self._stalled,
            flushed_this_cycle=self._flushed,
            forwarding=self._forwarding,
            hazard_events=tuple(self._events),
        )


def _display_text(instr: Optional[Instruction]) -> Optional[str]:
    if instr is None or instr.opcode == "NOP":
        return None
    return instr.raw
