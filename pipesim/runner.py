"""Batch program runner with per-cycle tracing."""

import logging
from dataclasses import dataclass, field
from typing import Optional
from .engine import PipelineEngine, SimulationOptions
from .errors import AssemblyError, CycleLimitExceeded, ErrorInfo, ParseError
from .isa import MEMORY_SIZE
from .snapshot import Snapshot


logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Options for program execution."""
    memory_size: int = MEMORY_SIZE
    max_cycles: int = 10000
    trace: bool = True
    initial_registers: dict[int, int] = field(default_factory=dict)
    initial_memory: dict[int, int] = field(default_factory=dict)  # byte address -> value


@dataclass
class RunResult:
    """Result of program execution."""
    status: str  # "ok" | "error"
    cycles: int
    final_snapshot: Snapshot
    trace: list[Snapshot]
    parse_errors: list[ParseError] = field(default_factory=list)
    error: Optional[ErrorInfo] = None

    def to_dict(self) -> dict:
        result = {
            "status": self.status,
            "cycles": self.cycles,
            "final_snapshot": self.final_snapshot.to_dict(),
            "trace": [snapshot.to_dict() for snapshot in self.trace],
            "parse_errors": [error.to_dict() for error in self.parse_errors],
        }
        if self.error:
            result["error"] = self.error.to_dict()
        return result


def run_program(
    program_text: str,
    options: Optional[RunOptions] = None,
) -> RunResult:
    """Assemble a program and clock the pipeline until it drains.

    Args:
        program_text: Program source code
        options: Execution options

    Returns:
        RunResult with status, final snapshot and the per-cycle trace

    Raises:
        ValueError: If ``initial_registers`` names a register outside R0-R31
    """
    if options is None:
        options = RunOptions()

    engine = PipelineEngine(SimulationOptions(memory_size=options.memory_size))

    parsed = engine.load_program_from_source(program_text)
    if parsed.errors:
        error = AssemblyError.from_errors(parsed.errors)
        return RunResult(
            status="error",
            cycles=0,
            final_snapshot=engine.get_snapshot(),
            trace=[],
            parse_errors=parsed.errors,
            error=error.to_error_info(),
        )

    if options.initial_registers or options.initial_memory:
        state = engine.export_state()
        for reg, value in options.initial_registers.items():
            state.cpu.write_register(reg, value)
        for addr, value in options.initial_memory.items():
            state.cpu.memory.write(addr, value)
        engine.restore_state(state)

    trace: list[Snapshot] = []
    snapshot = engine.get_snapshot()
    if options.trace:
        trace.append(snapshot)

    error_info: Optional[ErrorInfo] = None
    try:
        while not snapshot.halted:
            if snapshot.cycle >= options.max_cycles:
                raise CycleLimitExceeded(
                    f"Cycle limit exceeded: {options.max_cycles}",
                    cycle=snapshot.cycle,
                )
            snapshot = engine.step()
            if options.trace:
                trace.append(snapshot)
    except CycleLimitExceeded as e:
        logger.warning("%s", e.message)
        error_info = e.to_error_info()

    return RunResult(
        status="ok" if error_info is None else "error",
        cycles=snapshot.cycle,
        final_snapshot=snapshot,
        trace=trace,
        error=error_info,
    )
