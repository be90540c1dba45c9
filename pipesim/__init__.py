"""Five-stage instruction pipeline simulator."""

from .engine import PipelineEngine, SimulationOptions
from .errors import AssemblyError, CycleLimitExceeded, ParseError, PipesimError
from .parser import ParseResult, parse_program
from .runner import RunOptions, RunResult, run_program
from .session import SimulationSession
from .snapshot import EngineState, Snapshot

__all__ = [
    "PipelineEngine",
    "SimulationOptions",
    "SimulationSession",
    "parse_program",
    "ParseResult",
    "ParseError",
    "Snapshot",
    "EngineState",
    "run_program",
    "RunOptions",
    "RunResult",
    "PipesimError",
    "AssemblyError",
    "CycleLimitExceeded",
]
