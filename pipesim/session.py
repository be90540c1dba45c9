"""Step/step-back session controller built on a single engine."""

import logging
from dataclasses import dataclass
from typing import Optional, Union
from .engine import PipelineEngine, SimulationOptions
from .parser import ParseResult
from .samples import SampleProgram, get_sample
from .snapshot import EngineState, Snapshot


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """State before a step, plus the snapshot that was showing at the time."""
    snapshot: Snapshot
    state: EngineState


class SimulationSession:
    """Caller-owned engine plus an undo stack.

    Every ``step`` pushes the pre-step engine state, so ``step_back`` can
    restore it exactly. A successful load or a reset clears the history.
    """

    def __init__(
        self,
        engine: Optional[PipelineEngine] = None,
        options: Optional[SimulationOptions] = None,
        max_history: Optional[int] = None,
    ):
        self.engine = engine or PipelineEngine(options)
        self.max_history = max_history
        self._history: list[HistoryEntry] = []
        self._snapshot = self.engine.get_snapshot()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def history_depth(self) -> int:
        return len(self._history)

    @property
    def can_step_back(self) -> bool:
        return bool(self._history)

    @property
    def halted(self) -> bool:
        return self._snapshot.halted

    def load_source(self, source: str) -> ParseResult:
        """Assemble and load ``source``; on errors the current program stays."""
        result = self.engine.load_program_from_source(source)
        if result.ok:
            self._history.clear()
            self._snapshot = self.engine.get_snapshot()
        return result

    def load_sample(self, sample: Union[SampleProgram, str]) -> ParseResult:
        """Load a sample program and seed its register and memory presets."""
        if isinstance(sample, str):
            sample = get_sample(sample)
        result = self.load_source(sample.source)
        if not result.ok:
            return result

        state = self.engine.export_state()
        for reg, value in sample.registers.items():
            state.cpu.write_register(reg, value)
        for addr, value in sample.memory.items():
            state.cpu.memory.write(addr, value)
        self.engine.restore_state(state)
        self._snapshot = self.engine.get_snapshot()
        logger.info("Loaded sample %r", sample.name)
        return result

    def step(self) -> Snapshot:
        """Advance one cycle. A halted session is left untouched."""
        if self._snapshot.halted:
            return self._snapshot
        self._history.append(HistoryEntry(self._snapshot, self.engine.export_state()))
        if self.max_history is not None and len(self._history) > self.max_history:
            del self._history[0]
        self._snapshot = self.engine.step()
        return self._snapshot

    def step_back(self) -> Optional[Snapshot]:
        """Undo the last step. Returns None when there is nothing to undo."""
        if not self._history:
            return None
        entry = self._history.pop()
        self.engine.restore_state(entry.state)
        self._snapshot = entry.snapshot
        return self._snapshot

    def run(self, max_cycles: int = 10000) -> Snapshot:
        """Step until halted or ``max_cycles`` steps have been taken."""
        for _ in range(max_cycles):
            if self._snapshot.halted:
                break
            self.step()
        return self._snapshot

    def reset(self) -> Snapshot:
        self._history.clear()
        self.engine.reset()
        self._snapshot = self.engine.get_snapshot()
        return self._snapshot
