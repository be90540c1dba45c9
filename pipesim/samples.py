"""Built-in sample programs with register and memory presets."""

from dataclasses import dataclass, field
from .errors import AssemblyError
from .isa import Instruction
from .parser import parse_program


DEFAULT_PROGRAM_SOURCE = """# Sample pipeline program
ADD R1, R0, R0
ADD R2, R1, R1
LW R3, 0(R2)
ADD R4, R1, R3
SW R4, 4(R2)
BEQ R1, R4, END
ADD R5, R5, R5
END: SUB R6, R4, R1
"""


@dataclass(frozen=True)
class SampleProgram:
    """A named program plus initial register values and memory words.

    ``registers`` maps register index to value; ``memory`` maps byte
    address to value.
    """
    name: str
    description: str
    source: str
    registers: dict[int, int] = field(default_factory=dict)
    memory: dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "registers": {str(reg): val for reg, val in self.registers.items()},
            "memory": {str(addr): val for addr, val in self.memory.items()},
        }


SAMPLE_PROGRAMS: list[SampleProgram] = [
    SampleProgram(
        name="Default Pipeline Demo",
        description="Forwarding, a load-use stall, a store and a taken branch.",
        source=DEFAULT_PROGRAM_SOURCE,
        registers={1: 5, 2: 100, 3: 8, 4: 0, 5: 2},
        memory={100: 0},
    ),
    SampleProgram(
        name="Program A – Register Write Demo",
        description="Demonstrates forwarding and register write-back with two ADD instructions.",
        source="""# Program A – Register Write Demo
ADD R1, R2, R3
ADD R4, R1, R5
NOP
""",
        registers={1: 0, 2: 5, 3: 8, 4: 0, 5: 2},
    ),
    SampleProgram(
        name="Program B – Memory Write & Read",
        description="Stores R1 to memory and immediately loads it back into R3.",
        source="""# Program B – Memory Write & Read
SW R1, 0(R2)
LW R3, 0(R2)
NOP
""",
        registers={1: 11, 2: 100, 3: 0, 4: 0, 5: 1},
        memory={100: 0},
    ),
]


def get_sample(name: str) -> SampleProgram:
    """Look up a sample by name (case-insensitive)."""
    for sample in SAMPLE_PROGRAMS:
        if sample.name.lower() == name.lower():
            return sample
    raise KeyError(f"Unknown sample program: {name}")


def create_default_program() -> list[Instruction]:
    """Assemble the default demo program."""
    result = parse_program(DEFAULT_PROGRAM_SOURCE)
    if result.errors:
        raise AssemblyError.from_errors(result.errors, prefix="Failed to parse default program:")
    return result.instructions
