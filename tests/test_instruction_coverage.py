"""Ensure every opcode has a dedicated behavioral test."""

from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Callable

import pytest

from pipesim import RunOptions, run_program
from pipesim.isa import VALID_OPCODES


def expect_register(reg: int, value: int) -> Callable:
    def _check(result):
        assert result.final_snapshot.registers[reg] == value

    return _check


def expect_memory(addr: int, value: int) -> Callable:
    def _check(result):
        assert result.final_snapshot.memory[addr >> 2] == value

    return _check


def expect_completed(count: int) -> Callable:
    def _check(result):
        assert result.final_snapshot.stats.instructions_completed == count

    return _check


@dataclass
class InstructionCase:
    opcode: str
    program: str
    checker: Callable
    options_kwargs: dict = field(default_factory=dict)


INSTRUCTION_CASES = [
    InstructionCase(
        "ADD",
        "ADD R1, R2, R3",
        expect_register(1, 12),
        options_kwargs={"initial_registers": {2: 5, 3: 7}},
    ),
    InstructionCase(
        "SUB",
        "SUB R1, R2, R3",
        expect_register(1, -2),
        options_kwargs={"initial_registers": {2: 5, 3: 7}},
    ),
    InstructionCase(
        "AND",
        "AND R1, R2, R3",
        expect_register(1, 0b0100),
        options_kwargs={"initial_registers": {2: 0b1100, 3: 0b0101}},
    ),
    InstructionCase(
        "OR",
        "OR R1, R2, R3",
        expect_register(1, 0b1101),
        options_kwargs={"initial_registers": {2: 0b1100, 3: 0b0101}},
    ),
    InstructionCase(
        "LW",
        "LW R1, 4(R2)",
        expect_register(1, 33),
        options_kwargs={"initial_registers": {2: 16}, "initial_memory": {20: 33}},
    ),
    InstructionCase(
        "SW",
        "SW R1, 8(R0)",
        expect_memory(8, 9),
        options_kwargs={"initial_registers": {1: 9}},
    ),
    InstructionCase(
        "BEQ",
        "BEQ R1, R2, SKIP\nADD R3, R3, R3\nSKIP: NOP",
        expect_register(3, 1),
        options_kwargs={"initial_registers": {1: 4, 2: 4, 3: 1}},
    ),
    InstructionCase("NOP", "NOP\nNOP", expect_completed(0)),
]


@pytest.mark.parametrize("case", INSTRUCTION_CASES, ids=lambda case: case.opcode)
def test_all_instructions_have_behavioral_tests(case: InstructionCase):
    kwargs = copy.deepcopy(case.options_kwargs)
    options = RunOptions(**kwargs) if kwargs else RunOptions()
    result = run_program(case.program, options=options)
    assert result.status == "ok"
    case.checker(result)


def test_instruction_case_coverage_matches_valid_opcodes():
    covered = {case.opcode for case in INSTRUCTION_CASES}
    assert covered == VALID_OPCODES
