"""Assembly parser for the pipeline simulator.

Grammar (one statement per line)::

    [LABEL:] OPCODE [operand, operand, ...] [# comment]

Diagnostics are collected into ``ParseResult.errors`` rather than raised, so
a single pass reports every malformed line.
"""

import re
from dataclasses import dataclass, field
from typing import Optional
from .errors import ParseError
from .isa import (
    Instruction,
    MEMORY_OPCODES,
    NUM_REGISTERS,
    R_TYPE_OPCODES,
    VALID_OPCODES,
)


_LINE_SPLIT_RE = re.compile(r"\r?\n")
_LABEL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_REGISTER_RE = re.compile(r"^R(\d{1,2})$", re.IGNORECASE)
_MEMORY_OPERAND_RE = re.compile(r"^([+-]?\s*(?:0x[0-9a-f]+|\d+))\s*\(\s*([^()\s]+)\s*\)$", re.IGNORECASE)
_HEX_LITERAL_RE = re.compile(r"^0x[0-9a-f]+$", re.IGNORECASE)
_DECIMAL_LITERAL_RE = re.compile(r"^\d+$")


@dataclass
class ParseResult:
    """Result of parsing a program."""
    instructions: list[Instruction] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
    labels: dict[str, int] = field(default_factory=dict)  # label -> byte address

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "instructions": [instr.to_dict() for instr in self.instructions],
            "errors": [error.to_dict() for error in self.errors],
            "labels": dict(self.labels),
        }


@dataclass
class _SourceLine:
    line_no: int
    text: str
    opcode: str
    operands: list[str]
    index: int


class _OperandError(ValueError):
    """Raised by operand helpers; converted into a ParseError."""
    pass


def parse_program(text: str) -> ParseResult:
    """Parse program text into decoded instructions.

    Args:
        text: Program source code

    Returns:
        ParseResult with instructions (``pc = index * 4``), labels and errors
    """
    result = ParseResult()
    source_lines: list[_SourceLine] = []
    index = 0

    # First pass: collect labels and assign instruction indices
    for line_no, line in enumerate(_LINE_SPLIT_RE.split(text), 1):
        stripped = _strip_comment(line).strip()
        if not stripped:
            continue

        rest = stripped
        if ":" in rest:
            label, rest = rest.split(":", 1)
            label = label.strip()
            rest = rest.strip()
            if not _LABEL_RE.fullmatch(label):
                result.errors.append(ParseError(
                    line_no,
                    f'Invalid label "{label}". Labels must start with a letter or '
                    f'underscore and contain only alphanumeric characters or underscores.',
                ))
            elif label in result.labels:
                result.errors.append(ParseError(line_no, f'Duplicate label "{label}".'))
            else:
                result.labels[label] = index * 4
            if not rest:
                # Label-only line
                continue

        parts = rest.split(None, 1)
        operand_text = parts[1] if len(parts) > 1 else ""
        operands = [op.strip() for op in operand_text.split(",") if op.strip()]
        source_lines.append(_SourceLine(
            line_no=line_no,
            text=stripped,
            opcode=parts[0].upper(),
            operands=operands,
            index=index,
        ))
        index += 1

    # Second pass: decode operands against each opcode's format
    for source in source_lines:
        if source.opcode not in VALID_OPCODES:
            result.errors.append(
                ParseError(source.line_no, f'Unknown opcode "{source.opcode}".')
            )
            continue
        try:
            instruction = _parse_instruction(source, result.labels)
        except _OperandError as e:
            result.errors.append(ParseError(source.line_no, str(e)))
            continue
        result.instructions.append(instruction)

    return result


def _strip_comment(line: str) -> str:
    """Remove comment from line."""
    idx = line.find("#")
    if idx >= 0:
        return line[:idx]
    return line


def _parse_instruction(source: _SourceLine, labels: dict[str, int]) -> Instruction:
    """Decode a single instruction line."""
    opcode = source.opcode
    operands = source.operands
    pc = source.index * 4
    common = {"opcode": opcode, "pc": pc, "raw": source.text, "line": source.line_no}

    if opcode in R_TYPE_OPCODES:
        _expect_operand_count(operands, 3, f"{opcode} expects 3 operands (rd, rs, rt).")
        rd = _parse_register(operands[0], 1)
        rs = _parse_register(operands[1], 2)
        rt = _parse_register(operands[2], 3)
        return Instruction(rd=rd, rs=rs, rt=rt, dest_reg=rd, **common)

    if opcode in MEMORY_OPCODES:
        _expect_operand_count(operands, 2, f"{opcode} expects 2 operands (rt, offset(base)).")
        rt = _parse_register(operands[0], 1)
        offset, base = _parse_memory_operand(operands[1])
        return Instruction(
            rt=rt,
            rs=base,
            immediate=offset,
            dest_reg=rt if opcode == "LW" else None,
            **common,
        )

    if opcode == "BEQ":
        _expect_operand_count(operands, 3, "BEQ expects 3 operands (rs, rt, label|offset).")
        rs = _parse_register(operands[0], 1)
        rt = _parse_register(operands[1], 2)
        immediate, branch_target = _parse_branch_target(operands[2], pc, labels)
        return Instruction(
            rs=rs,
            rt=rt,
            immediate=immediate,
            branch_target=branch_target,
            **common,
        )

    # NOP
    if operands:
        raise _OperandError("NOP does not accept operands.")
    return Instruction(**common)


def _expect_operand_count(operands: list[str], count: int, message: str) -> None:
    if len(operands) != count:
        raise _OperandError(message)


def _parse_register(token: str, position: int) -> int:
    """Parse a register token R0-R31."""
    reg = _try_parse_register(token)
    if reg is None:
        raise _OperandError(
            f'Operand {position} "{token}" is not a valid register. Expected format R0-R31.'
        )
    return reg


def _try_parse_register(token: str) -> Optional[int]:
    match = _REGISTER_RE.fullmatch(token.strip())
    if not match:
        return None
    value = int(match.group(1))
    if value >= NUM_REGISTERS:
        return None
    return value


def _parse_memory_operand(token: str) -> tuple[int, int]:
    """Parse ``offset(Rbase)`` into (offset, base register)."""
    match = _MEMORY_OPERAND_RE.fullmatch(token.strip())
    if not match:
        raise _OperandError(
            f'Invalid address operand "{token}". Expected format offset(Rx).'
        )
    offset = _parse_numeric_literal(match.group(1).replace(" ", ""))
    base_token = match.group(2)
    base = _try_parse_register(base_token)
    if base is None:
        raise _OperandError(
            f'Base register "{base_token}" in "{token}" is not a valid register. '
            f'Expected format R0-R31.'
        )
    return offset, base


def _parse_branch_target(
    token: str,
    pc: int,
    labels: dict[str, int],
) -> tuple[int, int]:
    """Resolve a BEQ target into (word offset, absolute target address)."""
    pc_next = pc + 4
    if _LABEL_RE.fullmatch(token):
        target = labels.get(token.upper())
        if target is None:
            target = labels.get(token)
        if target is None:
            raise _OperandError(f'Unknown branch target label "{token}".')
        return (target - pc_next) // 4, target

    try:
        immediate = _parse_numeric_literal(token)
    except ValueError:
        raise _OperandError(
            f'Invalid branch target "{token}". Expected label or immediate offset.'
        )
    return immediate, pc_next + immediate * 4


def _parse_numeric_literal(text: str) -> int:
    """Parse a signed decimal or 0x-prefixed hex literal."""
    literal = text.strip()
    sign = 1
    if literal and literal[0] in "+-":
        if literal[0] == "-":
            sign = -1
        literal = literal[1:]
    if _HEX_LITERAL_RE.fullmatch(literal):
        return sign * int(literal[2:], 16)
    if _DECIMAL_LITERAL_RE.fullmatch(literal):
        return sign * int(literal, 10)
    raise ValueError(f"Invalid numeric literal: {text}")
