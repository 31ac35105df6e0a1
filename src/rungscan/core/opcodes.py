"""Opcode families and operand read/write classification.

The tables here are the single source of truth for which operands of an
instruction are read and which are written. Opcodes missing from every table
contribute no tag usage at all.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Literal

from rungscan.core.model import Instruction

Usage = Literal["read", "write"]

# ---------------------------------------------------------------------------
# Opcode families
# ---------------------------------------------------------------------------

# Timers and counters own their state tag, so they count as writers.
WRITE_OPCODES: frozenset[str] = frozenset(
    {"OTE", "OTL", "OTU", "RES", "TON", "TOF", "RTO", "CTU", "CTD"}
)

CONTACT_OPCODES: frozenset[str] = frozenset({"XIC", "XIO"})
COMPARISON_OPCODES: frozenset[str] = frozenset(
    {"EQU", "NEQ", "LES", "LEQ", "GRT", "GEQ", "LIM", "MEQ"}
)
ONE_SHOT_OPCODES: frozenset[str] = frozenset({"ONS", "OSR", "OSF"})
READ_OPCODES: frozenset[str] = CONTACT_OPCODES | COMPARISON_OPCODES | ONE_SHOT_OPCODES

COPY_OPCODES: frozenset[str] = frozenset({"MOV", "COP", "FLL"})
ARITHMETIC_OPCODES: frozenset[str] = frozenset({"ADD", "SUB", "MUL", "DIV", "AND", "OR", "XOR"})
CALL_OPCODES: frozenset[str] = frozenset({"JSR"})

# Used for categorization only; CPT and friends carry expressions, not tags.
CALCULATION_OPCODES: frozenset[str] = ARITHMETIC_OPCODES | frozenset(
    {"CPT", "SQR", "ABS", "NEG", "MOD"}
)
SCALING_OPCODES: frozenset[str] = frozenset({"MUL", "DIV"})

COIL_OPCODES: frozenset[str] = frozenset({"OTE", "OTL", "OTU"})
TIMER_OPCODES: frozenset[str] = frozenset({"TON", "TOF", "RTO"})
COUNTER_OPCODES: frozenset[str] = frozenset({"CTU", "CTD"})

# Operands skipped by JSR: routine name and parameter count.
_CALL_SKIPPED_OPERANDS = 2

_NUMERIC_RE = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?$")


def is_numeric_literal(operand: str) -> bool:
    """True for integer, decimal and scientific-notation constants (``-1.5e3``)."""
    return bool(_NUMERIC_RE.match(operand.strip()))


def is_tag_operand(operand: str) -> bool:
    return bool(operand) and not is_numeric_literal(operand)


# ---------------------------------------------------------------------------
# Operand classification
# ---------------------------------------------------------------------------


def _raw_usages(instruction: Instruction) -> list[tuple[str, Usage]]:
    opcode = instruction.type
    operands = instruction.operands

    if opcode in WRITE_OPCODES:
        return [(op, "write") for op in operands]
    if opcode in READ_OPCODES:
        return [(op, "read") for op in operands]
    if opcode in COPY_OPCODES:
        pairs: list[tuple[str, Usage]] = []
        for idx, op in enumerate(operands):
            pairs.append((op, "write" if idx == 1 else "read"))
        return pairs
    if opcode in ARITHMETIC_OPCODES:
        roles: tuple[Usage, ...] = ("read", "read", "write")
        return list(zip(operands, roles))
    if opcode in CALL_OPCODES:
        return [(op, "read") for op in operands[_CALL_SKIPPED_OPERANDS:]]
    return []


def operand_usages(instruction: Instruction) -> tuple[tuple[str, Usage], ...]:
    """Return ``(operand, usage)`` pairs for every tag operand of ``instruction``.

    Numeric literals and empty operands are dropped; unknown opcodes yield
    nothing.
    """
    return tuple((op, usage) for op, usage in _raw_usages(instruction) if is_tag_operand(op))


def rung_io_tags(
    instructions: Iterable[Instruction],
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Collect a rung's ``(input_tags, output_tags)``, each deduplicated in first-seen order."""
    inputs: dict[str, None] = {}
    outputs: dict[str, None] = {}
    for instruction in instructions:
        for operand, usage in operand_usages(instruction):
            target = outputs if usage == "write" else inputs
            target.setdefault(operand, None)
    return tuple(inputs), tuple(outputs)


def count_opcodes(instructions: Iterable[Instruction], opcodes: frozenset[str]) -> int:
    return sum(1 for instruction in instructions if instruction.type in opcodes)
