"""Immutable input model for ladder-logic analysis.

Upstream parsers produce a tree of programs, routines, rungs and instructions
plus a flat tag table. The analyzer never mutates it.
"""

from __future__ import annotations

from dataclasses import dataclass

CONTROLLER_SCOPE = "controller"


@dataclass(frozen=True)
class Instruction:
    """One instruction call inside a rung, e.g. ``XIC(Start)``."""

    type: str
    operands: tuple[str, ...] = ()
    branch_leg: int | None = None
    branch_level: int | None = None
    branch_start: bool | None = None

    def __post_init__(self) -> None:
        # Opcodes are case-insensitive; normalize once so lookups stay cheap.
        object.__setattr__(self, "type", self.type.upper())
        object.__setattr__(self, "operands", tuple(self.operands))

    def __str__(self) -> str:
        return f"{self.type}({','.join(self.operands)})"


@dataclass(frozen=True)
class Rung:
    number: int
    raw_text: str = ""
    instructions: tuple[Instruction, ...] = ()
    comment: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "instructions", tuple(self.instructions))

    @classmethod
    def from_text(cls, number: int, raw_text: str, comment: str | None = None) -> Rung:
        """Build a rung whose instructions are extracted from ``raw_text``."""
        from rungscan.core.rung_text import extract_instructions

        return cls(
            number=number,
            raw_text=raw_text,
            instructions=extract_instructions(raw_text),
            comment=comment,
        )


@dataclass(frozen=True)
class Routine:
    name: str
    rungs: tuple[Rung, ...] = ()
    type: str = "Ladder"
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rungs", tuple(self.rungs))


@dataclass(frozen=True)
class Tag:
    """A declared tag. ``scope`` is ``"controller"`` or the owning program name."""

    name: str
    data_type: str
    scope: str = CONTROLLER_SCOPE
    description: str | None = None


@dataclass(frozen=True)
class Program:
    name: str
    routines: tuple[Routine, ...] = ()
    tags: tuple[Tag, ...] = ()
    description: str | None = None
    main_routine_name: str | None = None
    disabled: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "routines", tuple(self.routines))
        object.__setattr__(self, "tags", tuple(self.tags))


@dataclass(frozen=True)
class Project:
    """Root of the input tree: programs plus controller-scoped tags."""

    name: str = "Unknown"
    programs: tuple[Program, ...] = ()
    tags: tuple[Tag, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "programs", tuple(self.programs))
        object.__setattr__(self, "tags", tuple(self.tags))

    def find_tag(self, operand: str, program: str | None = None) -> Tag | None:
        """Resolve an operand such as ``Motor.Run`` or ``Recipe[3]`` to its declaration.

        Program-local tags shadow controller tags of the same base name.
        """
        base = base_tag_name(operand)
        if program is not None:
            for prog in self.programs:
                if prog.name != program:
                    continue
                for tag in prog.tags:
                    if tag.name == base:
                        return tag
        for tag in self.tags:
            if tag.name == base:
                return tag
        return None


def base_tag_name(operand: str) -> str:
    """Strip member access and array indexing: ``Tank[2].Level`` -> ``Tank``."""
    cut = len(operand)
    for marker in (".", "["):
        idx = operand.find(marker)
        if idx != -1:
            cut = min(cut, idx)
    return operand[:cut].strip()
