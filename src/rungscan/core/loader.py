"""Build the input model from the upstream parser's plain-dict payload.

The payload uses snake_case keys::

    {
        "controller": {"name": "Line3"},
        "tags": [{"name": "EStop_OK", "data_type": "BOOL", "scope": "controller"}],
        "programs": [
            {
                "name": "MainProgram",
                "main_routine_name": "MainRoutine",
                "local_tags": [{"name": "Step", "data_type": "DINT"}],
                "routines": [
                    {"name": "MainRoutine", "rungs": [{"number": 0, "raw_text": "XIC(A)OTE(B);"}]}
                ],
            }
        ],
    }

Each level is validated against a private record dataclass; structural
problems raise ``ProjectFormatError`` naming the offending path.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar, cast, get_args, get_origin, get_type_hints

from rungscan.core.model import (
    CONTROLLER_SCOPE,
    Instruction,
    Program,
    Project,
    Routine,
    Rung,
    Tag,
)
from rungscan.core.rung_text import extract_instructions

T = TypeVar("T")


class ProjectFormatError(ValueError):
    """Raised when an upstream payload does not have the expected shape."""


# ---------------------------------------------------------------------------
# Payload records
# ---------------------------------------------------------------------------


@dataclass
class _InstructionRecord:
    type: str
    operands: list[Any] | None = None
    branch_leg: int | None = None
    branch_level: int | None = None
    branch_start: bool | None = None


@dataclass
class _RungRecord:
    number: int
    raw_text: str = ""
    comment: str | None = None
    instructions: list[Any] | None = None


@dataclass
class _RoutineRecord:
    name: str
    type: str = "Ladder"
    description: str | None = None
    rungs: list[Any] | None = None


@dataclass
class _TagRecord:
    name: str
    data_type: str = "Unknown"
    scope: str | None = None
    description: str | None = None


@dataclass
class _ProgramRecord:
    name: str
    description: str | None = None
    main_routine_name: str | None = None
    disabled: bool = False
    routines: list[Any] | None = None
    local_tags: list[Any] | None = None


@dataclass
class _ControllerRecord:
    name: str = "Unknown"


@dataclass
class _ProjectRecord:
    name: str | None = None
    controller: dict[str, Any] | None = None
    programs: list[Any] | None = None
    tags: list[Any] | None = None


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def _matches_type(value: Any, annotation: Any) -> bool:
    origin = get_origin(annotation)
    if origin is None:
        if annotation is Any:
            return True
        if annotation is type(None):
            return value is None
        # bool is an int subclass; True is not a rung number.
        if annotation is int and isinstance(value, bool):
            return False
        return isinstance(value, annotation)

    if origin in {list, dict}:
        return isinstance(value, origin)

    # PEP 604 unions resolve to UnionType as origin.
    return any(_matches_type(value, member) for member in get_args(annotation))


def _parse_record(model: type[T], raw: object, path: str) -> T:
    """Instantiate ``model`` from ``raw`` with field-level validation."""
    if not isinstance(raw, Mapping):
        raise ProjectFormatError(f"{path}: expected an object, got {type(raw).__name__}")
    raw_map = cast(Mapping[str, Any], raw)

    resolved_types = get_type_hints(model)
    kwargs: dict[str, Any] = {}
    for field in dataclasses.fields(cast(Any, model)):
        if field.name not in raw_map:
            if field.default is dataclasses.MISSING:
                raise ProjectFormatError(f"{path}: missing required field: {field.name}")
            continue
        value = raw_map[field.name]
        if not _matches_type(value, resolved_types[field.name]):
            raise ProjectFormatError(
                f"{path}.{field.name}: invalid type {type(value).__name__}"
            )
        kwargs[field.name] = value
    return model(**kwargs)


def _items(values: list[Any] | None) -> list[Any]:
    return values if values is not None else []


def _operand(value: Any, path: str) -> str:
    if isinstance(value, str):
        return value.strip()
    # Upstream emits bare numbers for immediate operands.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ProjectFormatError(f"{path}: operand must be a string, got {type(value).__name__}")


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def _instruction(raw: object, path: str) -> Instruction:
    record = _parse_record(_InstructionRecord, raw, path)
    return Instruction(
        type=record.type,
        operands=tuple(
            _operand(op, f"{path}.operands[{idx}]")
            for idx, op in enumerate(_items(record.operands))
        ),
        branch_leg=record.branch_leg,
        branch_level=record.branch_level,
        branch_start=record.branch_start,
    )


def _rung(raw: object, path: str) -> Rung:
    record = _parse_record(_RungRecord, raw, path)
    instructions = tuple(
        _instruction(item, f"{path}.instructions[{idx}]")
        for idx, item in enumerate(_items(record.instructions))
    )
    if not instructions and record.raw_text:
        instructions = extract_instructions(record.raw_text)
    return Rung(
        number=record.number,
        raw_text=record.raw_text,
        instructions=instructions,
        comment=record.comment,
    )


def _routine(raw: object, path: str) -> Routine:
    record = _parse_record(_RoutineRecord, raw, path)
    return Routine(
        name=record.name,
        type=record.type,
        description=record.description,
        rungs=tuple(
            _rung(item, f"{path}.rungs[{idx}]") for idx, item in enumerate(_items(record.rungs))
        ),
    )


def _tag(raw: object, path: str, default_scope: str) -> Tag:
    record = _parse_record(_TagRecord, raw, path)
    return Tag(
        name=record.name,
        data_type=record.data_type,
        scope=record.scope or default_scope,
        description=record.description,
    )


def _program(raw: object, path: str) -> Program:
    record = _parse_record(_ProgramRecord, raw, path)
    return Program(
        name=record.name,
        description=record.description,
        main_routine_name=record.main_routine_name,
        disabled=record.disabled,
        routines=tuple(
            _routine(item, f"{path}.routines[{idx}]")
            for idx, item in enumerate(_items(record.routines))
        ),
        # Local tags always belong to their program, whatever the payload says.
        tags=tuple(
            dataclasses.replace(
                _tag(item, f"{path}.local_tags[{idx}]", record.name), scope=record.name
            )
            for idx, item in enumerate(_items(record.local_tags))
        ),
    )


def project_from_dict(payload: object) -> Project:
    """Convert an upstream parser payload into a ``Project``.

    Missing optional collections become empty. A rung without an
    ``instructions`` list has its instructions extracted from ``raw_text``.

    Raises:
        ProjectFormatError: If the payload or any nested entry is not an
            object, lacks a required field, or has a field of the wrong type.
    """
    record = _parse_record(_ProjectRecord, payload, "project")
    name = record.name
    if name is None and record.controller is not None:
        name = _parse_record(_ControllerRecord, record.controller, "project.controller").name
    return Project(
        name=name or "Unknown",
        programs=tuple(
            _program(item, f"project.programs[{idx}]")
            for idx, item in enumerate(_items(record.programs))
        ),
        tags=tuple(
            _tag(item, f"project.tags[{idx}]", CONTROLLER_SCOPE)
            for idx, item in enumerate(_items(record.tags))
        ),
    )
