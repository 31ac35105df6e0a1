"""Rung categorization and the small per-rung observations built on it."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from rungscan.core.model import Instruction, base_tag_name
from rungscan.core.opcodes import (
    CALCULATION_OPCODES,
    CONTACT_OPCODES,
    COPY_OPCODES,
    COUNTER_OPCODES,
    TIMER_OPCODES,
    is_tag_operand,
    operand_usages,
)
from rungscan.core.options import DEFAULT_OPTIONS, AnalysisOptions
from rungscan.core.patterns import PatternType, RungView
from rungscan.core.rung_text import RungStructure
from rungscan.core.semantics import infer_semantic_type, subsystem_of
from rungscan.core.tag_graph import TagGraph

RungCategory = Literal[
    "safety",
    "motor_control",
    "valve_control",
    "sequence_control",
    "timer_logic",
    "counter_logic",
    "fault_handling",
    "calculation",
    "data_move",
    "hmi_interface",
    "status_monitoring",
    "zone_control",
    "general_logic",
]

# Pattern -> category, first match wins.
_PATTERN_CATEGORIES: tuple[tuple[PatternType, RungCategory], ...] = (
    ("safety_interlock", "safety"),
    ("sequencer", "sequence_control"),
    ("start_stop_circuit", "motor_control"),
    ("status_monitoring", "status_monitoring"),
    ("zone_control", "zone_control"),
    ("timer_delay", "timer_logic"),
    ("counter_accumulator", "counter_logic"),
)

# Semantic passes over tags; a later pass only runs when no tag hit an earlier one.
_SEMANTIC_PASSES: tuple[dict[str, RungCategory], ...] = (
    {"safety": "safety", "sequence": "sequence_control"},
    {"motor": "motor_control", "valve": "valve_control", "hmi": "hmi_interface"},
)

_OPTION_RE = re.compile(r"OPTION|^OPT_|_OPT$|INSTALLED", re.IGNORECASE)


def _clean(tags: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(tag for tag in tags if is_tag_operand(tag)))


# ---------------------------------------------------------------------------
# Category
# ---------------------------------------------------------------------------


def categorize_rung(
    pattern_types: Iterable[PatternType],
    input_tags: Sequence[str],
    output_tags: Sequence[str],
    instructions: Sequence[Instruction],
    options: AnalysisOptions = DEFAULT_OPTIONS,
) -> RungCategory:
    """Pick exactly one category for a rung.

    Checks run in a fixed order and the first hit wins: the status-monitoring
    override, detected patterns, tag semantics, instruction mix, fault
    vocabulary, and finally ``general_logic``.
    """
    fired = frozenset(pattern_types)
    inputs = _clean(input_tags)
    outputs = _clean(output_tags)

    # A wide status rung stays status_monitoring even when safety_interlock fired.
    if "status_monitoring" in fired and len(outputs) >= options.status_override_min_outputs:
        return "status_monitoring"

    for pattern_type, category in _PATTERN_CATEGORIES:
        if pattern_type in fired:
            return category

    semantic_types = [infer_semantic_type(tag) for tag in (*inputs, *outputs)]
    for semantic_pass in _SEMANTIC_PASSES:
        for semantic_type in semantic_types:
            if semantic_type in semantic_pass:
                return semantic_pass[semantic_type]

    opcodes = {instruction.type for instruction in instructions}
    if opcodes & CALCULATION_OPCODES:
        return "calculation"
    if opcodes & COPY_OPCODES:
        return "data_move"

    if "fault_detection" in fired or "fault" in semantic_types:
        return "fault_handling"

    return "general_logic"


# ---------------------------------------------------------------------------
# Branch groups and option bits
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BranchGroup:
    """Top-level branches whose tags name the same subsystem."""

    name: str
    branches: tuple[int, ...]
    tags: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "branches": list(self.branches), "tags": list(self.tags)}


def _branch_tags(branch: RungStructure) -> tuple[str, ...]:
    return _clean(
        operand
        for instruction in branch.instructions()
        for operand, _usage in operand_usages(instruction)
    )


def branch_groups(structure: RungStructure) -> tuple[BranchGroup, ...]:
    """Group the top-level parallel branches of a rung by subsystem label.

    Rungs with fewer than two branches have no groups. A branch belongs to the
    label of the first of its tags that names a subsystem; branches naming no
    subsystem are left out.
    """
    if structure.branch_count < 2:
        return ()

    grouped: dict[str, tuple[list[int], dict[str, None]]] = {}
    for index, branch in enumerate(structure.branches):
        tags = _branch_tags(branch)
        label = next((found for found in map(subsystem_of, tags) if found), None)
        if label is None:
            continue
        indices, group_tags = grouped.setdefault(label, ([], {}))
        indices.append(index)
        group_tags.update(dict.fromkeys(tags))

    return tuple(
        BranchGroup(name=label, branches=tuple(indices), tags=tuple(group_tags))
        for label, (indices, group_tags) in grouped.items()
    )


def has_option_bits(tags: Iterable[str]) -> bool:
    """True when any tag looks like an equipment-option flag (``OPT_Heater``)."""
    return any(_OPTION_RE.search(base_tag_name(tag)) for tag in tags)


# ---------------------------------------------------------------------------
# Key points
# ---------------------------------------------------------------------------


def _first_operand(view: RungView, opcodes: frozenset[str]) -> str | None:
    for instruction in view.instructions:
        if instruction.type in opcodes and instruction.operands:
            return instruction.operands[0]
    return None


def _shared_writer_note(view: RungView, graph: TagGraph) -> str | None:
    here = (view.program, view.routine, view.rung_number)
    for tag in view.output_tags:
        info = graph.get(tag)
        if info is None:
            continue
        others = {ref.location for ref in info.writers if ref.location != here}
        if others:
            plural = "rung" if len(others) == 1 else "rungs"
            return f"{tag} is also written by {len(others)} other {plural}"
    return None


def key_points(
    view: RungView,
    pattern_types: Iterable[PatternType],
    graph: TagGraph,
    *,
    safety_relevant: bool,
    concerns: Sequence[str] = (),
    options: AnalysisOptions = DEFAULT_OPTIONS,
) -> tuple[str, ...]:
    """Short independent observations about a rung, in check order."""
    fired = frozenset(pattern_types)
    points: list[str] = []

    series = [ins for ins in view.structure.shared_prefix if ins.type in CONTACT_OPCODES]
    if len(series) >= 2:
        points.append(f"All {len(series)} conditions must be true")

    branch_count = view.structure.branch_count
    if branch_count >= 2:
        points.append(f"{branch_count} parallel branches")

    if has_option_bits(view.tags):
        points.append("Uses option bits - behavior depends on installed equipment")

    if view.has_opcode({"OTL"}):
        points.append("Latched output stays ON until explicitly unlatched")

    timer = _first_operand(view, TIMER_OPCODES)
    if timer:
        points.append(f"Timed by {timer}")

    counter = _first_operand(view, COUNTER_OPCODES)
    if counter:
        points.append(f"Counts with {counter}")

    if "one_shot" in fired:
        points.append("Edge-triggered - acts once per transition")

    if "fault_detection" in fired:
        points.append("Monitors fault conditions")

    if safety_relevant:
        safety_inputs = [tag for tag in view.input_tags if infer_semantic_type(tag) == "safety"]
        if safety_inputs:
            points.append(f"Safety inputs: {', '.join(safety_inputs[:3])}")
        else:
            points.append("Safety-related logic")

    shared = _shared_writer_note(view, graph)
    if shared:
        points.append(shared)

    for concern in concerns:
        points.append(f"Concern: {concern}")

    return tuple(points[: options.key_point_limit])
