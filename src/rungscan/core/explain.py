"""Markdown explanation of one analyzed rung."""

from __future__ import annotations

from rungscan.core.analyzer import RungContext
from rungscan.core.model import Project
from rungscan.core.patterns import PatternType
from rungscan.core.semantics import SemanticTagType
from rungscan.core.tag_graph import RungReference, TagGraph

_PATTERN_NAMES: dict[str, str] = {
    "safety_interlock": "Safety Interlock",
    "start_stop_circuit": "Start/Stop Circuit",
    "latch_unlatch": "Latch/Unlatch",
    "timer_delay": "Timer Delay",
    "counter_accumulator": "Counter",
    "sequencer": "Sequence Control",
    "one_shot": "One-Shot",
    "comparison_branch": "Comparison Logic",
    "handshake": "Handshake",
    "fault_detection": "Fault Detection",
    "status_monitoring": "Status Monitoring",
    "zone_control": "Zone Control",
    "code_concern": "Code Quality Concern",
    "data_scaling": "Data Scaling",
    "permissive_chain": "Permissive Chain",
    "alarm_annunciation": "Alarm Annunciation",
    "mode_selection": "Mode Selection",
    "jog_control": "Jog Control",
    "hmi_write": "HMI Write",
}

_SEMANTIC_NAMES: dict[str, str] = {
    "valve": "valve/actuator",
    "hmi": "HMI",
    "io": "I/O",
}

_TAG_LIST_LIMIT = 5
_USED_BY_LIMIT = 3
_RELATED_LIMIT = 5


def format_pattern_name(pattern: PatternType) -> str:
    return _PATTERN_NAMES.get(pattern, pattern)


def format_semantic_type(semantic_type: SemanticTagType) -> str:
    return _SEMANTIC_NAMES.get(semantic_type, semantic_type)


class ExplanationFormatter:
    """Build the per-tag lines of a rung explanation."""

    @staticmethod
    def location(ref: RungReference) -> str:
        return f"{ref.routine}:{ref.rung_number}"

    @staticmethod
    def tag_line(
        tag: str,
        graph: TagGraph,
        *,
        project: Project | None,
        program: str,
    ) -> str:
        line = f"- {tag}"
        info = graph.get(tag)
        if info is not None and info.semantic_type != "unknown":
            line += f" ({format_semantic_type(info.semantic_type)})"
        if project is not None:
            declared = project.find_tag(tag, program)
            if declared is not None and declared.description:
                line += f' "{declared.description}"'
        return line

    @classmethod
    def input_line(
        cls, tag: str, graph: TagGraph, *, project: Project | None, program: str
    ) -> str:
        line = cls.tag_line(tag, graph, project=project, program=program)
        info = graph.get(tag)
        if info is not None and info.writers:
            line += f" <- set by {cls.location(info.writers[0])}"
        return line

    @classmethod
    def output_line(
        cls, tag: str, graph: TagGraph, *, project: Project | None, program: str
    ) -> str:
        line = cls.tag_line(tag, graph, project=project, program=program)
        info = graph.get(tag)
        if info is not None and info.readers:
            used_by = ", ".join(cls.location(ref) for ref in info.readers[:_USED_BY_LIMIT])
            line += f" -> used by {used_by}"
        return line


def render_explanation(
    context: RungContext,
    graph: TagGraph,
    project: Project | None = None,
) -> str:
    """Render ``context`` as markdown using cross references from ``graph``.

    When ``project`` is given, declared tag descriptions are quoted next to
    each tag.
    """
    lines: list[str] = []

    def section(*section_lines: str) -> None:
        if lines:
            lines.append("")
        lines.extend(section_lines)

    if context.purpose:
        section(f"**Purpose:** {context.purpose}")

    if context.subsystems:
        section("**Subsystems:** " + ", ".join(context.subsystems))

    if context.safety_relevant:
        section(
            "**Safety-Related Logic** - This rung affects safety functions. "
            "Changes require careful review."
        )

    if context.concerns:
        section("**Code Concerns:**", *(f"- {concern}" for concern in context.concerns))

    shown = [p for p in context.patterns if p != "code_concern"]
    if shown:
        section("**Patterns:** " + ", ".join(format_pattern_name(p) for p in shown))

    if context.key_points:
        section("**Key points:**", *(f"- {point}" for point in context.key_points))

    program = context.program
    if context.input_tags:
        section(
            "**Depends on:**",
            *(
                ExplanationFormatter.input_line(tag, graph, project=project, program=program)
                for tag in context.input_tags[:_TAG_LIST_LIMIT]
            ),
        )

    if context.output_tags:
        section(
            "**Controls:**",
            *(
                ExplanationFormatter.output_line(tag, graph, project=project, program=program)
                for tag in context.output_tags[:_TAG_LIST_LIMIT]
            ),
        )

    if context.related_rungs:
        related = ", ".join(str(n) for n in context.related_rungs[:_RELATED_LIMIT])
        section(f"**Related rungs:** {related}")

    return "\n".join(lines)
