"""Two-pass program analysis.

Pass one (``build_tag_graph``) records every tag read and write in the whole
project. Pass two (``analyze_rungs``) walks each rung again, runs the pattern
rules, categorizes it and writes a ``RungContext`` using the finished graph
for cross references. ``analyze_project`` runs both passes in order.
"""

from __future__ import annotations

import logging
import time
import warnings
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from pyrsistent import PMap, pmap

from rungscan.core.categorize import (
    BranchGroup,
    RungCategory,
    branch_groups,
    categorize_rung,
    has_option_bits,
    key_points,
)
from rungscan.core.model import Program, Project, Routine, Rung
from rungscan.core.options import DEFAULT_OPTIONS, AnalysisOptions
from rungscan.core.patterns import (
    DetectedPattern,
    PatternType,
    RungView,
    code_concerns,
    detect_patterns,
)
from rungscan.core.purpose import PurposeDecision, decide_purpose, render_purpose
from rungscan.core.semantics import detect_subsystems, infer_semantic_type
from rungscan.core.summary import ProgramSummary, build_summary
from rungscan.core.tag_graph import TagGraph, build_tag_graph

logger = logging.getLogger(__name__)


def rung_key(program: str, routine: str, rung_number: int) -> str:
    """Key of a rung in ``ProgramAnalysis.rung_contexts``: ``"MainProgram/MainRoutine:4"``."""
    return f"{program}/{routine}:{rung_number}"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RungContext:
    """Everything the engine concluded about one rung."""

    rung_number: int
    program: str
    routine: str
    category: RungCategory
    purpose: str
    purpose_decision: PurposeDecision
    patterns: tuple[PatternType, ...] = ()
    related_rungs: tuple[int, ...] = ()
    safety_relevant: bool = False
    input_tags: tuple[str, ...] = ()
    output_tags: tuple[str, ...] = ()
    concerns: tuple[str, ...] = ()
    subsystems: tuple[str, ...] = ()
    key_points: tuple[str, ...] = ()
    branch_count: int = 0
    has_option_bits: bool = False
    branch_groups: tuple[BranchGroup, ...] = ()

    @property
    def key(self) -> str:
        return rung_key(self.program, self.routine, self.rung_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rung_number": self.rung_number,
            "program": self.program,
            "routine": self.routine,
            "category": self.category,
            "purpose": self.purpose,
            "purpose_decision": self.purpose_decision.to_dict(),
            "patterns": list(self.patterns),
            "related_rungs": list(self.related_rungs),
            "safety_relevant": self.safety_relevant,
            "input_tags": list(self.input_tags),
            "output_tags": list(self.output_tags),
            "concerns": list(self.concerns),
            "subsystems": list(self.subsystems),
            "key_points": list(self.key_points),
            "branch_count": self.branch_count,
            "has_option_bits": self.has_option_bits,
            "branch_groups": [group.to_dict() for group in self.branch_groups],
        }


@dataclass(frozen=True)
class ProgramAnalysis:
    tag_usage: PMap
    patterns: tuple[DetectedPattern, ...]
    rung_contexts: PMap
    summary: ProgramSummary
    tag_order: tuple[str, ...] = ()
    rung_order: tuple[str, ...] = ()

    @property
    def graph(self) -> TagGraph:
        return TagGraph(usage=self.tag_usage, order=self.tag_order)

    def contexts(self) -> Iterator[RungContext]:
        """Rung contexts in traversal order."""
        return (self.rung_contexts[key] for key in self.rung_order)

    def get_context(self, program: str, routine: str, rung_number: int) -> RungContext | None:
        return self.rung_contexts.get(rung_key(program, routine, rung_number))

    def to_dict(self, reference_limit: int = 10) -> dict[str, Any]:
        """Plain-data form; reader/writer lists are capped at ``reference_limit``."""
        return {
            "tag_usage": {
                name: self.tag_usage[name].to_dict(reference_limit) for name in self.tag_order
            },
            "patterns": [pattern.to_dict() for pattern in self.patterns],
            "rung_contexts": {key: self.rung_contexts[key].to_dict() for key in self.rung_order},
            "summary": self.summary.to_dict(),
        }


# ---------------------------------------------------------------------------
# Cross references
# ---------------------------------------------------------------------------


def related_rungs(
    program: str,
    routine: str,
    rung_number: int,
    tags: Iterable[str],
    graph: TagGraph,
) -> tuple[int, ...]:
    """Other rungs of the same routine that read or write any of ``tags``."""
    found: set[int] = set()
    for tag in tags:
        for ref in graph.references_in_routine(tag, program, routine):
            if ref.rung_number != rung_number:
                found.add(ref.rung_number)
    return tuple(sorted(found))


def is_safety_relevant(
    category: RungCategory, pattern_types: Iterable[PatternType], tags: Iterable[str]
) -> bool:
    if category == "safety" or "safety_interlock" in pattern_types:
        return True
    return any(infer_semantic_type(tag) == "safety" for tag in tags)


# ---------------------------------------------------------------------------
# Rung pass
# ---------------------------------------------------------------------------


class _RungPass:
    """Second pass over the project; one instance per ``analyze_rungs`` call."""

    __slots__ = ("graph", "options", "patterns", "contexts")

    def __init__(self, graph: TagGraph, options: AnalysisOptions) -> None:
        self.graph = graph
        self.options = options
        self.patterns: dict[str, tuple[DetectedPattern, ...]] = {}
        self.contexts: dict[str, RungContext] = {}

    def walk(self, project: Project) -> None:
        for program in project.programs:
            for routine in program.routines:
                self._walk_routine(program, routine)

    def _walk_routine(self, program: Program, routine: Routine) -> None:
        seen: set[int] = set()
        for rung in routine.rungs:
            if rung.number in seen:
                warnings.warn(
                    f"Duplicate rung number {rung.number} in {program.name}/{routine.name}; "
                    "the later rung replaces the earlier one and its patterns.",
                    RuntimeWarning,
                    stacklevel=2,
                )
            seen.add(rung.number)
            context, found = self._analyze_rung(program.name, routine.name, rung)
            # Re-insert so traversal order follows the rung that won the key.
            self.contexts.pop(context.key, None)
            self.patterns.pop(context.key, None)
            self.contexts[context.key] = context
            self.patterns[context.key] = found

    def _analyze_rung(
        self, program: str, routine: str, rung: Rung
    ) -> tuple[RungContext, tuple[DetectedPattern, ...]]:
        options = self.options
        view = RungView.from_rung(program, routine, rung)
        found = detect_patterns(view)

        pattern_types = tuple(pattern.type for pattern in found)
        inputs, outputs = view.input_tags, view.output_tags
        all_tags = view.tags

        category = categorize_rung(pattern_types, inputs, outputs, view.instructions, options)
        safety_relevant = is_safety_relevant(category, pattern_types, all_tags)
        decision = decide_purpose(
            found, category, inputs, outputs, view.instructions, options=options
        )
        concerns = code_concerns(view) if "code_concern" in pattern_types else ()

        context = RungContext(
            rung_number=rung.number,
            program=program,
            routine=routine,
            category=category,
            purpose=render_purpose(decision),
            purpose_decision=decision,
            patterns=pattern_types,
            related_rungs=related_rungs(program, routine, rung.number, all_tags, self.graph),
            safety_relevant=safety_relevant,
            input_tags=inputs,
            output_tags=outputs,
            concerns=concerns,
            subsystems=detect_subsystems(all_tags),
            key_points=key_points(
                view,
                pattern_types,
                self.graph,
                safety_relevant=safety_relevant,
                concerns=concerns,
                options=options,
            ),
            branch_count=view.structure.branch_count,
            has_option_bits=has_option_bits(all_tags),
            branch_groups=branch_groups(view.structure),
        )
        return context, found


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze_rungs(
    project: Project,
    graph: TagGraph,
    *,
    options: AnalysisOptions = DEFAULT_OPTIONS,
) -> ProgramAnalysis:
    """Run pattern detection and categorization over every rung.

    ``graph`` must be the finished tag graph of the same ``project``; related
    rungs, key points and the summary are read from it.
    """
    started = time.perf_counter()
    rung_pass = _RungPass(graph, options)
    rung_pass.walk(project)

    contexts = rung_pass.contexts
    patterns = tuple(pattern for found in rung_pass.patterns.values() for pattern in found)
    summary = build_summary(contexts.values(), graph, patterns, options)
    logger.debug(
        "Analyzed %d rungs, %d patterns in %.1f ms",
        len(contexts),
        len(patterns),
        (time.perf_counter() - started) * 1000,
    )
    return ProgramAnalysis(
        tag_usage=graph.usage,
        patterns=patterns,
        rung_contexts=pmap(contexts),
        summary=summary,
        tag_order=graph.order,
        rung_order=tuple(contexts),
    )


def analyze_project(
    project: Project,
    *,
    options: AnalysisOptions = DEFAULT_OPTIONS,
) -> ProgramAnalysis:
    """Build the tag graph, then analyze every rung against it."""
    started = time.perf_counter()
    graph = build_tag_graph(project)
    logger.debug(
        "Built tag graph for %r: %d tags in %.1f ms",
        project.name,
        len(graph),
        (time.perf_counter() - started) * 1000,
    )
    return analyze_rungs(project, graph, options=options)
