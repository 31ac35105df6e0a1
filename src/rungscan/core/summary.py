"""Program-level roll-up of a finished rung analysis."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rungscan.core.options import DEFAULT_OPTIONS, AnalysisOptions
from rungscan.core.patterns import PATTERN_TYPES, DetectedPattern, PatternType
from rungscan.core.tag_graph import TagGraph

if TYPE_CHECKING:
    from rungscan.core.analyzer import RungContext

_KEY_SEMANTIC_TYPES = frozenset({"safety", "motor", "fault"})


@dataclass(frozen=True)
class ProgramSummary:
    total_rungs: int = 0
    safety_rungs: int = 0
    motor_control_rungs: int = 0
    timer_count: int = 0
    counter_count: int = 0
    detected_patterns: tuple[tuple[PatternType, int], ...] = ()
    key_tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rungs": self.total_rungs,
            "safety_rungs": self.safety_rungs,
            "motor_control_rungs": self.motor_control_rungs,
            "timer_count": self.timer_count,
            "counter_count": self.counter_count,
            "detected_patterns": [
                {"type": kind, "count": count} for kind, count in self.detected_patterns
            ],
            "key_tags": list(self.key_tags),
        }


def _pattern_histogram(patterns: Iterable[DetectedPattern]) -> tuple[tuple[PatternType, int], ...]:
    counts = Counter(pattern.type for pattern in patterns)
    catalogue = {kind: idx for idx, kind in enumerate(PATTERN_TYPES)}
    ordered = sorted(counts.items(), key=lambda item: (-item[1], catalogue[item[0]]))
    return tuple(ordered)


def _key_tags(graph: TagGraph, options: AnalysisOptions) -> tuple[str, ...]:
    candidates = [
        info
        for info in graph.infos()
        if info.semantic_type in _KEY_SEMANTIC_TYPES
        or info.reference_count >= options.key_tag_min_references
    ]
    # sorted() is stable, so equal counts keep first-seen order
    candidates = sorted(candidates, key=lambda info: -info.reference_count)
    return tuple(info.name for info in candidates[: options.key_tag_limit])


def build_summary(
    contexts: Iterable[RungContext],
    graph: TagGraph,
    patterns: Iterable[DetectedPattern],
    options: AnalysisOptions = DEFAULT_OPTIONS,
) -> ProgramSummary:
    contexts = tuple(contexts)
    return ProgramSummary(
        total_rungs=len(contexts),
        safety_rungs=sum(1 for ctx in contexts if ctx.safety_relevant),
        motor_control_rungs=sum(1 for ctx in contexts if ctx.category == "motor_control"),
        timer_count=sum(1 for ctx in contexts if ctx.category == "timer_logic"),
        counter_count=sum(1 for ctx in contexts if ctx.category == "counter_logic"),
        detected_patterns=_pattern_histogram(patterns),
        key_tags=_key_tags(graph, options),
    )
