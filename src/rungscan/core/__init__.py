"""Static analysis engine for ladder logic.

Two passes over an immutable project tree:
    build_tag_graph(project) -> TagGraph
    analyze_rungs(project, graph) -> ProgramAnalysis

``analyze_project`` runs both. Nothing is executed or simulated; every result
is derived from rung text, opcodes and tag names.
"""

from rungscan.core.analyzer import (
    ProgramAnalysis,
    RungContext,
    analyze_project,
    analyze_rungs,
    related_rungs,
    rung_key,
)
from rungscan.core.categorize import (
    BranchGroup,
    RungCategory,
    branch_groups,
    categorize_rung,
    has_option_bits,
    key_points,
)
from rungscan.core.explain import format_pattern_name, format_semantic_type, render_explanation
from rungscan.core.loader import ProjectFormatError, project_from_dict
from rungscan.core.model import Instruction, Program, Project, Routine, Rung, Tag
from rungscan.core.options import DEFAULT_OPTIONS, AnalysisOptions
from rungscan.core.patterns import (
    PATTERN_RULES,
    DetectedPattern,
    PatternType,
    RungView,
    detect_patterns,
)
from rungscan.core.purpose import (
    PurposeDecision,
    decide_purpose,
    format_tag_name,
    infer_output_intent,
    render_purpose,
)
from rungscan.core.rung_text import (
    RungStructure,
    extract_instructions,
    extract_tag_names,
    parse_rung_text,
    split_operands,
)
from rungscan.core.semantics import SemanticTagType, detect_subsystems, infer_semantic_type
from rungscan.core.summary import ProgramSummary, build_summary
from rungscan.core.tag_graph import RungReference, TagGraph, TagUsageInfo, build_tag_graph

__all__ = [
    "AnalysisOptions",
    "BranchGroup",
    "DEFAULT_OPTIONS",
    "DetectedPattern",
    "Instruction",
    "PATTERN_RULES",
    "PatternType",
    "Program",
    "ProgramAnalysis",
    "ProgramSummary",
    "Project",
    "ProjectFormatError",
    "PurposeDecision",
    "Routine",
    "Rung",
    "RungCategory",
    "RungContext",
    "RungReference",
    "RungStructure",
    "RungView",
    "SemanticTagType",
    "Tag",
    "TagGraph",
    "TagUsageInfo",
    "analyze_project",
    "analyze_rungs",
    "branch_groups",
    "build_summary",
    "build_tag_graph",
    "categorize_rung",
    "decide_purpose",
    "detect_patterns",
    "detect_subsystems",
    "extract_instructions",
    "extract_tag_names",
    "format_pattern_name",
    "format_semantic_type",
    "format_tag_name",
    "has_option_bits",
    "infer_output_intent",
    "infer_semantic_type",
    "key_points",
    "parse_rung_text",
    "project_from_dict",
    "related_rungs",
    "render_explanation",
    "render_purpose",
    "rung_key",
    "split_operands",
]
