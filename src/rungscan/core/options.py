"""Tunable thresholds for rung analysis."""

from __future__ import annotations

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class AnalysisOptions:
    """Thresholds used by the categorizer and the summary builder.

    Attributes:
        status_override_min_outputs: Distinct outputs needed for a
            ``status_monitoring`` rung to override every other category.
        key_tag_limit: Maximum number of tags reported in ``ProgramSummary.key_tags``.
        key_tag_min_references: Reference count that makes any tag a key tag.
        key_point_limit: Maximum number of key points kept per rung.
    """

    status_override_min_outputs: int = 5
    key_tag_limit: int = 20
    key_tag_min_references: int = 3
    key_point_limit: int = 6

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{f.name} must be an int, got {type(value).__name__}")
            if value < 0:
                raise ValueError(f"{f.name} must be >= 0, got {value}")


DEFAULT_OPTIONS = AnalysisOptions()
