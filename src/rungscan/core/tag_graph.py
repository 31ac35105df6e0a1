"""Tag-usage graph: which rungs read and write each tag.

Built in a single pass over the whole project before any rung is analyzed.
The result is frozen into persistent structures; later passes only read it.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from pyrsistent import PMap, pmap

from rungscan.core.model import Project
from rungscan.core.opcodes import Usage, operand_usages
from rungscan.core.semantics import SemanticTagType, infer_semantic_type

# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RungReference:
    program: str
    routine: str
    rung_number: int
    instruction: str
    usage: Usage

    @property
    def location(self) -> tuple[str, str, int]:
        return (self.program, self.routine, self.rung_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "program": self.program,
            "routine": self.routine,
            "rung_number": self.rung_number,
            "instruction": self.instruction,
            "usage": self.usage,
        }


@dataclass(frozen=True)
class TagUsageInfo:
    """All rungs that touch one tag. At most one reference per rung and usage."""

    name: str
    readers: tuple[RungReference, ...] = ()
    writers: tuple[RungReference, ...] = ()
    semantic_type: SemanticTagType = "unknown"

    @property
    def reference_count(self) -> int:
        return len(self.readers) + len(self.writers)

    def to_dict(self, reference_limit: int | None = None) -> dict[str, Any]:
        readers = self.readers if reference_limit is None else self.readers[:reference_limit]
        writers = self.writers if reference_limit is None else self.writers[:reference_limit]
        return {
            "name": self.name,
            "semantic_type": self.semantic_type,
            "reader_count": len(self.readers),
            "writer_count": len(self.writers),
            "readers": [ref.to_dict() for ref in readers],
            "writers": [ref.to_dict() for ref in writers],
        }


@dataclass(frozen=True)
class TagGraph:
    """Read-only tag usage map, iterated in first-seen tag order."""

    usage: PMap
    order: tuple[str, ...] = ()

    def get(self, name: str) -> TagUsageInfo | None:
        return self.usage.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.usage

    def __iter__(self) -> Iterator[str]:
        return iter(self.order)

    def __len__(self) -> int:
        return len(self.order)

    def infos(self) -> tuple[TagUsageInfo, ...]:
        return tuple(self.usage[name] for name in self.order)

    def references_in_routine(
        self, name: str, program: str, routine: str
    ) -> tuple[RungReference, ...]:
        """Readers then writers of ``name`` located in one routine."""
        info = self.usage.get(name)
        if info is None:
            return ()
        return tuple(
            ref
            for ref in (*info.readers, *info.writers)
            if ref.program == program and ref.routine == routine
        )


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class _GraphBuilder:
    """Accumulates references during the walk; one instance per build."""

    __slots__ = ("_readers", "_writers", "_seen")

    def __init__(self) -> None:
        self._readers: dict[str, list[RungReference]] = {}
        self._writers: dict[str, list[RungReference]] = {}
        self._seen: set[tuple[str, Usage, str, str, int]] = set()

    def add(self, tag: str, ref: RungReference) -> None:
        key = (tag, ref.usage, *ref.location)
        # Touch both maps so first-seen order covers every tag.
        readers = self._readers.setdefault(tag, [])
        writers = self._writers.setdefault(tag, [])
        if key in self._seen:
            return
        self._seen.add(key)
        (writers if ref.usage == "write" else readers).append(ref)

    def build(self) -> TagGraph:
        infos = {
            name: TagUsageInfo(
                name=name,
                readers=tuple(self._readers[name]),
                writers=tuple(self._writers[name]),
                semantic_type=infer_semantic_type(name),
            )
            for name in self._readers
        }
        return TagGraph(usage=pmap(infos), order=tuple(infos))


def build_tag_graph(project: Project) -> TagGraph:
    """Walk every instruction of every rung once and record tag reads/writes.

    Must complete before ``analyze_rungs``; rung analysis reads the finished
    graph for cross references.
    """
    builder = _GraphBuilder()
    for program in project.programs:
        for routine in program.routines:
            for rung in routine.rungs:
                for instruction in rung.instructions:
                    for operand, usage in operand_usages(instruction):
                        builder.add(
                            operand,
                            RungReference(
                                program=program.name,
                                routine=routine.name,
                                rung_number=rung.number,
                                instruction=instruction.type,
                                usage=usage,
                            ),
                        )
    return builder.build()
