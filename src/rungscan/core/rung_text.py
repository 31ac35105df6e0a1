"""Parser for the textual form of a ladder rung.

Rung text uses ``NAME(op1,op2)`` for instruction calls, juxtaposition for
series (AND) logic and ``[leg1,leg2,...]`` for parallel (OR) branches::

    XIC(A)[XIC(B) OTE(C),XIC(D) OTE(E)]

The parser is total: any string is accepted. Unbalanced delimiters end the
scan at end-of-string and whatever was recognized up to that point is
returned.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from rungscan.core.model import Instruction

# ``NAME(`` not preceded by part of a longer operand path (``Local:1:I.Data(``).
_CALL_RE = re.compile(r"(?<![A-Za-z0-9_.:])([A-Za-z_][A-Za-z0-9_]*)\(")

_TAG_TOKEN_RE = re.compile(
    r"(?<![A-Za-z0-9_])"  # not the tail of a number such as 1.5e3
    r"[A-Za-z_][A-Za-z0-9_:]*"
    r"(?:\.[A-Za-z0-9_]+)*"
    r"(?:\[[^\]]+\])?"
)

# Deeper branch groups are flattened into the innermost leg.
MAX_BRANCH_DEPTH = 32


@dataclass(frozen=True)
class RungStructure:
    """Shape of one rung: shared prefix, optional parallel branches, shared suffix.

    A rung without a branch group is *linear* and holds everything in
    ``shared_prefix``. Each branch is itself parsed as a ``RungStructure`` so
    nested branch groups are preserved.
    """

    shared_prefix: tuple[Instruction, ...] = ()
    branches: tuple[RungStructure, ...] = ()
    shared_suffix: tuple[Instruction, ...] = ()

    @property
    def is_linear(self) -> bool:
        return not self.branches

    @property
    def branch_count(self) -> int:
        return len(self.branches)

    def instructions(self) -> tuple[Instruction, ...]:
        """All instructions in textual order."""
        result = list(self.shared_prefix)
        for branch in self.branches:
            result.extend(branch.instructions())
        result.extend(self.shared_suffix)
        return tuple(result)


# ---------------------------------------------------------------------------
# Delimiter scanning
# ---------------------------------------------------------------------------


def _matching_close(text: str, open_idx: int, opener: str, closer: str) -> int | None:
    """Index of the delimiter closing ``text[open_idx]``, or None if unbalanced."""
    depth = 0
    for idx in range(open_idx, len(text)):
        char = text[idx]
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return idx
    return None


def _has_unnested_comma(content: str) -> bool:
    depth = 0
    for char in content:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            return True
    return False


def _is_branch_content(content: str) -> bool:
    """A bracket is a branch group iff it holds a call or a top-level comma.

    Anything else (``Tag[i]``, ``Data[Index+1]``) is an array subscript.
    """
    return _CALL_RE.search(content) is not None or _has_unnested_comma(content)


def _find_branch_group(text: str) -> tuple[int, int | None] | None:
    """Locate the first branch bracket outside any instruction's parentheses.

    Returns ``(open_idx, close_idx)``; ``close_idx`` is None when the bracket
    is never closed.
    """
    paren_depth = 0
    idx = 0
    while idx < len(text):
        char = text[idx]
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth = max(paren_depth - 1, 0)
        elif char == "[" and paren_depth == 0:
            close_idx = _matching_close(text, idx, "[", "]")
            content = text[idx + 1 : close_idx if close_idx is not None else len(text)]
            if _is_branch_content(content):
                return idx, close_idx
            if close_idx is None:
                return None
            idx = close_idx
        idx += 1
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def split_operands(text: str) -> tuple[str, ...]:
    """Split an operand list on commas that are not nested in ``()`` or ``[]``.

    >>> split_operands("Src[1,2], Dest ,, ABS(X,Y)")
    ('Src[1,2]', 'Dest', 'ABS(X,Y)')
    """
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    for char in text:
        if char in "([":
            depth += 1
        elif char in ")]":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return tuple(part.strip() for part in parts if part.strip())


def extract_instructions(text: str) -> tuple[Instruction, ...]:
    """Extract instruction calls in textual order, ignoring branch punctuation.

    Only parentheses count toward nesting when looking for the end of a call,
    so ``MOV(Tag[1],Dest)`` yields a single MOV with two operands.
    """
    instructions: list[Instruction] = []
    pos = 0
    while pos < len(text):
        match = _CALL_RE.search(text, pos)
        if match is None:
            break
        open_idx = match.end() - 1
        close_idx = _matching_close(text, open_idx, "(", ")")
        if close_idx is None:
            body = text[open_idx + 1 :]
            pos = len(text)
        else:
            body = text[open_idx + 1 : close_idx]
            pos = close_idx + 1
        instructions.append(Instruction(match.group(1), split_operands(body)))
    return tuple(instructions)


def parse_rung_text(text: str) -> RungStructure:
    """Split rung text into shared prefix, parallel branches and shared suffix.

    Branch groups nested deeper than ``MAX_BRANCH_DEPTH`` are not split any
    further; their instructions stay in textual order in one linear leg.
    """
    return _parse_structure(text, 0)


def _parse_structure(text: str, depth: int) -> RungStructure:
    group = _find_branch_group(text) if depth < MAX_BRANCH_DEPTH else None
    if group is None:
        return RungStructure(shared_prefix=extract_instructions(text))

    open_idx, close_idx = group
    if close_idx is None:
        content, suffix = text[open_idx + 1 :], ""
    else:
        content, suffix = text[open_idx + 1 : close_idx], text[close_idx + 1 :]

    return RungStructure(
        shared_prefix=extract_instructions(text[:open_idx]),
        branches=tuple(_parse_structure(leg, depth + 1) for leg in split_operands(content)),
        shared_suffix=extract_instructions(suffix),
    )


def extract_tag_names(text: str) -> tuple[str, ...]:
    """Identifier-like operands mentioned in ``text``, first-seen order.

    Opcodes (tokens directly followed by ``(``) and single-character tokens
    are skipped. Used by rules that reason over the raw rung text.
    """
    seen: dict[str, None] = {}
    for match in _TAG_TOKEN_RE.finditer(text):
        token = match.group(0)
        if match.end() < len(text) and text[match.end()] == "(":
            continue
        if len(token) <= 1:
            continue
        seen.setdefault(token, None)
    return tuple(seen)
