"""Name-based semantic classification of tags.

Ladder programs rarely carry typed intent, but tag names do: ``ESTOP_PB``,
``CONV3_RUNNING``, ``STEP_NO``. The tables below map name vocabulary to a
coarse semantic type and to friendly subsystem labels. They are immutable
module data compiled once at import.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache
from typing import Literal

SemanticTagType = Literal[
    "safety",
    "motor",
    "valve",
    "sensor",
    "timer",
    "counter",
    "fault",
    "status",
    "command",
    "feedback",
    "sequence",
    "hmi",
    "io",
    "unknown",
]

# (pattern, type, priority). Highest priority wins; equal priorities resolve
# to the earlier row.
_SEMANTIC_ROWS: tuple[tuple[str, SemanticTagType, int], ...] = (
    (r"ESTOP|E_STOP|EMERG|EMERGENCY", "safety", 100),
    (r"GUARD|GATE|DOOR|INTERLOCK|SAFETY|SAFE", "safety", 95),
    (r"LIGHT_CURTAIN|SCANNER|PRESENCE", "safety", 90),
    (r"FAULT|FLT|ALARM|ALM|ERROR|ERR|FAIL", "fault", 85),
    (r"MOTOR|MTR|DRIVE|DRV|VFD|CONVEYOR|CONV|PUMP|FAN|BLOWER", "motor", 80),
    (r"RUN|RUNNING|START|STOP|JOG", "motor", 75),
    (r"VALVE|VLV|SOL|SOLENOID|CYLINDER|CYL|CLAMP|GRIPPER|ACTUATOR", "valve", 80),
    (r"OPEN|CLOSE|EXTEND|RETRACT|ADVANCE|RETURN", "valve", 70),
    (r"SENSOR|SENS|PROX|PROXIMITY|PHOTO|LIMIT|SWITCH|SW|DETECT", "sensor", 75),
    (r"HOME|POSITION|POS|LEVEL|TEMP|PRESSURE|FLOW", "sensor", 70),
    (r"^T\d+:|TIMER|TMR|DELAY|DLY", "timer", 80),
    (r"^C\d+:|COUNTER|CTR|COUNT|CNT", "counter", 80),
    (r"CMD|COMMAND|REQ|REQUEST|ENABLE|ENB|PERMIT", "command", 65),
    (r"FB|FEEDBACK|CONFIRM|CFM|ACTUAL|ACT|RESPONSE", "feedback", 65),
    (r"STATUS|STS|STATE|MODE|AUTO|MANUAL|MAN|READY|RDY|BUSY|DONE|OK", "status", 60),
    (r"STEP|SEQ|SEQUENCE|PHASE|STAGE", "sequence", 70),
    (r"HMI|PB|PUSH|BUTTON|DISPLAY|SCREEN|OPERATOR|OP_", "hmi", 55),
    (r"^(LOCAL|REMOTE):\d+:[IO]", "io", 90),
    (r"^[IOB]\d+[:.]", "io", 85),
)

SEMANTIC_PATTERNS: tuple[tuple[re.Pattern[str], SemanticTagType, int], ...] = tuple(
    sorted(
        (
            (re.compile(pattern, re.IGNORECASE), kind, priority)
            for pattern, kind, priority in _SEMANTIC_ROWS
        ),
        key=lambda row: -row[2],
    )
)

SUBSYSTEM_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), label)
    for pattern, label in (
        (r"INFEED\d*", "Infeed Conveyors"),
        (r"OUTFEED\d*|EXIT\d*", "Exit Conveyors"),
        (r"CARRIAGE", "Carriage System"),
        (r"ROTATION|ROTATE", "Rotation System"),
        (r"CUTTER|CUT", "Cutter System"),
        (r"CLAMP", "Clamp System"),
        (r"MPS", "MPS System"),
        (r"STABILIZER", "Stabilizer"),
        (r"HOTWIRE|HOT_WIRE", "Hot Wire"),
        (r"WRAP", "Wrap System"),
        (r"FILM", "Film System"),
        (r"LIFT|LOAD", "Load Lift"),
        (r"CONVEYOR|CONV", "Conveyors"),
        (r"DISPENSE", "Dispenser"),
        (r"VFD|DRIVE", "VFD/Drives"),
    )
)


@lru_cache(maxsize=4096)
def infer_semantic_type(tag_name: str) -> SemanticTagType:
    """Classify ``tag_name`` by the highest-priority vocabulary it contains."""
    for pattern, kind, _priority in SEMANTIC_PATTERNS:
        if pattern.search(tag_name):
            return kind
    return "unknown"


def mentions_semantic(text: str, kind: SemanticTagType) -> bool:
    """True when any vocabulary row of ``kind`` occurs anywhere in ``text``."""
    return any(
        pattern.search(text)
        for pattern, row_kind, _priority in SEMANTIC_PATTERNS
        if row_kind == kind
    )


def subsystem_of(tag_name: str) -> str | None:
    for pattern, label in SUBSYSTEM_PATTERNS:
        if pattern.search(tag_name):
            return label
    return None


def detect_subsystems(tags: Iterable[str]) -> tuple[str, ...]:
    """Subsystem labels named by ``tags``, in first-seen order without duplicates."""
    found: dict[str, None] = {}
    for tag in tags:
        for pattern, label in SUBSYSTEM_PATTERNS:
            if pattern.search(tag):
                found.setdefault(label, None)
    return tuple(found)
