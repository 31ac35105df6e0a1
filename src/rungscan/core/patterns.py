"""Rule engine that recognizes common ladder-logic idioms in a single rung.

Each pattern kind has exactly one matcher. A matcher is a pure function of a
``RungView`` (the rung's text, instructions, parsed structure and derived tag
lists) and returns a ``DetectedPattern`` or ``None``. Any number of matchers
may fire on the same rung. Matchers never consult the tag graph, so rungs can
be matched in any order.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Literal

from rungscan.core.model import Instruction, Rung
from rungscan.core.opcodes import (
    COMPARISON_OPCODES,
    CONTACT_OPCODES,
    COPY_OPCODES,
    COUNTER_OPCODES,
    ONE_SHOT_OPCODES,
    SCALING_OPCODES,
    TIMER_OPCODES,
    Usage,
    count_opcodes,
    is_numeric_literal,
    is_tag_operand,
    rung_io_tags,
)
from rungscan.core.rung_text import RungStructure, extract_tag_names, parse_rung_text
from rungscan.core.semantics import detect_subsystems, infer_semantic_type, mentions_semantic
from rungscan.core.tag_graph import RungReference

# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------

PatternType = Literal[
    "safety_interlock",
    "start_stop_circuit",
    "latch_unlatch",
    "timer_delay",
    "counter_accumulator",
    "one_shot",
    "fault_detection",
    "handshake",
    "sequencer",
    "comparison_branch",
    "status_monitoring",
    "zone_control",
    "code_concern",
    "data_scaling",
    "permissive_chain",
    "alarm_annunciation",
    "mode_selection",
    "jog_control",
    "hmi_write",
]


@dataclass(frozen=True)
class DetectedPattern:
    type: PatternType
    confidence: float
    rung_refs: tuple[RungReference, ...]
    tags: tuple[str, ...]
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "confidence": self.confidence,
            "rung_refs": [ref.to_dict() for ref in self.rung_refs],
            "tags": list(self.tags),
            "description": self.description,
        }


@dataclass(frozen=True)
class RungView:
    """Everything a matcher may look at for one rung."""

    program: str
    routine: str
    rung_number: int
    text: str
    instructions: tuple[Instruction, ...]
    structure: RungStructure
    input_tags: tuple[str, ...]
    output_tags: tuple[str, ...]
    text_tags: tuple[str, ...]

    @classmethod
    def from_rung(cls, program: str, routine: str, rung: Rung) -> RungView:
        inputs, outputs = rung_io_tags(rung.instructions)
        return cls(
            program=program,
            routine=routine,
            rung_number=rung.number,
            text=rung.raw_text,
            instructions=rung.instructions,
            structure=parse_rung_text(rung.raw_text),
            input_tags=inputs,
            output_tags=outputs,
            text_tags=extract_tag_names(rung.raw_text),
        )

    @property
    def upper_text(self) -> str:
        return self.text.upper()

    @property
    def tags(self) -> tuple[str, ...]:
        """Inputs then outputs, deduplicated."""
        return tuple(dict.fromkeys((*self.input_tags, *self.output_tags)))

    def has_opcode(self, opcodes: Iterable[str]) -> bool:
        wanted = frozenset(opcodes)
        return any(instruction.type in wanted for instruction in self.instructions)

    def operands_of(self, opcodes: Iterable[str], index: int | None = None) -> tuple[str, ...]:
        """Operands of matching instructions; only ``index`` when given. Literals dropped."""
        wanted = frozenset(opcodes)
        found: dict[str, None] = {}
        for instruction in self.instructions:
            if instruction.type not in wanted:
                continue
            operands = instruction.operands
            if index is not None:
                operands = operands[index : index + 1]
            for operand in operands:
                if is_tag_operand(operand):
                    found.setdefault(operand, None)
        return tuple(found)

    def reference(self, instruction: str = "pattern", usage: Usage = "read") -> RungReference:
        return RungReference(
            program=self.program,
            routine=self.routine,
            rung_number=self.rung_number,
            instruction=instruction,
            usage=usage,
        )


PatternRule = Callable[[RungView], "DetectedPattern | None"]

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

_GATE_RE = re.compile(
    r"GATE\d*OPEN|GATE\d*CLOSE|GATESOK|GATEREQUEST|GATEUNLOCK|GATESHUTDOWN"
    r"|GUARD\w*CLOSE|GUARD\w*OPEN|GUARDOK",
    re.IGNORECASE,
)
_START_STOP_RE = re.compile(r"START.*STOP|STOP.*START", re.IGNORECASE)
_COMMAND_RE = re.compile(r"CMD|COMMAND|REQ|REQUEST", re.IGNORECASE)
_FEEDBACK_RE = re.compile(r"FB|FEEDBACK|CONFIRM|RESPONSE", re.IGNORECASE)
_STATE_RE = re.compile(r"STATE|STEP|PHASE|STAGE|SEQ", re.IGNORECASE)
_STATUS_SUFFIX_RE = re.compile(
    r"(?:STOPPED|RUNNING|OK|READY|ACTIVE|STATUS|COMPLETE|DONE)$", re.IGNORECASE
)
_ZONE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"ZONE_?\d+",
        r"INFEED\d*|OUTFEED\d*|EXIT\d*",
        r"CONV\d+|CONVEYOR\d+",
        r"STATION\d+",
    )
)
_BOOLEAN_NAME_RE = re.compile(
    r"(?:STOPPED|RUNNING|OK|READY|ACTIVE|ENABLED?|DISABLED?|TRUE|FALSE|(?:^|[_.])(?:ON|OFF))$",
    re.IGNORECASE,
)
_BOOLEAN_STATUS_RE = re.compile(r"(?:STOPPED|RUNNING|OK|READY|ACTIVE)$", re.IGNORECASE)
_ANALOG_RE = re.compile(
    r"ANALOG|AIN|RAW|SCALED|SCALE|_EU|PSI|TEMP|DEG|PRESSURE|FLOW|LEVEL|SPEED|RPM|HZ|FREQ"
    r"|AMPS|VOLT|PCT|PERCENT|WEIGHT|GPM",
    re.IGNORECASE,
)
_SCALING_CONSTANTS: frozenset[float] = frozenset(
    {0.001, 0.01, 0.1, 1.8, 2.54, 25.4, 10.0, 32.0, 60.0, 100.0, 1000.0, 3600.0,
     4095.0, 16383.0, 27648.0, 32767.0, 65535.0}
)  # fmt: skip
_ALARM_OUTPUT_RE = re.compile(
    r"ALARM|ALM|HORN|BEACON|BUZZER|SIREN|STACK_?LIGHT|ANNUN|WARN", re.IGNORECASE
)
_MODE_RE = re.compile(r"AUTO|MANUAL|MAINT|SETUP|MODE", re.IGNORECASE)
_JOG_RE = re.compile(r"JOG|INCH", re.IGNORECASE)
_HMI_OUTPUT_RE = re.compile(r"HMI|DISPLAY|SCREEN|PANELVIEW|PV_|OIT", re.IGNORECASE)

_GATING_CONDITIONS = CONTACT_OPCODES | COMPARISON_OPCODES
_GATED_COILS = frozenset({"OTE", "OTL"})
_PERMISSIVE_MIN_CONDITIONS = 4
_PERMISSIVE_STRONG_CONDITIONS = 6

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _pattern(
    view: RungView,
    kind: PatternType,
    confidence: float,
    tags: Iterable[str],
    description: str,
    *,
    instruction: str = "pattern",
    usage: Usage = "read",
) -> DetectedPattern:
    return DetectedPattern(
        type=kind,
        confidence=confidence,
        rung_refs=(view.reference(instruction, usage),),
        tags=tuple(tags),
        description=description,
    )


def _has_gated_output(view: RungView) -> bool:
    """True when some OTE/OTL follows at least one contact in textual order."""
    seen_condition = False
    for instruction in view.instructions:
        if instruction.type in CONTACT_OPCODES:
            seen_condition = True
        elif instruction.type in _GATED_COILS and seen_condition:
            return True
    return False


def _first_operand(view: RungView, opcodes: frozenset[str]) -> str | None:
    for instruction in view.instructions:
        if instruction.type in opcodes and instruction.operands:
            return instruction.operands[0]
    return None


def _main_output(view: RungView) -> str:
    return _first_operand(view, _GATED_COILS) or ""


def _coil_targets(view: RungView, opcodes: frozenset[str]) -> tuple[str, ...]:
    return view.operands_of(opcodes, index=0)


def code_concerns(view: RungView) -> tuple[str, ...]:
    """Likely misuses of math/compare instructions on boolean-looking tags."""
    concerns: dict[str, None] = {}
    for instruction in view.instructions:
        if instruction.type in SCALING_OPCODES:
            flagged = [op for op in instruction.operands if _BOOLEAN_NAME_RE.search(op)]
            if len(flagged) >= 2:
                concerns.setdefault(
                    "Math instructions (MUL/DIV) used with boolean-type tags - "
                    "may cause unpredictable behavior",
                    None,
                )
        elif instruction.type == "EQU":
            if any(_BOOLEAN_STATUS_RE.search(op) for op in instruction.operands):
                concerns.setdefault(
                    "EQU instruction used with boolean-type tags - "
                    "consider using XIC/XIO contacts instead",
                    None,
                )
    return tuple(concerns)


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------


def match_safety_interlock(view: RungView) -> DetectedPattern | None:
    text = view.upper_text

    if _GATE_RE.search(text):
        main_output = _main_output(view).upper()
        if re.search(r"GATESOK|GUARDOK", text):
            description = "Gate/guard status - confirms guards are in safe position"
        elif re.search(r"UNLOCK|OPEN", main_output):
            description = "Gate unlock control - allows gate to be opened"
        elif re.search(r"SHUTDOWN|STOP", text):
            description = "Gate shutdown sequence - safe machine stop when gate opens"
        else:
            description = "Gate/guard interlock logic"
        return _pattern(view, "safety_interlock", 0.95, view.text_tags, description)

    if mentions_semantic(text, "safety") and _has_gated_output(view):
        return _pattern(
            view,
            "safety_interlock",
            0.9,
            view.text_tags,
            "Safety interlock - multiple conditions must be true for output",
        )
    return None


def match_start_stop_circuit(view: RungView) -> DetectedPattern | None:
    text = view.upper_text
    seal_in = _START_STOP_RE.search(text) is not None or view.has_opcode({"OTL"})
    if seal_in and mentions_semantic(text, "motor"):
        return _pattern(
            view,
            "start_stop_circuit",
            0.85,
            view.text_tags,
            "Motor start/stop circuit with seal-in",
        )
    return None


def match_latch_unlatch(view: RungView) -> DetectedPattern | None:
    has_latch = view.has_opcode({"OTL"})
    has_unlatch = view.has_opcode({"OTU"})
    if not (has_latch or has_unlatch):
        return None
    if has_latch and has_unlatch:
        description = "Latches and unlatches outputs in the same rung"
    elif has_latch:
        description = "Latches output ON until explicitly unlatched"
    else:
        description = "Unlatches output OFF"
    return _pattern(
        view,
        "latch_unlatch",
        0.95,
        _coil_targets(view, frozenset({"OTL", "OTU"})),
        description,
        instruction="OTL" if has_latch else "OTU",
        usage="write",
    )


def match_timer_delay(view: RungView) -> DetectedPattern | None:
    timer_tag = _first_operand(view, TIMER_OPCODES)
    if timer_tag is None and not view.has_opcode(TIMER_OPCODES):
        return None
    return _pattern(
        view,
        "timer_delay",
        0.95,
        _coil_targets(view, TIMER_OPCODES),
        f"Timer delay using {timer_tag or 'timer'}",
        instruction="TON/TOF/RTO",
        usage="write",
    )


def match_counter_accumulator(view: RungView) -> DetectedPattern | None:
    if not view.has_opcode(COUNTER_OPCODES):
        return None
    counter_tag = _first_operand(view, COUNTER_OPCODES)
    return _pattern(
        view,
        "counter_accumulator",
        0.95,
        _coil_targets(view, COUNTER_OPCODES),
        f"Counter accumulating events in {counter_tag or 'counter'}",
        instruction="CTU/CTD",
        usage="write",
    )


def match_one_shot(view: RungView) -> DetectedPattern | None:
    if not view.has_opcode(ONE_SHOT_OPCODES):
        return None
    return _pattern(
        view,
        "one_shot",
        0.95,
        view.operands_of(ONE_SHOT_OPCODES),
        "One-shot - triggers once on rising/falling edge",
        instruction="ONS/OSR/OSF",
    )


def match_fault_detection(view: RungView) -> DetectedPattern | None:
    fault_tags = tuple(tag for tag in view.text_tags if mentions_semantic(tag, "fault"))
    if not fault_tags:
        return None
    return _pattern(
        view, "fault_detection", 0.85, fault_tags, "Fault detection or alarm monitoring"
    )


def match_handshake(view: RungView) -> DetectedPattern | None:
    text = view.upper_text
    if _COMMAND_RE.search(text) and _FEEDBACK_RE.search(text):
        return _pattern(
            view,
            "handshake",
            0.8,
            view.text_tags,
            "Command/feedback handshake for confirmed operation",
        )
    return None


def match_sequencer(view: RungView) -> DetectedPattern | None:
    state_tags: dict[str, None] = {}
    step_number: str | None = None

    for instruction in view.instructions:
        operands = instruction.operands
        if instruction.type in COMPARISON_OPCODES:
            if any(_STATE_RE.search(op) for op in operands if is_tag_operand(op)):
                state_tags.update((op, None) for op in operands if _STATE_RE.search(op))
                literal = next((op for op in operands if is_numeric_literal(op)), None)
                step_number = step_number or literal
        elif instruction.type == "ADD" and len(operands) >= 3:
            # Step increment: ADD(Step,1,Step)
            if _STATE_RE.search(operands[2]):
                state_tags.setdefault(operands[2], None)
        elif instruction.type == "MOV" and len(operands) >= 2:
            # Step assignment: MOV(20,Step)
            if _STATE_RE.search(operands[1]) and is_numeric_literal(operands[0]):
                state_tags.setdefault(operands[1], None)
                step_number = step_number or operands[0]

    if not state_tags:
        return None
    label = f"step {step_number} " if step_number else "step "
    return _pattern(
        view,
        "sequencer",
        0.85,
        state_tags,
        f"State machine {label}transition logic",
    )


def match_comparison_branch(view: RungView) -> DetectedPattern | None:
    compares = count_opcodes(view.instructions, COMPARISON_OPCODES - {"LIM"})
    has_lim = view.has_opcode({"LIM"})
    if compares < 2 and not has_lim:
        return None
    description = (
        "Limit check - value within allowed range"
        if has_lim
        else "Multiple comparison conditions"
    )
    return _pattern(
        view,
        "comparison_branch",
        0.75,
        view.operands_of(COMPARISON_OPCODES),
        description,
    )


def match_status_monitoring(view: RungView) -> DetectedPattern | None:
    status_tags = tuple(tag for tag in view.output_tags if _STATUS_SUFFIX_RE.search(tag))
    if len(status_tags) < 3:
        return None
    subsystems = detect_subsystems(view.tags)
    monitored = ", ".join(subsystems) if subsystems else "multiple subsystems"
    return _pattern(
        view,
        "status_monitoring",
        0.9,
        status_tags,
        f"Monitors operational status of {monitored} for system readiness",
    )


def match_zone_control(view: RungView) -> DetectedPattern | None:
    zone_tags = tuple(
        tag for tag in view.text_tags if any(p.search(tag) for p in _ZONE_PATTERNS)
    )
    if len(zone_tags) < 2:
        return None
    subsystems = detect_subsystems(zone_tags)
    controlled = ", ".join(subsystems) if subsystems else "multiple zones/conveyors"
    return _pattern(view, "zone_control", 0.85, zone_tags, f"Controls {controlled}")


def match_code_concern(view: RungView) -> DetectedPattern | None:
    concerns = code_concerns(view)
    if not concerns:
        return None
    flagged = tuple(
        op
        for op in view.operands_of(SCALING_OPCODES | {"EQU"})
        if _BOOLEAN_NAME_RE.search(op)
    )
    return _pattern(view, "code_concern", 0.8, flagged, concerns[0])


def match_data_scaling(view: RungView) -> DetectedPattern | None:
    if not view.has_opcode(SCALING_OPCODES) or code_concerns(view):
        return None

    operands = [
        op
        for instruction in view.instructions
        if instruction.type in SCALING_OPCODES
        for op in instruction.operands
    ]
    analog = [op for op in operands if not is_numeric_literal(op) and _ANALOG_RE.search(op)]
    constants = [
        op for op in operands if is_numeric_literal(op) and float(op) in _SCALING_CONSTANTS
    ]
    if analog:
        confidence = 0.9
    elif constants:
        confidence = 0.75
    else:
        return None

    destination = next(
        (
            instruction.operands[2]
            for instruction in view.instructions
            if instruction.type in SCALING_OPCODES and len(instruction.operands) >= 3
        ),
        None,
    )
    description = "Scales/converts an analog or engineering value"
    if destination:
        description += f" into {destination}"
    return _pattern(
        view,
        "data_scaling",
        confidence,
        view.operands_of(SCALING_OPCODES),
        description,
    )


def match_permissive_chain(view: RungView) -> DetectedPattern | None:
    series = [ins for ins in view.structure.shared_prefix if ins.type == "XIC"]
    coils = [ins for ins in view.instructions if ins.type in _GATED_COILS]
    if len(series) < _PERMISSIVE_MIN_CONDITIONS or len(coils) != 1:
        return None
    coil_tag = coils[0].operands[0] if coils[0].operands else "output"
    conditions = tuple(dict.fromkeys(ins.operands[0] for ins in series if ins.operands))
    confidence = 0.9 if len(series) >= _PERMISSIVE_STRONG_CONDITIONS else 0.8
    return _pattern(
        view,
        "permissive_chain",
        confidence,
        (*conditions, coil_tag),
        f"Permissive chain - {len(series)} conditions must all be true to energize {coil_tag}",
    )


def match_alarm_annunciation(view: RungView) -> DetectedPattern | None:
    alarm_outputs: dict[str, None] = {}
    seen_condition = False
    for instruction in view.instructions:
        if instruction.type in _GATING_CONDITIONS:
            seen_condition = True
        elif instruction.type in _GATED_COILS and seen_condition and instruction.operands:
            if _ALARM_OUTPUT_RE.search(instruction.operands[0]):
                alarm_outputs.setdefault(instruction.operands[0], None)
    if not alarm_outputs:
        return None
    delayed = view.has_opcode({"TON", "TOF"})
    return _pattern(
        view,
        "alarm_annunciation",
        0.9 if delayed else 0.85,
        alarm_outputs,
        "Alarm annunciation - drives operator alarm output"
        + (" after a delay" if delayed else ""),
    )


def match_mode_selection(view: RungView) -> DetectedPattern | None:
    mode_outputs = tuple(
        tag for tag in _coil_targets(view, frozenset({"OTE", "OTL", "OTU"})) if _MODE_RE.search(tag)
    )
    if not mode_outputs:
        return None
    excluded = tuple(
        tag
        for tag in view.operands_of({"XIO"})
        if _MODE_RE.search(tag) and tag not in mode_outputs
    )
    return _pattern(
        view,
        "mode_selection",
        0.9 if excluded else 0.8,
        (*mode_outputs, *excluded),
        "Operating mode selection"
        + (" with mutually exclusive modes" if excluded else ""),
    )


def match_jog_control(view: RungView) -> DetectedPattern | None:
    latched = set(_coil_targets(view, frozenset({"OTL"})))
    jog_input = any(_JOG_RE.search(tag) for tag in view.input_tags)
    jog_outputs = tuple(
        tag
        for tag in _coil_targets(view, frozenset({"OTE"}))
        if tag not in latched
        and (_JOG_RE.search(tag) or (jog_input and infer_semantic_type(tag) == "motor"))
    )
    if not jog_outputs:
        return None
    return _pattern(
        view,
        "jog_control",
        0.85,
        jog_outputs,
        "Jog control - output runs only while jog is held",
    )


def match_hmi_write(view: RungView) -> DetectedPattern | None:
    copied = tuple(
        tag for tag in view.operands_of(COPY_OPCODES, index=1) if _HMI_OUTPUT_RE.search(tag)
    )
    coiled = tuple(
        tag
        for tag in _coil_targets(view, frozenset({"OTE", "OTL", "OTU"}))
        if _HMI_OUTPUT_RE.search(tag)
    )
    if not (copied or coiled):
        return None
    return _pattern(
        view,
        "hmi_write",
        0.9 if copied else 0.8,
        tuple(dict.fromkeys((*copied, *coiled))),
        "Writes values to the HMI/operator display",
        usage="write",
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

PATTERN_RULES: tuple[tuple[PatternType, PatternRule], ...] = (
    ("safety_interlock", match_safety_interlock),
    ("start_stop_circuit", match_start_stop_circuit),
    ("latch_unlatch", match_latch_unlatch),
    ("timer_delay", match_timer_delay),
    ("counter_accumulator", match_counter_accumulator),
    ("one_shot", match_one_shot),
    ("fault_detection", match_fault_detection),
    ("handshake", match_handshake),
    ("sequencer", match_sequencer),
    ("comparison_branch", match_comparison_branch),
    ("status_monitoring", match_status_monitoring),
    ("zone_control", match_zone_control),
    ("code_concern", match_code_concern),
    ("data_scaling", match_data_scaling),
    ("permissive_chain", match_permissive_chain),
    ("alarm_annunciation", match_alarm_annunciation),
    ("mode_selection", match_mode_selection),
    ("jog_control", match_jog_control),
    ("hmi_write", match_hmi_write),
)

PATTERN_TYPES: tuple[PatternType, ...] = tuple(kind for kind, _rule in PATTERN_RULES)


def detect_patterns(view: RungView) -> tuple[DetectedPattern, ...]:
    """Run every matcher against ``view`` in catalogue order."""
    found: list[DetectedPattern] = []
    for _kind, rule in PATTERN_RULES:
        pattern = rule(view)
        if pattern is not None:
            found.append(pattern)
    return tuple(found)
