"""Purpose generation for a rung.

Split in two steps so the decision can be tested without comparing prose:

- ``decide_purpose`` picks a template id and its arguments from the detected
  patterns, the category and the rung's tags.
- ``render_purpose`` turns a ``PurposeDecision`` into the sentence shown to
  users. It always surfaces the primary output's intent, the detected
  subsystems and any safety inputs.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pyrsistent import PMap, pmap

from rungscan.core.categorize import RungCategory
from rungscan.core.model import Instruction, base_tag_name
from rungscan.core.opcodes import COUNTER_OPCODES, TIMER_OPCODES, is_numeric_literal, is_tag_operand
from rungscan.core.options import DEFAULT_OPTIONS, AnalysisOptions
from rungscan.core.patterns import DetectedPattern, PatternType
from rungscan.core.semantics import detect_subsystems, infer_semantic_type

OutputIntent = Literal["stopped", "running", "ready", "fault", "ok", "enable", "complete", "active"]

# First matching suffix wins.
_INTENT_SUFFIXES: tuple[tuple[str, OutputIntent], ...] = (
    ("STOPPED", "stopped"),
    ("RUNNING", "running"),
    ("READY", "ready"),
    ("FAULTED", "fault"),
    ("FAULT", "fault"),
    ("OK", "ok"),
    ("ENABLED", "enable"),
    ("ENABLE", "enable"),
    ("COMPLETE", "complete"),
    ("ACTIVE", "active"),
)

MAIN_PATTERN_PRIORITY: tuple[PatternType, ...] = (
    "safety_interlock",
    "sequencer",
    "status_monitoring",
    "zone_control",
    "start_stop_circuit",
    "permissive_chain",
    "alarm_annunciation",
    "mode_selection",
    "jog_control",
    "timer_delay",
    "counter_accumulator",
    "data_scaling",
    "hmi_write",
    "one_shot",
    "handshake",
    "comparison_branch",
    "latch_unlatch",
    "fault_detection",
)

TEMPLATES: dict[str, str] = {
    # Pattern-driven
    "status_monitoring": "Monitors operational status of {subsystems} for system readiness",
    "zone_control": "Controls {subsystems} zone operations",
    "pattern": "{description}",
    "pattern_output": "{description} -> {output}",
    # Category-driven
    "safety": "Safety interlock controlling {tag}",
    "safety_generic": "Safety interlock logic",
    "motor_control": "Motor control for {tag}",
    "motor_control_generic": "Motor control logic",
    "valve_control": "Valve/actuator control for {tag}",
    "valve_control_generic": "Valve/actuator control logic",
    "timer_logic": "Timer logic using {tag}",
    "timer_logic_generic": "Timer-based logic",
    "counter_logic": "Counter logic using {tag}",
    "counter_logic_generic": "Counter-based logic",
    "sequence_step": "Sequence step {step}: {tag} transition",
    "sequence_control": "Sequence control for {tag}",
    "sequence_control_generic": "Sequence/state machine logic",
    "fault_handling": "Fault handling for {tag}",
    "fault_handling_generic": "Fault detection/handling logic",
    "calculation_scaling": "Scaling/conversion calculation -> {tag}",
    "calculation": "Calculate {tag}",
    "calculation_generic": "Mathematical calculation",
    "data_move_hmi": "Update HMI display: {tag}",
    "data_move": "Data transfer to {tag}",
    "data_move_generic": "Data move/copy operation",
    "hmi_interface": "HMI interface: {tag}",
    "hmi_interface_generic": "HMI/operator interface logic",
    # Generic fallbacks
    "general_output": "Control logic for {tag}",
    "general_input": "Logic based on {tag}",
    "general_generic": "General control logic",
}

_STATE_TAG_RE = re.compile(r"STATE|STEP|PHASE|SEQ", re.IGNORECASE)
_HMI_DEST_RE = re.compile(r"HMI|DISPLAY|SCREEN", re.IGNORECASE)


def format_tag_name(tag: str) -> str:
    """Display form of a tag: ``CONV_3_RUNNING.DN`` -> ``Conv 3 Running``."""
    words = base_tag_name(tag).replace("_", " ").lower()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), words)


def infer_output_intent(tag: str | None) -> OutputIntent | None:
    """Intent signalled by an output tag's suffix, e.g. ``Pump1Running`` -> ``running``."""
    if not tag:
        return None
    upper = tag.upper()
    for suffix, intent in _INTENT_SUFFIXES:
        if upper.endswith(suffix):
            return intent
    return None


@dataclass(frozen=True)
class PurposeDecision:
    template: str
    args: PMap = field(default_factory=pmap)
    primary_output: str | None = None
    intent: OutputIntent | None = None
    subsystems: tuple[str, ...] = ()
    safety_inputs: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "template": self.template,
            "args": dict(sorted(self.args.items())),
            "primary_output": self.primary_output,
            "intent": self.intent,
            "subsystems": list(self.subsystems),
            "safety_inputs": list(self.safety_inputs),
        }


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def _main_pattern(patterns: Sequence[DetectedPattern]) -> DetectedPattern | None:
    by_type = {}
    for pattern in patterns:
        by_type.setdefault(pattern.type, pattern)
    for kind in MAIN_PATTERN_PRIORITY:
        if kind in by_type:
            return by_type[kind]
    return None


def _first_operand(instructions: Sequence[Instruction], opcodes: frozenset[str]) -> str | None:
    for instruction in instructions:
        if instruction.type in opcodes and instruction.operands:
            return instruction.operands[0]
    return None


def _first_of_type(tags: Sequence[str], *kinds: str) -> str | None:
    return next((tag for tag in tags if infer_semantic_type(tag) in kinds), None)


def _is_scaling_math(instructions: Sequence[Instruction]) -> bool:
    for instruction in instructions:
        numbers = [op for op in instruction.operands if is_numeric_literal(op)]
        if instruction.type == "MUL" and any(abs(float(n)) < 1 for n in numbers):
            return True
        if instruction.type == "DIV" and any(abs(float(n)) >= 10 for n in numbers):
            return True
    return False


def _category_template(
    category: RungCategory,
    inputs: tuple[str, ...],
    outputs: tuple[str, ...],
    instructions: Sequence[Instruction],
) -> tuple[str, dict[str, str]]:
    tag: str | None

    if category == "safety":
        tag = _first_of_type(outputs, "safety", "status")
    elif category == "motor_control":
        tag = _first_of_type((*outputs, *inputs), "motor")
    elif category == "valve_control":
        tag = _first_of_type((*outputs, *inputs), "valve")
    elif category == "timer_logic":
        tag = _first_operand(instructions, TIMER_OPCODES)
    elif category == "counter_logic":
        tag = _first_operand(instructions, COUNTER_OPCODES)
    elif category == "sequence_control":
        tag = next((t for t in inputs if _STATE_TAG_RE.search(t)), None)
        step = next(
            (
                ins.operands[1]
                for ins in instructions
                if ins.type == "EQU"
                and len(ins.operands) >= 2
                and is_numeric_literal(ins.operands[1])
            ),
            None,
        )
        if tag and step:
            return "sequence_step", {"tag": format_tag_name(tag), "step": step}
    elif category == "fault_handling":
        tag = _first_of_type(outputs, "fault")
    elif category == "calculation":
        if _is_scaling_math(instructions):
            dest = next(
                (
                    ins.operands[2]
                    for ins in instructions
                    if ins.type in {"MUL", "DIV", "ADD", "SUB"} and len(ins.operands) >= 3
                ),
                outputs[0] if outputs else None,
            )
            if dest:
                return "calculation_scaling", {"tag": format_tag_name(dest)}
        tag = outputs[0] if outputs else None
    elif category == "data_move":
        hmi_dest = next((t for t in outputs if _HMI_DEST_RE.search(t)), None)
        if hmi_dest:
            return "data_move_hmi", {"tag": format_tag_name(hmi_dest)}
        tag = outputs[0] if outputs else None
    elif category == "hmi_interface":
        tag = _first_of_type(outputs, "hmi") or _first_of_type(inputs, "hmi")
    elif category in ("status_monitoring", "zone_control"):
        return category, {}
    else:
        if outputs:
            return "general_output", {"tag": format_tag_name(outputs[0])}
        if inputs:
            return "general_input", {"tag": format_tag_name(inputs[0])}
        return "general_generic", {}

    if tag:
        return category, {"tag": format_tag_name(tag)}
    return f"{category}_generic", {}


def decide_purpose(
    patterns: Sequence[DetectedPattern],
    category: RungCategory,
    input_tags: Sequence[str],
    output_tags: Sequence[str],
    instructions: Sequence[Instruction] = (),
    *,
    options: AnalysisOptions = DEFAULT_OPTIONS,
) -> PurposeDecision:
    """Choose the purpose template for a rung; no text is produced here."""
    inputs = tuple(dict.fromkeys(t for t in input_tags if is_tag_operand(t)))
    outputs = tuple(dict.fromkeys(t for t in output_tags if is_tag_operand(t)))
    subsystems = detect_subsystems((*inputs, *outputs))
    safety_inputs = tuple(t for t in inputs if infer_semantic_type(t) == "safety")

    primary_output = next((t for t in outputs if infer_output_intent(t)), None)
    if primary_output is None and outputs:
        primary_output = outputs[0]
    intent = infer_output_intent(primary_output)

    subsystem_arg = ", ".join(subsystems)
    fired = {pattern.type for pattern in patterns}
    main = _main_pattern(patterns)

    template: str
    args: dict[str, str]
    if "status_monitoring" in fired and len(outputs) >= options.status_override_min_outputs:
        template, args = "status_monitoring", {}
    elif main is None:
        template, args = _category_template(category, inputs, outputs, instructions)
    elif main.type in ("status_monitoring", "zone_control"):
        template, args = main.type, {}
    elif outputs and outputs[0] not in main.description:
        template = "pattern_output"
        args = {"description": main.description, "output": format_tag_name(outputs[0])}
    else:
        template, args = "pattern", {"description": main.description}

    if template == "status_monitoring":
        args["subsystems"] = subsystem_arg or "multiple subsystems"
    elif template == "zone_control":
        args["subsystems"] = subsystem_arg or "multiple"

    return PurposeDecision(
        template=template,
        args=pmap(args),
        primary_output=primary_output,
        intent=intent,
        subsystems=subsystems,
        safety_inputs=safety_inputs,
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_purpose(decision: PurposeDecision) -> str:
    text = TEMPLATES[decision.template].format(**decision.args)

    if decision.intent and decision.primary_output:
        output = format_tag_name(decision.primary_output)
        text += f"; signals {decision.intent.upper()} via {output}"

    # status/zone templates already name their subsystems
    if decision.subsystems and decision.template not in ("status_monitoring", "zone_control"):
        text += f" [{', '.join(decision.subsystems)}]"

    if decision.safety_inputs:
        text += f"; safety inputs: {', '.join(decision.safety_inputs[:5])}"

    return text
