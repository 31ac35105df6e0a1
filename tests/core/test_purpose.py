"""Tests for purpose decisions and their rendering.

Decisions are checked structurally; only the renderer tests compare text.
"""

import pytest
from pyrsistent import pmap

from rungscan.core.patterns import detect_patterns
from rungscan.core.purpose import (
    PurposeDecision,
    decide_purpose,
    format_tag_name,
    infer_output_intent,
    render_purpose,
)
from rungscan.core.rung_text import extract_instructions
from tests.conftest import make_view

STATUS_RUNG = (
    "XIC(Sys_On) [OTE(Infeed1_Ready),OTE(Infeed2_Ready),OTE(Exit1_Ready)"
    ",OTE(Exit2_Ready),OTE(Carriage_Ready)]"
)


class TestHelpers:
    @pytest.mark.parametrize(
        ("tag", "intent"),
        [
            ("Pump1Running", "running"),
            ("GATESOK", "ok"),
            ("Motor_Faulted", "fault"),
            ("Seq_Complete", "complete"),
            ("Lamp", None),
            (None, None),
        ],
    )
    def test_output_intent(self, tag, intent):
        assert infer_output_intent(tag) == intent

    def test_format_tag_name(self):
        assert format_tag_name("CONV_3_RUNNING.DN") == "Conv 3 Running"
        assert format_tag_name("Recipe[2].Temp") == "Recipe"


class TestDecidePurpose:
    def test_generic_fallbacks(self):
        with_output = decide_purpose((), "general_logic", ("Aux_In",), ("Aux_Lamp",))
        with_input = decide_purpose((), "general_logic", ("Aux_In",), ())
        empty = decide_purpose((), "general_logic", (), ())

        assert (with_output.template, dict(with_output.args)) == (
            "general_output",
            {"tag": "Aux Lamp"},
        )
        assert with_input.template == "general_input"
        assert empty.template == "general_generic"
        assert empty.primary_output is None

    def test_highest_priority_pattern_selects_template(self):
        view = make_view("XIC(ESTOP_OK) XIC(Run_Req) TON(Run_Dly,100,0) OTE(Run_Permit)")
        patterns = detect_patterns(view)

        decision = decide_purpose(patterns, "safety", view.input_tags, view.output_tags)

        assert decision.template == "pattern_output"
        assert decision.args["description"].startswith("Safety interlock")
        assert decision.safety_inputs == ("ESTOP_OK",)

    def test_wide_status_rung_uses_status_template(self):
        view = make_view(STATUS_RUNG)
        patterns = detect_patterns(view)

        decision = decide_purpose(patterns, "status_monitoring", view.input_tags, view.output_tags)

        assert decision.template == "status_monitoring"
        assert decision.args["subsystems"] == "Infeed Conveyors, Exit Conveyors, Carriage System"
        assert decision.intent == "ready"
        assert decision.primary_output == "Infeed1_Ready"

    def test_code_concern_never_selects_a_template(self):
        view = make_view("MUL(Motor_Running,Pump_Ready,Result)")
        patterns = detect_patterns(view)

        assert [p.type for p in patterns] == ["code_concern"]
        decision = decide_purpose(patterns, "motor_control", view.input_tags, view.output_tags)

        assert decision.template == "motor_control"
        assert dict(decision.args) == {"tag": "Motor Running"}

    def test_sequence_step_template(self):
        instructions = extract_instructions("EQU(Seq_Step,10) OTE(Fill_Valve)")

        decision = decide_purpose(
            (), "sequence_control", ("Seq_Step",), ("Fill_Valve",), instructions
        )

        assert decision.template == "sequence_step"
        assert dict(decision.args) == {"tag": "Seq Step", "step": "10"}

    def test_scaling_calculation(self):
        instructions = extract_instructions("MUL(Raw_In,0.1,Scaled_Out)")

        decision = decide_purpose((), "calculation", ("Raw_In",), ("Scaled_Out",), instructions)

        assert decision.template == "calculation_scaling"
        assert decision.args["tag"] == "Scaled Out"

    def test_primary_output_prefers_tag_with_intent(self):
        decision = decide_purpose((), "general_logic", (), ("Aux_Lamp", "Line_Running"))

        assert decision.primary_output == "Line_Running"
        assert decision.intent == "running"

    def test_numeric_operands_ignored(self):
        decision = decide_purpose((), "general_logic", ("5",), ("10",))

        assert decision.template == "general_generic"


class TestRenderPurpose:
    def test_plain_template(self):
        decision = PurposeDecision("general_output", pmap({"tag": "Aux Lamp"}))

        assert render_purpose(decision) == "Control logic for Aux Lamp"

    def test_intent_subsystems_and_safety_inputs_surface(self):
        decision = PurposeDecision(
            "general_output",
            pmap({"tag": "Conv1 Running"}),
            primary_output="Conv1_Running",
            intent="running",
            subsystems=("Conveyors",),
            safety_inputs=("ESTOP_OK",),
        )

        assert render_purpose(decision) == (
            "Control logic for Conv1 Running; signals RUNNING via Conv1 Running"
            " [Conveyors]; safety inputs: ESTOP_OK"
        )

    def test_status_template_names_subsystems_once(self):
        decision = PurposeDecision(
            "status_monitoring",
            pmap({"subsystems": "Conveyors"}),
            subsystems=("Conveyors",),
        )

        assert render_purpose(decision) == (
            "Monitors operational status of Conveyors for system readiness"
        )

    def test_decision_to_dict(self):
        decision = PurposeDecision("data_move", pmap({"tag": "Dest"}), primary_output="Dest")

        assert decision.to_dict() == {
            "template": "data_move",
            "args": {"tag": "Dest"},
            "primary_output": "Dest",
            "intent": None,
            "subsystems": [],
            "safety_inputs": [],
        }
