"""Tests for the pattern rule engine.

Every matcher is exercised through ``detect_patterns`` or directly against a
``RungView`` built from rung text.
"""

import pytest

from rungscan.core.patterns import (
    PATTERN_RULES,
    PATTERN_TYPES,
    detect_patterns,
    match_alarm_annunciation,
    match_code_concern,
    match_comparison_branch,
    match_counter_accumulator,
    match_data_scaling,
    match_fault_detection,
    match_handshake,
    match_hmi_write,
    match_jog_control,
    match_latch_unlatch,
    match_mode_selection,
    match_one_shot,
    match_permissive_chain,
    match_safety_interlock,
    match_sequencer,
    match_start_stop_circuit,
    match_status_monitoring,
    match_timer_delay,
    match_zone_control,
)
from tests.conftest import GATE_RUNG, PROGRAM, ROUTINE, make_view


def fired(text: str) -> list[str]:
    return [pattern.type for pattern in detect_patterns(make_view(text))]


class TestRegistry:
    def test_one_rule_per_pattern_type(self):
        assert len(PATTERN_TYPES) == len(set(PATTERN_TYPES)) == len(PATTERN_RULES) == 19

    def test_results_follow_catalogue_order(self):
        types = fired(GATE_RUNG)

        assert types == sorted(types, key=PATTERN_TYPES.index)

    def test_every_pattern_references_its_rung(self):
        for pattern in detect_patterns(make_view(GATE_RUNG, number=7)):
            assert [ref.location for ref in pattern.rung_refs] == [(PROGRAM, ROUTINE, 7)]

    def test_plain_rung_fires_nothing(self):
        assert fired("XIC(Aux_In)OTE(Aux_Out)") == []


class TestSafetyInterlock:
    def test_gate_status_variant(self):
        pattern = match_safety_interlock(make_view(GATE_RUNG))

        assert pattern.confidence == 0.95
        assert pattern.description.startswith("Gate/guard status")

    def test_gate_unlock_variant(self):
        pattern = match_safety_interlock(
            make_view("XIC(GATEREQUEST) XIC(POWEROFF) OTE(GATEUNLOCK)")
        )

        assert pattern.confidence == 0.95
        assert pattern.description.startswith("Gate unlock control")

    def test_general_safety_needs_gated_output(self):
        pattern = match_safety_interlock(
            make_view("XIC(ESTOP_OK) XIO(Light_Curtain_Blocked) OTE(Run_Permit)")
        )

        assert pattern.confidence == 0.9
        assert "ESTOP_OK" in pattern.tags

    def test_safety_words_without_output_do_not_fire(self):
        assert match_safety_interlock(make_view("XIC(ESTOP_OK) XIC(Reset_PB)")) is None


class TestMotorAndLatch:
    def test_start_stop_circuit(self):
        pattern = match_start_stop_circuit(
            make_view("XIC(Start_PB) XIO(Stop_PB) OTE(Conveyor_Motor)")
        )

        assert pattern.confidence == 0.85

    def test_latch(self):
        pattern = match_latch_unlatch(make_view("XIC(Trip) OTL(Alarm_Latch)"))

        assert pattern.tags == ("Alarm_Latch",)
        assert pattern.rung_refs[0].instruction == "OTL"
        assert pattern.rung_refs[0].usage == "write"

    def test_unlatch_only(self):
        pattern = match_latch_unlatch(make_view("XIC(Reset) OTU(Alarm_Latch)"))

        assert pattern.rung_refs[0].instruction == "OTU"
        assert "Unlatches" in pattern.description

    def test_jog_input_driving_motor(self):
        pattern = match_jog_control(make_view("XIC(Jog_PB) OTE(Conveyor_Motor)"))

        assert pattern.tags == ("Conveyor_Motor",)
        assert pattern.confidence == 0.85

    def test_latched_jog_is_not_jog_control(self):
        assert match_jog_control(make_view("XIC(Jog_PB) OTL(Conveyor_Motor)")) is None


class TestTimersCountersEdges:
    def test_timer(self):
        pattern = match_timer_delay(make_view("XIC(Run) TON(Delay_T,500,0)"))

        assert pattern.tags == ("Delay_T",)
        assert pattern.description == "Timer delay using Delay_T"

    def test_counter(self):
        pattern = match_counter_accumulator(make_view("XIC(Part_PE) CTU(Part_Count,100,0)"))

        assert pattern.tags == ("Part_Count",)

    def test_one_shot(self):
        pattern = match_one_shot(make_view("XIC(Btn) ONS(Btn_OS) OTE(Pulse)"))

        assert pattern.tags == ("Btn_OS",)

    def test_absent_opcodes(self):
        view = make_view("XIC(Run) OTE(Lamp)")

        assert match_timer_delay(view) is None
        assert match_counter_accumulator(view) is None
        assert match_one_shot(view) is None


class TestVocabularyRules:
    def test_fault_detection_collects_fault_tags(self):
        pattern = match_fault_detection(make_view("XIC(Motor_Fault) OTE(Alarm_Lamp)"))

        assert pattern.tags == ("Motor_Fault", "Alarm_Lamp")

    def test_handshake_needs_command_and_feedback(self):
        assert match_handshake(make_view("XIC(Load_Cmd) XIC(Load_Fb) OTE(Load_Done)"))
        assert match_handshake(make_view("XIC(Load_Cmd) OTE(Load_Done)")) is None

    def test_zone_control(self):
        pattern = match_zone_control(
            make_view("XIC(Zone1_Clear) XIC(Zone2_Clear) OTE(Zone1_Run)")
        )

        assert pattern.tags == ("Zone1_Clear", "Zone2_Clear", "Zone1_Run")

    def test_status_monitoring_needs_three_status_outputs(self):
        text = "XIC(Sys_On) [OTE(Infeed1_Running),OTE(Infeed2_Running),OTE(Exit1_Stopped)]"
        pattern = match_status_monitoring(make_view(text))

        assert pattern.confidence == 0.9
        assert pattern.description == (
            "Monitors operational status of Infeed Conveyors, Exit Conveyors for system readiness"
        )
        assert match_status_monitoring(
            make_view("[OTE(Infeed1_Running),OTE(Exit1_Stopped)]")
        ) is None


class TestSequencerAndComparisons:
    def test_step_compare_and_move(self):
        pattern = match_sequencer(make_view("EQU(Seq_Step,10) XIC(Part_Present) MOV(20,Seq_Step)"))

        assert pattern.tags == ("Seq_Step",)
        assert pattern.description == "State machine step 10 transition logic"

    def test_step_increment(self):
        pattern = match_sequencer(make_view("XIC(Advance) ADD(Step_No,1,Step_No)"))

        assert pattern.description == "State machine step transition logic"

    def test_compare_on_non_state_tag(self):
        assert match_sequencer(make_view("EQU(Speed,10) OTE(At_Speed)")) is None

    def test_two_comparisons(self):
        pattern = match_comparison_branch(make_view("GRT(Level,10) LES(Level,90) OTE(In_Range)"))

        assert pattern.description == "Multiple comparison conditions"

    def test_limit_instruction(self):
        pattern = match_comparison_branch(make_view("LIM(10,Level,90) OTE(In_Range)"))

        assert pattern.description.startswith("Limit check")

    def test_single_comparison(self):
        assert match_comparison_branch(make_view("GRT(Level,10) OTE(High)")) is None


class TestMathRules:
    def test_math_on_boolean_tags_is_a_concern(self):
        view = make_view("MUL(Motor_Running,Pump_Ready,Result)")

        concern = match_code_concern(view)

        assert concern.tags == ("Motor_Running", "Pump_Ready")
        assert "MUL/DIV" in concern.description
        assert match_data_scaling(view) is None

    def test_equ_on_boolean_tag_is_a_concern(self):
        concern = match_code_concern(make_view("EQU(Conv_Running,1) OTE(Lamp)"))

        assert "XIC/XIO" in concern.description

    def test_analog_scaling(self):
        pattern = match_data_scaling(make_view("MUL(Raw_Pressure,0.1,Pressure_PSI)"))

        assert pattern.confidence == 0.9
        assert pattern.tags == ("Raw_Pressure", "Pressure_PSI")
        assert pattern.description.endswith("into Pressure_PSI")

    def test_scaling_constant_only(self):
        pattern = match_data_scaling(make_view("DIV(Count_Value,1000,Count_K)"))

        assert pattern.confidence == 0.75

    def test_plain_multiply(self):
        assert match_data_scaling(make_view("MUL(Qty,Units,Total)")) is None


class TestPermissiveChain:
    @pytest.mark.parametrize(("conditions", "confidence"), [(4, 0.8), (6, 0.9)])
    def test_series_conditions(self, conditions, confidence):
        text = " ".join(f"XIC(P{n})" for n in range(conditions)) + " OTE(Ready_To_Run)"

        pattern = match_permissive_chain(make_view(text))

        assert pattern.confidence == confidence
        assert pattern.tags[-1] == "Ready_To_Run"
        assert len(pattern.tags) == conditions + 1

    def test_too_few_conditions(self):
        assert match_permissive_chain(make_view("XIC(P1) XIC(P2) XIC(P3) OTE(Out)")) is None

    def test_more_than_one_coil(self):
        text = "XIC(P1) XIC(P2) XIC(P3) XIC(P4) OTE(Out) OTE(Out2)"

        assert match_permissive_chain(make_view(text)) is None


class TestOperatorFacingRules:
    def test_alarm(self):
        pattern = match_alarm_annunciation(make_view("XIC(High_Temp) OTE(Alarm_Horn)"))

        assert pattern.confidence == 0.85
        assert pattern.tags == ("Alarm_Horn",)

    def test_delayed_alarm(self):
        text = "XIC(High_Temp) TON(Horn_Dly,5000,0) XIC(Horn_Dly.DN) OTE(Alarm_Horn)"

        assert match_alarm_annunciation(make_view(text)).confidence == 0.9

    def test_unconditional_alarm_output(self):
        assert match_alarm_annunciation(make_view("OTE(Alarm_Horn)")) is None

    def test_mode_with_exclusion(self):
        pattern = match_mode_selection(make_view("XIC(Auto_PB) XIO(Manual_Mode) OTL(Auto_Mode)"))

        assert pattern.confidence == 0.9
        assert pattern.tags == ("Auto_Mode", "Manual_Mode")

    def test_mode_without_exclusion(self):
        pattern = match_mode_selection(make_view("XIC(Auto_PB) OTE(Auto_Mode)"))

        assert pattern.confidence == 0.8

    def test_hmi_write_by_move(self):
        pattern = match_hmi_write(make_view("MOV(Batch_Count,HMI_Batch_Display)"))

        assert pattern.confidence == 0.9
        assert pattern.tags == ("HMI_Batch_Display",)

    def test_hmi_write_by_coil(self):
        pattern = match_hmi_write(make_view("XIC(X1) OTE(HMI_Banner)"))

        assert pattern.confidence == 0.8


class TestSerialization:
    def test_to_dict(self):
        pattern = match_timer_delay(make_view("TON(Delay_T,500,0)", number=4))

        assert pattern.to_dict() == {
            "type": "timer_delay",
            "confidence": 0.95,
            "rung_refs": [
                {
                    "program": PROGRAM,
                    "routine": ROUTINE,
                    "rung_number": 4,
                    "instruction": "TON/TOF/RTO",
                    "usage": "write",
                }
            ],
            "tags": ["Delay_T"],
            "description": "Timer delay using Delay_T",
        }
