"""Tests for name-based tag classification and subsystem labels."""

import pytest

from rungscan.core.semantics import detect_subsystems, infer_semantic_type, subsystem_of


class TestInferSemanticType:
    @pytest.mark.parametrize(
        ("tag", "expected"),
        [
            ("ESTOP_PB", "safety"),
            ("estop_pb", "safety"),
            ("Conveyor3_Motor", "motor"),
            ("Pump_Running", "motor"),
            ("T4:14", "timer"),
            ("Local:1:I.Data", "io"),
            ("STEP_NO", "sequence"),
            ("XYZ123", "unknown"),
        ],
    )
    def test_classification(self, tag, expected):
        assert infer_semantic_type(tag) == expected

    def test_highest_priority_wins(self):
        """GATE (safety, 95) outranks FAULT (fault, 85)."""
        assert infer_semantic_type("GATE_FAULT") == "safety"

    def test_same_priority_resolves_to_earlier_row(self):
        """MOTOR and VALVE rows share a priority; the motor row comes first."""
        assert infer_semantic_type("Motor_Valve") == "motor"


class TestSubsystems:
    def test_first_seen_order_without_duplicates(self):
        tags = ["Infeed1_Run", "Conv3_Motor", "Infeed2_Run"]

        assert detect_subsystems(tags) == ("Infeed Conveyors", "Conveyors")

    def test_no_tags(self):
        assert detect_subsystems([]) == ()

    def test_subsystem_of_single_tag(self):
        assert subsystem_of("Exit2_PE") == "Exit Conveyors"
        assert subsystem_of("Aux_Lamp") is None
