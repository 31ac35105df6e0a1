"""Tests for building a Project from the upstream plain-dict payload."""

import pytest

from rungscan.core.loader import ProjectFormatError, project_from_dict
from rungscan.core.model import CONTROLLER_SCOPE, Instruction


def payload(**overrides):
    data = {
        "controller": {"name": "Line3"},
        "tags": [{"name": "EStop_OK", "data_type": "BOOL"}],
        "programs": [
            {
                "name": "MainProgram",
                "main_routine_name": "MainRoutine",
                "local_tags": [{"name": "Step", "data_type": "DINT", "scope": "controller"}],
                "routines": [
                    {
                        "name": "MainRoutine",
                        "rungs": [{"number": 0, "raw_text": "XIC(A)OTE(B);", "comment": "Run"}],
                    }
                ],
            }
        ],
    }
    data.update(overrides)
    return data


class TestProjectFromDict:
    def test_full_payload(self):
        project = project_from_dict(payload())

        assert project.name == "Line3"
        program = project.programs[0]
        assert program.main_routine_name == "MainRoutine"
        rung = program.routines[0].rungs[0]
        assert rung.comment == "Run"
        assert rung.instructions == (
            Instruction("XIC", ("A",)),
            Instruction("OTE", ("B",)),
        )
        assert project.tags[0].scope == CONTROLLER_SCOPE

    def test_name_wins_over_controller(self):
        assert project_from_dict(payload(name="Plant")).name == "Plant"

    def test_unknown_name(self):
        assert project_from_dict({}).name == "Unknown"

    def test_local_tags_belong_to_their_program(self):
        tag = project_from_dict(payload()).programs[0].tags[0]

        assert tag.scope == "MainProgram"

    def test_explicit_instructions_are_kept(self):
        rung = {
            "number": 3,
            "raw_text": "XIC(Ignored)OTE(Ignored);",
            "instructions": [
                {"type": "XIC", "operands": ["Go"], "branch_leg": 1, "branch_level": 0},
                {"type": "TON", "operands": ["Delay", 500, 0]},
            ],
        }
        data = {"programs": [{"name": "P", "routines": [{"name": "R", "rungs": [rung]}]}]}

        instructions = project_from_dict(data).programs[0].routines[0].rungs[0].instructions

        assert instructions[0].branch_leg == 1
        assert instructions[0].branch_level == 0
        assert instructions[1].operands == ("Delay", "500", "0")

    def test_missing_collections_are_empty(self):
        project = project_from_dict({"programs": [{"name": "P"}]})

        assert project.tags == ()
        assert project.programs[0].routines == ()


class TestFormatErrors:
    def test_is_value_error(self):
        assert issubclass(ProjectFormatError, ValueError)

    def test_payload_not_an_object(self):
        with pytest.raises(ProjectFormatError, match="project: expected an object, got list"):
            project_from_dict([])

    def test_missing_required_field(self):
        data = {"programs": [{"name": "P", "routines": [{"rungs": []}]}]}

        with pytest.raises(
            ProjectFormatError,
            match=r"project\.programs\[0\]\.routines\[0\]: missing required field: name",
        ):
            project_from_dict(data)

    def test_bool_is_not_a_rung_number(self):
        rung = {"number": True}
        data = {"programs": [{"name": "P", "routines": [{"name": "R", "rungs": [rung]}]}]}

        with pytest.raises(ProjectFormatError, match=r"rungs\[0\]\.number: invalid type bool"):
            project_from_dict(data)

    def test_operand_must_be_text_or_number(self):
        rung = {"number": 0, "instructions": [{"type": "XIC", "operands": [{"tag": "A"}]}]}
        data = {"programs": [{"name": "P", "routines": [{"name": "R", "rungs": [rung]}]}]}

        with pytest.raises(ProjectFormatError, match="operand must be a string, got dict"):
            project_from_dict(data)
