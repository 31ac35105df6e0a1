"""Pytest configuration and test helpers."""

from rungscan.core.model import Program, Project, Routine, Rung, Tag
from rungscan.core.patterns import RungView

PROGRAM = "MainProgram"
ROUTINE = "MainRoutine"

GATE_RUNG = (
    "[XIC(GATE2OPEN) XIC(GATE1OPEN) OTE(GATESOK) "
    ",XIC(GATEREQUEST) XIC(POWERON) OTE(GATESTOPREQUEST) OTL(GATESTOPREQUEST) "
    ",XIC(GATESTOPREQUEST) XIC(GATESHUTDOWN) OTL(AUTO) "
    ",MOV(T4:14.PRE,T4:14.PRE) "
    ",XIC(GATEREQUEST) XIC(POWEROFF) OTE(GATEUNLOCK) "
    ",OTE(GATEUNLOCK) "
    ",TON(T4:14,300,0)]"
)


def make_rungs(*texts: str, start: int = 0) -> tuple[Rung, ...]:
    """Number rung texts consecutively from ``start``."""
    return tuple(Rung.from_text(start + idx, text) for idx, text in enumerate(texts))


def make_project(
    *texts: str,
    program: str = PROGRAM,
    routine: str = ROUTINE,
    tags: tuple[Tag, ...] = (),
    local_tags: tuple[Tag, ...] = (),
) -> Project:
    """Project with a single program and routine holding ``texts`` as rungs 0..n-1.

    Args:
        texts: Raw rung texts; instructions are extracted from each.
        program: Program name.
        routine: Routine name.
        tags: Controller-scoped tags.
        local_tags: Tags scoped to ``program``.

    Returns:
        A ready-to-analyze Project.
    """
    return Project(
        name="TestController",
        programs=(
            Program(
                name=program,
                routines=(Routine(name=routine, rungs=make_rungs(*texts)),),
                tags=local_tags,
            ),
        ),
        tags=tags,
    )


def make_view(text: str, *, number: int = 0) -> RungView:
    """RungView of a single rung in the default program and routine."""
    return RungView.from_rung(PROGRAM, ROUTINE, Rung.from_text(number, text))
