from __future__ import annotations

import json

import pytest

from interpreter import Environment, Interpreter, TracebackFormatter, UnresolvedReference
from parser import Identifier, Literal, SourceLocation
from world import Direction, parse_map


LOC = SourceLocation(file="<test>", line=1, column=1, statement="")


def _interpreter(map_source, verbose: bool = False) -> Interpreter:
    grid, robot = parse_map(map_source)
    return Interpreter(grid, robot, verbose=verbose)


def test_evaluate_literals_and_innermost_binding() -> None:
    interp = _interpreter("R")
    outer = Environment(values={"n": 1, "m": 7})
    inner = Environment(parent=outer, values={"n": 5})
    assert interp.evaluate(Literal(location=LOC, value=-3), inner) == -3
    assert interp.evaluate(Identifier(location=LOC, name="n"), inner) == 5
    assert interp.evaluate(Identifier(location=LOC, name="m"), inner) == 7
    assert interp.evaluate(Identifier(location=LOC, name="n"), outer) == 1


def test_evaluate_unbound_name_fails() -> None:
    interp = _interpreter("R")
    with pytest.raises(UnresolvedReference) as info:
        interp.evaluate(Identifier(location=LOC, name="x"), Environment())
    assert info.value.reference == "x"
    assert info.value.location is LOC


def test_zero_binding_is_not_treated_as_missing() -> None:
    interp = _interpreter("R")
    assert interp.evaluate(Identifier(location=LOC, name="z"), Environment(values={"z": 0})) == 0


def test_repeat_count_fixed_and_non_positive_counts_skip() -> None:
    interp = _interpreter("R.........")
    interp.run(["REPEAT 0", "FORWARD", "ENDREPEAT", "REPEAT -2", "FORWARD", "ENDREPEAT", "REPEAT 2", "FORWARD", "ENDREPEAT"])
    assert interp.robot.position == (2, 0)


def test_callee_sees_caller_frames_when_not_shadowed() -> None:
    interp = _interpreter("R.........")
    interp.run([
        "FUNCTION STEP",
        "  REPEAT k",
        "    FORWARD",
        "  ENDREPEAT",
        "ENDFUNCTION",
        "FUNCTION OUTER(k)",
        "  CALL STEP()",
        "ENDFUNCTION",
        "CALL OUTER(3)",
    ])
    assert interp.robot.position == (3, 0)


def test_function_calls_another_function() -> None:
    interp = _interpreter("R.........")
    interp.run([
        "FUNCTION A(n)",
        "  FORWARD",
        "  CALL B(n)",
        "ENDFUNCTION",
        "FUNCTION B(n)",
        "  REPEAT n",
        "    FORWARD",
        "  ENDREPEAT",
        "ENDFUNCTION",
        "CALL A(2)",
    ])
    assert interp.robot.position == (3, 0)


def test_extra_arguments_are_ignored() -> None:
    interp = _interpreter("R.........")
    interp.run(["FUNCTION F(n)", "REPEAT n", "FORWARD", "ENDREPEAT", "ENDFUNCTION", "CALL F(2, 9)"])
    assert interp.robot.position == (2, 0)


def test_call_stack_is_unwound_after_error() -> None:
    interp = _interpreter("R..")
    with pytest.raises(UnresolvedReference) as info:
        interp.run(["FUNCTION F(n)", "REPEAT q", "FORWARD", "ENDREPEAT", "ENDFUNCTION", "CALL F(1)"])
    assert interp.call_stack == []
    assert [frame.name for frame in info.value.call_stack] == ["<top-level>", "F"]
    assert info.value.step_index == interp.steps.last_entry.step_index


def test_arguments_are_evaluated_in_caller_scope() -> None:
    interp = _interpreter("R..")
    with pytest.raises(UnresolvedReference) as info:
        interp.run(["FUNCTION F(n)", "FORWARD", "ENDFUNCTION", "CALL F(n)"])
    assert info.value.reference == "n"
    assert interp.robot.position == (0, 0)


def test_partial_mutation_is_kept_on_error() -> None:
    interp = _interpreter("R..")
    with pytest.raises(UnresolvedReference):
        interp.run(["FORWARD", "LIGHT", "REPEAT missing", "ENDREPEAT"])
    assert interp.robot.position == (1, 0)
    assert interp.grid.rows() == [".x."]


def test_functions_do_not_carry_over_between_runs() -> None:
    interp = _interpreter("R.........")
    interp.run(["FUNCTION F", "FORWARD", "ENDFUNCTION"])
    interp.run(["CALL F"])
    assert interp.robot.position == (0, 0)


def test_step_log_keeps_full_trace_only_when_verbose() -> None:
    program = ["REPEAT 2", "FORWARD", "ENDREPEAT"]
    interp = _interpreter("R..", verbose=True)
    interp.run(program)
    assert [entry.rule for entry in interp.steps.entries] == ["REPEAT", "FORWARD", "FORWARD"]
    assert interp.steps.entries[-1].robot == (1, 0, Direction.EAST)

    quiet = _interpreter("R..")
    quiet.run(program)
    assert quiet.steps.entries == []
    assert quiet.steps.step_count == 3
    assert quiet.steps.last_entry.rule == "FORWARD"


def test_step_log_stays_small_over_long_call_loop() -> None:
    interp = _interpreter("R..")
    interp.run(["FUNCTION F", "LEFT", "ENDFUNCTION", "REPEAT 5000", "CALL F", "ENDREPEAT"])
    assert interp.steps.step_count == 1 + 5000 * 2
    assert interp.steps.entries == []
    assert interp.call_stack == []
    assert set(vars(interp.steps)) == {"verbose", "entries", "step_count", "last_entry"}


def test_traceback_shows_calls_robot_and_map() -> None:
    interp = _interpreter("R..")
    program = [
        "FUNCTION F(n)",
        "  REPEAT q",
        "  ENDREPEAT",
        "ENDFUNCTION",
        "FORWARD",
        "CALL F(4)",
    ]
    with pytest.raises(UnresolvedReference) as info:
        interp.run(program, "walk.lb")
    text = TracebackFormatter(interp).format_text(info.value, verbose=True)
    assert text.splitlines() == [
        "LightBot traceback (innermost call last):",
        '  "walk.lb", line 6, in <top-level>',
        "    CALL F(4)",
        '  "walk.lb", line 2, in F(n=4)',
        "    REPEAT q",
        "Robot at (1, 0) facing EAST after 3 steps",
        "Map:",
        "  .R.",
        "UnresolvedReference: Unresolved reference 'q'",
    ]
    quiet = TracebackFormatter(interp).format_text(info.value, verbose=False)
    assert "Map:" not in quiet


def test_traceback_json() -> None:
    interp = _interpreter("RO.")
    with pytest.raises(UnresolvedReference) as info:
        interp.run([
            "FORWARD",
            "LIGHT",
            "FUNCTION F(n)",
            "CALL G(m)",
            "ENDFUNCTION",
            "FUNCTION G(k)",
            "ENDFUNCTION",
            "CALL F(7)",
        ])
    data = json.loads(TracebackFormatter(interp).to_json(info.value))
    assert data["error"] == {
        "type": "UnresolvedReference",
        "message": "Unresolved reference 'm'",
        "rule": "EVAL",
        "step": 3,
    }
    assert data["robot"] == {"x": 1, "y": 0, "direction": "EAST"}
    assert [frame["name"] for frame in data["frames"]] == ["<top-level>", "F"]
    assert data["frames"][1]["bindings"] == {"n": 7}
    assert data["frames"][1]["line"] == 4
    assert data["frames"][1]["statement"] == "CALL G(m)"
    assert data["map"] == [".X."]


def test_direction_enum_is_shared_with_robot() -> None:
    interp = _interpreter("U")
    interp.run(["RIGHT", "RIGHT", "LEFT"])
    assert interp.robot.direction is Direction.EAST


def test_bounded_self_recursion() -> None:
    interp = _interpreter("R.........")
    interp.run([
        "FUNCTION R(n)",
        "  FORWARD",
        "  REPEAT n",
        "    CALL R(0)",
        "  ENDREPEAT",
        "ENDFUNCTION",
        "CALL R(2)",
    ])
    assert interp.robot.position == (3, 0)
