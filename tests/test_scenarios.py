from __future__ import annotations

import warnings

import pytest
import sympy as sp

from spacetime_dsl import EXAMPLES, DiagramPreview, SpacetimeCompiler
from spacetime_engine import EngineOptions


@pytest.fixture()
def lines() -> list:
    return []


@pytest.fixture()
def compiler(lines: list) -> SpacetimeCompiler:
    return SpacetimeCompiler(EngineOptions(print_sink=lines.append))


def run_example(compiler: SpacetimeCompiler, name: str, bindings=None, frame_number=None):
    compiled = compiler.compile_dsl(EXAMPLES[name]())
    assert compiled['success'], compiled.get('error')
    outcome = compiler.run(bindings, frame_number)
    assert outcome['success'], outcome.get('error')
    return outcome['result']


def test_moving_observer_at_zero_distance(compiler, lines):
    run_example(compiler, "moving_observer")
    assert lines == ["t = 0, x = 0, tau = 0, v = 0.5"]


def test_line_meets_accelerating_rocket(compiler, lines):
    result = run_example(compiler, "accelerating_intersection")
    meet = result.commands_of("event")[0].properties["location"]

    # Hyperbola of the rocket and the mover's line of simultaneity t' = 2
    x = sp.symbols("x", real=True)
    line_t = sp.Rational(4, 5) * x + sp.Rational(6, 5)
    roots = [r for r in sp.solve((x + 2) ** 2 - line_t ** 2 - 4, x) if r > -2]
    assert len(roots) == 1
    assert meet.x == pytest.approx(float(roots[0]))
    assert meet.t == pytest.approx(float(line_t.subs(x, roots[0])))

    assert lines[0] == "Intersection at (0.6248, 1.6998)"
    assert lines[1].startswith("Rocket velocity there: 0.")


def test_syntax_error_stops_before_execution(compiler, lines):
    compiled = compiler.compile_dsl("obs = [observer velocity 0.5.5];")
    assert compiled['success'] is False
    error = compiled['error']
    assert error['kind'] == "SyntaxError"
    assert (error['line'], error['column']) == (1, 26)
    assert compiler.program is None
    with pytest.raises(RuntimeError):
        compiler.run()
    assert lines == []


def test_twin_paradox_ages(compiler, lines):
    result = run_example(compiler, "twin_paradox")
    assert lines == [
        "Reunion at t = 10",
        "Home twin aged 10",
        "Travelling twin aged 8",
    ]
    turn = result.commands_of("event")[0].properties["location"]
    assert turn.x == pytest.approx(3.0)
    assert turn.t == pytest.approx(5.0)


def test_light_clock_counts_runs(compiler, lines):
    result = run_example(compiler, "light_clock")
    compiler.run()
    compiler.run({"speed": 0.6, "showGrid": False})
    assert lines == [
        "gamma = 1.155 after 1 runs",
        "gamma = 1.155 after 2 runs",
        "gamma = 1.25 after 3 runs",
    ]
    assert len(result.commands_of("event")) == 6
    assert result.commands_of("grid")
    assert {c.name for c in result.controls} == {"speed", "showGrid", "view"}


def test_light_clock_recompile_resets_runs(compiler, lines):
    run_example(compiler, "light_clock")
    run_example(compiler, "light_clock")
    assert lines[-1].endswith("after 1 runs")


def test_light_clock_choice_changes_the_frame(compiler):
    result = run_example(compiler, "light_clock", {"view": 1})
    assert result.frame.v == pytest.approx(0.5)


@pytest.mark.parametrize("frame_number, velocity", [(1, 0.0), (46, 0.45), (90, 0.89), (500, 0.9)])
def test_boost_animation_frames(compiler, frame_number, velocity):
    result = run_example(compiler, "boost_animation", frame_number=frame_number)
    assert result.control("v").value == pytest.approx(velocity)
    assert result.frame.v == pytest.approx(velocity)
    assert result.commands_of("animation")[0].properties["reps"] == 90.0


def test_run_frames_collects_every_frame(compiler):
    compiler.compile_dsl(EXAMPLES["boost_animation"]())
    outcomes = compiler.run_frames(3)
    assert [o['success'] for o in outcomes] == [True, True, True]
    assert outcomes[2]['result'].control("v").value == pytest.approx(0.02)


def test_run_failure_is_reported(compiler):
    outcome = compiler.run_source("axes;\nx = 1 + true;")
    assert outcome['success'] is False
    assert outcome['error']['kind'] == "ExecutionError"
    assert outcome['error']['line'] == 2


def test_script_without_drawing_warns(compiler):
    with pytest.warns(UserWarning, match="no drawing commands"):
        compiled = compiler.compile_dsl("x = 1;")
    assert compiled['success']


@pytest.mark.parametrize("name", sorted(EXAMPLES))
def test_every_example_renders(compiler, name, tmp_path):
    result = run_example(compiler, name, frame_number=10)
    preview = DiagramPreview()
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        fig = preview.render(result, title=name)
    assert fig.axes
    target = tmp_path / f"{name}.png"
    preview.save(str(target))
    preview.close()
    assert target.stat().st_size > 0


def test_preview_save_needs_a_render():
    with pytest.raises(RuntimeError):
        DiagramPreview().save("never.png")
