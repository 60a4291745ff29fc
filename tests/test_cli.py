from __future__ import annotations

import json

import pytest

from spacetime_dsl import EXAMPLES, format_error, main, parse_binding, run_example


def test_list_examples(capsys):
    assert main(["--list-examples"]) == 0
    out = capsys.readouterr().out
    for name in EXAMPLES:
        assert name in out
    assert "twin paradox" in out


def test_run_example_prints_output(capsys):
    assert main(["--example", "twin_paradox"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[:3] == ["Reunion at t = 10", "Home twin aged 10", "Travelling twin aged 8"]
    assert out[3].endswith("instructions executed")
    assert "drawing commands" in out[3]


def test_json_output_is_parseable(capsys):
    assert main(["--example", "moving_observer", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["output"] == ["t = 0, x = 0, tau = 0, v = 0.5"]
    kinds = [c["kind"] for c in data["commands"]]
    assert kinds == ["axes", "grid", "worldline", "event"]
    assert data["commands"][3]["properties"]["text"] == "d = 0"


def test_control_bindings(capsys):
    assert main(["--example", "light_clock", "--set", "speed=0.8", "--set", "showGrid=false"]) == 0
    out = capsys.readouterr().out
    assert "gamma = 1.667 after 1 runs" in out


def test_bad_binding_is_rejected(capsys):
    assert main(["--example", "light_clock", "--set", "speed"]) == 2
    assert "Expected NAME=VALUE" in capsys.readouterr().out


def test_save_preview(tmp_path, capsys):
    target = tmp_path / "boost.png"
    assert main(["--example", "boost_animation", "--frame", "40", "--save", str(target)]) == 0
    assert target.exists()
    assert f"Preview saved to {target}" in capsys.readouterr().out


def test_script_file(tmp_path, capsys):
    script = tmp_path / "diagram.st"
    script.write_text("axes;\nprint 1 + 2;\n", encoding="utf-8")
    assert main(["--file", str(script)]) == 0
    assert capsys.readouterr().out.splitlines()[0] == "3"


def test_missing_file(tmp_path, capsys):
    assert main(["--file", str(tmp_path / "nope.st")]) == 1
    assert "not found" in capsys.readouterr().out


def test_syntax_error_file(tmp_path, capsys):
    script = tmp_path / "broken.st"
    script.write_text("obs = [observer velocity 0.5.5];", encoding="utf-8")
    assert main(["--file", str(script)]) == 1
    assert "Compilation failed: SyntaxError at line 1, column 26" in capsys.readouterr().out


def test_runtime_error_file(tmp_path, capsys):
    script = tmp_path / "broken.st"
    script.write_text("axes;\nprint sqrt(1, 2);", encoding="utf-8")
    assert main(["--file", str(script)]) == 1
    assert "Execution failed: ExecutionError at line 2" in capsys.readouterr().out


def test_tokens_and_hcode(capsys):
    assert main(["--example", "moving_observer", "--tokens", "--hcode"]) == 0
    out = capsys.readouterr().out
    assert "NAME:obs1@3:1" in out
    assert "command ('event'" in out


def test_no_arguments_prints_help(capsys):
    assert main([]) == 0
    assert "spacetime-dsl" in capsys.readouterr().out


@pytest.mark.parametrize(
    "text, expected",
    [
        ("speed=0.8", ("speed", 0.8)),
        (" showGrid = TRUE", ("showGrid", True)),
        ("mode=fast", ("mode", "fast")),
        ("label=a=b", ("label", "a=b")),
    ],
)
def test_parse_binding(text, expected):
    assert parse_binding(text) == expected


def test_format_error():
    assert format_error({"kind": "ExecutionError", "message": "boom", "line": 0, "column": 0}) == "ExecutionError: boom"
    assert format_error({"kind": "SyntaxError", "message": "bad", "line": 2, "column": 3}) == \
        "SyntaxError at line 2, column 3: bad"


def test_run_example_helper(capsys):
    outcome = run_example("twin_paradox")
    assert outcome["run"]["success"]
    assert "Reunion at t = 10" in capsys.readouterr().out
    with pytest.raises(ValueError, match="Unknown example"):
        run_example("warp_drive")
