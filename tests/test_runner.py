import pytest

import gravel
from gravel.gravel_config import CompilerOptions
from gravel.gravel_datatypes import Dimension, Span, UndefinedVariable
from gravel.gravel_runtime import (
    StylesheetRunner, CompileResult, compile_batch, line_and_col, source_context
)


def test_line_and_col():
    src = "a {\n  color: $nope;\n}\n"
    assert line_and_col(src, 0) == (1, 1)
    assert line_and_col(src, 13) == (2, 10)


def test_source_context_marks_line_and_column():
    ctx = source_context("one\ntwo\nthree", 2, 2)
    assert "> 2 | two" in ctx
    assert ctx.splitlines()[2] == "    |  ^"
    assert source_context("x", 5, 1) == ""


def test_error_result_has_location_and_context():
    res = StylesheetRunner().handle_stylesheet("a {\n  color: $nope;\n}\n", path="main.gvl")
    assert res.status == 'error'
    assert res.error_message == "Undefined variable."
    assert res.error_span == Span(13, 18)
    assert (res.line, res.col) == (2, 10)
    msg = res.format_error()
    assert msg.startswith("Error: Undefined variable.\n  (main.gvl:line 2, col 10)")
    assert ">" in msg and "color: $nope;" in msg and "^" in msg


def test_error_is_also_recorded_as_side_effect():
    res = StylesheetRunner().handle_stylesheet("a { b: $x; }")
    stderr = [e for e in res.side_effects if e['topics'] == ['stderr']]
    assert len(stderr) == 1
    assert stderr[0]['message'] == res.format_error()


def test_success_has_no_error_text():
    res = StylesheetRunner().handle_stylesheet("a { b: c; }")
    assert res.status == 'success'
    assert res.format_error() == ""


def test_internal_errors_are_reported(monkeypatch):
    class Exploding:
        def __init__(self, source):
            pass

        def parse(self):
            raise RuntimeError("boom")

    monkeypatch.setattr("gravel.gravel_runtime.StylesheetParser", Exploding)
    res = StylesheetRunner().handle_stylesheet("a { b: c; }")
    assert res.status == 'error'
    assert res.error_message == "InternalError: boom"


def test_runner_does_not_leak_variables_between_stylesheets():
    runner = StylesheetRunner()
    assert runner.handle_stylesheet("$a: 1;").status == 'success'
    res = runner.handle_stylesheet("x { y: $a; }")
    assert res.status == 'error'


def test_compile_file_missing(tmp_path):
    res = StylesheetRunner().compile_file(tmp_path / "missing.gvl")
    assert res.status == 'error'
    assert res.error_message.startswith("Cannot read")


def test_compile_file(tmp_path):
    path = tmp_path / "main.gvl"
    path.write_text("$c: red;\na { color: $c; }\n", encoding='utf-8')
    res = StylesheetRunner().compile_file(path)
    assert res.status == 'success'
    assert res.css == "a {\n  color: red;\n}\n"
    assert res.path == str(path)


# --- Options ---

def test_options_change_output(tmp_path):
    cfg = tmp_path / "gravel.yaml"
    cfg.write_text("precision: 3\nindent-width: 4\n", encoding='utf-8')
    options = CompilerOptions.from_file(cfg)
    assert options.precision == 3 and options.indent_width == 4
    res = StylesheetRunner(options).handle_stylesheet("a { b: (1/3); }")
    assert res.css == "a {\n    b: 0.333;\n}\n"


def test_max_call_depth_option():
    options = CompilerOptions(max_call_depth=3)
    src = "@function f($n) {\n  @return f($n);\n}\na { b: f(1); }\n"
    res = StylesheetRunner(options).handle_stylesheet(src)
    assert res.error_message == "Stack depth exceeded."
    assert len(res.stacktrace) == 3


def test_options_reject_unknown_keys():
    with pytest.raises(ValueError, match="Unknown option"):
        CompilerOptions.from_mapping({"colour": 1})


def test_options_reject_non_mapping(tmp_path):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("- 1\n- 2\n", encoding='utf-8')
    with pytest.raises(ValueError, match="expected a mapping"):
        CompilerOptions.from_file(cfg)


def test_empty_config_file_uses_defaults(tmp_path):
    cfg = tmp_path / "empty.yaml"
    cfg.write_text("", encoding='utf-8')
    assert CompilerOptions.from_file(cfg) == CompilerOptions()


def test_options_validate():
    with pytest.raises(ValueError):
        CompilerOptions(precision=-1)
    with pytest.raises(ValueError):
        CompilerOptions(max_call_depth=0)


def test_debug_env(monkeypatch):
    monkeypatch.setenv("GRAVEL_DEBUG", "1")
    assert CompilerOptions().debug is True
    monkeypatch.delenv("GRAVEL_DEBUG")
    assert CompilerOptions().debug is False


# --- REPL ---

def test_repl_assignment_persists():
    runner = StylesheetRunner()
    res = runner.evaluate_expression("$a: 2px")
    assert res.status == 'success' and res.value == Dimension.of(2, "px")
    assert runner.evaluate_expression("$a * 3").value == Dimension.of(6, "px")
    assert runner.evaluate_expression("$a: 5 !default").value == Dimension.of(2, "px")


def test_repl_errors():
    runner = StylesheetRunner()
    res = runner.evaluate_expression("$missing + 1")
    assert res.status == 'error'
    assert res.error_message == "Undefined variable."


# --- Batch ---

@pytest.mark.asyncio
async def test_compile_batch_isolates_files(tmp_path):
    a = tmp_path / "a.gvl"
    b = tmp_path / "b.gvl"
    a.write_text("$x: 1 !global;\na { v: $x; }\n", encoding='utf-8')
    b.write_text("b { v: $x; }\n", encoding='utf-8')
    results = await compile_batch([a, b, tmp_path / "c.gvl"])
    assert [r.status for r in results] == ['success', 'error', 'error']
    assert results[0].css == "a {\n  v: 1;\n}\n"
    assert results[1].error_message == "Undefined variable."
    assert results[2].error_message.startswith("Cannot read")


# --- Package API ---

def test_compile_string():
    assert gravel.compile_string("a { b: 1 + 1; }") == "a {\n  b: 2;\n}\n"
    with pytest.raises(UndefinedVariable):
        gravel.compile_string("a { b: $c; }")


def test_precision_applies_inside_interpolation_and_css_functions():
    css = gravel.compile_string("a { c: #{1/3}; d: foo(1/3); e: (1/3) + x; }", CompilerOptions(precision=2))
    assert css == "a {\n  c: 0.33;\n  d: foo(0.33);\n  e: 0.33x;\n}\n"


def test_options_reject_wrong_types():
    with pytest.raises(ValueError, match="precision must be an integer"):
        CompilerOptions(precision="x")
    with pytest.raises(ValueError, match="indent_width must be an integer"):
        CompilerOptions(indent_width=True)
    with pytest.raises(ValueError, match="debug must be a boolean"):
        CompilerOptions.from_mapping({"debug": "yes"})


def test_malformed_yaml_is_a_value_error(tmp_path):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("precision: [1\n", encoding='utf-8')
    with pytest.raises(ValueError):
        CompilerOptions.from_file(cfg)
