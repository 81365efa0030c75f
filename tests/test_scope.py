import pytest
from gravel.gravel_runtime import StylesheetRunner


def run_gravel(src: str):
    return StylesheetRunner().handle_stylesheet(src)

def assert_ok(res, expected=None):
    assert res.status == 'success', f"expected success, got {res.status}: {res.error_message}"
    if expected is not None:
        assert res.css == expected

def assert_error(res, contains: str | None = None):
    assert res.status == 'error', f"expected error, got {res.status} with css {res.css!r}"
    if contains:
        msg = res.error_message or ""
        assert contains in msg, f"error message did not contain {contains!r}: {msg!r}"


def test_basic_global():
    res = run_gravel("a {\n  $color: red !global;\n}\n\nb {\n  color: $color;\n}\n")
    assert_ok(res, "b {\n  color: red;\n}\n")


def test_global_inserted_into_local_and_global_scopes():
    src = "$foo: 42;\n\n.foo {\n  content: $foo;\n  $foo: 1337 !global;\n  content: $foo;\n}\n\n.bar {\n  content: $foo;\n}\n"
    res = run_gravel(src)
    assert_ok(res, ".foo {\n  content: 42;\n  content: 1337;\n}\n\n.bar {\n  content: 1337;\n}\n")


def test_global_in_mixin():
    src = "$y: a;\n@mixin foo {\n  $y: b !global;\n}\na {\n  @include foo;\n  color: $y;\n}\n"
    res = run_gravel(src)
    assert_ok(res, "a {\n  color: b;\n}\n")


def test_plain_write_in_nested_rule_stays_local():
    src = "a {\n  $color: red;\n  b {\n    $color: blue;\n  }\n  color: $color;\n}\n"
    res = run_gravel(src)
    assert_ok(res, "a {\n  color: red;\n}\n")


def test_plain_write_visible_to_nested_rules():
    src = "a {\n  $w: 1px;\n  b {\n    width: $w;\n  }\n}\n"
    res = run_gravel(src)
    assert_ok(res, "a b {\n  width: 1px;\n}\n")


def test_variable_from_sibling_rule_is_undefined():
    res = run_gravel("a {\n  $w: 1px;\n}\nb {\n  width: $w;\n}\n")
    assert_error(res, "Undefined variable.")


def test_global_write_without_existing_binding_creates_it():
    src = "a {\n  b {\n    $deep: 3 !global;\n  }\n}\nc {\n  x: $deep;\n}\n"
    res = run_gravel(src)
    assert_ok(res, "c {\n  x: 3;\n}\n")


def test_default_only_assigns_unset_or_null():
    src = "$a: 1;\n$a: 2 !default;\n$b: null;\n$b: 3 !default;\n$c: 4 !default;\nx {\n  a: $a;\n  b: $b;\n  c: $c;\n}\n"
    res = run_gravel(src)
    assert_ok(res, "x {\n  a: 1;\n  b: 3;\n  c: 4;\n}\n")


def test_global_default_checks_root():
    src = "$a: 1;\nx {\n  $a: 5;\n  $a: 9 !global !default;\n  a: $a;\n}\ny {\n  a: $a;\n}\n"
    res = run_gravel(src)
    assert_ok(res, "x {\n  a: 5;\n}\n\ny {\n  a: 1;\n}\n")


def test_underscore_and_hyphen_names_are_the_same_variable():
    res = run_gravel("$main_color: red;\na {\n  color: $main-color;\n}\n")
    assert_ok(res, "a {\n  color: red;\n}\n")


def test_mixin_sees_globals_at_call_time():
    src = "$c: red;\n@mixin m {\n  color: $c;\n}\n$c: blue;\na {\n  @include m;\n}\n"
    res = run_gravel(src)
    assert_ok(res, "a {\n  color: blue;\n}\n")


def test_mixin_does_not_see_caller_locals():
    src = "@mixin m {\n  color: $local;\n}\na {\n  $local: red;\n  @include m;\n}\n"
    res = run_gravel(src)
    assert_error(res, "Undefined variable.")


def test_detached_scope_has_no_evaluator():
    from gravel.gravel_datatypes import Scope
    from gravel.gravel_interpreter import Evaluator
    scope = Scope().child()
    with pytest.raises(RuntimeError, match="not attached to an evaluator"):
        scope.evaluator
    ev = Evaluator()
    scope.root.meta["evaluator"] = ev
    assert scope.child().evaluator is ev
