import pytest

from gravel.gravel_datatypes import (
    Scope, Span, Dimension, Ident, QuoteKind, ValueList, TRUE, FALSE, NULL,
    ParseError, UndefinedOperation, UndefinedVariable
)
from gravel.gravel_expression import evaluate, interpolate
from gravel.gravel_tokens import tokenize


@pytest.fixture
def scope():
    s = Scope()
    s["x"] = Dimension.of(10, "px")
    s["name"] = Ident("bar")
    return s


def ev(src, scope, **kwargs):
    return evaluate(tokenize(src), scope, **kwargs)


# --- Arithmetic and precedence ---

def test_precedence(scope):
    assert ev("1 + 2 * 3", scope) == Dimension.of(7)
    assert ev("(1 + 2) * 3", scope) == Dimension.of(9)
    assert ev("10 % 4", scope) == Dimension.of(2)


def test_units_carry_through(scope):
    assert ev("$x * 2", scope) == Dimension.of(20, "px")
    assert ev("$x + 1in", scope) == Dimension.of(106, "px")
    assert ev("2 * $x", scope) == Dimension.of(20, "px")


def test_minus_forms(scope):
    assert ev("1 - 2", scope) == Dimension.of(-1)
    assert ev("1-2", scope) == Dimension.of(-1)
    assert ev("1 -2", scope) == ValueList((Dimension.of(1), Dimension.of(-2)), " ")
    assert ev("-$x", scope) == Dimension.of(-10, "px")


def test_hyphenated_identifier_is_not_subtraction(scope):
    assert ev("a-b", scope) == Ident("a-b")
    assert ev("-webkit-box", scope) == Ident("-webkit-box")


def test_non_ascii_digits_start_identifiers(scope):
    assert ev("²", scope) == Ident("²")
    assert ev("²px", scope) == Ident("²px")
    assert ev("1 ²", scope) == ValueList((Dimension.of(1), Ident("²")), " ")


def test_division_by_zero(scope):
    with pytest.raises(UndefinedOperation, match="Division by zero."):
        ev("1 / 0", scope)


# --- Slash ---

def test_slash_divides_outside_declarations(scope):
    assert ev("10px/2", scope) == Dimension.of(5, "px")
    assert ev("12px/30px", scope) == Dimension.of("0.4")


def test_slash_between_literals_is_a_separator_in_declarations(scope):
    assert ev("12px/30px", scope, slash_separator=True) == Ident("12px/30px")


def test_slash_divides_with_variables_or_parens(scope):
    assert ev("$x/2", scope, slash_separator=True) == Dimension.of(5, "px")
    assert ev("(12px/4px)", scope, slash_separator=True) == Dimension.of(3)


# --- Lists ---

def test_space_and_comma_lists(scope):
    value = ev("a b, c d", scope)
    assert value == ValueList((
        ValueList((Ident("a"), Ident("b")), " "),
        ValueList((Ident("c"), Ident("d")), " "),
    ), ",")
    assert value.to_css_string() == "a b, c d"


def test_empty_and_single_item_lists(scope):
    assert ev("()", scope) == ValueList((), " ")
    assert ev("(1,)", scope) == ValueList((Dimension.of(1),), ",")


def test_empty_expression_is_an_error(scope):
    with pytest.raises(ParseError, match="Expected expression."):
        ev("", scope)
    with pytest.raises(ParseError, match="Expected expression."):
        ev("  ", scope)
    with pytest.raises(ParseError, match="Expected expression."):
        ev("1 +", scope)


# --- Booleans and equality ---

def test_logic(scope):
    assert ev("not true", scope) == FALSE
    assert ev("true and false", scope) == FALSE
    assert ev("null or 3", scope) == Dimension.of(3)
    assert ev("1 == 1.0", scope) == TRUE
    assert ev("a != b", scope) == TRUE
    assert ev("null", scope) == NULL


def test_comparison_error_span_covers_operands(scope):
    with pytest.raises(UndefinedOperation) as exc:
        ev("1 > b", scope)
    assert exc.value.span == Span(0, 5)


def test_undefined_variable_has_span(scope):
    with pytest.raises(UndefinedVariable) as exc:
        ev("1 + $missing", scope)
    assert exc.value.span == Span(4, 12)


# --- Strings and interpolation ---

def test_quoted_strings(scope):
    assert ev('"a b"', scope) == Ident("a b", QuoteKind.QUOTED)
    assert ev("'it\\'s'", scope) == Ident("it's", QuoteKind.QUOTED)
    assert ev("#fff", scope) == Ident("#fff")


def test_interpolation_in_identifier_and_string(scope):
    assert ev("foo-#{1 + 1}", scope) == Ident("foo-2")
    assert ev('"a#{$x}b"', scope) == Ident("a10pxb", QuoteKind.QUOTED)
    assert ev('#{"quoted"}', scope) == Ident("quoted")


def test_interpolate_raw_text(scope):
    assert interpolate(tokenize(".item-#{$name} > p"), scope) == ".item-bar > p"


def test_parent_selector(scope):
    assert ev("&", scope, selector=".a .b") == Ident(".a .b")
    assert ev("&", scope) == NULL


# --- Function calls ---

def test_builtin_call(scope):
    assert ev('str-length("abc")', scope) == Dimension.of(3)
    assert ev("str_length(abc)", scope) == Dimension.of(3)


def test_unknown_function_is_plain_css(scope):
    assert ev("foo(1, $x)", scope) == Ident("foo(1, 10px)")
    assert ev("rgba()", scope) == Ident("rgba()")


def test_verbatim_functions(scope):
    assert ev("calc(100% - #{$x})", scope) == Ident("calc(100% - 10px)")
    assert ev("url(foo.png)", scope) == Ident("url(foo.png)")
    assert ev("url($name)", scope) == Ident("url(bar)")
