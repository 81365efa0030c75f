import pytest
from fractions import Fraction

from gravel.gravel_datatypes import (
    Scope, Number, Unit, UNITS, NO_UNIT, Span,
    Dimension, Ident, QuoteKind, ValueList, TRUE, FALSE, NULL,
    UndefinedVariable, UndefinedOperation
)

# --- Scope Tests ---

def test_scope_init():
    parent = Scope()
    child = Scope(parent=parent)
    assert child.parent is parent
    assert not child.vars
    assert Scope().parent is None


def test_scope_read_walks_outward():
    root = Scope()
    root.insert_var("a", Dimension.of(1))
    child = root.child().child()
    assert child.get_var("a") == Dimension.of(1)
    assert child["a"] == Dimension.of(1)


def test_scope_unbound_read_raises():
    with pytest.raises(UndefinedVariable) as exc:
        Scope().child().get_var("missing")
    assert exc.value.message == "Undefined variable."
    assert exc.value.key == "missing"


def test_plain_write_lands_in_current_scope():
    root = Scope()
    root["color"] = Ident("red")
    child = root.child()
    child["color"] = Ident("blue")
    assert child["color"] == Ident("blue")
    assert root["color"] == Ident("red")


def test_plain_write_visible_to_nested_but_not_enclosing():
    outer = Scope()
    inner = outer.child()
    inner["x"] = Dimension.of(1)
    deeper = inner.child()
    assert deeper["x"] == Dimension.of(1)
    assert "x" not in outer


def test_global_write_reaches_root():
    root = Scope()
    nested = root.child().child()
    nested.insert_global("y", Ident("b"))
    assert root.vars["y"] == Ident("b")
    assert "y" not in nested.vars


def test_global_write_is_visible_to_siblings_created_later():
    root = Scope()
    root["y"] = Ident("a")
    root.child().insert_global("y", Ident("b"))
    sibling = root.child()
    assert sibling["y"] == Ident("b")


def test_lookup_is_live_not_cached():
    root = Scope()
    root["y"] = Ident("a")
    child = root.child()
    assert child["y"] == Ident("a")
    root["y"] = Ident("c")
    assert child["y"] == Ident("c")


def test_names_normalise_underscores():
    scope = Scope()
    scope["main_color"] = Ident("red")
    assert scope["main-color"] == Ident("red")
    assert "main_color" in scope


def test_function_lookup_returns_none_when_missing():
    assert Scope().child().get_function("nope") is None


# --- Number Tests ---

def test_number_queries():
    assert Number("1.5").is_decimal()
    assert Number(3).is_integer()
    assert Number(2).is_positive()
    assert Number(-2).is_negative()
    assert Number(0).is_zero()
    assert not Number(0).is_positive()


def test_number_to_integer_truncates():
    assert Number("2.7").to_integer() == 2
    assert Number("-2.7").to_integer() == -2


def test_number_to_index_reports_out_of_range():
    assert Number(42).to_index() == 42
    assert Number("1.5").to_index() is None
    assert Number(2 ** 63).to_index() is None
    assert Number(-(2 ** 63)).to_index() == -(2 ** 63)


def test_number_is_exact():
    third = Number(1) / Number(3)
    assert third * Number(3) == Number(1)
    assert third.value == Fraction(1, 3)


def test_number_rejects_floats():
    with pytest.raises(TypeError):
        Number(0.1)


def test_number_ordering():
    assert Number(1) < Number(2)
    assert Number("2.5") >= Number("2.5")
    assert sorted([Number(3), Number(-1), Number(2)]) == [Number(-1), Number(2), Number(3)]


def test_number_format():
    assert Number(42).format() == "42"
    assert Number("0.5").format() == "0.5"
    assert Number("-1.25").format() == "-1.25"
    assert (Number(1) / Number(3)).format() == "0.3333333333"
    assert (Number(2) / Number(3)).format() == "0.6666666667"
    assert Number("0.00000000001").format() == "0"
    assert Number("1.5").format(precision=0) == "2"


def test_number_round_half_away_from_zero():
    assert Number("2.5").round() == Number(3)
    assert Number("-2.5").round() == Number(-3)
    assert Number("2.4").round() == Number(2)


# --- Unit Tests ---

def test_unit_families():
    assert UNITS["in"].comparable(UNITS["cm"])
    assert UNITS["deg"].comparable(UNITS["turn"])
    assert not UNITS["px"].comparable(UNITS["s"])
    assert not UNITS["em"].comparable(UNITS["rem"])
    assert not UNITS["%"].comparable(UNITS["px"])


def test_unitless_adopts_units_in_arithmetic_only():
    assert NO_UNIT.comparable(UNITS["px"])
    assert UNITS["ms"].comparable(NO_UNIT)
    assert NO_UNIT.orderable(NO_UNIT)
    assert not NO_UNIT.orderable(UNITS["px"])
    assert not UNITS["ms"].orderable(NO_UNIT)
    assert UNITS["in"].orderable(UNITS["px"])


def test_unitless_number_orders_only_against_unitless():
    assert Dimension.of(1).cmp(Dimension.of(2), "<") == -1
    with pytest.raises(UndefinedOperation, match=r'Undefined operation "1px < 2"'):
        Dimension.of(1, "px").cmp(Dimension.of(2), "<")
    with pytest.raises(UndefinedOperation):
        Dimension.of(3).cmp(Dimension.of(2, "em"), ">=")
    assert Dimension.of(1, "px").add(Dimension.of(2)) == Dimension.of(3, "px")


def test_unknown_unit_stands_alone():
    foo = Unit.from_str("foo")
    assert foo.comparable(Unit.from_str("foo"))
    assert not foo.comparable(UNITS["px"])


def test_conversion_is_exact():
    one_inch = Number(1).convert(UNITS["in"], UNITS["cm"])
    assert one_inch == Number("2.54")
    assert Number(1).convert(UNITS["turn"], UNITS["deg"]) == Number(360)
    assert Number(1).convert(UNITS["s"], UNITS["ms"]) == Number(1000)


# --- Value Tests ---

def test_two_inches_greater_than_one_centimetre():
    assert Dimension.of(2, "in").cmp(Dimension.of(1, "cm"), ">") == 1


def test_compare_incompatible_units_fails():
    with pytest.raises(UndefinedOperation) as exc:
        Dimension.of(1, "px").cmp(Dimension.of(1, "s"), ">")
    assert exc.value.message == "Incompatible units s and px."


def test_compare_number_with_string_fails():
    with pytest.raises(UndefinedOperation) as exc:
        Dimension.of(1).cmp(Ident("b"), ">", Span(3, 8))
    assert exc.value.message == 'Undefined operation "1 > b".'
    assert exc.value.span == Span(3, 8)


def test_add_converts_to_left_unit():
    assert Dimension.of(1, "in").add(Dimension.of(96, "px")) == Dimension.of(2, "in")
    assert Dimension.of(1).add(Dimension.of(2, "px")) == Dimension.of(3, "px")


def test_equals_never_raises():
    assert Dimension.of(1, "in").equals(Dimension.of(96, "px"))
    assert not Dimension.of(1, "px").equals(Dimension.of(1, "s"))
    assert not Dimension.of(1).equals(Ident("1"))
    assert Ident("a", QuoteKind.QUOTED).equals(Ident("a"))


def test_string_concatenation_keeps_left_quotes():
    assert Ident("a", QuoteKind.QUOTED).add(Ident("b")) == Ident("ab", QuoteKind.QUOTED)
    assert Ident("a").add(Ident("b", QuoteKind.QUOTED)) == Ident("ab")


def test_division_by_zero():
    with pytest.raises(UndefinedOperation, match="Division by zero."):
        Dimension.of(1).div(Dimension.of(0))


def test_truthiness():
    assert not FALSE.is_true()
    assert not NULL.is_true()
    assert TRUE.is_true()
    assert Dimension.of(0).is_true()
    assert Ident("").is_true()


def test_css_rendering():
    assert Dimension.of("1.50", "px").to_css_string() == "1.5px"
    assert Ident("a b", QuoteKind.QUOTED).to_css_string() == '"a b"'
    assert NULL.to_css_string() == ""
    assert NULL.inspect() == "null"
    items = (Dimension.of(1, "px"), NULL, Ident("solid"))
    assert ValueList(items, " ").to_css_string() == "1px solid"
    assert ValueList((Ident("a"), Ident("b")), ",").to_css_string() == "a, b"
