"""
Python implementations of the gravel builtin functions.

Every builtin receives the unevaluated `CallArguments` of its call together
with the caller's scope and selector, and pulls out what it needs through
the resolution contract (`get`, `enforce_max`, `into_ordered_values`).
"""
import inspect
import random
import string as _string
from typing import Callable, Dict, Optional

from gravel.gravel_datatypes import (
    Scope, Value, Dimension, Ident, Boolean, NullValue, ValueList, QuoteKind, Number,
    TRUE, FALSE, NULL, PERCENT, ValueTypeError, UnitError, ArgumentError
)
from gravel.gravel_args import CallArguments


def _not_a_string(param: str, value: Value, args: CallArguments) -> ValueTypeError:
    return ValueTypeError(f"${param}: {value.to_css_string()} is not a string.", args.span)


def _expect_string(param: str, value: Value, args: CallArguments) -> Ident:
    if not isinstance(value, Ident):
        raise _not_a_string(param, value, args)
    return value


def _expect_number(param: str, value: Value, args: CallArguments) -> Dimension:
    if not isinstance(value, Dimension):
        raise ValueTypeError(f"${param}: {value.to_css_string()} is not a number.", args.span)
    return value


def _slice_bound(value: Value, length: int, param: str, unit_param: str,
                 args: CallArguments, zero: int) -> int:
    """Maps a 1-based, possibly negative string index onto 1..length+1."""
    if not isinstance(value, Dimension):
        raise ValueTypeError(f"${param}: {value.to_css_string()} is not a number.", args.span)
    if not value.unit.is_none:
        raise UnitError(f"${unit_param}: Expected {value.to_css_string()} to have no units.", args.span)
    n = value.number
    if n.is_decimal():
        raise UnitError(f"{n} is not an int.", args.span)
    if n.is_positive():
        return n.to_integer()
    if n.is_zero() or n < Number(-length):
        return zero
    return length + 1 + n.to_integer()


class StdLib:
    """Contains Python implementations for all gravel builtins."""

    # --- Strings ---
    def _to_upper_case(self, args, scope, selector):
        args.enforce_max(1)
        s = _expect_string("string", args.get(0, "string", scope, selector), args)
        return Ident(_ascii_upper(s.text), s.quotes)

    def _to_lower_case(self, args, scope, selector):
        args.enforce_max(1)
        s = _expect_string("string", args.get(0, "string", scope, selector), args)
        return Ident(_ascii_lower(s.text), s.quotes)

    def _str_length(self, args, scope, selector):
        args.enforce_max(1)
        s = _expect_string("string", args.get(0, "string", scope, selector), args)
        return Dimension.of(len(s.text))

    def _quote(self, args, scope, selector):
        args.enforce_max(1)
        s = _expect_string("string", args.get(0, "string", scope, selector), args)
        return Ident(s.text, QuoteKind.QUOTED)

    def _unquote(self, args, scope, selector):
        args.enforce_max(1)
        return _expect_string("string", args.get(0, "string", scope, selector), args).unquote()

    def _str_slice(self, args, scope, selector):
        args.enforce_max(3)
        s = _expect_string("string", args.get(0, "string", scope, selector), args)
        length = len(s.text)
        start = _slice_bound(args.get(1, "start-at", scope, selector), length,
                             "start-at", "start", args, zero=1)
        end_value = args.get(2, "end-at", scope, selector, default=NULL)
        if isinstance(end_value, NullValue):
            end = length
        else:
            end = _slice_bound(end_value, length, "end-at", "end", args, zero=0)
        end = min(end, length)
        if start > end or start > length:
            return Ident("", s.quotes)
        return Ident(s.text[start - 1:end], s.quotes)

    def _str_index(self, args, scope, selector):
        args.enforce_max(2)
        s = _expect_string("string", args.get(0, "string", scope, selector), args)
        sub = _expect_string("substring", args.get(1, "substring", scope, selector), args)
        found = s.text.find(sub.text)
        return NULL if found < 0 else Dimension.of(found + 1)

    def _str_insert(self, args, scope, selector):
        args.enforce_max(3)
        s = _expect_string("string", args.get(0, "string", scope, selector), args)
        insert = _expect_string("insert", args.get(1, "insert", scope, selector), args)
        index = args.get(2, "index", scope, selector)
        if not isinstance(index, Dimension):
            raise ValueTypeError(f"$index: {index.to_css_string()} is not a number.", args.span)
        if not index.unit.is_none:
            raise UnitError(f"$index: Expected {index.to_css_string()} to have no units.", args.span)
        n = index.number
        if n.is_decimal():
            raise UnitError(f"$index: {n} is not an int.", args.span)
        if not s.text:
            return Ident(insert.text, s.quotes)

        length = len(s.text)
        if n.is_positive():
            pos = min(n.to_integer(), length + 1) - 1
        elif n.is_zero():
            pos = 0
        else:
            back = abs(n.to_integer())
            pos = 0 if back > length else length - back + 1
        return Ident(s.text[:pos] + insert.text + s.text[pos:], s.quotes)

    def _unique_id(self, args, scope, selector):
        args.enforce_max(0)
        alphabet = _string.ascii_letters + _string.digits
        return Ident(''.join(random.choice(alphabet) for _ in range(7)))

    # --- Numbers ---
    def _percentage(self, args, scope, selector):
        args.enforce_max(1)
        num = _expect_number("number", args.get(0, "number", scope, selector), args)
        if not num.unit.is_none:
            raise UnitError(f"$number: Expected {num.to_css_string()} to have no units.", args.span)
        return Dimension(num.number * Number(100), PERCENT)

    def _round(self, args, scope, selector):
        args.enforce_max(1)
        num = _expect_number("number", args.get(0, "number", scope, selector), args)
        return Dimension(num.number.round(), num.unit)

    def _ceil(self, args, scope, selector):
        args.enforce_max(1)
        num = _expect_number("number", args.get(0, "number", scope, selector), args)
        return Dimension(num.number.ceil(), num.unit)

    def _floor(self, args, scope, selector):
        args.enforce_max(1)
        num = _expect_number("number", args.get(0, "number", scope, selector), args)
        return Dimension(num.number.floor(), num.unit)

    def _abs(self, args, scope, selector):
        args.enforce_max(1)
        num = _expect_number("number", args.get(0, "number", scope, selector), args)
        return Dimension(abs(num.number), num.unit)

    def _min(self, args, scope, selector):
        return _extremum(args, scope, selector, lambda c: c < 0)

    def _max(self, args, scope, selector):
        return _extremum(args, scope, selector, lambda c: c > 0)

    # --- Introspection ---
    def _type_of(self, args, scope, selector):
        args.enforce_max(1)
        value = args.get(0, "value", scope, selector)
        match value:
            case Dimension():
                name = "number"
            case Ident():
                name = "string"
            case Boolean():
                name = "bool"
            case NullValue():
                name = "null"
            case ValueList():
                name = "list"
            case _:
                name = type(value).__name__.lower()
        return Ident(name)

    def _unit(self, args, scope, selector):
        args.enforce_max(1)
        num = _expect_number("number", args.get(0, "number", scope, selector), args)
        return Ident(num.unit.name, QuoteKind.QUOTED)

    def _unitless(self, args, scope, selector):
        args.enforce_max(1)
        num = _expect_number("number", args.get(0, "number", scope, selector), args)
        return TRUE if num.unit.is_none else FALSE

    def _comparable(self, args, scope, selector):
        args.enforce_max(2)
        a = _expect_number("number1", args.get(0, "number1", scope, selector), args)
        b = _expect_number("number2", args.get(1, "number2", scope, selector), args)
        return TRUE if a.unit.comparable(b.unit) else FALSE

    def _inspect(self, args, scope, selector):
        args.enforce_max(1)
        return Ident(args.get(0, "value", scope, selector).inspect(scope.printer))

    def _if(self, args, scope, selector):
        """Only the chosen branch is evaluated."""
        args.enforce_max(3)
        condition = args.get(0, "condition", scope, selector)
        if condition.is_true():
            args.discard(2, "if-false")
            return args.get(1, "if-true", scope, selector)
        args.discard(1, "if-true")
        return args.get(2, "if-false", scope, selector)

    def _not(self, args, scope, selector):
        args.enforce_max(1)
        return FALSE if args.get(0, "value", scope, selector).is_true() else TRUE


def _ascii_upper(text: str) -> str:
    return ''.join(c.upper() if c.isascii() else c for c in text)


def _ascii_lower(text: str) -> str:
    return ''.join(c.lower() if c.isascii() else c for c in text)


def _extremum(args: CallArguments, scope: Scope, selector: Optional[str], better) -> Value:
    values = args.into_ordered_values(scope, selector)
    if not values:
        raise ArgumentError("At least one argument must be passed.", args.span)
    best = None
    for value in values:
        if not isinstance(value, Dimension):
            raise ValueTypeError(f"{value.to_css_string()} is not a number.", args.span)
        if best is None or better(value.cmp(best, ">", args.span)):
            best = value
    return best


Builtin = Callable[[CallArguments, Scope, Optional[str]], Value]


def _build_registry() -> Dict[str, Builtin]:
    registry: Dict[str, Builtin] = {}
    for name, member in inspect.getmembers(StdLib()):
        if name.startswith('_') and not name.startswith('__') and callable(member):
            registry[name[1:].replace('_', '-')] = member
    return registry


BUILTINS: Dict[str, Builtin] = _build_registry()
