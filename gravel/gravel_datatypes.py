"""
Defines the core data types for the gravel stylesheet compiler.

This module provides the source positions and error types shared by every
stage, the number and unit model, the closed set of runtime values, the
lexical scope chain, and the statement and CSS output nodes that the parser
and evaluator exchange.
"""

import enum
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import List, Dict, Any, Optional, Tuple, Union


# =================================================================
# Source Positions
# =================================================================

@dataclass(frozen=True)
class Span:
    """A half-open range of character offsets into the source text."""
    start: int
    end: int

    def merge(self, other: 'Span') -> 'Span':
        """Returns the smallest span covering both spans."""
        return Span(min(self.start, other.start), max(self.end, other.end))

    def subspan(self, begin: int, end: int) -> 'Span':
        return Span(self.start + begin, self.start + end)


@dataclass(frozen=True)
class Token:
    """A single source character together with its position."""
    kind: str
    pos: Span

    def __repr__(self) -> str:
        return f"Token({self.kind!r}@{self.pos.start})"


# =================================================================
# Errors
# =================================================================

class GravelError(Exception):
    """Base class for every user-facing compilation failure.

    Carries a human-readable message and the span it refers to. `stack`
    is filled in by the evaluator with the mixin/function frames that were
    active when the error was raised.
    """
    def __init__(self, message: str, span: Optional[Span] = None):
        super().__init__(message)
        self.message = message
        self.span = span
        self.stack: Optional[List[str]] = None


class ParseError(GravelError):
    """Malformed source text."""


class ArityError(GravelError):
    """More arguments were passed than a callable accepts."""


class ArgumentError(GravelError):
    """An argument could not be bound to a parameter."""


class ValueTypeError(GravelError):
    """A value is not the variant a callable expected."""


class UnitError(GravelError):
    """A number has a unit where none is allowed, or is not an integer."""


class UndefinedOperation(GravelError):
    """An operator was applied to values it is not defined for."""


class UndefinedVariable(GravelError):
    def __init__(self, key: str, span: Optional[Span] = None):
        super().__init__("Undefined variable.", span)
        self.key = key


# =================================================================
# Units
# =================================================================

_PI = Fraction("3.14159265358979323846264338327950288")


@dataclass(frozen=True)
class Unit:
    """A CSS unit. Units convert into each other only within one family."""
    name: str
    family: str
    factor: Fraction = Fraction(1)

    @property
    def is_none(self) -> bool:
        return self.family == ""

    def comparable(self, other: 'Unit') -> bool:
        """Unitless numbers are compatible with every unit in arithmetic."""
        return self.is_none or other.is_none or self.family == other.family

    def orderable(self, other: 'Unit') -> bool:
        """Ordering needs one family; a unitless number only orders against another."""
        return self.family == other.family

    @staticmethod
    def from_str(name: str) -> 'Unit':
        known = UNITS.get(name.lower())
        if known is not None:
            return known
        # Unknown units only ever convert to themselves.
        return Unit(name, name.lower())

    def __str__(self) -> str:
        return self.name


# Factors convert into the first unit of each family.
UNITS: Dict[str, Unit] = {u.name: u for u in (
    # Lengths
    Unit("px", "length", Fraction(1)),
    Unit("in", "length", Fraction(96)),
    Unit("cm", "length", Fraction(4800, 127)),
    Unit("mm", "length", Fraction(480, 127)),
    Unit("q", "length", Fraction(120, 127)),
    Unit("pt", "length", Fraction(4, 3)),
    Unit("pc", "length", Fraction(16)),
    # Angles
    Unit("deg", "angle", Fraction(1)),
    Unit("grad", "angle", Fraction(9, 10)),
    Unit("rad", "angle", Fraction(180) / _PI),
    Unit("turn", "angle", Fraction(360)),
    # Times
    Unit("ms", "time", Fraction(1)),
    Unit("s", "time", Fraction(1000)),
    # Frequencies
    Unit("hz", "frequency", Fraction(1)),
    Unit("khz", "frequency", Fraction(1000)),
    # Resolutions
    Unit("dpi", "resolution", Fraction(1)),
    Unit("dpcm", "resolution", Fraction(127, 50)),
    Unit("dppx", "resolution", Fraction(96)),
    # Percentages and font/viewport relative units stand alone
    Unit("%", "%"),
    Unit("em", "em"),
    Unit("rem", "rem"),
    Unit("ex", "ex"),
    Unit("ch", "ch"),
    Unit("vw", "vw"),
    Unit("vh", "vh"),
    Unit("vmin", "vmin"),
    Unit("vmax", "vmax"),
)}

NO_UNIT = Unit("", "")
UNITS[""] = NO_UNIT
PERCENT = UNITS["%"]


# =================================================================
# Numbers
# =================================================================

_I64_MIN = -(2 ** 63)
_I64_MAX = 2 ** 63 - 1

DEFAULT_PRECISION = 10


class Number:
    """An exact rational magnitude.

    All arithmetic is carried out on `Fraction`s so unit conversions and
    comparisons never accumulate floating point error.
    """
    __slots__ = ("value",)

    def __init__(self, value: Union[int, str, Fraction, 'Number'] = 0):
        if isinstance(value, Number):
            value = value.value
        if isinstance(value, float):
            raise TypeError("Number does not accept floats; pass a str or Fraction")
        self.value = Fraction(value)

    # --- Queries ---
    def is_decimal(self) -> bool:
        return self.value.denominator != 1

    def is_integer(self) -> bool:
        return self.value.denominator == 1

    def is_positive(self) -> bool:
        return self.value > 0

    def is_negative(self) -> bool:
        return self.value < 0

    def is_zero(self) -> bool:
        return self.value == 0

    def to_integer(self) -> int:
        """Truncates towards zero."""
        return int(self.value)

    def to_index(self) -> Optional[int]:
        """Returns a signed 64-bit integer, or None when not integral or out of range."""
        if self.is_decimal():
            return None
        n = int(self.value)
        if n < _I64_MIN or n > _I64_MAX:
            return None
        return n

    def convert(self, from_unit: Unit, to_unit: Unit) -> 'Number':
        """Re-expresses this magnitude, given in `from_unit`, in `to_unit`."""
        if from_unit.is_none or to_unit.is_none or from_unit == to_unit:
            return self
        return Number(self.value * from_unit.factor / to_unit.factor)

    def round(self) -> 'Number':
        """Rounds half away from zero."""
        magnitude = math.floor(abs(self.value) + Fraction(1, 2))
        return Number(-magnitude if self.value < 0 else magnitude)

    def ceil(self) -> 'Number':
        return Number(math.ceil(self.value))

    def floor(self) -> 'Number':
        return Number(math.floor(self.value))

    # --- Arithmetic ---
    def __add__(self, other: 'Number') -> 'Number':
        return Number(self.value + other.value)

    def __sub__(self, other: 'Number') -> 'Number':
        return Number(self.value - other.value)

    def __mul__(self, other: 'Number') -> 'Number':
        return Number(self.value * other.value)

    def __truediv__(self, other: 'Number') -> 'Number':
        return Number(self.value / other.value)

    def __mod__(self, other: 'Number') -> 'Number':
        return Number(self.value % other.value)

    def __neg__(self) -> 'Number':
        return Number(-self.value)

    def __abs__(self) -> 'Number':
        return Number(abs(self.value))

    # --- Ordering ---
    def __eq__(self, other):
        if isinstance(other, Number):
            return self.value == other.value
        if isinstance(other, (int, Fraction)):
            return self.value == other
        return NotImplemented

    def __lt__(self, other: 'Number') -> bool:
        return self.value < Number(other).value

    def __le__(self, other: 'Number') -> bool:
        return self.value <= Number(other).value

    def __gt__(self, other: 'Number') -> bool:
        return self.value > Number(other).value

    def __ge__(self, other: 'Number') -> bool:
        return self.value >= Number(other).value

    def __hash__(self) -> int:
        return hash(self.value)

    # --- Rendering ---
    def format(self, precision: int = DEFAULT_PRECISION) -> str:
        scale = 10 ** precision
        rounded = math.floor(abs(self.value) * scale + Fraction(1, 2))
        if rounded == 0:
            return "0"
        sign = "-" if self.value < 0 else ""
        whole, frac = divmod(rounded, scale)
        if frac == 0:
            return f"{sign}{whole}"
        digits = str(frac).rjust(precision, "0").rstrip("0")
        return f"{sign}{whole}.{digits}"

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"Number({self.format()})"


# =================================================================
# Values
# =================================================================

class QuoteKind(enum.Enum):
    QUOTED = "quoted"
    NONE = "none"


class Value:
    """Base class of the closed set of expression results.

    Variants are frozen dataclasses; operations always return new values.
    Operator methods raise `UndefinedOperation` with the caller's span when
    an operator has no meaning for the operand variants.
    """

    def to_css_string(self, printer=None) -> str:
        if printer is None:
            from gravel.gravel_printer import Printer
            printer = Printer()
        return printer.pformat(self)

    def inspect(self, printer=None) -> str:
        if printer is None:
            from gravel.gravel_printer import Printer
            printer = Printer()
        return printer.inspect(self)

    def is_true(self) -> bool:
        return True

    def unquote(self) -> 'Value':
        return self

    def _undefined(self, op: str, other: 'Value', span: Optional[Span]) -> UndefinedOperation:
        return UndefinedOperation(
            f'Undefined operation "{self.inspect()} {op} {other.inspect()}".', span
        )

    # --- Arithmetic ---
    def add(self, other: 'Value', span: Optional[Span] = None, printer=None) -> 'Value':
        match (self, other):
            case (Dimension(n1, u1), Dimension(n2, u2)):
                unit = _common_unit(u1, u2, span)
                return Dimension(n1.convert(u1, unit) + n2.convert(u2, unit), unit)
            case (Ident(text, quotes), _):
                return Ident(text + _concat_text(other, printer), quotes)
            case (_, Ident(text, _)) if not isinstance(self, NullValue):
                return Ident(_concat_text(self, printer) + text, QuoteKind.NONE)
        raise self._undefined("+", other, span)

    def sub(self, other: 'Value', span: Optional[Span] = None, printer=None) -> 'Value':
        match (self, other):
            case (Dimension(n1, u1), Dimension(n2, u2)):
                unit = _common_unit(u1, u2, span)
                return Dimension(n1.convert(u1, unit) - n2.convert(u2, unit), unit)
            case (Ident(), _) | (_, Ident()):
                return Ident(f"{_concat_text(self, printer)}-{_concat_text(other, printer)}", QuoteKind.NONE)
        raise self._undefined("-", other, span)

    def mul(self, other: 'Value', span: Optional[Span] = None) -> 'Value':
        match (self, other):
            case (Dimension(n1, u1), Dimension(n2, u2)):
                if u1.is_none or u2.is_none:
                    return Dimension(n1 * n2, u2 if u1.is_none else u1)
                raise UndefinedOperation(
                    f"{(n1 * n2).format()}{u1}*{u2} isn't a valid CSS value.", span
                )
        raise self._undefined("*", other, span)

    def div(self, other: 'Value', span: Optional[Span] = None, printer=None) -> 'Value':
        match (self, other):
            case (Dimension(n1, u1), Dimension(n2, u2)):
                if n2.is_zero():
                    raise UndefinedOperation("Division by zero.", span)
                if u2.is_none:
                    return Dimension(n1 / n2, u1)
                if u1.is_none:
                    raise UndefinedOperation(
                        f"{(n1 / n2).format()}{u2}^-1 isn't a valid CSS value.", span
                    )
                if not u1.comparable(u2):
                    raise UndefinedOperation(
                        f"{(n1 / n2).format()}{u1}/{u2} isn't a valid CSS value.", span
                    )
                return Dimension(n1 / n2.convert(u2, u1), NO_UNIT)
            case (Ident(), _) | (_, Ident()):
                return Ident(f"{_concat_text(self, printer)}/{_concat_text(other, printer)}", QuoteKind.NONE)
        raise self._undefined("/", other, span)

    def rem(self, other: 'Value', span: Optional[Span] = None) -> 'Value':
        match (self, other):
            case (Dimension(n1, u1), Dimension(n2, u2)):
                unit = _common_unit(u1, u2, span)
                divisor = n2.convert(u2, unit)
                if divisor.is_zero():
                    raise UndefinedOperation("Division by zero.", span)
                return Dimension(n1.convert(u1, unit) % divisor, unit)
        raise self._undefined("%", other, span)

    def neg(self, span: Optional[Span] = None) -> 'Value':
        match self:
            case Dimension(n, u):
                return Dimension(-n, u)
            case Ident(text, _):
                return Ident(f"-{text}", QuoteKind.NONE)
        raise UndefinedOperation(f'Undefined operation "-{self.inspect()}".', span)

    # --- Comparison ---
    def cmp(self, other: 'Value', op: str, span: Optional[Span] = None) -> int:
        """Orders two numbers, returning -1, 0 or 1."""
        match (self, other):
            case (Dimension(n1, u1), Dimension(n2, u2)):
                if u1.is_none != u2.is_none:
                    raise self._undefined(op, other, span)
                if not u1.orderable(u2):
                    raise UndefinedOperation(f"Incompatible units {u2} and {u1}.", span)
                right = n2.convert(u2, u1)
                if n1 < right:
                    return -1
                return 1 if n1 > right else 0
        raise self._undefined(op, other, span)

    def equals(self, other: 'Value') -> bool:
        """Language-level equality; never raises."""
        match (self, other):
            case (Dimension(n1, u1), Dimension(n2, u2)):
                if u1.is_none != u2.is_none or not u1.comparable(u2):
                    return False
                return n1 == n2.convert(u2, u1)
            case (Ident(t1, _), Ident(t2, _)):
                return t1 == t2
            case (ValueList(i1, s1), ValueList(i2, s2)):
                return s1 == s2 and len(i1) == len(i2) and all(a.equals(b) for a, b in zip(i1, i2))
        return self == other


def _common_unit(u1: Unit, u2: Unit, span: Optional[Span]) -> Unit:
    if not u1.comparable(u2):
        raise UndefinedOperation(f"Incompatible units {u2} and {u1}.", span)
    return u2 if u1.is_none else u1


def _concat_text(value: Value, printer=None) -> str:
    if isinstance(value, Ident):
        return value.text
    return value.to_css_string(printer)


@dataclass(frozen=True)
class Dimension(Value):
    number: Number
    unit: Unit = NO_UNIT

    @staticmethod
    def of(value: Union[int, str, Fraction, Number], unit: Union[str, Unit] = NO_UNIT) -> 'Dimension':
        if isinstance(unit, str):
            unit = Unit.from_str(unit)
        return Dimension(Number(value), unit)


@dataclass(frozen=True)
class Ident(Value):
    """A quoted or unquoted string."""
    text: str
    quotes: QuoteKind = QuoteKind.NONE

    def unquote(self) -> 'Ident':
        return Ident(self.text, QuoteKind.NONE)


@dataclass(frozen=True)
class Boolean(Value):
    value: bool

    def is_true(self) -> bool:
        return self.value


@dataclass(frozen=True)
class NullValue(Value):
    def is_true(self) -> bool:
        return False


@dataclass(frozen=True)
class ValueList(Value):
    items: Tuple[Value, ...]
    separator: str = " "


TRUE = Boolean(True)
FALSE = Boolean(False)
NULL = NullValue()


# =================================================================
# Core Runtime Types
# =================================================================

def normalize_name(name: str) -> str:
    """Underscores and hyphens are interchangeable in names."""
    return name.replace("_", "-")


class Scope:
    """A lexical scope: variables, mixins and functions, with a parent link.

    Reads walk outward through the parents at the time of the read, so a
    global write becomes visible to every scope that shares the root.
    """
    def __init__(self, parent: Optional['Scope'] = None):
        self.vars: Dict[str, Value] = {}
        self.mixins: Dict[str, 'Mixin'] = {}
        self.functions: Dict[str, 'UserFunction'] = {}
        # System metadata: the parent link, and on the root the active evaluator.
        self.meta: Dict[str, Any] = {"parent": parent}

    @property
    def parent(self) -> Optional['Scope']:
        return self.meta.get("parent")

    @property
    def root(self) -> 'Scope':
        cur = self
        while cur.parent is not None:
            cur = cur.parent
        return cur

    @property
    def evaluator(self):
        """The evaluator driving the compilation this scope belongs to."""
        ev = self.root.meta.get("evaluator")
        if ev is None:
            raise RuntimeError("scope is not attached to an evaluator")
        return ev

    @property
    def printer(self):
        """The active printer; None outside a compilation, meaning default formatting."""
        ev = self.root.meta.get("evaluator")
        return ev.printer if ev is not None else None

    def child(self) -> 'Scope':
        return Scope(parent=self)

    # --- Variables ---
    def find_owner(self, name: str) -> Optional['Scope']:
        """Finds the nearest Scope in the chain that binds `name`."""
        name = normalize_name(name)
        cur = self
        while cur is not None:
            if name in cur.vars:
                return cur
            cur = cur.parent
        return None

    def get_var(self, name: str, span: Optional[Span] = None) -> Value:
        owner = self.find_owner(name)
        if owner is None:
            raise UndefinedVariable(normalize_name(name), span)
        return owner.vars[normalize_name(name)]

    def var_exists(self, name: str) -> bool:
        return self.find_owner(name) is not None

    def insert_var(self, name: str, value: Value):
        """Plain write: always lands in this scope."""
        self.vars[normalize_name(name)] = value

    def insert_global(self, name: str, value: Value):
        """`!global` write: lands in the outermost scope."""
        self.root.vars[normalize_name(name)] = value

    def __getitem__(self, name: str) -> Value:
        return self.get_var(name)

    def __setitem__(self, name: str, value: Value):
        self.insert_var(name, value)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.var_exists(name)

    # --- Mixins and functions ---
    def insert_mixin(self, name: str, mixin: 'Mixin'):
        self.mixins[normalize_name(name)] = mixin

    def get_mixin(self, name: str, span: Optional[Span] = None) -> 'Mixin':
        name = normalize_name(name)
        cur = self
        while cur is not None:
            if name in cur.mixins:
                return cur.mixins[name]
            cur = cur.parent
        raise GravelError("Undefined mixin.", span)

    def insert_function(self, name: str, function: 'UserFunction'):
        self.functions[normalize_name(name)] = function

    def get_function(self, name: str) -> Optional['UserFunction']:
        name = normalize_name(name)
        cur = self
        while cur is not None:
            if name in cur.functions:
                return cur.functions[name]
            cur = cur.parent
        return None

    def __repr__(self) -> str:
        keys = ', '.join(self.vars.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope vars=[{keys}]{parent_id}>"


class Mixin:
    """A mixin defined with `@mixin`.

    Bundles the parameter list, the unevaluated body and the scope the mixin
    was declared in; each `@include` runs the body in a fresh child of that
    scope.
    """
    def __init__(self, name: str, signature: 'FunctionSignature', body: List['Node'], closure: Scope):
        self.name = name
        self.signature = signature
        self.body = body
        self.closure = closure

    def __repr__(self) -> str:
        return f"<Mixin {self.name} params={len(self.signature)}>"


class UserFunction(Mixin):
    """A function defined with `@function`; its body must reach `@return`."""

    def __repr__(self) -> str:
        return f"<UserFunction {self.name} params={len(self.signature)}>"


# =================================================================
# Statement Nodes
# =================================================================

@dataclass
class RuleSet:
    selector: List[Token]
    body: List['Node']
    span: Span


@dataclass
class Declaration:
    name: List[Token]
    value: List[Token]
    span: Span


@dataclass
class VariableDecl:
    name: str
    value: List[Token]
    span: Span
    is_default: bool = False
    is_global: bool = False


@dataclass
class MixinDecl:
    name: str
    signature: 'FunctionSignature'
    body: List['Node']
    span: Span


@dataclass
class FunctionDecl:
    name: str
    signature: 'FunctionSignature'
    body: List['Node']
    span: Span


@dataclass
class Include:
    name: str
    args: 'CallArguments'
    span: Span


@dataclass
class Return:
    value: List[Token]
    span: Span


@dataclass
class If:
    # A None condition marks the trailing @else.
    clauses: List[Tuple[Optional[List[Token]], List['Node']]]
    span: Span


@dataclass
class For:
    var: str
    start: List[Token]
    end: List[Token]
    inclusive: bool
    body: List['Node']
    span: Span


@dataclass
class Each:
    names: List[str]
    iterable: List[Token]
    body: List['Node']
    span: Span


@dataclass
class While:
    condition: List[Token]
    body: List['Node']
    span: Span


@dataclass
class MessageRule:
    """`@debug`, `@warn` or `@error`."""
    kind: str
    value: List[Token]
    span: Span


@dataclass
class AtRule:
    """A plain CSS at-rule without a block, emitted verbatim."""
    text: List[Token]
    span: Span


@dataclass
class Comment:
    text: str
    span: Span


Node = Union[RuleSet, Declaration, VariableDecl, MixinDecl, FunctionDecl, Include,
             Return, If, For, Each, While, MessageRule, AtRule, Comment]


# =================================================================
# CSS Output Nodes
# =================================================================

@dataclass
class CssDeclaration:
    name: str
    value: str


@dataclass
class CssComment:
    text: str


@dataclass
class CssRule:
    selector: str
    items: List[Union[CssDeclaration, CssComment]] = field(default_factory=list)


@dataclass
class CssAtRule:
    text: str


CssNode = Union[CssRule, CssComment, CssAtRule]
