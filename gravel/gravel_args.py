"""
Argument binding for mixins, functions and builtins.

`parse_declaration` reads the parameter list of `@mixin` / `@function`
declarations into a `FunctionSignature`. `parse_call` splits a call site into
named and positional slots of unevaluated tokens. `CallArguments` is the
consumption side: callees pull slots out by name or position, and each slot
is evaluated against the caller's scope at the moment it is taken.
"""

from dataclasses import dataclass
from typing import List, Dict, Optional, Union, Iterator

from gravel.gravel_datatypes import (
    Token, Span, Scope, Value, ParseError, ArityError, ArgumentError, normalize_name
)
from gravel.gravel_tokens import (
    TokenStream, devour_whitespace, devour_whitespace_or_comment, eat_ident, eat_ident_tokens,
    read_until_closing_paren, read_until_closing_square_brace, read_until_closing_curly_brace,
    read_until_closing_quote, tokens_to_string
)


# =================================================================
# Declaration side
# =================================================================

@dataclass(frozen=True)
class Parameter:
    name: str
    default: Optional[List[Token]] = None
    is_variadic: bool = False


class FunctionSignature:
    """The ordered parameter list of a mixin or function."""

    def __init__(self, params: Optional[List[Parameter]] = None):
        params = list(params or [])
        for i, p in enumerate(params):
            if p.is_variadic and i != len(params) - 1:
                raise ValueError(f"variadic parameter ${p.name} must be last")
        self.params = tuple(params)

    @property
    def variadic(self) -> Optional[Parameter]:
        if self.params and self.params[-1].is_variadic:
            return self.params[-1]
        return None

    def __len__(self) -> int:
        return len(self.params)

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self.params)

    def __getitem__(self, i: int) -> Parameter:
        return self.params[i]

    def __repr__(self) -> str:
        parts = []
        for p in self.params:
            s = f"${p.name}"
            if p.default is not None and not p.is_variadic:
                s += f": {tokens_to_string(p.default)}"
            if p.is_variadic:
                s += "..."
            parts.append(s)
        return f"({', '.join(parts)})"


def _read_default(toks: TokenStream) -> List[Token]:
    """Collects a default value up to the next top-level `,` or `)`.

    Brackets, parentheses and quoted strings are copied as opaque runs so
    commas inside them belong to the default.
    """
    out: List[Token] = []
    while (tok := toks.peek()) is not None:
        if tok.kind in (',', ')'):
            break
        toks.advance()
        out.append(tok)
        if tok.kind == '(':
            out.extend(read_until_closing_paren(toks, tok.pos))
        elif tok.kind == '[':
            out.extend(read_until_closing_square_brace(toks, tok.pos))
        elif tok.kind == '{':
            out.extend(read_until_closing_curly_brace(toks, tok.pos))
        elif tok.kind in ('"', "'"):
            out.extend(read_until_closing_quote(toks, tok.kind, tok.pos))
    # Trailing whitespace before the separator is not part of the value.
    while out and out[-1].kind.isspace():
        out.pop()
    return out


def parse_declaration(toks: TokenStream) -> FunctionSignature:
    """Parses `$a, $b: 1px, $rest...) {`, starting just after the `(`.

    Leaves the stream positioned just past the block-opening `{`.
    """
    params: List[Parameter] = []
    devour_whitespace_or_comment(toks)
    while True:
        tok = toks.advance()
        if tok is None:
            raise ParseError('expected ")".', toks.eof_span())
        if tok.kind == ')':
            break
        if tok.kind != '$':
            raise ParseError('expected ")".', tok.pos)
        name_start = toks.position()
        name = eat_ident(toks)
        if not name:
            raise ParseError("Expected identifier.", name_start)
        name = normalize_name(name)
        devour_whitespace_or_comment(toks)

        tok = toks.advance()
        if tok is None:
            raise ParseError('expected ")".', toks.eof_span())
        match tok.kind:
            case ':':
                devour_whitespace_or_comment(toks)
                params.append(Parameter(name, default=_read_default(toks)))
                if toks.peek_kind() == ',':
                    toks.advance()
            case '.':
                for _ in range(2):
                    nxt = toks.advance()
                    if nxt is None:
                        raise ParseError('expected ".".', tok.pos)
                    if nxt.kind != '.':
                        raise ParseError('expected ".".', nxt.pos)
                    tok = nxt
                devour_whitespace_or_comment(toks)
                nxt = toks.advance()
                if nxt is None:
                    raise ParseError('expected ")".', tok.pos)
                if nxt.kind != ')':
                    raise ParseError('expected ")".', nxt.pos)
                params.append(Parameter(name, is_variadic=True))
                break
            case ',':
                params.append(Parameter(name))
            case ')':
                params.append(Parameter(name))
                break
            case _:
                raise ParseError('expected ")".', tok.pos)
        devour_whitespace_or_comment(toks)

    devour_whitespace_or_comment(toks)
    tok = toks.advance()
    if tok is None or tok.kind != '{':
        raise ParseError('expected "{".', tok.pos if tok is not None else toks.eof_span())
    return FunctionSignature(params)


# =================================================================
# Call side
# =================================================================

@dataclass(frozen=True)
class Named:
    name: str


@dataclass(frozen=True)
class Positional:
    index: int


ArgumentSlot = Union[Named, Positional]


def _insert_slot(args: Dict[ArgumentSlot, List[Token]], name: str, val: List[Token]):
    slot = Named(normalize_name(name)) if name else Positional(len(args))
    args[slot] = val


def parse_call(toks: TokenStream) -> 'CallArguments':
    """Parses the arguments of a call site, starting just after the `(`.

    Consumes through the matching `)`. A trailing comma leaves one empty
    slot; `f()` has no slots at all.
    """
    args: Dict[ArgumentSlot, List[Token]] = {}
    devour_whitespace_or_comment(toks)
    span = toks.position()
    while True:
        name = ""
        val: List[Token] = []
        tok = toks.peek()
        if tok is None:
            raise ParseError('expected ")".', span.merge(toks.eof_span()))
        if tok.kind == '$':
            toks.advance()
            ident = eat_ident_tokens(toks)
            whitespace = devour_whitespace_or_comment(toks)
            if toks.peek_kind() == ':':
                toks.advance()
                name = tokens_to_string(ident)
            else:
                # Not a keyword after all: the sigil and name start the value.
                val.append(tok)
                val.extend(ident)
                if whitespace:
                    val.append(Token(' ', tok.pos))
        elif tok.kind == ')':
            toks.advance()
            span = span.merge(tok.pos)
            if args:
                _insert_slot(args, name, val)
            return CallArguments(args, span)
        devour_whitespace_or_comment(toks)

        while True:
            tok = toks.advance()
            if tok is None:
                raise ParseError('expected ")".', span.merge(toks.eof_span()))
            match tok.kind:
                case ')':
                    _insert_slot(args, name, _strip_trailing_space(val))
                    return CallArguments(args, span.merge(tok.pos))
                case ',':
                    break
                case '[':
                    val.append(tok)
                    val.extend(read_until_closing_square_brace(toks, tok.pos))
                case '(':
                    val.append(tok)
                    val.extend(read_until_closing_paren(toks, tok.pos))
                case '{':
                    val.append(tok)
                    val.extend(read_until_closing_curly_brace(toks, tok.pos))
                case '"' | "'":
                    val.append(tok)
                    val.extend(read_until_closing_quote(toks, tok.kind, tok.pos))
                case _:
                    val.append(tok)

        _insert_slot(args, name, _strip_trailing_space(val))
        span = span.merge(tok.pos)
        devour_whitespace_or_comment(toks)


def _strip_trailing_space(val: List[Token]) -> List[Token]:
    while val and val[-1].kind.isspace():
        val.pop()
    return val


# =================================================================
# Resolution
# =================================================================

_MISSING = object()


class CallArguments:
    """Unevaluated arguments of one call, keyed by `Named` / `Positional` slot.

    Taking a slot removes it, so each argument is evaluated at most once.
    """

    def __init__(self, args: Optional[Dict[ArgumentSlot, List[Token]]] = None, span: Span = Span(0, 0)):
        self.args: Dict[ArgumentSlot, List[Token]] = dict(args or {})
        self.span = span

    def copy(self) -> 'CallArguments':
        return CallArguments(dict(self.args), self.span)

    def __len__(self) -> int:
        return len(self.args)

    def is_empty(self) -> bool:
        return not self.args

    def has_named(self) -> bool:
        return any(isinstance(slot, Named) for slot in self.args)

    def _evaluate(self, toks: List[Token], scope: Scope, selector: Optional[str]) -> Value:
        from gravel.gravel_expression import evaluate  # local import to avoid cycle
        if not toks:
            raise ParseError("Expected expression.", self.span)
        return evaluate(toks, scope, selector)

    def take_named(self, name: str, scope: Scope, selector: Optional[str] = None) -> Optional[Value]:
        toks = self.args.pop(Named(normalize_name(name)), None)
        if toks is None:
            return None
        return self._evaluate(toks, scope, selector)

    def take_positional(self, index: int, scope: Scope, selector: Optional[str] = None) -> Optional[Value]:
        toks = self.args.pop(Positional(index), None)
        if toks is None:
            return None
        return self._evaluate(toks, scope, selector)

    def get(self, position: int, name: str, scope: Scope, selector: Optional[str] = None,
            default=_MISSING) -> Value:
        """Takes an argument by name, falling back to its position, then `default`."""
        val = self.take_named(name, scope, selector)
        if val is None:
            val = self.take_positional(position, scope, selector)
        if val is not None:
            return val
        if default is _MISSING:
            raise ArgumentError(f"Missing argument ${name}.", self.span)
        return default

    def discard(self, position: int, name: str):
        """Drops an argument without evaluating it."""
        self.args.pop(Named(normalize_name(name)), None)
        self.args.pop(Positional(position), None)

    def into_ordered_values(self, scope: Scope, selector: Optional[str] = None) -> List[Value]:
        """Evaluates every remaining slot in ascending position order.

        Empties the argument set. Any remaining named slot is an error.
        """
        for slot in self.args:
            if isinstance(slot, Named):
                raise ArgumentError(f"No argument named ${slot.name}.", self.span)
        ordered = sorted(self.args.items(), key=lambda item: item[0].index)
        self.args = {}
        return [self._evaluate(toks, scope, selector) for _, toks in ordered]

    def into_rest_values(self, scope: Scope, selector: Optional[str] = None) -> List[Value]:
        """Evaluates every remaining slot for a variadic parameter.

        Positional slots come first, in order, then keyword slots in call order.
        """
        positional = sorted(
            ((slot, toks) for slot, toks in self.args.items() if isinstance(slot, Positional)),
            key=lambda item: item[0].index
        )
        named = [(slot, toks) for slot, toks in self.args.items() if isinstance(slot, Named)]
        self.args = {}
        return [self._evaluate(toks, scope, selector) for _, toks in positional + named]

    def enforce_max(self, max_args: int):
        count = len(self.args)
        if count > max_args:
            noun = "argument" if max_args == 1 else "arguments"
            verb = "was" if count == 1 else "were"
            raise ArityError(
                f"Only {max_args} {noun} allowed, but {count} {verb} passed.", self.span
            )

    def decrement_positions(self):
        """Shifts every positional slot down by one."""
        self.args = {
            (Positional(slot.index - 1) if isinstance(slot, Positional) else slot): toks
            for slot, toks in self.args.items()
        }

    def to_css_string(self, scope: Scope, selector: Optional[str] = None) -> str:
        """Renders the arguments of a plain CSS function call, e.g. `(1px, a)`."""
        if not self.args:
            return "()"
        if self.has_named():
            raise ArgumentError("Plain CSS functions don't support keyword arguments.", self.span)
        values = self.into_ordered_values(scope, selector)
        return "(" + ", ".join(v.to_css_string(scope.printer) for v in values) + ")"

    def __repr__(self) -> str:
        parts = []
        for slot, toks in self.args.items():
            key = f"${slot.name}" if isinstance(slot, Named) else str(slot.index)
            parts.append(f"{key}={tokens_to_string(toks)!r}")
        return f"<CallArguments {', '.join(parts)}>"
