"""
Turns token sequences into Values.

Evaluation happens in two passes, in the manner of a transformer followed by
an evaluator: the expression grammar parses the tokens and
`ExpressionTransformer` builds a small expression tree from the result,
then `eval_expr` walks that tree against a scope.
"""

from dataclasses import dataclass
from typing import List, Optional, Union

from gravel.gravel_datatypes import (
    Token, Span, Scope, Value, Dimension, Ident, QuoteKind, ValueList,
    TRUE, FALSE, NULL, ParseError, normalize_name
)
from gravel.gravel_tokens import TokenStream, read_until_closing_curly_brace
from gravel.gravel_args import CallArguments


# Functions whose arguments are copied through with only `#{}` resolved.
VERBATIM_FUNCTIONS = {"calc", "var", "env", "element", "expression"}


# =================================================================
# Expression Tree
# =================================================================

@dataclass
class Literal:
    value: Value
    span: Span
    # True for numbers written directly in the source (`12px`), which keeps
    # `12px/30px` as a separator rather than a division.
    literal: bool = False


@dataclass
class Variable:
    name: str
    span: Span


@dataclass
class FunctionCall:
    name: str
    args: CallArguments
    span: Span


@dataclass
class BinaryOp:
    op: str
    left: 'Expr'
    right: 'Expr'
    span: Span
    slash: bool = False


@dataclass
class UnaryOp:
    op: str
    operand: 'Expr'
    span: Span


@dataclass
class ListExpr:
    items: List['Expr']
    separator: str
    span: Span


@dataclass
class Interpolated:
    """Text mixed with `#{}` expressions, e.g. `foo-#{$n}` or `"#{$a}px"`."""
    parts: List[Union[str, List[Token]]]
    quoted: bool
    span: Span


@dataclass
class ParentSelector:
    span: Span


Expr = Union[Literal, Variable, FunctionCall, BinaryOp, UnaryOp, ListExpr, Interpolated, ParentSelector]




def split_interpolation(tokens: List[Token]) -> List[Union[str, List[Token]]]:
    """Splits raw tokens into literal text and `#{}` expression token runs."""
    parts: List[Union[str, List[Token]]] = []
    toks = TokenStream(tokens)
    text: List[str] = []
    while (tok := toks.advance()) is not None:
        if tok.kind == '#' and toks.peek_kind() == '{':
            toks.advance()
            inner = read_until_closing_curly_brace(toks, tok.pos)[:-1]
            if text:
                parts.append(''.join(text))
                text = []
            parts.append(inner)
        else:
            text.append(tok.kind)
    if text:
        parts.append(''.join(text))
    return parts


# =================================================================
# Evaluation
# =================================================================

def evaluate(tokens: List[Token], scope: Scope, selector: Optional[str] = None,
             slash_separator: bool = False) -> Value:
    """Evaluates a token sequence into a Value.

    With `slash_separator`, a `/` between two literal numbers is kept as
    text, as CSS shorthands like `font: 12px/30px` require.
    """
    from gravel.gravel_parser import parse_expression  # local import to avoid cycle
    expr = parse_expression(tokens, slash_separator=slash_separator)
    return eval_expr(expr, scope, selector)


def interpolate(tokens: List[Token], scope: Scope, selector: Optional[str] = None) -> str:
    """Resolves `#{}` in raw text such as selectors and property names."""
    return _join_parts(split_interpolation(tokens), scope, selector)


def _join_parts(parts, scope: Scope, selector: Optional[str]) -> str:
    out = []
    for part in parts:
        if isinstance(part, str):
            out.append(part)
        else:
            out.append(evaluate(part, scope, selector).unquote().to_css_string(scope.printer))
    return ''.join(out)


def eval_expr(expr: Expr, scope: Scope, selector: Optional[str] = None) -> Value:
    match expr:
        case Literal(value=value):
            return value
        case Variable(name=name, span=span):
            return scope.get_var(name, span)
        case ParentSelector():
            return Ident(selector) if selector else NULL
        case Interpolated(parts=parts, quoted=quoted):
            text = _join_parts(parts, scope, selector)
            return Ident(text, QuoteKind.QUOTED if quoted else QuoteKind.NONE)
        case ListExpr(items=items, separator=sep):
            return ValueList(tuple(eval_expr(i, scope, selector) for i in items), sep)
        case UnaryOp(op=op, operand=operand, span=span):
            value = eval_expr(operand, scope, selector)
            match op:
                case '-':
                    return value.neg(span)
                case '+':
                    return value if isinstance(value, Dimension) else Ident(f"+{value.to_css_string(scope.printer)}")
                case '/':
                    return Ident(f"/{value.to_css_string(scope.printer)}")
                case 'not':
                    return FALSE if value.is_true() else TRUE
        case BinaryOp(op='and', left=left, right=right):
            value = eval_expr(left, scope, selector)
            return eval_expr(right, scope, selector) if value.is_true() else value
        case BinaryOp(op='or', left=left, right=right):
            value = eval_expr(left, scope, selector)
            return value if value.is_true() else eval_expr(right, scope, selector)
        case BinaryOp(op=op, left=left, right=right, span=span, slash=slash):
            lhs = eval_expr(left, scope, selector)
            rhs = eval_expr(right, scope, selector)
            return _binary(op, lhs, rhs, span, slash, scope.printer)
        case FunctionCall():
            return call_function(expr, scope, selector)
    raise TypeError(f"Unknown expression node: {expr!r}")


def _binary(op: str, lhs: Value, rhs: Value, span: Span, slash: bool, printer=None) -> Value:
    match op:
        case '+':
            return lhs.add(rhs, span, printer=printer)
        case '-':
            return lhs.sub(rhs, span, printer=printer)
        case '*':
            return lhs.mul(rhs, span)
        case '/':
            if slash:
                return Ident(f"{lhs.to_css_string(printer)}/{rhs.to_css_string(printer)}")
            return lhs.div(rhs, span, printer=printer)
        case '%':
            return lhs.rem(rhs, span)
        case '==':
            return TRUE if lhs.equals(rhs) else FALSE
        case '!=':
            return FALSE if lhs.equals(rhs) else TRUE
        case '<':
            return TRUE if lhs.cmp(rhs, op, span) < 0 else FALSE
        case '<=':
            return TRUE if lhs.cmp(rhs, op, span) <= 0 else FALSE
        case '>':
            return TRUE if lhs.cmp(rhs, op, span) > 0 else FALSE
        case '>=':
            return TRUE if lhs.cmp(rhs, op, span) >= 0 else FALSE
    raise ParseError(f"Unknown operator {op}.", span)


def call_function(call: FunctionCall, scope: Scope, selector: Optional[str] = None) -> Value:
    """Resolves a call: user function, then builtin, then plain CSS function."""
    from gravel.gravel_builtins import BUILTINS  # local import to avoid cycle
    args = call.args.copy()
    user_fn = scope.get_function(call.name)
    if user_fn is not None:
        return scope.evaluator.call_function(user_fn, args, scope, selector, call.span)
    builtin = BUILTINS.get(normalize_name(call.name))
    if builtin is not None:
        return builtin(args, scope, selector)
    return Ident(call.name + args.to_css_string(scope, selector))
