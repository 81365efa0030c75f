"""
Transforms koine parse trees into gravel statement nodes and expression trees.

Koine nodes are dicts with a 'tag', the matched 'text' and a 'line'/'col'
position; branch nodes carry 'children'. Every gravel value still needs its
source tokens (the argument binder and `#{}` interpolation work on tokens),
so positions are mapped back onto the token list the parse ran over.
"""
import re
from typing import List, Optional, Tuple, Union

from gravel.gravel_datatypes import (
    Token, Span, ParseError, Dimension, Ident, QuoteKind, ValueList, Number, Unit,
    TRUE, FALSE, NULL, NO_UNIT, normalize_name,
    RuleSet, Declaration, VariableDecl, MixinDecl, FunctionDecl, Include, Return,
    If, For, Each, While, MessageRule, AtRule, Comment, Node
)
from gravel.gravel_tokens import TokenStream, tokens_to_string, read_until_closing_curly_brace
from gravel.gravel_args import FunctionSignature, CallArguments, parse_declaration, parse_call
from gravel.gravel_expression import (
    Expr, Literal, Variable, FunctionCall, BinaryOp, UnaryOp, ListExpr, Interpolated,
    ParentSelector, VERBATIM_FUNCTIONS, split_interpolation
)


# Pass-through nodes: choice and grouping rules with no meaning of their own.
_WRAPPERS = {'statement-item', 'statement', 'unary', 'atom', 'additive_tail'}

# Directives with a dedicated grammar rule; reaching the generic at-rule
# with one of these names means the dedicated rule did not match.
_DIRECTIVES = {'mixin', 'function', 'include', 'return', 'if', 'for', 'each', 'while',
               'debug', 'warn', 'error'}

_NUMBER = re.compile(r'([0-9.]+)(.*)', re.S)
_ESCAPE = re.compile(r'\\(.)', re.S)


def children(node) -> list:
    """The meaningful children of a koine node, in order.

    Drops the None left by unmatched optionals, flattens repetition lists
    and unwraps untagged or pass-through nodes.
    """
    kids = node.get('children') if isinstance(node, dict) else node
    if kids is None:
        return []
    if isinstance(kids, dict):
        kids = [kids] if 'tag' in kids else list(kids.values())
    out = []
    for kid in kids:
        if kid is None:
            continue
        if isinstance(kid, list):
            out.extend(children(kid))
        elif isinstance(kid, dict):
            tag = kid.get('tag')
            if tag is None or tag in _WRAPPERS:
                out.extend(children(kid) if 'children' in kid else [kid] if tag else [])
            else:
                out.append(kid)
    return out


def tag_of(node) -> Optional[str]:
    return node.get('tag') if isinstance(node, dict) else None


def find(node, tag: str):
    for kid in children(node):
        if kid.get('tag') == tag:
            return kid
    return None


def unescape(text: str) -> str:
    return _ESCAPE.sub(r'\1', text)


def strip_tokens(tokens: List[Token]) -> List[Token]:
    start, end = 0, len(tokens)
    while start < end and tokens[start].kind.isspace():
        start += 1
    while end > start and tokens[end - 1].kind.isspace():
        end -= 1
    return tokens[start:end]


def strip_flags(tokens: List[Token]) -> Tuple[List[Token], bool, bool]:
    """Removes trailing `!default` / `!global` flags from a variable value."""
    is_default = is_global = False
    tokens = strip_tokens(tokens)
    while True:
        text = tokens_to_string(tokens).lower()
        if text.endswith("!default"):
            is_default = True
            tokens = strip_tokens(tokens[:-len("!default")])
        elif text.endswith("!global"):
            is_global = True
            tokens = strip_tokens(tokens[:-len("!global")])
        else:
            return tokens, is_default, is_global


def span_of(tokens: List[Token], fallback: Span) -> Span:
    if not tokens:
        return fallback
    return tokens[0].pos.merge(tokens[-1].pos)


class SourceMap:
    """Maps koine line/col positions back onto the parsed token list."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.text = tokens_to_string(tokens)
        self.line_starts = [0] + [i + 1 for i, ch in enumerate(self.text) if ch == '\n']
        if tokens:
            self.whole = tokens[0].pos.merge(tokens[-1].pos)
        else:
            self.whole = Span(0, 0)

    def offset(self, node) -> Optional[int]:
        line, col = node.get('line'), node.get('col')
        if line is None or col is None:
            return None
        text = node.get('text')
        fallback = None
        # Koine positions are 1-based; the 0-based readings are a fallback
        # checked against the matched text.
        for ln, cl in ((line - 1, col - 1), (line - 1, col), (line, col - 1), (line, col)):
            if 0 <= ln < len(self.line_starts):
                off = self.line_starts[ln] + cl
                if fallback is None:
                    fallback = off
                if text is None or self.text.startswith(text, off):
                    return off
        return fallback

    def tokens_of(self, node) -> List[Token]:
        """The tokens a leaf matched."""
        off = self.offset(node)
        text = node.get('text')
        if off is None or text is None:
            return []
        return self.tokens[off:off + len(text)]

    def span(self, node) -> Span:
        toks = self.tokens_of(node)
        if toks:
            return toks[0].pos.merge(toks[-1].pos)
        spans = [self.span(kid) for kid in children(node)]
        if not spans:
            return self.whole
        out = spans[0]
        for s in spans[1:]:
            out = out.merge(s)
        return out


# =================================================================
# Statements
# =================================================================

class GravelTransformer:
    """Builds statement nodes from a `gravel_grammar.yaml` parse tree."""

    def __init__(self, tokens: List[Token]):
        self.src = SourceMap(tokens)

    def transform(self, node) -> List[Node]:
        if isinstance(node, list):
            node = {'tag': 'stylesheet', 'children': node}
        return self._statements(node)

    def _statements(self, node) -> List[Node]:
        return [self._statement(kid) for kid in children(node)]

    def _raw(self, node, tag: str = 'raw') -> List[Token]:
        found = find(node, tag)
        return strip_tokens(self.src.tokens_of(found)) if found is not None else []

    def _required(self, node, span: Span, tag: str = 'raw') -> List[Token]:
        toks = self._raw(node, tag)
        if not toks:
            raise ParseError("Expected expression.", span)
        return toks

    def _body(self, node) -> List[Node]:
        block = find(node, 'block')
        return self._statements(block) if block is not None else []

    def _name(self, node, tag: str = 'name') -> str:
        leaf = find(node, tag)
        text = leaf.get('text', '') if leaf is not None else ''
        if tag == 'var-name':
            text = text[1:]
        return normalize_name(unescape(text))

    def _statement(self, node) -> Node:
        span = self.src.span(node)
        match tag_of(node):
            case 'comment':
                return Comment(node['text'], span)

            case 'variable':
                value, is_default, is_global = strip_flags(self._raw(node))
                if not value:
                    raise ParseError("Expected expression.", span)
                return VariableDecl(self._name(node, 'var-name'), value, span,
                                    is_default=is_default, is_global=is_global)

            case 'ruleset':
                selector = self._raw(node)
                if not selector:
                    raise ParseError("Expected selector.", span)
                return RuleSet(selector, self._body(node), span_of(selector, span))

            case 'declaration':
                name = self._raw(node, 'decl-name')
                if not name:
                    raise ParseError("Expected identifier.", span)
                value = self._required(node, span)
                return Declaration(name, value, name[0].pos.merge(value[-1].pos))

            case 'mixin':
                signature = self._signature(node)
                return MixinDecl(self._name(node), signature, self._body(node), span)

            case 'function':
                signature = self._signature(node)
                return FunctionDecl(self._name(node), signature, self._body(node), span)

            case 'include':
                if find(node, 'content-block') is not None:
                    raise ParseError("Mixin content blocks are not supported.", span)
                args_node = find(node, 'args')
                if args_node is not None:
                    args = parse_call(TokenStream(self.src.tokens_of(args_node)[1:]))
                else:
                    args = CallArguments({}, span)
                return Include(self._name(node), args, span.merge(args.span))

            case 'return':
                return Return(self._required(node, span), span)

            case 'message':
                kind = find(node, 'message-kind')['text'][1:].lower()
                return MessageRule(kind, self._required(node, span), span)

            case 'if':
                clauses = [(self._required(node, span), self._body(node))]
                for clause in children(node):
                    match tag_of(clause):
                        case 'else-if':
                            clauses.append((self._required(clause, span), self._body(clause)))
                        case 'else':
                            clauses.append((None, self._body(clause)))
                return If(clauses, span)

            case 'for':
                start = self._required(node, span, 'for-start')
                keyword = find(node, 'for-keyword')['text']
                end = self._required(node, span)
                return For(self._name(node, 'var-name'), start, end, keyword == 'through',
                           self._body(node), span)

            case 'each':
                names = []
                for kid in children(node):
                    if tag_of(kid) == 'var-name':
                        names.append(normalize_name(unescape(kid['text'][1:])))
                    elif tag_of(kid) == 'each-more':
                        names.append(self._name(kid, 'var-name'))
                return Each(names, self._required(node, span), self._body(node), span)

            case 'while':
                return While(self._required(node, span), self._body(node), span)

            case 'stray-else':
                raise ParseError("This at-rule is not allowed here.", span)

            case 'at-rule':
                at_name = find(node, 'at-name')
                name = at_name['text'][1:]
                if name.lower() in _DIRECTIVES:
                    raise ParseError(f"Invalid @{name} rule.", span)
                if find(node, 'block') is not None:
                    raise ParseError(f"Unsupported at-rule @{name}.", span)
                text = self.src.tokens_of(at_name)
                rest = self._raw(node)
                if rest:
                    text = text + [Token(' ', rest[0].pos)] + rest
                return AtRule(text, span_of(text, span))

        raise ParseError(f"Unexpected {tag_of(node)}.", span)

    def _signature(self, node) -> FunctionSignature:
        params = find(node, 'params')
        if params is None:
            return FunctionSignature()
        toks = self.src.tokens_of(params)
        # The binder reads through the block-opening brace.
        brace = Token('{', Span(toks[-1].pos.end, toks[-1].pos.end))
        return parse_declaration(TokenStream(toks[1:] + [brace]))


# =================================================================
# Expressions
# =================================================================


class ExpressionTransformer:
    """Builds an expression tree from a `gravel_expression.yaml` parse tree.

    With `slash_separator`, a `/` between two literal numbers outside
    parentheses is kept as text, as `font: 12px/30px` requires.
    """

    def __init__(self, tokens: List[Token], slash_separator: bool = False):
        self.src = SourceMap(tokens)
        self.slash_separator = slash_separator

    def transform(self, node) -> Expr:
        if isinstance(node, list):
            node = {'tag': 'expression', 'children': node}
        return self._expr(node, in_parens=False)

    def _expr(self, node, in_parens: bool) -> Expr:
        span = self.src.span(node)
        match tag_of(node):
            case 'expression':
                return self._expr(children(node)[0], in_parens)

            case 'comma-list':
                items, trailing = [], False
                for kid in children(node):
                    match tag_of(kid):
                        case 'comma-item':
                            items.append(self._expr(children(kid)[0], in_parens))
                        case 'trailing-comma':
                            trailing = True
                        case _:
                            items.append(self._expr(kid, in_parens))
                # `(1,)` is a one-element comma list.
                if len(items) == 1 and not (trailing and in_parens):
                    return items[0]
                return ListExpr(items, ',', _span_of(items))

            case 'space-list':
                items = []
                for kid in children(node):
                    if tag_of(kid) == 'space-item':
                        kid = children(kid)[0]
                    items.append(self._expr(kid, in_parens))
                if len(items) == 1:
                    return items[0]
                return ListExpr(items, ' ', _span_of(items))

            case 'binary':
                kids = children(node)
                left = self._expr(kids[0], in_parens)
                for tail in kids[1:]:
                    op_node, operand = children(tail)
                    op = op_node['text']
                    right = self._expr(operand, in_parens)
                    slash = (op == '/' and self.slash_separator and not in_parens
                             and _is_literal_number(left) and _is_literal_number(right))
                    left = BinaryOp(op, left, right, _span_of([left, right]), slash=slash)
                return left

            case 'prefixed':
                op_node, operand = children(node)
                return UnaryOp(op_node['text'], self._expr(operand, in_parens), span)

            case 'paren':
                kids = children(node)
                if not kids:
                    return Literal(ValueList((), " "), span)
                return self._expr(kids[0], in_parens=True)

            case 'number':
                digits, unit = _NUMBER.match(node['text']).groups()
                unit = Unit.from_str(unit) if unit else NO_UNIT
                return Literal(Dimension(Number(digits), unit), span, literal=True)

            case 'string':
                return self._string(node, span)

            case 'variable':
                return Variable(normalize_name(unescape(node['text'][1:])), span)

            case 'call':
                return self._call(node, span)

            case 'parent':
                return ParentSelector(span)

            case 'important':
                return Literal(Ident("!important"), span)

            case 'hex':
                return Literal(Ident(node['text']), span)

            case 'ident':
                parts = split_interpolation(self.src.tokens_of(node))
                if len(parts) == 1 and isinstance(parts[0], str):
                    name = parts[0]
                    if name == "true":
                        return Literal(TRUE, span)
                    if name == "false":
                        return Literal(FALSE, span)
                    if name == "null":
                        return Literal(NULL, span)
                    return Literal(Ident(name), span)
                return Interpolated(parts, False, span)

        raise ParseError("Expected expression.", span)

    def _string(self, node, span: Span) -> Expr:
        toks = TokenStream(self.src.tokens_of(node)[1:-1])
        parts: List[Union[str, List[Token]]] = []
        text: List[str] = []
        while (tok := toks.advance()) is not None:
            if tok.kind == '\\':
                esc = toks.advance()
                if esc is None:
                    text.append('\\')
                elif esc.kind in ('"', "'"):
                    text.append(esc.kind)
                else:
                    text.append('\\' + esc.kind)
            elif tok.kind == '#' and toks.peek_kind() == '{':
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
        if all(isinstance(p, str) for p in parts):
            return Literal(Ident(''.join(parts), QuoteKind.QUOTED), span)
        return Interpolated(parts, True, span)

    def _call(self, node, span: Span) -> Expr:
        name = find(node, 'call-name')['text']
        args_toks = self.src.tokens_of(find(node, 'call-args'))
        lower = name.lower()
        if lower == "url" or lower in VERBATIM_FUNCTIONS:
            inner = args_toks[1:-1]
            first = next((t.kind for t in inner if not t.kind.isspace()), None)
            if lower in VERBATIM_FUNCTIONS or first not in ('"', "'", '$'):
                return Interpolated([f"{name}("] + split_interpolation(inner) + [")"], False, span)
        args = parse_call(TokenStream(args_toks[1:]))
        return FunctionCall(name, args, span)


def _span_of(exprs: List[Expr]) -> Span:
    span = exprs[0].span
    for e in exprs[1:]:
        span = span.merge(e.span)
    return span


def _is_literal_number(expr: Expr) -> bool:
    if isinstance(expr, Literal):
        return expr.literal
    if isinstance(expr, BinaryOp):
        return expr.slash
    if isinstance(expr, UnaryOp) and expr.op == '-':
        return _is_literal_number(expr.operand)
    return False
