"""
Parses stylesheet source into a tree of statement nodes.

Both grammars live in `grammar/` and are loaded once with koine; the
transformers in gravel_transformer turn koine's parse trees into nodes.
Values, selectors and conditions stay as raw token runs and are evaluated
later against the scope they run in.
"""
from pathlib import Path
from typing import List, Optional

from koine import Parser

from gravel.gravel_datatypes import Token, Span, ParseError, Node
from gravel.gravel_tokens import tokenize, tokens_to_string
from gravel.gravel_transformer import GravelTransformer, ExpressionTransformer, SourceMap
from gravel.gravel_expression import Expr

GRAMMAR_DIR = Path(__file__).parent / "grammar"


def _parse_error(parse_out, tokens: List[Token], message: Optional[str]) -> ParseError:
    """Turns a failed koine result into a ParseError pointing into the source.

    Without a fixed `message`, koine's own description of the failure is used.
    """
    message = message or (parse_out or {}).get('error_message') or "Invalid stylesheet."
    node = (parse_out or {}).get('error_node') or {}
    src = SourceMap(tokens)
    offset = src.offset(node) if node else None
    if offset is not None and offset < len(tokens):
        span = tokens[offset].pos
    else:
        span = src.whole
    return ParseError(message, span)


def _run(parser: Parser, tokens: List[Token], message: Optional[str] = None):
    try:
        parse_out = parser.parse(tokens_to_string(tokens))
    except Exception as e:
        raise _parse_error({'error_message': str(e)}, tokens, message) from e
    if isinstance(parse_out, dict) and 'status' in parse_out:
        if parse_out.get('status') != 'success':
            raise _parse_error(parse_out, tokens, message)
        return parse_out['ast']
    if isinstance(parse_out, dict) and 'ast' in parse_out:
        return parse_out['ast']
    return parse_out


class StylesheetParser:
    """Parses a whole stylesheet into statement nodes."""

    _parser: Optional[Parser] = None

    def __init__(self, source: str):
        if StylesheetParser._parser is None:
            StylesheetParser._parser = Parser.from_file(str(GRAMMAR_DIR / "gravel_grammar.yaml"))
        self.source = source
        self.tokens = tokenize(source)

    def parse(self) -> List[Node]:
        ast = _run(StylesheetParser._parser, self.tokens)
        return GravelTransformer(self.tokens).transform(ast)


class ExpressionParser:
    """Parses a value's tokens into an expression tree."""

    _parser: Optional[Parser] = None

    def __init__(self, tokens: List[Token], slash_separator: bool = False):
        if ExpressionParser._parser is None:
            ExpressionParser._parser = Parser.from_file(str(GRAMMAR_DIR / "gravel_expression.yaml"))
        self.tokens = tokens
        self.slash_separator = slash_separator

    def parse(self) -> Expr:
        if not tokens_to_string(self.tokens).strip():
            span = SourceMap(self.tokens).whole if self.tokens else Span(0, 0)
            raise ParseError("Expected expression.", span)
        ast = _run(ExpressionParser._parser, self.tokens, "Expected expression.")
        return ExpressionTransformer(self.tokens, self.slash_separator).transform(ast)


def parse_expression(tokens: List[Token], slash_separator: bool = False) -> Expr:
    return ExpressionParser(tokens, slash_separator=slash_separator).parse()
