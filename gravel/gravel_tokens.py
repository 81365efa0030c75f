"""
Character-level token stream used by the parser and the argument binder.

Every source character becomes one `Token` carrying its span, so consumers
can re-emit the exact original text and report precise error positions.
"""

from typing import List, Optional, Iterator

from gravel.gravel_datatypes import Token, Span, ParseError


def tokenize(source: str) -> List[Token]:
    return [Token(ch, Span(i, i + 1)) for i, ch in enumerate(source)]


def tokens_to_string(tokens: List[Token]) -> str:
    return ''.join(t.kind for t in tokens)


def is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == '_' or ch == '-' or ord(ch) >= 0x80


class TokenStream:
    """A peekable cursor over a token list with unlimited lookahead."""

    def __init__(self, tokens: List[Token], eof_pos: Optional[int] = None):
        self.tokens = tokens
        self.index = 0
        if eof_pos is None:
            eof_pos = tokens[-1].pos.end if tokens else 0
        self._eof_pos = eof_pos

    @classmethod
    def from_source(cls, source: str) -> 'TokenStream':
        return cls(tokenize(source), len(source))

    def peek(self, offset: int = 0) -> Optional[Token]:
        i = self.index + offset
        if 0 <= i < len(self.tokens):
            return self.tokens[i]
        return None

    def peek_kind(self, offset: int = 0) -> Optional[str]:
        tok = self.peek(offset)
        return tok.kind if tok is not None else None

    def advance(self) -> Optional[Token]:
        tok = self.peek()
        if tok is not None:
            self.index += 1
        return tok

    def at_eof(self) -> bool:
        return self.index >= len(self.tokens)

    def position(self) -> Span:
        """Span of the next token, or an empty span at end of input."""
        tok = self.peek()
        return tok.pos if tok is not None else self.eof_span()

    def eof_span(self) -> Span:
        return Span(self._eof_pos, self._eof_pos)

    def __iter__(self) -> Iterator[Token]:
        while not self.at_eof():
            yield self.advance()

    def __repr__(self) -> str:
        rest = tokens_to_string(self.tokens[self.index:self.index + 20])
        return f"<TokenStream at {self.index}: {rest!r}>"


# =================================================================
# Stream helpers
# =================================================================

def devour_whitespace(toks: TokenStream) -> bool:
    """Skips whitespace. Returns True when anything was consumed."""
    found = False
    while (kind := toks.peek_kind()) is not None and kind.isspace():
        toks.advance()
        found = True
    return found


def devour_whitespace_or_comment(toks: TokenStream) -> bool:
    """Skips whitespace, `//` line comments and `/* */` block comments."""
    found = False
    while True:
        kind = toks.peek_kind()
        if kind is None:
            return found
        if kind.isspace():
            toks.advance()
        elif kind == '/' and toks.peek_kind(1) == '/':
            while (k := toks.peek_kind()) is not None and k != '\n':
                toks.advance()
        elif kind == '/' and toks.peek_kind(1) == '*':
            read_block_comment(toks)
        else:
            return found
        found = True


def read_block_comment(toks: TokenStream) -> List[Token]:
    """Reads a `/* ... */` comment, both delimiters included."""
    start = toks.position()
    out = [toks.advance(), toks.advance()]
    while True:
        tok = toks.advance()
        if tok is None:
            raise ParseError("expected more input.", start.merge(toks.eof_span()))
        out.append(tok)
        if tok.kind == '*' and toks.peek_kind() == '/':
            out.append(toks.advance())
            return out


def eat_ident(toks: TokenStream) -> str:
    """Reads an identifier, normalising nothing.

    A `-` is only taken when it is followed by another identifier character,
    so `$a-1` reads `a-1` but `$a -1` and `$a- ` stop before the hyphen.
    """
    out = []
    while (kind := toks.peek_kind()) is not None:
        if kind == '-':
            nxt = toks.peek_kind(1)
            if nxt is None or not is_ident_char(nxt):
                break
            out.append(toks.advance().kind)
        elif kind == '\\' and toks.peek_kind(1) is not None:
            toks.advance()
            out.append(toks.advance().kind)
        elif is_ident_char(kind):
            out.append(toks.advance().kind)
        else:
            break
    return ''.join(out)


def eat_ident_tokens(toks: TokenStream) -> List[Token]:
    """Like `eat_ident` but returns the consumed tokens for re-emission."""
    start = toks.index
    eat_ident(toks)
    return toks.tokens[start:toks.index]


def _read_until_closing(toks: TokenStream, open_kind: str, close_kind: str, start: Span) -> List[Token]:
    out: List[Token] = []
    depth = 0
    while True:
        tok = toks.advance()
        if tok is None:
            raise ParseError(f'expected "{close_kind}".', start.merge(toks.eof_span()))
        out.append(tok)
        if tok.kind in ('"', "'"):
            out.extend(read_until_closing_quote(toks, tok.kind, tok.pos))
        elif tok.kind == '\\':
            nxt = toks.advance()
            if nxt is not None:
                out.append(nxt)
        elif tok.kind == open_kind:
            depth += 1
        elif tok.kind == close_kind:
            if depth == 0:
                return out
            depth -= 1


def read_until_closing_paren(toks: TokenStream, start: Optional[Span] = None) -> List[Token]:
    """Reads through the `)` matching an already consumed `(`. Quotes are opaque."""
    return _read_until_closing(toks, '(', ')', start or toks.position())


def read_until_closing_square_brace(toks: TokenStream, start: Optional[Span] = None) -> List[Token]:
    return _read_until_closing(toks, '[', ']', start or toks.position())


def read_until_closing_curly_brace(toks: TokenStream, start: Optional[Span] = None) -> List[Token]:
    return _read_until_closing(toks, '{', '}', start or toks.position())


def read_until_closing_quote(toks: TokenStream, quote: str, start: Optional[Span] = None) -> List[Token]:
    """Reads through the closing `quote`; escaped characters are copied verbatim."""
    start = start or toks.position()
    out: List[Token] = []
    while True:
        tok = toks.advance()
        if tok is None:
            raise ParseError(f"Expected {quote}.", start.merge(toks.eof_span()))
        out.append(tok)
        if tok.kind == '\\':
            nxt = toks.advance()
            if nxt is not None:
                out.append(nxt)
        elif tok.kind == quote:
            return out
