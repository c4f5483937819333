"""Recursive-descent parser framework with multi-error recovery.

A grammar supplies the productions; ``Parser`` drives them over a token
source, records a diagnostic for every syntax error, skips ahead to the next
top-level entry, and raises one aggregate ``ParseError`` at the end.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Generic, NoReturn, Protocol, TypeVar

from patchscript.errors import Diagnostic, ParseError, PatchScriptError
from patchscript.tokens import Token, TokenType

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

# Fixed-point scale used by Doom for distances and speeds.
FRACUNIT = 1 << 16

_LITERAL_TYPES = (TokenType.STRING, TokenType.RAW_STRING, TokenType.NUMBER)


class TokenSource(Protocol):
    def next_token(self) -> Token: ...


class Grammar(Protocol[T_co]):
    """The productions a concrete language plugs into the framework."""

    def is_entry_start(self, token: Token) -> bool:
        """True if ``token`` can begin a top-level entry (a resync point)."""
        ...

    def parse_header(self, session: ParserSession) -> None: ...

    def parse_entry(self, session: ParserSession) -> None: ...

    def result(self) -> T_co: ...


class SyntaxFault(Exception):
    """Unwinds the current production after a syntax error."""

    def __init__(self, diagnostic: Diagnostic) -> None:
        self.diagnostic = diagnostic
        super().__init__(diagnostic.format())


class Diagnostics:
    """Ordered accumulator of recorded problems."""

    def __init__(self) -> None:
        self._items: list[Diagnostic] = []

    def add(self, diagnostic: Diagnostic) -> None:
        self._items.append(diagnostic)

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    @property
    def items(self) -> list[Diagnostic]:
        return list(self._items)


class ParserSession:
    """Token navigation and error reporting for one parse."""

    def __init__(self, tokens: TokenSource, *, decimal_separator: str = ".") -> None:
        self._tokens = tokens
        self._decimal_separator = decimal_separator
        self._current: Token | None = None
        self._lookahead: Token | None = None
        self.consumed = 0
        self.diagnostics = Diagnostics()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def prime(self) -> None:
        self._current = self._tokens.next_token()

    @property
    def current(self) -> Token:
        if self._current is None:
            raise RuntimeError("parser session has not been primed")
        return self._current

    def peek(self) -> Token:
        """The token after the current one."""
        if self._lookahead is None:
            if self.current.type == TokenType.EOF:
                return self.current
            self._lookahead = self._tokens.next_token()
        return self._lookahead

    def at_eof(self) -> bool:
        return self.current.type == TokenType.EOF

    def advance(self) -> Token:
        tok = self.current
        if tok.type != TokenType.EOF:
            if self._lookahead is not None:
                self._current, self._lookahead = self._lookahead, None
            else:
                self._current = self._tokens.next_token()
            self.consumed += 1
        return tok

    def at(self, *types) -> bool:
        return self.current.type in types

    def at_lexeme(self, *words: str) -> bool:
        """True if the current token is a bare word matching any of ``words`` (any case)."""
        tok = self.current
        if tok.type in _LITERAL_TYPES or tok.type == TokenType.EOF:
            return False
        lowered = tok.lexeme.lower()
        return any(lowered == w.lower() for w in words)

    def match(self, tt) -> Token | None:
        if self.at(tt):
            return self.advance()
        return None

    def match_lexeme(self, word: str) -> bool:
        if self.at_lexeme(word):
            self.advance()
            return True
        return False

    def expect(self, tt, message: str) -> Token:
        if not self.at(tt):
            self.fail(message)
        return self.advance()

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def diagnostic(self, message: str, token: Token | None = None) -> Diagnostic:
        tok = token if token is not None else self.current
        return Diagnostic(tok.stream_name, tok.line, tok.column, message)

    def fail(self, message: str, token: Token | None = None) -> NoReturn:
        """Abandon the current production with a syntax error."""
        raise SyntaxFault(self.diagnostic(message, token))

    def error(self, message: str, token: Token | None = None) -> None:
        """Record a problem without unwinding."""
        self.diagnostics.add(self.diagnostic(message, token))

    # ------------------------------------------------------------------
    # Value helpers
    # ------------------------------------------------------------------

    def match_identifier(self) -> str | None:
        if self.at(TokenType.IDENTIFIER):
            return self.advance().lexeme
        return None

    def match_string(self) -> str | None:
        if self.at(TokenType.STRING, TokenType.RAW_STRING):
            return self.advance().lexeme
        return None

    def match_boolean(self) -> bool | None:
        if self.at_lexeme("true"):
            self.advance()
            return True
        if self.at_lexeme("false"):
            self.advance()
            return False
        return None

    def _match_sign(self) -> int | None:
        """Consume a '+' or '-' that directly precedes a number."""
        if self.at_lexeme("+", "-") and self.peek().type == TokenType.NUMBER:
            return -1 if self.advance().lexeme == "-" else 1
        return None

    def _number_value(self, tok: Token) -> int | float:
        lexeme = tok.lexeme
        if _is_hex(lexeme):
            return int(lexeme[2:], 16)
        if self._decimal_separator in lexeme:
            return float(lexeme.replace(self._decimal_separator, "."))
        return int(lexeme)

    def match_number(self) -> int | float | None:
        """Match an optionally signed integer or decimal."""
        sign = self._match_sign()
        if sign is None and not self.at(TokenType.NUMBER):
            return None
        value = self._number_value(self.advance())
        return -value if sign == -1 else value

    def match_integer(self) -> int | None:
        """Match an optionally signed integer; a decimal here is a syntax error."""
        start = self.current
        value = self.match_number()
        if isinstance(value, float):
            self.fail("expected an integer, not a decimal number", start)
        return value

    def match_fixed(self) -> int | None:
        """Match a number as 16.16 fixed point; hex values are taken as raw bits."""
        sign = self._match_sign()
        if sign is None and not self.at(TokenType.NUMBER):
            return None
        tok = self.advance()
        value = self._number_value(tok)
        if not _is_hex(tok.lexeme):
            value = round(value * FRACUNIT)
        return -value if sign == -1 else value


def _is_hex(lexeme: str) -> bool:
    return lexeme[:2] in ("0x", "0X")


class ParserState(Enum):
    NOT_STARTED = auto()
    PRIMED = auto()
    ENTRIES = auto()
    DONE = auto()
    FAILED = auto()


class Parser(Generic[T]):
    """Drive a grammar over a token source, collecting every syntax error."""

    def __init__(self, grammar: Grammar[T], tokens: TokenSource, *, decimal_separator: str = ".") -> None:
        self.grammar = grammar
        self.session = ParserSession(tokens, decimal_separator=decimal_separator)
        self.state = ParserState.NOT_STARTED

    def parse(self) -> T:
        if self.state != ParserState.NOT_STARTED:
            raise RuntimeError("a Parser can only be run once")

        session = self.session
        try:
            session.prime()
            self.state = ParserState.PRIMED
            self._production(self.grammar.parse_header)

            self.state = ParserState.ENTRIES
            while not session.at_eof():
                self._production(self.grammar.parse_entry)
        except PatchScriptError:
            self.state = ParserState.FAILED
            raise

        if session.diagnostics:
            self.state = ParserState.FAILED
            raise ParseError(session.diagnostics.items)

        self.state = ParserState.DONE
        return self.grammar.result()

    def _production(self, production) -> None:
        start = self.session.consumed
        try:
            production(self.session)
        except SyntaxFault as fault:
            self.session.diagnostics.add(fault.diagnostic)
            self._resync(start)

    def _resync(self, start: int) -> None:
        """Skip to the next token that can begin a top-level entry."""
        session = self.session
        if session.consumed == start and not session.at_eof():
            session.advance()
        while not session.at_eof() and not self.grammar.is_entry_start(session.current):
            session.advance()


def parse(grammar: Grammar[T], tokens: TokenSource, *, decimal_separator: str = ".") -> T:
    """Convenience function: run ``grammar`` over ``tokens`` and return its result."""
    return Parser(grammar, tokens, decimal_separator=decimal_separator).parse()
