"""Kernel-driven tokenizer: converts source text into a lazy token stream."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from os import PathLike
from typing import TextIO

from patchscript.errors import LexError
from patchscript.kernel import Kernel
from patchscript.tokens import (
    Position,
    Token,
    TokenType,
    is_digit,
    is_hex_digit,
    is_ident_char,
    is_ident_start,
)

DEFAULT_STREAM_NAME = "[text]"

_BLANKS = " \t\f\v"

_SIMPLE_ESCAPES = {
    "0": "\0",
    "b": "\b",
    "t": "\t",
    "n": "\n",
    "f": "\f",
    "r": "\r",
    "/": "/",
    "\\": "\\",
}


@dataclass(frozen=True, slots=True)
class LogicalLine:
    """A directive line read past its marker, with continuations glued in."""

    text: str
    position: Position  # of the marker
    text_position: Position  # of the first character after the marker


class Tokenizer:
    """Scan one source according to a Kernel, one token per call."""

    def __init__(
        self,
        kernel: Kernel,
        source: str,
        stream_name: str = DEFAULT_STREAM_NAME,
        *,
        emit_newlines: bool | None = None,
        line: int = 1,
        column: int = 1,
    ) -> None:
        self._kernel = kernel
        self._source = source.replace("\r\n", "\n").replace("\r", "\n")
        self._stream_name = stream_name
        self._emit_newlines = kernel.emit_newlines if emit_newlines is None else emit_newlines
        self._pos = 0
        self._line = line
        self._col = column
        self._at_line_start = True
        self._eof: Token | None = None

    @classmethod
    def from_file(
        cls,
        kernel: Kernel,
        path: str | PathLike[str],
        stream_name: str | None = None,
        *,
        encoding: str = "utf-8",
        emit_newlines: bool | None = None,
    ) -> Tokenizer:
        with open(path, encoding=encoding) as f:
            text = f.read()
        name = stream_name if stream_name is not None else str(path)
        return cls(kernel, text, name, emit_newlines=emit_newlines)

    @classmethod
    def from_reader(
        cls,
        kernel: Kernel,
        reader: TextIO,
        stream_name: str = DEFAULT_STREAM_NAME,
        *,
        emit_newlines: bool | None = None,
    ) -> Tokenizer:
        """Read the whole reader, closing it afterwards."""
        with reader:
            text = reader.read()
        return cls(kernel, text, stream_name, emit_newlines=emit_newlines)

    @property
    def kernel(self) -> Kernel:
        return self._kernel

    @property
    def stream_name(self) -> str:
        return self._stream_name

    @property
    def position(self) -> Position:
        return Position(self._line, self._col)

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._source)

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.next_token()
            if tok.type == TokenType.EOF:
                return
            yield tok

    # ------------------------------------------------------------------
    # Main scan loop
    # ------------------------------------------------------------------

    def next_token(self) -> Token:
        """Return the next token; keeps returning the EOF token once exhausted."""
        if self._eof is not None:
            return self._eof

        while True:
            self._skip_blanks()

            if self._pos >= len(self._source):
                self._eof = self._make(TokenType.EOF, "", self.position)
                return self._eof

            ch = self._peek()

            if ch == "\n":
                start = self.position
                self._advance()
                if self._emit_newlines:
                    return self._make(TokenType.NEWLINE, "\n", start)
                continue

            if self._skip_comment():
                self._at_line_start = False
                continue

            tok = self._scan_token()
            # Raw strings may span lines; the next token is still mid-line.
            self._at_line_start = False
            return tok

    def _scan_token(self) -> Token:
        kernel = self._kernel
        ch = self._peek()

        if ch in kernel.raw_string_delimiters:
            return self._scan_raw_string(kernel.raw_string_delimiters[ch])

        if ch in kernel.string_delimiters:
            return self._scan_string(kernel.string_delimiters[ch])

        # ".5" is a number even when "." is also a delimiter
        if ch == kernel.decimal_separator and is_digit(self._peek(1)):
            return self._scan_number()

        match = kernel.match_delimiter(self._source, self._pos)
        if match is not None:
            text, tag = match
            start = self.position
            self._advance_by(len(text))
            return self._make(tag, text, start)

        if is_ident_start(ch):
            return self._scan_word()

        if is_digit(ch):
            return self._scan_number()

        raise self._error(f"unexpected character '{ch}'")

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
            self._at_line_start = True
        else:
            self._col += 1
        return ch

    def _advance_by(self, count: int) -> None:
        for _ in range(count):
            self._advance()

    def _make(self, tt, lexeme: str, start: Position) -> Token:
        return Token(tt, lexeme, start.line, start.column, self._stream_name)

    def _error(self, message: str, pos: Position | None = None) -> LexError:
        if pos is None:
            pos = self.position
        return LexError(message, self._stream_name, pos.line, pos.column)

    def _skip_blanks(self) -> None:
        while self._pos < len(self._source):
            ch = self._peek()
            if ch == "\n" or not ch.isspace():
                return
            self._advance()

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def _skip_comment(self) -> bool:
        kernel = self._kernel

        for marker in kernel.comment_line:
            if self._source.startswith(marker, self._pos):
                while self._pos < len(self._source) and self._peek() != "\n":
                    self._advance()
                return True

        for marker in kernel.comment_start:
            if self._source.startswith(marker, self._pos):
                start = self.position
                self._advance_by(len(marker))
                end = self._source.find(kernel.comment_end, self._pos)
                if end < 0:
                    raise self._error("unterminated block comment", start)
                self._advance_by(end + len(kernel.comment_end) - self._pos)
                return True

        return False

    # ------------------------------------------------------------------
    # Words and numbers
    # ------------------------------------------------------------------

    def _scan_word(self) -> Token:
        start = self.position
        begin = self._pos
        while self._pos < len(self._source) and is_ident_char(self._peek()):
            self._advance()
        word = self._source[begin : self._pos]
        tag = self._kernel.keyword_type(word)
        return self._make(TokenType.IDENTIFIER if tag is None else tag, word, start)

    def _scan_number(self) -> Token:
        start = self.position
        begin = self._pos

        if self._peek() == "0" and self._peek(1) in ("x", "X") and is_hex_digit(self._peek(2)):
            self._advance_by(2)
            while is_hex_digit(self._peek()):
                self._advance()
        else:
            while is_digit(self._peek()):
                self._advance()
            if self._peek() == self._kernel.decimal_separator and is_digit(self._peek(1)):
                self._advance()
                while is_digit(self._peek()):
                    self._advance()

        lexeme = self._source[begin : self._pos]
        if is_ident_char(self._peek()):
            raise self._error(f"malformed number '{lexeme}{self._peek()}'", start)
        return self._make(TokenType.NUMBER, lexeme, start)

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    def _scan_string(self, end_quote: str) -> Token:
        start = self.position
        self._advance()  # opening quote
        chars: list[str] = []

        while True:
            if self._pos >= len(self._source):
                raise self._error("unterminated string", start)
            ch = self._peek()
            if ch == end_quote:
                self._advance()
                break
            if ch == "\n":
                raise self._error("unterminated string", start)
            if ch == "\\":
                chars.append(self._scan_escape(end_quote))
            else:
                chars.append(self._advance())

        return self._make(TokenType.STRING, "".join(chars), start)

    def _scan_escape(self, end_quote: str) -> str:
        start = self.position
        self._advance()  # backslash

        ch = self._peek()
        if ch == "" or ch == "\n":
            raise self._error("unterminated string", start)

        if ch == end_quote:
            self._advance()
            return ch

        if ch in _SIMPLE_ESCAPES:
            self._advance()
            return _SIMPLE_ESCAPES[ch]

        if ch == "x":
            self._advance()
            return self._scan_hex_escape(2, start)

        if ch == "u":
            self._advance()
            return self._scan_hex_escape(4, start)

        raise self._error(f"invalid escape sequence '\\{ch}'", start)

    def _scan_hex_escape(self, count: int, start: Position) -> str:
        digits = []
        for i in range(count):
            ch = self._peek()
            if not is_hex_digit(ch):
                raise self._error(
                    f"incomplete escape: expected {count} hex digits, got {i}", start
                )
            digits.append(self._advance())
        return chr(int("".join(digits), 16))

    def _scan_raw_string(self, end_quote: str) -> Token:
        start = self.position
        self._advance()  # opening quote
        begin = self._pos
        end = self._source.find(end_quote, begin)
        if end < 0:
            raise self._error("unterminated raw string", start)
        content = self._source[begin:end]
        self._advance_by(end + 1 - self._pos)
        return self._make(TokenType.RAW_STRING, content, start)

    # ------------------------------------------------------------------
    # Line-oriented primitives for the preprocessor
    # ------------------------------------------------------------------

    def read_directive(self, marker: str) -> LogicalLine | None:
        """Consume a directive line if one starts here.

        Only succeeds at the start of a line whose first non-blank character
        begins ``marker``. The terminating newline is left unread; a backslash
        directly before a newline continues the line onto the next one.
        """
        if not self._at_line_start or self._eof is not None:
            return None

        probe = self._pos
        while probe < len(self._source) and self._source[probe] in _BLANKS:
            probe += 1
        if not self._source.startswith(marker, probe):
            return None

        self._advance_by(probe - self._pos)
        position = self.position
        self._advance_by(len(marker))
        text_position = self.position

        chars: list[str] = []
        while self._pos < len(self._source):
            ch = self._peek()
            if ch == "\\" and self._peek(1) == "\n":
                self._advance_by(2)
                chars.append("\n")
                continue
            if ch == "\n":
                break
            chars.append(self._advance())

        self._at_line_start = False
        return LogicalLine("".join(chars), position, text_position)

    def skip_line(self) -> None:
        """Discard the rest of the physical line, including its newline."""
        while self._pos < len(self._source):
            if self._advance() == "\n":
                return


def tokenize(
    kernel: Kernel,
    source: str,
    stream_name: str = DEFAULT_STREAM_NAME,
) -> list[Token]:
    """Convenience function: tokenize source text and return the token list, EOF included."""
    tokenizer = Tokenizer(kernel, source, stream_name)
    tokens = list(tokenizer)
    tokens.append(tokenizer.next_token())
    return tokens
