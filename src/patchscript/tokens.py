"""Token types, data structures, and character classification helpers."""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    # Scanned classes (delimiters and keywords carry grammar-defined tags)
    IDENTIFIER = auto()  # [A-Za-z_][A-Za-z0-9_]*
    NUMBER = auto()  # digits, optional fraction, or 0x hex
    STRING = auto()  # escape-processed quoted text
    RAW_STRING = auto()  # verbatim quoted text

    NEWLINE = auto()  # only when newline emission is enabled

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column."""

    line: int
    column: int


@dataclass(frozen=True, slots=True)
class Token:
    """A single token with its lexeme and where it came from."""

    type: TokenType | Hashable
    lexeme: str
    line: int
    column: int
    stream_name: str

    @property
    def position(self) -> Position:
        return Position(self.line, self.column)

    def describe(self) -> str:
        """Short human-readable form used in error messages."""
        if self.type == TokenType.EOF:
            return "end of input"
        if self.type == TokenType.NEWLINE:
            return "end of line"
        return f'"{self.lexeme}"'


def is_ident_start(ch: str) -> bool:
    """Return True if ch can begin an identifier."""
    return ch == "_" or ch.isalpha()


def is_ident_char(ch: str) -> bool:
    """Return True if ch is a valid identifier character."""
    return ch == "_" or ch.isalnum()


def is_hex_digit(ch: str) -> bool:
    """Return True if ch is a hexadecimal digit."""
    return ch != "" and ch in "0123456789abcdefABCDEF"


def is_digit(ch: str) -> bool:
    return ch != "" and ch in "0123456789"
