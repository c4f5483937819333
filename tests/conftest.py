"""Shared test fixtures and helpers."""

from __future__ import annotations

from enum import Enum, auto

import pytest

from patchscript.grammar import parse_patch
from patchscript.kernel import Kernel
from patchscript.lexer import tokenize
from patchscript.patch import PATCH_KERNEL, Patch
from patchscript.preprocessor import preprocess
from patchscript.tokens import Token, TokenType


class T(Enum):
    """Tags for the small test kernel."""

    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    PLUS = auto()
    DASH = auto()
    ARROW = auto()
    EQ = auto()
    EQEQ = auto()
    SEMI = auto()
    DOT = auto()
    TRUE = auto()
    FALSE = auto()
    IF = auto()


TEST_KERNEL = Kernel(
    delimiters={
        "(": T.LPAREN,
        ")": T.RPAREN,
        "{": T.LBRACE,
        "}": T.RBRACE,
        "+": T.PLUS,
        "-": T.DASH,
        "->": T.ARROW,
        "=": T.EQ,
        "==": T.EQEQ,
        ";": T.SEMI,
        ".": T.DOT,
    },
    keywords={"if": T.IF},
    case_insensitive_keywords={"true": T.TRUE, "false": T.FALSE},
    comment_start=("/*",),
    comment_end="*/",
    comment_line=("//", "#"),
    string_delimiters={'"': '"', "'": "'"},
    raw_string_delimiters={"`": "`"},
)


@pytest.fixture
def kernel() -> Kernel:
    return TEST_KERNEL


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str, kernel: Kernel = TEST_KERNEL) -> list[Token]:
        tokens = tokenize(kernel, source, "test")
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def pp():
    """Return a helper that preprocesses patch-script source and returns its tokens."""

    def _pp(source: str, stream_name: str = "test.dh", **options) -> list[Token]:
        return preprocess(PATCH_KERNEL, source, stream_name, **options)

    return _pp


@pytest.fixture
def parse_source():
    """Return a helper that parses patch-script source and returns a Patch."""

    def _parse(source: str, stream_name: str = "test.dh", **options) -> Patch:
        return parse_patch(source, stream_name, **options)

    return _parse


def assert_types(tokens: list[Token], expected: list) -> None:
    """Assert that the token types match the expected list."""
    actual = [t.type for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def assert_lexemes(tokens: list[Token], expected: list[str]) -> None:
    """Assert that the token lexemes match the expected list."""
    actual = [t.lexeme for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"
