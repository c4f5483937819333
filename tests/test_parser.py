"""Tests for the parser framework: session helpers, error collection, recovery."""

from __future__ import annotations

import pytest

from .conftest import TEST_KERNEL, T
from patchscript.errors import LexError, ParseError
from patchscript.kernel import Kernel
from patchscript.lexer import Tokenizer
from patchscript.parser import (
    FRACUNIT,
    Parser,
    ParserSession,
    ParserState,
    SyntaxFault,
    parse,
)
from patchscript.tokens import TokenType


class AssignGrammar:
    """version N; followed by entries of the form  set NAME = NUMBER;"""

    def __init__(self) -> None:
        self.version: int | None = None
        self.values: dict[str, int | float] = {}

    def is_entry_start(self, token) -> bool:
        return token.type == TokenType.IDENTIFIER and token.lexeme == "set"

    def parse_header(self, session: ParserSession) -> None:
        if not session.match_lexeme("version"):
            return
        version = session.match_integer()
        if version is None:
            session.fail("expected a version number")
        self.version = version
        session.expect(T.SEMI, "expected ';'")

    def parse_entry(self, session: ParserSession) -> None:
        if not session.match_lexeme("set"):
            session.fail(f"expected 'set', got {session.current.describe()}")
        name = session.match_identifier()
        if name is None:
            session.fail("expected a name")
        session.expect(T.EQ, "expected '='")
        value = session.match_number()
        if value is None:
            session.fail("expected a number")
        session.expect(T.SEMI, "expected ';'")
        self.values[name] = value

    def result(self) -> dict[str, int | float]:
        return self.values


def run(source: str, grammar: AssignGrammar | None = None):
    grammar = grammar if grammar is not None else AssignGrammar()
    return parse(grammar, Tokenizer(TEST_KERNEL, source, "t"))


def session_for(source: str, kernel: Kernel = TEST_KERNEL, **options) -> ParserSession:
    session = ParserSession(Tokenizer(kernel, source, "t"), **options)
    session.prime()
    return session


# ---------------------------------------------------------------------------
# Successful parses
# ---------------------------------------------------------------------------


class TestParse:
    def test_entries(self) -> None:
        assert run("set a = 1;\nset b = -2.5;") == {"a": 1, "b": -2.5}

    def test_header(self) -> None:
        grammar = AssignGrammar()
        run("version 2;\nset a = 1;", grammar)
        assert grammar.version == 2

    def test_empty_input(self) -> None:
        assert run("") == {}

    def test_state_machine(self) -> None:
        parser = Parser(AssignGrammar(), Tokenizer(TEST_KERNEL, "set a = 1;", "t"))
        assert parser.state == ParserState.NOT_STARTED
        assert parser.parse() == {"a": 1}
        assert parser.state == ParserState.DONE

    def test_parser_runs_once(self) -> None:
        parser = Parser(AssignGrammar(), Tokenizer(TEST_KERNEL, "", "t"))
        parser.parse()
        with pytest.raises(RuntimeError, match="only be run once"):
            parser.parse()


# ---------------------------------------------------------------------------
# Error collection and recovery
# ---------------------------------------------------------------------------


class TestErrors:
    def test_every_error_reported_in_order(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            run("set a = ;\nset b = 2;\nset = 3;\n")
        err = exc_info.value
        assert [(d.line, d.column) for d in err.diagnostics] == [(1, 9), (3, 5)]
        assert str(err) == "t:1:9: expected a number\nt:3:5: expected a name"

    def test_recovery_keeps_parsing(self) -> None:
        grammar = AssignGrammar()
        with pytest.raises(ParseError):
            run("set a = ;\nset b = 2;\nset c 3;\nset d = 4;", grammar)
        assert grammar.values == {"b": 2, "d": 4}

    def test_unconsumed_failure_still_advances(self) -> None:
        grammar = AssignGrammar()
        with pytest.raises(ParseError) as exc_info:
            run("oops; set a = 1;", grammar)
        assert len(exc_info.value.diagnostics) == 1
        assert "expected 'set', got \"oops\"" in str(exc_info.value)
        assert grammar.values == {"a": 1}

    def test_error_at_end_of_input(self) -> None:
        with pytest.raises(ParseError, match="expected ';'") as exc_info:
            run("set a = 1")
        assert exc_info.value.diagnostics[0].column == 10

    def test_header_error_recovers(self) -> None:
        grammar = AssignGrammar()
        with pytest.raises(ParseError, match="expected a version number"):
            run("version x;\nset a = 1;", grammar)
        assert grammar.values == {"a": 1}

    def test_failed_state(self) -> None:
        parser = Parser(AssignGrammar(), Tokenizer(TEST_KERNEL, "set;", "t"))
        with pytest.raises(ParseError):
            parser.parse()
        assert parser.state == ParserState.FAILED

    def test_lex_error_is_immediate(self) -> None:
        parser = Parser(AssignGrammar(), Tokenizer(TEST_KERNEL, "set a = ;\n@", "t"))
        with pytest.raises(LexError, match="unexpected character '@'"):
            parser.parse()
        assert parser.state == ParserState.FAILED


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------


class TestSession:
    def test_unprimed(self) -> None:
        session = ParserSession(Tokenizer(TEST_KERNEL, "a", "t"))
        with pytest.raises(RuntimeError, match="primed"):
            session.current

    def test_peek_does_not_consume(self) -> None:
        s = session_for("a b")
        assert s.peek().lexeme == "b"
        assert s.current.lexeme == "a"
        assert s.advance().lexeme == "a"
        assert s.current.lexeme == "b"
        assert s.consumed == 1

    def test_advance_stops_at_eof(self) -> None:
        s = session_for("a")
        s.advance()
        assert s.at_eof()
        s.advance()
        assert s.at_eof()
        assert s.consumed == 1

    def test_at_lexeme_ignores_case_and_literals(self) -> None:
        s = session_for('SeT "set"')
        assert s.at_lexeme("set")
        s.advance()
        assert not s.at_lexeme("set")
        assert s.match_string() == "set"

    def test_match_boolean(self) -> None:
        s = session_for("TRUE false other")
        assert s.match_boolean() is True
        assert s.match_boolean() is False
        assert s.match_boolean() is None
        assert s.current.lexeme == "other"

    def test_match_integer_forms(self) -> None:
        s = session_for("42 -5 +7 0x10 -0x10")
        assert [s.match_integer() for _ in range(5)] == [42, -5, 7, 16, -16]

    def test_match_integer_rejects_decimal(self) -> None:
        s = session_for("1.5")
        with pytest.raises(SyntaxFault, match="not a decimal"):
            s.match_integer()

    def test_lone_sign_is_not_a_number(self) -> None:
        s = session_for("- x")
        assert s.match_integer() is None
        assert s.current.type == T.DASH

    def test_match_fixed(self) -> None:
        s = session_for("1 1.5 -0.5 0x8000 .25")
        assert [s.match_fixed() for _ in range(5)] == [
            FRACUNIT,
            FRACUNIT + FRACUNIT // 2,
            -(FRACUNIT // 2),
            0x8000,
            FRACUNIT // 4,
        ]

    def test_decimal_separator(self) -> None:
        kernel = Kernel(delimiters={";": T.SEMI}, decimal_separator=",")
        s = session_for("1,5", kernel, decimal_separator=",")
        assert s.match_number() == 1.5

    def test_expect_failure_points_at_current(self) -> None:
        s = session_for("a b")
        with pytest.raises(SyntaxFault) as exc_info:
            s.expect(T.SEMI, "expected ';'")
        diag = exc_info.value.diagnostic
        assert (diag.line, diag.column, diag.message) == (1, 1, "expected ';'")

    def test_error_records_without_unwinding(self) -> None:
        s = session_for("a")
        s.error("just noting")
        assert len(s.diagnostics) == 1
        assert s.diagnostics.items[0].message == "just noting"
        assert s.current.lexeme == "a"
