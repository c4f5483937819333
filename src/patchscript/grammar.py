"""Patch-script grammar and the convenience entry points that run it.

    using mbf21

    thing 12 "Imp" {
        health 80
        radius 20.0
        seesound "bgsit1"
    }
    free states 900 to 966
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from os import PathLike
from pathlib import Path

from patchscript.lexer import DEFAULT_STREAM_NAME
from patchscript.parser import ParserSession, parse
from patchscript.patch import (
    DEFAULT_FORMAT,
    ENTRY_KINDS,
    FORMATS,
    PATCH_KERNEL,
    EntryKind,
    Patch,
    PropertySpec,
    Tag,
    ValueKind,
)
from patchscript.preprocessor import (
    DEFAULT_MAX_INCLUDE_DEPTH,
    DEFAULT_MAX_MACRO_DEPTH,
    FileIncluder,
    Includer,
    Preprocessor,
)
from patchscript.tokens import Token, TokenType

logger = logging.getLogger(__name__)

ENTRY_KEYWORDS = frozenset({*ENTRY_KINDS, "strings", "free", "protect", "using"})

_FORMAT_LIST = ", ".join(FORMATS)


class PatchGrammar:
    """Productions for the patch-script language, building a ``Patch``."""

    def __init__(self) -> None:
        self.patch = Patch(FORMATS[DEFAULT_FORMAT])

    def is_entry_start(self, token: Token) -> bool:
        return token.type == TokenType.IDENTIFIER and token.lexeme.lower() in ENTRY_KEYWORDS

    def result(self) -> Patch:
        return self.patch

    # ------------------------------------------------------------------
    # Header
    # ------------------------------------------------------------------

    def parse_header(self, session: ParserSession) -> None:
        if not session.match_lexeme("using"):
            return
        tok = session.current
        name = session.match_identifier()
        if name is None or name.lower() not in FORMATS:
            session.fail(f"expected a patch format ({_FORMAT_LIST})", tok)
        self.patch = Patch(FORMATS[name.lower()])
        logger.debug("patch format %s", self.patch.format.name)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def parse_entry(self, session: ParserSession) -> None:
        tok = session.current
        word = tok.lexeme.lower() if tok.type == TokenType.IDENTIFIER else ""

        if word in ENTRY_KINDS:
            session.advance()
            self._parse_record(session, ENTRY_KINDS[word])
        elif word == "strings":
            session.advance()
            self._parse_strings(session)
        elif word in ("free", "protect"):
            session.advance()
            self._parse_state_range(session, word)
        elif word == "using":
            session.fail('"using" must come before any entries')
        else:
            session.fail(f"unknown section or command {tok.describe()}")

    def _parse_record(self, session: ParserSession, kind: EntryKind) -> None:
        fmt = self.patch.format
        index_tok = session.current
        index = session.match_integer()
        if index is None:
            index = self._symbolic_index(session, kind)

        first, last = kind.first_index, kind.last_index(fmt)
        in_range = first <= index <= last
        if not in_range:
            session.error(
                f"{kind.keyword} index {index} is out of range for {fmt.name} ({first} to {last})",
                index_tok,
            )

        name = session.match_string()
        session.expect(Tag.LBRACE, f'expected "{{" to open {kind.keyword} {index}')

        properties = {}
        while not session.match(Tag.RBRACE):
            if session.at_eof():
                session.fail(f'expected "}}" to close {kind.keyword} {index}')
            key, value = self._parse_property(session, kind)
            if key is not None:
                properties[key] = value

        if in_range:
            entry = self.patch.entry(kind.keyword, index)
            if name is not None:
                entry.name = name
            entry.properties.update(properties)

    def _symbolic_index(self, session: ParserSession, kind: EntryKind) -> int:
        """Resolve an entry named by an earlier block, as in ``thing Imp { ... }``."""
        tok = session.current
        symbol = session.match_identifier()
        if symbol is None:
            session.fail(f"expected a {kind.keyword} index")
        entry = self.patch.find_entry(kind.keyword, symbol)
        if entry is None:
            session.fail(f'unknown {kind.keyword} "{symbol}"', tok)
        return entry.index

    def _parse_property(self, session: ParserSession, kind: EntryKind):
        tok = session.current
        key = session.match_identifier()
        if key is None:
            session.fail(f"expected a {kind.keyword} property name, got {tok.describe()}")

        spec = kind.properties.get(key.lower())
        if spec is None:
            session.fail(f'unknown {kind.keyword} property "{key}"', tok)

        value = self._parse_value(session, spec)

        fmt = self.patch.format
        if FORMATS[spec.since].level > fmt.level:
            session.error(
                f'{kind.keyword} property "{spec.name}" needs format {spec.since} or later',
                tok,
            )
            return None, None
        return spec.name, value

    def _parse_value(self, session: ParserSession, spec: PropertySpec):
        tok = session.current
        if spec.kind == ValueKind.INT:
            value = session.match_integer()
            expected = "an integer"
        elif spec.kind == ValueKind.FIXED:
            value = session.match_fixed()
            expected = "a number"
        elif spec.kind == ValueKind.BOOL:
            value = session.match_boolean()
            expected = "true or false"
        elif spec.kind == ValueKind.STRING:
            value = session.match_string()
            expected = "a string"
        else:
            value = session.match_identifier()
            if value is None:
                value = session.match_string()
            expected = "a name"

        if value is None:
            session.fail(f'expected {expected} for "{spec.name}", got {tok.describe()}', tok)
        return value

    def _parse_strings(self, session: ParserSession) -> None:
        session.expect(Tag.LBRACE, 'expected "{" after "strings"')
        while not session.match(Tag.RBRACE):
            if session.at_eof():
                session.fail('expected "}" to close "strings"')
            key_tok = session.current
            key = session.match_identifier()
            if key is None:
                session.fail(f"expected a string key, got {key_tok.describe()}")
            text = session.match_string()
            if text is None:
                session.fail(f'expected a string value for "{key}"')
            self.patch.strings[key] = text

    def _parse_state_range(self, session: ParserSession, command: str) -> None:
        if not session.match_lexeme("states"):
            session.fail(f'expected "states" after "{command}"')

        start_tok = session.current
        start = session.match_integer()
        if start is None:
            session.fail("expected a state index")
        end = start
        if session.match_lexeme("to"):
            end = session.match_integer()
            if end is None:
                session.fail('expected a state index after "to"')

        last = self.patch.format.states - 1
        if start > end:
            session.error(f"state range {start} to {end} is backwards", start_tok)
            return
        if start < 0 or end > last:
            session.error(
                f"state range {start} to {end} is out of range for "
                f"{self.patch.format.name} (0 to {last})",
                start_tok,
            )
            return

        if command == "protect":
            self.patch.protected_states.set(start, end, True)
            self.patch.free_states.set(start, end, False)
            return

        protected = self.patch.protected_states.find(True, start)
        if protected is not None and protected <= end:
            session.error(f"state {protected} is protected and cannot be freed", start_tok)
            return
        self.patch.free_states.set(start, end, True)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def parse_patch(
    text: str,
    stream_name: str = DEFAULT_STREAM_NAME,
    *,
    includer: Includer | None = None,
    include_paths: Sequence[str | Path] = (),
    defines: Mapping[str, str | Callable[[], str]] | None = None,
    max_macro_depth: int = DEFAULT_MAX_MACRO_DEPTH,
    max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH,
) -> Patch:
    """Preprocess and parse a patch script.

    Raises ``ParseError`` with every syntax error found, or the first
    ``LexError``, ``MacroError`` or ``IncludeError``.
    """
    preprocessor = Preprocessor(
        PATCH_KERNEL,
        text,
        stream_name,
        includer=includer if includer is not None else FileIncluder(include_paths),
        max_macro_depth=max_macro_depth,
        max_include_depth=max_include_depth,
    )
    for name, body in (defines or {}).items():
        preprocessor.define(name, body)
    return parse(PatchGrammar(), preprocessor)


def parse_patch_file(path: str | PathLike[str], **options) -> Patch:
    """Read a patch script from disk and parse it; ``options`` go to ``parse_patch``."""
    with open(path, encoding="utf-8") as f:
        text = f.read()
    return parse_patch(text, str(path), **options)
