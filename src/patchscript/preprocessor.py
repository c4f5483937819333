"""Directive-driven preprocessor: macros, includes, and conditional blocks.

Wraps a Tokenizer and hands its consumer an ordinary token stream. Directives
start at the beginning of a line with ``#``:

    #define NAME tokens...   define (or redefine) a macro
    #undefine NAME           forget a macro
    #include "path"          continue reading from another source
    #ifdef NAME / #ifndef NAME / #else / #endif
    #!...                    ignored (hashbang)

A backslash at the very end of a directive line glues the next line on.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, replace
from importlib import resources
from pathlib import Path
from typing import Protocol, TextIO

from patchscript.errors import IncludeError, MacroError
from patchscript.kernel import Kernel
from patchscript.lexer import LogicalLine, Tokenizer
from patchscript.tokens import Token, TokenType

logger = logging.getLogger(__name__)

DIRECTIVE_MARKER = "#"
PACKAGE_PREFIX = "package:"

DEFAULT_MAX_MACRO_DEPTH = 64
DEFAULT_MAX_INCLUDE_DEPTH = 16


@dataclass(frozen=True, slots=True)
class Macro:
    """A named token substitution; ``body`` may be a text provider called per use."""

    name: str
    body: tuple[Token, ...] | Callable[[], str]


# ---------------------------------------------------------------------------
# Include resolution
# ---------------------------------------------------------------------------


class Includer(Protocol):
    """Strategy for turning an include path into a readable source."""

    def resolve(self, stream_name: str, path: str) -> str | None:
        """Return a full path for ``path`` as seen from ``stream_name``, or None."""
        ...

    def open(self, path: str) -> TextIO:
        """Open a resolved path for reading."""
        ...


class FileIncluder:
    """Resolve includes against the filesystem and packaged resources.

    Relative paths are tried beside the including stream, then in each search
    directory, then as given. ``package:pkg/dir/file`` names a resource shipped
    inside an importable package.
    """

    def __init__(self, search_paths: Sequence[str | Path] = (), encoding: str = "utf-8") -> None:
        self.search_paths = [Path(p) for p in search_paths]
        self.encoding = encoding

    def resolve(self, stream_name: str, path: str) -> str | None:
        if path.startswith(PACKAGE_PREFIX):
            return path

        stream_name = stream_name.replace("\\", "/")
        if stream_name.startswith(PACKAGE_PREFIX) and "/" in stream_name:
            return stream_name.rsplit("/", 1)[0] + "/" + path

        candidates = []
        parent = Path(stream_name).parent
        if "/" in stream_name:
            candidates.append(parent / path)
        candidates.extend(directory / path for directory in self.search_paths)
        candidates.append(Path(path))

        for candidate in candidates:
            if candidate.is_file():
                return str(candidate)
        return None

    def open(self, path: str) -> TextIO:
        if path.startswith(PACKAGE_PREFIX):
            package, _, resource = path[len(PACKAGE_PREFIX) :].partition("/")
            if not package or not resource:
                raise FileNotFoundError(f"malformed resource path: {path}")
            return resources.files(package).joinpath(resource).open("r", encoding=self.encoding)
        return open(path, encoding=self.encoding)


# ---------------------------------------------------------------------------
# Preprocessor
# ---------------------------------------------------------------------------


@dataclass
class _Frame:
    tokenizer: Tokenizer
    resolved_path: str | None
    conditional_depth: int  # size of the conditional stack when this frame was pushed


class Preprocessor:
    """Turn a raw source into a macro-expanded, include-resolved token stream."""

    def __init__(
        self,
        kernel: Kernel,
        source: str,
        stream_name: str = "[text]",
        *,
        includer: Includer | None = None,
        emit_newlines: bool | None = None,
        case_sensitive_macros: bool = False,
        max_macro_depth: int = DEFAULT_MAX_MACRO_DEPTH,
        max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH,
    ) -> None:
        self._kernel = kernel
        self._includer: Includer = includer if includer is not None else FileIncluder()
        self._emit_newlines = kernel.emit_newlines if emit_newlines is None else emit_newlines
        self._case_sensitive = case_sensitive_macros
        self._max_macro_depth = max_macro_depth
        self._max_include_depth = max_include_depth

        self._macros: dict[str, Macro] = {}
        self._frames: list[_Frame] = [
            _Frame(self._raw_tokenizer(source, stream_name), _identity(stream_name), 0)
        ]
        # Each entry: (branch active, parent active, saw #else)
        self._conditionals: list[tuple[bool, bool, bool]] = []
        self._pending: deque[tuple[Token, int]] = deque()
        self._eof: Token | None = None

    # ------------------------------------------------------------------
    # Macro table
    # ------------------------------------------------------------------

    def _key(self, name: str) -> str:
        return name if self._case_sensitive else name.lower()

    def define(self, name: str, body: str | Sequence[Token] | Callable[[], str] = "") -> None:
        """Define a macro from source text, ready-made tokens, or a text provider."""
        if isinstance(body, str):
            tokens = tuple(Tokenizer(self._kernel, body, f"[define {name}]", emit_newlines=False))
            macro = Macro(name, tokens)
        elif callable(body):
            macro = Macro(name, body)
        else:
            macro = Macro(name, tuple(body))
        self._macros[self._key(name)] = macro

    def undefine(self, name: str) -> None:
        self._macros.pop(self._key(name), None)

    def is_defined(self, name: str) -> bool:
        return self._key(name) in self._macros

    def macro(self, name: str) -> Macro | None:
        return self._macros.get(self._key(name))

    @property
    def stream_name(self) -> str:
        return self._frames[-1].tokenizer.stream_name if self._frames else ""

    @property
    def include_depth(self) -> int:
        return len(self._frames)

    # ------------------------------------------------------------------
    # Token stream
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.next_token()
            if tok.type == TokenType.EOF:
                return
            yield tok

    def next_token(self) -> Token:
        """Return the next processed token; idempotent at end of input."""
        if self._eof is not None:
            return self._eof

        while True:
            if self._pending:
                tok, depth = self._pending.popleft()
            else:
                tok = self._next_source_token()
                depth = 0
                if tok.type == TokenType.EOF:
                    self._eof = tok
                    return tok

            if tok.type == TokenType.IDENTIFIER:
                macro = self._macros.get(self._key(tok.lexeme))
                if macro is not None:
                    self._expand(macro, tok, depth)
                    continue

            return tok

    def _expand(self, macro: Macro, site: Token, depth: int) -> None:
        if depth >= self._max_macro_depth:
            raise MacroError(
                f'macro "{macro.name}" exceeds the expansion depth limit '
                f"({self._max_macro_depth}); is it self-referential?",
                site.stream_name,
                site.line,
                site.column,
            )

        if callable(macro.body):
            body = tuple(
                Tokenizer(self._kernel, macro.body(), site.stream_name, emit_newlines=False)
            )
        else:
            body = macro.body

        # Expanded tokens report the invocation site.
        expanded = [
            (replace(t, line=site.line, column=site.column, stream_name=site.stream_name), depth + 1)
            for t in body
        ]
        self._pending.extendleft(reversed(expanded))

    def _next_source_token(self) -> Token:
        while True:
            frame = self._frames[-1]
            tokenizer = frame.tokenizer

            directive = tokenizer.read_directive(DIRECTIVE_MARKER)
            if directive is not None:
                self._directive(directive, tokenizer.stream_name)
                continue

            if not self._active():
                if tokenizer.at_end:
                    if self._pop_frame():
                        continue
                    return tokenizer.next_token()
                tokenizer.skip_line()
                continue

            tok = tokenizer.next_token()

            if tok.type == TokenType.EOF:
                if self._pop_frame():
                    continue
                return tok

            if tok.type == TokenType.NEWLINE and not self._emit_newlines:
                continue

            return tok

    def _pop_frame(self) -> bool:
        """Finish the innermost source. Returns False when it was the outermost one."""
        frame = self._frames[-1]
        if len(self._conditionals) > frame.conditional_depth:
            pos = frame.tokenizer.position
            raise MacroError(
                "unterminated #ifdef/#ifndef block at end of input",
                frame.tokenizer.stream_name,
                pos.line,
                pos.column,
            )
        if len(self._frames) == 1:
            return False
        self._frames.pop()
        logger.debug("finished include %s", frame.tokenizer.stream_name)
        return True

    def _raw_tokenizer(self, source: str, stream_name: str) -> Tokenizer:
        # Newlines are always scanned so that directives can be found at line starts.
        return Tokenizer(self._kernel, source, stream_name, emit_newlines=True)

    # ------------------------------------------------------------------
    # Directives
    # ------------------------------------------------------------------

    def _active(self) -> bool:
        return not self._conditionals or self._conditionals[-1][0]

    def _directive(self, line: LogicalLine, stream_name: str) -> None:
        if line.text.startswith("!"):
            return

        scanner = _DirectiveScanner(line.text)
        name = scanner.word()
        where = (stream_name, line.position.line, line.position.column)
        lowered = name.lower()

        if lowered in ("ifdef", "ifndef"):
            parent = self._active()
            if parent:
                target = self._macro_name(scanner, name, where)
                hit = self.is_defined(target)
                self._conditionals.append((hit if lowered == "ifdef" else not hit, True, False))
            else:
                self._conditionals.append((False, False, False))
            return

        if lowered == "else":
            if len(self._conditionals) <= self._frames[-1].conditional_depth:
                raise MacroError("#else without #ifdef or #ifndef", *where)
            active, parent, seen_else = self._conditionals.pop()
            if seen_else:
                raise MacroError("duplicate #else in conditional block", *where)
            self._conditionals.append((parent and not active, parent, True))
            return

        if lowered == "endif":
            if len(self._conditionals) <= self._frames[-1].conditional_depth:
                raise MacroError("#endif without #ifdef or #ifndef", *where)
            self._conditionals.pop()
            return

        if not self._active():
            return

        if lowered == "define":
            target = self._macro_name(scanner, name, where)
            if self._kernel.keyword_type(target) is not None:
                raise MacroError(f'cannot define keyword "{target}" as a macro', *where)
            body_text, offset = scanner.rest()
            self._define_from_line(target, body_text, line, offset, stream_name)
            logger.debug("defined macro %s at %s:%d", target, stream_name, line.position.line)
        elif lowered == "undefine":
            target = self._macro_name(scanner, name, where)
            self.undefine(target)
        elif lowered == "include":
            path = scanner.word()
            if not path:
                raise MacroError("expected a path after #include", *where)
            self._include(path, where)
        elif not name:
            raise MacroError("expected a directive name after '#'", *where)
        else:
            raise MacroError(f"unknown directive #{name}", *where)

    def _macro_name(self, scanner: _DirectiveScanner, directive: str, where) -> str:
        target = scanner.word()
        if scanner.quoted:
            raise MacroError(f"expected a macro name after #{directive}, not a string", *where)
        if not target:
            raise MacroError(f"expected a macro name after #{directive}", *where)
        return target

    def _define_from_line(
        self, name: str, body: str, line: LogicalLine, offset: int, stream_name: str
    ) -> None:
        # Map the body's offset back to a source position so body tokens point
        # at their real line.
        consumed = line.text[:offset]
        newlines = consumed.count("\n")
        if newlines:
            start_line = line.text_position.line + newlines
            start_col = len(consumed) - consumed.rfind("\n")
        else:
            start_line = line.text_position.line
            start_col = line.text_position.column + offset
        tokens = Tokenizer(
            self._kernel,
            body,
            stream_name,
            emit_newlines=False,
            line=start_line,
            column=start_col,
        )
        self._macros[self._key(name)] = Macro(name, tuple(tokens))

    def _include(self, path: str, where: tuple[str, int, int]) -> None:
        stream_name = where[0]
        if len(self._frames) >= self._max_include_depth:
            raise IncludeError(
                f"include depth limit ({self._max_include_depth}) exceeded", *where
            )
        try:
            resolved = self._includer.resolve(stream_name, path)
            if resolved is None:
                raise IncludeError(f'could not resolve include path "{path}"', *where)
            key = _identity(resolved)
            if any(f.resolved_path == key for f in self._frames):
                raise IncludeError(f'circular include detected: "{path}"', *where)
            with self._includer.open(resolved) as reader:
                text = reader.read()
        except OSError as exc:
            raise IncludeError(f'could not read include "{path}": {exc}', *where) from exc

        logger.debug("including %s from %s:%d", resolved, stream_name, where[1])
        self._frames.append(
            _Frame(self._raw_tokenizer(text, resolved), key, len(self._conditionals))
        )


def _identity(path: str) -> str:
    if path.startswith(PACKAGE_PREFIX):
        return path
    try:
        return str(Path(path).resolve())
    except OSError:
        return path


class _DirectiveScanner:
    """Splits a directive line into whitespace-delimited or quoted words."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0
        self.quoted = False

    def word(self) -> str:
        text = self._text
        while self._pos < len(text) and text[self._pos].isspace():
            self._pos += 1

        self.quoted = self._pos < len(text) and text[self._pos] == '"'
        if not self.quoted:
            begin = self._pos
            while self._pos < len(text) and not text[self._pos].isspace():
                self._pos += 1
            return text[begin : self._pos]

        self._pos += 1
        chars = []
        while self._pos < len(text):
            ch = text[self._pos]
            self._pos += 1
            if ch == '"':
                break
            if ch == "\\" and self._pos < len(text):
                ch = text[self._pos]
                self._pos += 1
            chars.append(ch)
        return "".join(chars)

    def rest(self) -> tuple[str, int]:
        """Return the unread remainder and its offset into the line."""
        return self._text[self._pos :], self._pos


def preprocess(
    kernel: Kernel,
    source: str,
    stream_name: str = "[text]",
    **options,
) -> list[Token]:
    """Convenience function: preprocess source text and return its tokens (no EOF)."""
    return list(Preprocessor(kernel, source, stream_name, **options))
