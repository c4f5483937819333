"""Diagnostics and error types with formatted source context."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One recorded problem: where it happened and what went wrong."""

    stream_name: str
    line: int
    column: int
    message: str

    def format(self) -> str:
        return f"{self.stream_name}:{self.line}:{self.column}: {self.message}"

    def render(self, source: str) -> str:
        """Format with the offending source line and a caret underline."""
        lines = source.splitlines()
        line_idx = self.line - 1

        if 0 <= line_idx < len(lines):
            source_line = lines[line_idx].rstrip("\r")
        else:
            source_line = ""

        line_num = str(self.line)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"
        pad = " " * (self.column - 1)

        return (
            f"error: {self.message}\n"
            f"{' ' * gutter_width}--> {self.stream_name}:{self.line}:{self.column}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}^"
        )

    def __str__(self) -> str:
        return self.format()


class PatchScriptError(Exception):
    """Base class for every failure raised while reading a script."""

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return []


class _LocatedError(PatchScriptError):
    def __init__(self, message: str, stream_name: str, line: int, column: int) -> None:
        self.message = message
        self.diagnostic = Diagnostic(stream_name, line, column, message)
        super().__init__(self.diagnostic.format())

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return [self.diagnostic]


class LexError(_LocatedError):
    """Malformed literal or comment, or a character no rule accepts."""


class MacroError(_LocatedError):
    """Malformed directive or runaway macro expansion."""


class IncludeError(_LocatedError):
    """An included source could not be resolved or read."""


class ParseError(PatchScriptError):
    """Every syntax error recorded during one parse, in encounter order."""

    def __init__(self, diagnostics: Sequence[Diagnostic]) -> None:
        self._diagnostics = list(diagnostics)
        super().__init__("\n".join(d.format() for d in self._diagnostics))

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return list(self._diagnostics)
