"""Immutable tokenizer configuration shared by every tokenizer of a grammar."""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


def _freeze(mapping: Mapping | None) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class Kernel:
    """Declarative lexical rules: delimiters, keywords, comments, and quotes.

    Delimiters map their text to a grammar-defined type tag and are matched
    longest first. Comment markers are matched before delimiters and never
    produce tokens. String delimiters map an opening quote character to its
    closing character.
    """

    delimiters: Mapping[str, Hashable] = field(default_factory=dict)
    keywords: Mapping[str, Hashable] = field(default_factory=dict)
    case_insensitive_keywords: Mapping[str, Hashable] = field(default_factory=dict)
    comment_start: Iterable[str] = ()
    comment_end: str = ""
    comment_line: Iterable[str] = ()
    string_delimiters: Mapping[str, str] = field(default_factory=dict)
    raw_string_delimiters: Mapping[str, str] = field(default_factory=dict)
    decimal_separator: str = "."
    emit_newlines: bool = False

    def __post_init__(self) -> None:
        for text in self.delimiters:
            if not text:
                raise ValueError("delimiter cannot be empty")
        for word in (*self.keywords, *self.case_insensitive_keywords):
            if not word:
                raise ValueError("keyword cannot be empty")
        for quotes in (self.string_delimiters, self.raw_string_delimiters):
            for start, end in quotes.items():
                if len(start) != 1 or len(end) != 1:
                    raise ValueError("string delimiters must be single characters")
        if len(self.decimal_separator) != 1:
            raise ValueError("decimal separator must be a single character")
        if tuple(self.comment_start) and not self.comment_end:
            raise ValueError("block comment start markers need an end marker")

        object.__setattr__(self, "delimiters", _freeze(self.delimiters))
        object.__setattr__(self, "keywords", _freeze(self.keywords))
        object.__setattr__(
            self,
            "case_insensitive_keywords",
            _freeze({k.lower(): v for k, v in self.case_insensitive_keywords.items()}),
        )
        object.__setattr__(self, "string_delimiters", _freeze(self.string_delimiters))
        object.__setattr__(self, "raw_string_delimiters", _freeze(self.raw_string_delimiters))
        # Longest first so that "//" wins over "/" and "<=" over "<".
        object.__setattr__(
            self, "comment_start", tuple(sorted(self.comment_start, key=len, reverse=True))
        )
        object.__setattr__(
            self, "comment_line", tuple(sorted(self.comment_line, key=len, reverse=True))
        )
        object.__setattr__(
            self,
            "_delimiters_by_length",
            tuple(sorted(self.delimiters.items(), key=lambda kv: len(kv[0]), reverse=True)),
        )

    def match_delimiter(self, source: str, pos: int) -> tuple[str, Hashable] | None:
        """Return the longest delimiter starting at source[pos], if any."""
        for text, tag in self._delimiters_by_length:  # type: ignore[attr-defined]
            if source.startswith(text, pos):
                return text, tag
        return None

    def keyword_type(self, word: str) -> Hashable | None:
        """Look up a scanned word; case-sensitive entries take precedence."""
        if word in self.keywords:
            return self.keywords[word]
        return self.case_insensitive_keywords.get(word.lower())
