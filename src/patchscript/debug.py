"""--debug patch dump and --tokens listing."""

from __future__ import annotations

import sys
from collections.abc import Iterable
from enum import Enum
from typing import TextIO

from patchscript.intervals import IntervalMap
from patchscript.patch import Entry, Patch
from patchscript.tokens import Token


def format_token(tok: Token) -> str:
    """One-line description: position, type name, and lexeme."""
    name = tok.type.name if isinstance(tok.type, Enum) else str(tok.type)
    return f"{tok.stream_name}:{tok.line}:{tok.column} {name} {tok.lexeme!r}"


def dump_tokens(tokens: Iterable[Token], *, file: TextIO = sys.stderr) -> None:
    for tok in tokens:
        file.write(format_token(tok) + "\n")


def dump_patch(patch: Patch, *, file: TextIO = sys.stderr) -> None:
    """Print a human-readable outline of *patch* to *file*."""
    file.write(f"Patch {patch.format.name}\n")
    for title, table in (("Things", patch.things), ("Weapons", patch.weapons), ("Ammo", patch.ammo)):
        if table:
            file.write(f"  {title}\n")
            for index in sorted(table):
                _dump_entry(table[index], file)
    if patch.strings:
        file.write("  Strings\n")
        for key, text in patch.strings.items():
            file.write(f"    {key} = {text!r}\n")
    _dump_ranges("Used things", patch.used_things, file)
    _dump_ranges("Free states", patch.free_states, file)
    _dump_ranges("Protected states", patch.protected_states, file)


def _dump_entry(entry: Entry, f: TextIO) -> None:
    label = f" {entry.name!r}" if entry.name is not None else ""
    f.write(f"    {entry.kind} {entry.index}{label}\n")
    for key, value in entry.properties.items():
        f.write(f"      {key} = {value!r}\n")


def _dump_ranges(title: str, intervals: IntervalMap[bool], f: TextIO) -> None:
    spans = [iv for iv in intervals.intervals() if iv.value]
    if not spans:
        return
    text = ", ".join(str(iv.start) if iv.start == iv.end else f"{iv.start}-{iv.end}" for iv in spans)
    f.write(f"  {title}: {text}\n")
