"""Doom patch-script toolkit: tokenizer, preprocessor, parser framework, interval maps."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from patchscript.patch import Patch

__version__ = "0.1.0"


def compile(source: str, filename: str = "[text]", **options) -> Patch:
    """Preprocess and parse patch-script source into a Patch."""
    from patchscript.grammar import parse_patch

    return parse_patch(source, filename, **options)
