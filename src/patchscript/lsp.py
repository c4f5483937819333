"""Minimal LSP server for patch scripts: diagnostics only."""

from __future__ import annotations

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from patchscript import errors
from patchscript.errors import PatchScriptError
from patchscript.grammar import parse_patch

server = LanguageServer("patchscript-lsp", "0.1.0", text_document_sync_kind=TextDocumentSyncKind.Full)


def _to_lsp(diag: errors.Diagnostic, path: str) -> Diagnostic:
    if diag.stream_name == path:
        line = diag.line - 1
        col = diag.column - 1
        message = diag.message
    else:
        # Raised inside an included file: pin it to the top of this document.
        line = col = 0
        message = diag.format()
    return Diagnostic(
        range=Range(
            start=Position(line=line, character=col),
            end=Position(line=line, character=col + 1),
        ),
        message=message,
        severity=DiagnosticSeverity.Error,
        source="patchscript",
    )


def _validate(ls: LanguageServer, uri: str) -> None:
    """Run the patch pipeline and publish one diagnostic per recorded problem."""
    doc = ls.workspace.get_text_document(uri)
    path = doc.path
    diagnostics: list[Diagnostic] = []

    try:
        parse_patch(doc.source, path)
    except PatchScriptError as exc:
        diagnostics.extend(_to_lsp(diag, path) for diag in exc.diagnostics)

    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


def main() -> None:
    server.start_io()
