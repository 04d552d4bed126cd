"""Handler for Helm/Sprig template functions: hover and completion only."""
from __future__ import annotations

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.helm_functions import HELM_FUNCTIONS, find_helm_function_at, in_pipe_context
from argolsp.references.formatters import code_block
from argolsp.references.handler import HandlerSupports, ReferenceHandler, unresolved
from argolsp.references.types import DetectedReference, HelmFunctionDetails, ResolvedReference


class HelmFunctionHandler(ReferenceHandler):
    kind = 'helmFunction'
    supports = HandlerSupports(hover=True, completion=True)

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_helm_function_at(doc.lines, pos)
        if ref is None:
            return None
        return DetectedReference(self.kind, ref.range, HelmFunctionDetails(ref.function_name))

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        fn = HELM_FUNCTIONS.get(detected.details.function_name)
        if fn is None:
            return unresolved(detected)
        parts = [f'**Function**: `{fn.name}`', f'**Signature**: `{fn.signature}`',
                 f'**Category**: {fn.category}', '', fn.description]
        if fn.examples:
            parts += ['', '**Examples**:', '\n'.join(code_block(list(fn.examples)))]
        return ResolvedReference(detected=detected, hover_markdown='  \n'.join(parts))

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        if not in_pipe_context(doc.line(pos.line), pos.character):
            return None
        return [
            lsp.CompletionItem(
                label=fn.name,
                kind=lsp.CompletionItemKind.Function,
                detail=f'{fn.category} function',
                documentation=f'{fn.description}\n\nSignature: {fn.signature}',
            )
            for fn in HELM_FUNCTIONS.values()
        ]
