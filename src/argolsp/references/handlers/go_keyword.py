"""Handler for Go template control keywords (``if``, ``range``, ``define`` ...)."""
from __future__ import annotations

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.go_keywords import GO_KEYWORDS, find_keyword_at, in_keyword_context
from argolsp.references.formatters import code_block
from argolsp.references.handler import HandlerSupports, ReferenceHandler, unresolved
from argolsp.references.types import DetectedReference, GoKeywordDetails, ResolvedReference


class GoKeywordHandler(ReferenceHandler):
    kind = 'goKeyword'
    supports = HandlerSupports(hover=True, completion=True)

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_keyword_at(doc.lines, pos)
        if ref is None:
            return None
        return DetectedReference(self.kind, ref.range, GoKeywordDetails(ref.keyword_name))

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        keyword = GO_KEYWORDS.get(detected.details.keyword_name)
        if keyword is None:
            return unresolved(detected)
        parts = [f'**Keyword**: `{keyword.name}`', f'**Syntax**: `{keyword.syntax}`', '', keyword.description]
        if keyword.examples:
            parts += ['', '**Examples**:', '\n'.join(code_block(list(keyword.examples)))]
        return ResolvedReference(detected=detected, hover_markdown='  \n'.join(parts))

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        if not in_keyword_context(doc.line(pos.line), pos.character):
            return None
        return [
            lsp.CompletionItem(
                label=keyword.name,
                kind=lsp.CompletionItemKind.Keyword,
                detail='Go template keyword',
                documentation=keyword.description,
            )
            for keyword in GO_KEYWORDS.values()
        ]
