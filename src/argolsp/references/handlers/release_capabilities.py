"""Handler for ``.Release.*`` and ``.Capabilities.*`` built-ins."""
from __future__ import annotations

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.release_capabilities import (
    CATALOGUES, builtin_prefix_for_completion, find_builtin_reference_at,
)
from argolsp.references.handler import HandlerSupports, ReferenceHandler, unresolved
from argolsp.references.types import DetectedReference, ReleaseCapabilitiesDetails, ResolvedReference


class ReleaseCapabilitiesHandler(ReferenceHandler):
    kind = 'releaseCapabilities'
    supports = HandlerSupports(hover=True, completion=True)

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_builtin_reference_at(doc.lines, pos)
        if ref is None or ref.variable_name not in CATALOGUES[ref.type]:
            return None
        return DetectedReference(self.kind, ref.range, ReleaseCapabilitiesDetails(ref.type, ref.variable_name))

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: ReleaseCapabilitiesDetails = detected.details
        info = CATALOGUES[details.type].get(details.variable_name)
        if info is None:
            return unresolved(detected)
        label = 'Release Variable' if info.category == 'release' else 'Capabilities Variable'
        parts = [f'**{label}**: `{info.full_path}`', f'**Category**: {info.category}', '', info.description]
        return ResolvedReference(detected=detected, hover_markdown='  \n'.join(parts))

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        found = builtin_prefix_for_completion(doc.line(pos.line), pos.character)
        if found is None:
            return None
        category, partial = found
        detail = 'Release Variable' if category == 'release' else 'Capabilities Variable'
        folded = partial.lower()
        return [
            lsp.CompletionItem(
                label=info.name,
                kind=lsp.CompletionItemKind.Property,
                detail=detail,
                documentation=info.description,
            )
            for info in CATALOGUES[category].values()
            if info.name.lower().startswith(folded)
        ]
