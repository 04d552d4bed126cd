"""Handler for ``{{item}}`` / ``{{item.<property>}}`` loop variables."""
from __future__ import annotations

import re

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.item_variables import find_item_source, find_item_variable_at
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location, unresolved
from argolsp.references.types import DetectedReference, ItemVariableDetails, ResolvedReference

MAX_HOVER_VALUES = 5

_COMPLETION_CONTEXT_RE = re.compile(r'\{\{\s*item\.\w*$')


class ItemVariableHandler(ReferenceHandler):
    kind = 'itemVariable'
    supports = HandlerSupports(definition=True, hover=True, completion=True)

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        found = find_item_variable_at(doc.lines, pos)
        if found is None:
            return None
        return DetectedReference(self.kind, found.range, ItemVariableDetails(found.type, found.property_name))

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: ItemVariableDetails = detected.details
        source = find_item_source(doc.lines, detected.range.start.line)
        if source is None:
            return unresolved(detected)

        label = 'item' + (f'.{details.property_name}' if details.property_name else '')
        parts = [f'**Item Variable**: `{{{{{label}}}}}`', '']
        if source.type == 'withItems':
            parts.append('**Source**: `withItems`')
            if source.items:
                parts += ['', '**Values**:']
                parts += [f'- `{item.value}`' for item in source.items[:MAX_HOVER_VALUES]]
                if len(source.items) > MAX_HOVER_VALUES:
                    parts.append(f'- ... and {len(source.items) - MAX_HOVER_VALUES} more')
                first = source.items[0]
                if first.value_type == 'object' and first.properties:
                    props = ', '.join(f'`{p}`' for p in first.properties)
                    parts += ['', f'**Available properties**: {props}']
        else:
            parts.append('**Source**: `withParam`')
            if source.param_expression:
                parts.append(f'**Expression**: `{source.param_expression}`')

        return ResolvedReference(
            detected=detected,
            definition_location=location(doc.uri, source.range),
            hover_markdown='\n'.join(parts),
            exists=True,
        )

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        prefix = doc.line(pos.line)[:pos.character]
        if not _COMPLETION_CONTEXT_RE.search(prefix):
            return None
        source = find_item_source(doc.lines, pos.line)
        if source is None or source.type != 'withItems' or not source.items:
            return None
        first = source.items[0]
        if first.value_type != 'object':
            return None
        return [
            lsp.CompletionItem(label=prop, kind=lsp.CompletionItemKind.Property,
                               detail='Item Property', insert_text=prop)
            for prop in first.properties
        ]
