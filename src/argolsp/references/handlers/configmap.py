"""Handler for ConfigMap and Secret name/key references."""
from __future__ import annotations

import re

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.configmaps import (
    ConfigMapReference, KeyDefinition, find_all_configmap_references, find_configmap_definitions,
    find_configmap_reference_at,
)
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location
from argolsp.references.types import ConfigMapDetails, DetectedReference, ResolvedReference, range_contains
from argolsp.services.configmap_index import ConfigMapIndex

MAX_VALUE_LENGTH = 100
MAX_VALUE_LINES = 3
CONTEXT_WINDOW = 5

_NAME_CONTEXT_RE = re.compile(r'^\s*-?\s*(name|secretName):(\s*$|\s+\w*$)')
_KEY_CONTEXT_RE = re.compile(r'^\s*-?\s*key:')
_CONTEXT_NAME_RE = re.compile(r'(?:name|secretName):\s*([^\s\n]+)')
_CONFIGMAP_MARKERS = ('configMapKeyRef:', 'configMapRef:', 'configMap:')
_SECRET_MARKERS = ('secretKeyRef:', 'secretRef:', 'secret:')


def format_value(key: KeyDefinition, kind: str) -> str:
    if kind == 'Secret':
        return '`[hidden]`'
    if key.value is None:
        return '*(empty)*'
    value_lines = key.value.split('\n')
    if len(value_lines) > 1:
        shown = '\n'.join(value_lines[:MAX_VALUE_LINES])
        text = f'\n```\n{shown}\n```'
        if len(value_lines) > MAX_VALUE_LINES:
            text += f'\n... ({len(value_lines) - MAX_VALUE_LINES} more line(s))'
        return text
    if len(key.value) > MAX_VALUE_LENGTH:
        return f'`{key.value[:MAX_VALUE_LENGTH]}...`'
    return f'`{key.value}`'


class ConfigMapHandler(ReferenceHandler):
    kind = 'configMap'
    supports = HandlerSupports(definition=True, hover=True, completion=True, diagnostic=True)

    def __init__(self, configmap_index: ConfigMapIndex):
        self.configmap_index = configmap_index

    def _detected(self, ref: ConfigMapReference) -> DetectedReference:
        return DetectedReference(self.kind, ref.range, ConfigMapDetails(
            ref.type, ref.reference_type, ref.name, ref.kind, ref.key_name))

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_configmap_reference_at(doc.lines, pos)
        return self._detected(ref) if ref is not None else None

    def find_all(self, doc: Document) -> list[DetectedReference]:
        return [self._detected(ref) for ref in find_all_configmap_references(doc.lines)]

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: ConfigMapDetails = detected.details
        kind = details.resource_kind
        definition = self.configmap_index.find_configmap(details.name, kind)

        if details.reference_type == 'name':
            if definition is None:
                return ResolvedReference(detected=detected,
                                         diagnostic_message=f"{kind} '{details.name}' not found",
                                         exists=False)
            parts = [f'**{kind}**: `{definition.name}`',
                     f'**Keys**: {len(definition.keys)} key(s) defined', '']
            parts += [f'- `{k.key}`' for k in definition.keys] or ['*(no keys)*']
            return ResolvedReference(
                detected=detected,
                definition_location=location(definition.uri, definition.name_range),
                hover_markdown='\n'.join(parts),
                exists=True,
            )

        # Key reference; an unknown ConfigMap is reported on its name, not here.
        if definition is None:
            return ResolvedReference(detected=detected, exists=None)
        key = definition.find_key(details.key_name)
        if key is None:
            return ResolvedReference(
                detected=detected,
                diagnostic_message=f"Key '{details.key_name}' not found in {kind} '{details.name}'",
                exists=False,
            )
        parts = [f'**Key**: `{key.key}`', f'**{kind}**: `{definition.name}`',
                 f'**Value**: {format_value(key, kind)}']
        return ResolvedReference(
            detected=detected,
            definition_location=location(key.uri, key.range),
            hover_markdown='\n'.join(parts),
            exists=True,
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _context_kind(self, lines: list[str], line_no: int) -> str | None:
        start = max(0, line_no - CONTEXT_WINDOW)
        for line in reversed(lines[start:line_no + 1]):
            trimmed = line.strip()
            if any(marker in trimmed for marker in _CONFIGMAP_MARKERS):
                return 'ConfigMap'
            if any(marker in trimmed for marker in _SECRET_MARKERS):
                return 'Secret'
        return None

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        line = doc.line(pos.line)
        prefix = line[:pos.character]

        m = _NAME_CONTEXT_RE.match(prefix)
        if m:
            kind = 'Secret' if m.group(1) == 'secretName' else self._context_kind(doc.lines, pos.line)
            if kind is None:
                return None
            return [
                lsp.CompletionItem(
                    label=d.name,
                    kind=lsp.CompletionItemKind.Value,
                    detail=kind,
                    documentation=f'{kind} with {len(d.keys)} key(s)',
                )
                for d in self.configmap_index.get_all(kind)
            ]

        if _KEY_CONTEXT_RE.match(prefix):
            kind = self._context_kind(doc.lines, pos.line)
            if kind is None:
                return None
            start = max(0, pos.line - CONTEXT_WINDOW)
            context = '\n'.join(doc.lines[start:pos.line + CONTEXT_WINDOW + 1])
            found = _CONTEXT_NAME_RE.search(context)
            if not found:
                return None
            name = found.group(1)
            return [
                lsp.CompletionItem(
                    label=key,
                    kind=lsp.CompletionItemKind.Property,
                    detail=f"Key in {kind} '{name}'",
                )
                for key in self.configmap_index.get_keys(name, kind)
            ]
        return None

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def find_references(self, doc: Document, pos: lsp.Position,
                        documents: list[Document]) -> list[lsp.Location]:
        ref = find_configmap_reference_at(doc.lines, pos)
        if ref is not None:
            target = (ref.kind, ref.name, ref.key_name if ref.reference_type == 'key' else None)
        else:
            target = self._definition_target(doc, pos)
        if target is None:
            return []
        kind, name, key_name = target
        results: list[lsp.Location] = []
        for other in documents:
            for found in find_all_configmap_references(other.lines):
                if found.kind != kind or found.name != name:
                    continue
                if key_name is None and found.reference_type == 'name':
                    results.append(location(other.uri, found.range))
                elif key_name is not None and found.key_name == key_name:
                    results.append(location(other.uri, found.range))
        return results

    @staticmethod
    def _definition_target(doc: Document, pos: lsp.Position) -> tuple[str, str, str | None] | None:
        for definition in find_configmap_definitions(doc.lines, doc.uri):
            if range_contains(definition.name_range, pos):
                return definition.kind, definition.name, None
            for key in definition.keys:
                if range_contains(key.range, pos):
                    return definition.kind, definition.name, key.key
        return None
