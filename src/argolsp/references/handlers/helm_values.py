"""Handler for ``.Values.*`` references in Helm templates."""
from __future__ import annotations

import json

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.helm_values import (
    ValuesReference, find_all_values_references, find_values_reference_at, value_path_for_completion,
)
from argolsp.features.values_yaml import ValueDefinition
from argolsp.references.formatters import build_description
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location, unresolved
from argolsp.references.types import DetectedReference, ResolvedReference, ValuesDetails
from argolsp.services.chart_index import HelmChartIndex
from argolsp.services.values_index import ValuesIndex

MAX_DEFAULT_LENGTH = 50

_COMPLETION_KINDS = {
    'string': lsp.CompletionItemKind.Text,
    'number': lsp.CompletionItemKind.Value,
    'boolean': lsp.CompletionItemKind.Value,
    'array': lsp.CompletionItemKind.Variable,
    'object': lsp.CompletionItemKind.Module,
}


def format_default(value) -> str:
    text = json.dumps(value)
    if len(text) > MAX_DEFAULT_LENGTH:
        return text[:MAX_DEFAULT_LENGTH] + '...'
    return text


class HelmValuesHandler(ReferenceHandler):
    kind = 'helmValues'
    supports = HandlerSupports(definition=True, hover=True, completion=True, diagnostic=True)

    def __init__(self, chart_index: HelmChartIndex, values_index: ValuesIndex):
        self.chart_index = chart_index
        self.values_index = values_index

    def _detected(self, ref: ValuesReference) -> DetectedReference:
        return DetectedReference(self.kind, ref.range, ValuesDetails(ref.value_path, ref.full_expression))

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_values_reference_at(doc.lines, pos)
        return self._detected(ref) if ref is not None else None

    def find_all(self, doc: Document) -> list[DetectedReference]:
        return [self._detected(ref) for ref in find_all_values_references(doc.lines)]

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: ValuesDetails = detected.details
        chart = self.chart_index.find_chart_for_file(doc.uri)
        if chart is None:
            return unresolved(detected)

        value = self.values_index.find_value(chart.name, details.value_path)
        if value is None:
            return ResolvedReference(
                detected=detected,
                diagnostic_message=(f"Value '.Values.{details.value_path}' not found in "
                                    f"values.yaml ({chart.name})"),
                exists=False,
            )

        parts = [f'**Value**: `.Values.{value.path}`', f'**Type**: {value.value_type}']
        if value.value is not None:
            parts.append(f'**Default**: `{format_default(value.value)}`')
        parts.append(f'**Chart**: {chart.name}')
        description = build_description(value.above_comment, value.inline_comment)
        if description:
            parts += ['', description]
        return ResolvedReference(
            detected=detected,
            definition_location=location(value.uri, value.range),
            hover_markdown='\n'.join(parts),
            exists=True,
        )

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        partial = value_path_for_completion(doc.line(pos.line), pos.character)
        if partial is None:
            return None
        chart = self.chart_index.find_chart_for_file(doc.uri)
        if chart is None:
            return []
        if partial:
            values = self.values_index.find_values_by_prefix(chart.name, partial)
        else:
            values = self.values_index.get_all_values(chart.name)
        return [self._completion_item(v, chart.name) for v in values]

    @staticmethod
    def _completion_item(value: ValueDefinition, chart_name: str) -> lsp.CompletionItem:
        docs = [d for d in (build_description(value.above_comment, value.inline_comment),) if d]
        if value.value is not None:
            docs.append(f'Default: {format_default(value.value)}')
        return lsp.CompletionItem(
            label=value.path,
            kind=_COMPLETION_KINDS.get(value.value_type, lsp.CompletionItemKind.Property),
            detail=f'{value.value_type} ({chart_name})',
            documentation='\n\n'.join(docs) or None,
        )

    def find_references(self, doc: Document, pos: lsp.Position,
                        documents: list[Document]) -> list[lsp.Location]:
        ref = find_values_reference_at(doc.lines, pos)
        if ref is None:
            return []
        chart = self.chart_index.find_chart_for_file(doc.uri)
        results: list[lsp.Location] = []
        for other in documents:
            if chart is not None and self.chart_index.find_chart_for_file(other.uri) is not chart:
                continue
            results += [location(other.uri, found.range)
                        for found in find_all_values_references(other.lines)
                        if found.value_path == ref.value_path]
        return results
