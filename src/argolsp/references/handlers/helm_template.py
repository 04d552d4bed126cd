"""Handler for ``{{ include "name" }}`` / ``{{ template "name" }}`` references."""
from __future__ import annotations

import re

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.helm_templates import (
    HelmTemplateReference, find_all_helm_template_references, find_define_blocks,
    find_helm_template_reference_at, innermost_define_at,
)
from argolsp.references.formatters import code_block
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location, unresolved
from argolsp.references.types import DetectedReference, HelmTemplateDetails, ResolvedReference
from argolsp.services.chart_index import HelmChartIndex
from argolsp.services.helm_template_index import HelmTemplateIndex
from argolsp.services.scanner import uri_to_path

PREVIEW_LINES = 3

_COMPLETION_CONTEXT_RE = re.compile(r'\{\{-?\s*(?:include|template)\s+"[^"]*$')


class HelmTemplateHandler(ReferenceHandler):
    kind = 'helmTemplate'
    supports = HandlerSupports(definition=True, hover=True, completion=True, diagnostic=True)

    def __init__(self, chart_index: HelmChartIndex, helm_template_index: HelmTemplateIndex):
        self.chart_index = chart_index
        self.helm_template_index = helm_template_index

    def _detected(self, ref: HelmTemplateReference) -> DetectedReference:
        return DetectedReference(self.kind, ref.range, HelmTemplateDetails(
            ref.type, ref.template_name, ref.full_expression))

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_helm_template_reference_at(doc.lines, pos)
        return self._detected(ref) if ref is not None else None

    def find_all(self, doc: Document) -> list[DetectedReference]:
        return [self._detected(ref) for ref in find_all_helm_template_references(doc.lines)]

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: HelmTemplateDetails = detected.details
        chart = self.chart_index.find_chart_for_file(doc.uri)
        if chart is None:
            return unresolved(detected)

        template = self.helm_template_index.find_template(chart.name, details.template_name)
        if template is None:
            return ResolvedReference(
                detected=detected,
                diagnostic_message=(f"Template '{details.template_name}' not found "
                                    f"(Helm {details.type}, {chart.name})"),
                exists=False,
            )

        parts = [f'**Template**: `{template.name}`',
                 f'**Type**: Helm {details.type}',
                 f'**Chart**: {chart.name}',
                 f'**File**: {uri_to_path(template.uri).name}']
        if template.description:
            parts.append(template.description)
        body = [line for line in template.content.split('\n') if line.strip()]
        if body:
            preview = code_block(body[:PREVIEW_LINES])
            if len(body) > PREVIEW_LINES:
                preview.append('...')
            parts += ['**Preview**:', '\n'.join(preview)]
        return ResolvedReference(
            detected=detected,
            definition_location=location(template.uri, template.range),
            hover_markdown='  \n'.join(parts),
            exists=True,
        )

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        if not _COMPLETION_CONTEXT_RE.search(doc.line(pos.line)[:pos.character]):
            return None
        chart = self.chart_index.find_chart_for_file(doc.uri)
        if chart is None:
            return []
        return [
            lsp.CompletionItem(
                label=t.name,
                kind=lsp.CompletionItemKind.Function,
                detail=f'Helm Template ({chart.name})',
                documentation=t.description,
            )
            for t in self.helm_template_index.get_all_templates(chart.name)
        ]

    def find_references(self, doc: Document, pos: lsp.Position,
                        documents: list[Document]) -> list[lsp.Location]:
        ref = find_helm_template_reference_at(doc.lines, pos)
        if ref is not None:
            name = ref.template_name
        else:
            define = innermost_define_at(find_define_blocks(doc.lines, doc.uri), pos)
            if define is None:
                return []
            name = define.name
        return [
            location(other.uri, found.range)
            for other in documents
            for found in find_all_helm_template_references(other.lines)
            if found.template_name == name
        ]
