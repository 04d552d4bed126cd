"""Handler for ``.Chart.*`` built-in variables."""
from __future__ import annotations

import json

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.chart_variables import CHART_VARIABLES, chart_prefix_for_completion, find_chart_reference_at
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location, unresolved
from argolsp.references.types import ChartVariableDetails, DetectedReference, ResolvedReference, make_range
from argolsp.services.chart_index import HelmChartIndex


class ChartVariableHandler(ReferenceHandler):
    kind = 'chartVariable'
    supports = HandlerSupports(definition=True, hover=True, completion=True)

    def __init__(self, chart_index: HelmChartIndex):
        self.chart_index = chart_index

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_chart_reference_at(doc.lines, pos)
        if ref is None or ref.variable_name not in CHART_VARIABLES:
            return None
        return DetectedReference(self.kind, ref.range, ChartVariableDetails(ref.variable_name))

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: ChartVariableDetails = detected.details
        info = CHART_VARIABLES.get(details.variable_name)
        chart = self.chart_index.find_chart_for_file(doc.uri)
        if info is None or chart is None:
            return unresolved(detected)

        parts = [f'**Chart Variable**: `{info.full_path}`']
        metadata = chart.metadata
        value = metadata.fields.get(info.chart_yaml_key) if metadata is not None else None
        if value is not None:
            parts.append(f'**Value**: `{json.dumps(value)}`')
        parts += [f'**Chart**: {chart.name}', '', info.description]

        line = metadata.key_lines.get(info.chart_yaml_key, 0) if metadata is not None else 0
        return ResolvedReference(
            detected=detected,
            definition_location=location(chart.chart_yaml_uri, make_range(line, 0, 0)),
            hover_markdown='  \n'.join(parts),
        )

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        partial = chart_prefix_for_completion(doc.line(pos.line), pos.character)
        if partial is None:
            return None
        folded = partial.lower()
        return [
            lsp.CompletionItem(
                label=info.name,
                kind=lsp.CompletionItemKind.Property,
                detail='Chart Variable',
                documentation=info.description,
            )
            for info in CHART_VARIABLES.values()
            if info.name.lower().startswith(folded)
        ]
