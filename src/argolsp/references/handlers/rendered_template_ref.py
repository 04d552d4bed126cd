"""
Argo template references inside Helm templates.

A Helm template that produces an Argo workflow still contains
``template:``/``templateRef`` references, but their targets may only exist
after rendering (names built from ``.Values`` and friends).  Resolution
order:

1. a ``templateRef`` with a literal WorkflowTemplate name, via the workspace
   template index;
2. a direct ``template:`` name defined literally in the same file;
3. the rendered chart: the matching reference in the rendered output of
   this file is resolved by the rendered chart's Argo registry, and a
   definition inside rendered output is mapped back to its source template.

When rendering is impossible the reference stays unknown and the hover
lists any render errors reported for this file.
"""
from __future__ import annotations

import logging
from pathlib import Path

from lsprotocol import types as lsp

from argolsp.detection import is_argo_workflow_document
from argolsp.document import Document
from argolsp.features.argo_templates import (
    TemplateReference, document_kind_at, find_all_template_references, find_template_definitions,
    find_template_reference_at,
)
from argolsp.references.formatters import build_description
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location, unresolved
from argolsp.references.types import DetectedReference, ResolvedReference, TemplateRefDetails, make_range
from argolsp.services.chart_index import HelmChart, HelmChartIndex
from argolsp.services.rendered_index import RenderedArgoIndexCache, source_path_of
from argolsp.services.scanner import path_to_uri, read_text, uri_to_path
from argolsp.services.template_index import ArgoTemplateIndex

logger = logging.getLogger(__name__)


def _is_literal(name: str | None) -> bool:
    return bool(name) and '{{' not in name


class RenderedTemplateRefHandler(ReferenceHandler):
    kind = 'renderedTemplateRef'
    supports = HandlerSupports(definition=True, hover=True)

    def __init__(self, chart_index: HelmChartIndex, template_index: ArgoTemplateIndex,
                 rendered_index: RenderedArgoIndexCache | None = None):
        self.chart_index = chart_index
        self.template_index = template_index
        self.rendered_index = rendered_index

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        if not is_argo_workflow_document(doc):
            return None
        ref = find_template_reference_at(doc.lines, pos)
        if ref is None:
            return None
        return DetectedReference(self.kind, ref.range, TemplateRefDetails(
            type=ref.type,
            template_name=ref.template_name,
            workflow_template_name=ref.workflow_template_name,
            cluster_scope=ref.cluster_scope,
            workflow_kind=document_kind_at(doc.lines, ref.range.start.line),
        ))

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: TemplateRefDetails = detected.details

        if details.type == 'templateRef' and _is_literal(details.workflow_template_name) \
                and _is_literal(details.template_name):
            template = self.template_index.find_template(
                details.workflow_template_name, details.template_name, details.cluster_scope)
            if template is not None:
                parts = [f'**Template**: `{template.name}`',
                         f'**{template.kind}**: `{template.workflow_name}`']
                description = build_description(template.above_comment, template.inline_comment)
                if description:
                    parts += ['', description]
                return ResolvedReference(
                    detected=detected,
                    definition_location=location(template.uri, template.range),
                    hover_markdown='  \n'.join(parts),
                    exists=True,
                )

        if details.type == 'direct' and _is_literal(details.template_name):
            for template in find_template_definitions(doc.lines, doc.uri):
                if template.name == details.template_name:
                    return ResolvedReference(
                        detected=detected,
                        definition_location=location(doc.uri, template.range),
                        hover_markdown='  \n'.join([
                            f'**Template**: `{template.name}`',
                            f'**Location**: Local template in current {template.kind}',
                        ]),
                        exists=True,
                    )

        chart = self.chart_index.find_chart_for_file(doc.uri)
        if chart is None or self.rendered_index is None:
            return unresolved(detected)
        return await self._resolve_rendered(doc, detected, chart)

    # ------------------------------------------------------------------
    # Rendered resolution
    # ------------------------------------------------------------------

    async def _resolve_rendered(self, doc: Document, detected: DetectedReference,
                                chart: HelmChart) -> ResolvedReference:
        template_path = uri_to_path(doc.uri).absolute().relative_to(chart.root_dir).as_posix()
        entry = await self.rendered_index.get_chart(chart.root_dir)
        if entry is None:
            errors = self.rendered_index.errors_for(chart.root_dir, template_path)
            if not errors:
                return unresolved(detected)
            parts = ['**Rendering failed**', '']
            parts += [f'- line {e.line}: {e.message}' for e in errors]
            return ResolvedReference(detected=detected, hover_markdown='  \n'.join(parts))

        rendered = entry.documents.get(template_path)
        if rendered is None:
            return unresolved(detected)
        counterpart = self._rendered_counterpart(doc, detected, rendered.lines)
        if counterpart is None:
            return unresolved(detected)

        resolved = await entry.registry.detect_and_resolve(rendered, counterpart.range.start)
        if resolved is None:
            return unresolved(detected)

        definition = resolved.definition_location
        if definition is not None:
            definition = self._to_source(chart, definition, counterpart.template_name)
        hover = resolved.hover_markdown
        if hover:
            hover += f'  \n**Rendered as**: `{counterpart.template_name}`'
        return ResolvedReference(
            detected=detected,
            definition_location=definition,
            hover_markdown=hover,
            diagnostic_message=resolved.diagnostic_message,
            exists=resolved.exists,
        )

    @staticmethod
    def _rendered_counterpart(doc: Document, detected: DetectedReference,
                              rendered_lines: list[str]) -> TemplateReference | None:
        """The reference in the rendered output that corresponds to *detected*.

        Same name first; otherwise the reference in the same ordinal slot among
        references of the same type (templated names change when rendered).
        """
        details: TemplateRefDetails = detected.details
        candidates = [r for r in find_all_template_references(rendered_lines) if r.type == details.type]
        for ref in candidates:
            if ref.template_name == details.template_name:
                return ref
        source_refs = [r for r in find_all_template_references(doc.lines) if r.type == details.type]
        for ordinal, ref in enumerate(source_refs):
            if ref.range == detected.range:
                return candidates[ordinal] if ordinal < len(candidates) else None
        return None

    @staticmethod
    def _to_source(chart: HelmChart, definition: lsp.Location, template_name: str) -> lsp.Location:
        source_path = source_path_of(definition.uri)
        if source_path is None:
            return definition
        source_file = Path(chart.root_dir) / source_path
        uri = path_to_uri(source_file)
        text = read_text(uri)
        if text is not None:
            for template in find_template_definitions(text.split('\n'), uri):
                if template.name == template_name:
                    return location(uri, template.range)
        logger.debug('RenderedTemplateRefHandler: %r not found literally in %s', template_name, source_file)
        return location(uri, make_range(0, 0, 0))
