"""Handler for Argo ``template:`` and ``templateRef`` references."""
from __future__ import annotations

import re

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.argo_templates import (
    TemplateReference, document_kind_at, find_all_template_references, find_template_definitions,
    find_template_reference_at,
)
from argolsp.references.formatters import build_description
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location, unresolved
from argolsp.references.types import DetectedReference, ResolvedReference, TemplateRefDetails, range_contains
from argolsp.services.template_index import ArgoTemplateIndex

_COMPLETION_CONTEXT_RE = re.compile(r'template:\s*$|template:\s+\S*$')


class ArgoTemplateHandler(ReferenceHandler):
    kind = 'argoTemplate'
    supports = HandlerSupports(definition=True, hover=True, completion=True, diagnostic=True)

    def __init__(self, template_index: ArgoTemplateIndex):
        self.template_index = template_index

    def _detected(self, doc: Document, ref: TemplateReference) -> DetectedReference:
        return DetectedReference(self.kind, ref.range, TemplateRefDetails(
            type=ref.type,
            template_name=ref.template_name,
            workflow_template_name=ref.workflow_template_name,
            cluster_scope=ref.cluster_scope,
            workflow_kind=document_kind_at(doc.lines, ref.range.start.line),
        ))

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_template_reference_at(doc.lines, pos)
        return self._detected(doc, ref) if ref is not None else None

    def find_all(self, doc: Document) -> list[DetectedReference]:
        return [self._detected(doc, ref) for ref in find_all_template_references(doc.lines)]

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: TemplateRefDetails = detected.details
        if details.type == 'direct':
            return self._resolve_direct(doc, detected, details)
        return self._resolve_template_ref(detected, details)

    def _resolve_direct(self, doc: Document, detected: DetectedReference,
                        details: TemplateRefDetails) -> ResolvedReference:
        for template in find_template_definitions(doc.lines, doc.uri):
            if template.name != details.template_name:
                continue
            parts = [f'**Template**: `{template.name}`',
                     f'**Location**: Local template in current {template.kind}']
            description = build_description(template.above_comment, template.inline_comment)
            if description:
                parts += ['', description]
            return ResolvedReference(
                detected=detected,
                definition_location=location(doc.uri, template.range),
                hover_markdown='  \n'.join(parts),
                exists=True,
            )
        return ResolvedReference(
            detected=detected,
            diagnostic_message=(f"Template '{details.template_name}' not found in this "
                                f"{details.workflow_kind or 'Workflow'}"),
            exists=False,
        )

    def _resolve_template_ref(self, detected: DetectedReference,
                              details: TemplateRefDetails) -> ResolvedReference:
        if not details.workflow_template_name:
            return unresolved(detected)
        template = self.template_index.find_template(
            details.workflow_template_name, details.template_name, details.cluster_scope)
        if template is None:
            scope = 'ClusterWorkflowTemplate' if details.cluster_scope else 'WorkflowTemplate'
            return ResolvedReference(
                detected=detected,
                diagnostic_message=(f"Template '{details.template_name}' not found in "
                                    f"{scope} '{details.workflow_template_name}'"),
                exists=False,
            )
        parts = [f'**Template**: `{template.name}`']
        if template.workflow_name:
            parts.append(f'**{template.kind}**: `{template.workflow_name}`')
        description = build_description(template.above_comment, template.inline_comment)
        if description:
            parts += ['', description]
        return ResolvedReference(
            detected=detected,
            definition_location=location(template.uri, template.range),
            hover_markdown='  \n'.join(parts),
            exists=True,
        )

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        prefix = doc.line(pos.line)[:pos.character]
        if not _COMPLETION_CONTEXT_RE.search(prefix):
            return None
        return [
            lsp.CompletionItem(
                label=t.name,
                kind=lsp.CompletionItemKind.Function,
                detail=f'Local template in current {t.kind}',
                documentation=t.above_comment or t.inline_comment,
            )
            for t in find_template_definitions(doc.lines, doc.uri)
        ]

    def find_references(self, doc: Document, pos: lsp.Position,
                        documents: list[Document]) -> list[lsp.Location]:
        ref = find_template_reference_at(doc.lines, pos)
        name = ref.template_name if ref is not None else None
        if name is None:
            for template in find_template_definitions(doc.lines, doc.uri):
                if range_contains(template.range, pos):
                    name = template.name
                    break
        if name is None:
            return []
        return [
            location(other.uri, found.range)
            for other in documents
            for found in find_all_template_references(other.lines)
            if found.template_name == name
        ]
