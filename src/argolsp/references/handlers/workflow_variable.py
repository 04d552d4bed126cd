"""Handler for ``{{workflow.*}}`` variables."""
from __future__ import annotations

import re

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.workflow_variables import (
    WORKFLOW_VARIABLES, find_metadata_field, find_metadata_key, find_workflow_output,
    find_workflow_parameter, find_workflow_variable_at,
)
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location
from argolsp.references.types import DetectedReference, ResolvedReference, WorkflowVariableDetails

_COMPLETION_CONTEXT_RE = re.compile(r'\{\{\s*workflow\.\w*$')


class WorkflowVariableHandler(ReferenceHandler):
    kind = 'workflowVariable'
    supports = HandlerSupports(definition=True, hover=True, completion=True)

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        found = find_workflow_variable_at(doc.lines, pos)
        if found is None:
            return None
        return DetectedReference(self.kind, found.range, WorkflowVariableDetails(
            variable_name=found.variable.name,
            description=found.variable.description,
            example=found.variable.example,
            sub_property=found.sub_property,
            sub_property_type=found.sub_property_type,
        ))

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details: WorkflowVariableDetails = detected.details
        rng = self._definition_range(doc.lines, details)
        return ResolvedReference(
            detected=detected,
            definition_location=location(doc.uri, rng) if rng is not None else None,
            hover_markdown=self._hover(doc.lines, details),
            # workflow.* values only exist at run time
            exists=None,
        )

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        prefix = doc.line(pos.line)[:pos.character]
        if not _COMPLETION_CONTEXT_RE.search(prefix):
            return None
        return [
            lsp.CompletionItem(
                label=info.name,
                kind=lsp.CompletionItemKind.Property,
                detail='Workflow Variable',
                documentation=info.description,
                insert_text=info.name[len('workflow.'):],
            )
            for info in WORKFLOW_VARIABLES.values()
        ]

    # ------------------------------------------------------------------

    @staticmethod
    def _definition_range(lines: list[str], details: WorkflowVariableDetails) -> lsp.Range | None:
        kind, prop = details.sub_property_type, details.sub_property
        if kind in ('labels', 'annotations'):
            return find_metadata_key(lines, kind, prop)
        if kind == 'parameters':
            found = find_workflow_parameter(lines, prop)
            return found[0] if found else None
        if kind in ('outputs.parameters', 'outputs.artifacts'):
            return find_workflow_output(lines, prop, kind)
        if details.variable_name == 'workflow.name':
            return find_metadata_field(lines, 'name') or find_metadata_field(lines, 'generateName')
        if details.variable_name == 'workflow.namespace':
            return find_metadata_field(lines, 'namespace')
        return None

    @staticmethod
    def _hover(lines: list[str], details: WorkflowVariableDetails) -> str:
        kind, prop = details.sub_property_type, details.sub_property
        if kind == 'parameters':
            return workflow_parameter_hover(lines, prop)
        if kind == 'outputs.parameters':
            return (f'**Workflow Output Parameter**: `{prop}`  \n  \n**Type**: Workflow Output  \n  \n'
                    'Referenced from workflow-level `outputs.parameters`')
        if kind == 'outputs.artifacts':
            return (f'**Workflow Output Artifact**: `{prop}`  \n  \n**Type**: Workflow Output  \n  \n'
                    'Referenced from workflow-level `outputs.artifacts`')
        parts = [f'**Workflow Variable**: `{details.variable_name}`', '', details.description]
        if details.example:
            parts += ['', f'**Example**: `{details.example}`']
        return '  \n'.join(parts)


def workflow_parameter_hover(lines: list[str], name: str) -> str:
    """Hover for ``workflow.parameters.<name>``, shared with the parameter handler."""
    found = find_workflow_parameter(lines, name)
    if found is None:
        return f'**Workflow Parameter**: `{name}`\n\n**Type**: Workflow Argument'
    attrs = found[1]
    parts = [f'**Workflow Parameter**: `{name}`', '', '**Type**: Workflow Argument']
    if attrs.get('value'):
        parts.append(f"**Value**: `{attrs['value']}`")
    if attrs.get('description'):
        parts.append(f"**Description**: {attrs['description']}")
    return '  \n'.join(parts)
